"""Canonical JSON Web Key encoding and thumbprints for ES256 account keys.

Every signature and every key authorization depends on the exact bytes
produced here, so the encoding is deterministic: members are emitted in the
order ``kty, crv, x, y`` and both coordinates are left-padded to the curve
size before unpadded base64url encoding.

"""
from typing import Any
from typing import Dict
from typing import Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
import josepy as jose

from acmeflow import errors

KTY = 'EC'
CRV = 'P-256'
COORDINATE_SIZE = 32
"""Length in bytes of a P-256 coordinate."""

KeyLike = Union[ec.EllipticCurvePublicKey, ec.EllipticCurvePrivateKey, jose.JWK]


def public_key(key: Any) -> ec.EllipticCurvePublicKey:
    """Extract the P-256 public key from ``key``.

    :param key: `cryptography` EC public or private key, or a
        `josepy.JWKEC` wrapping either.

    :raises .InvalidKey: if ``key`` is not a P-256 key.

    :rtype: `cryptography.hazmat.primitives.asymmetric.ec.EllipticCurvePublicKey`

    """
    if isinstance(key, jose.JWK):
        # ComparableECKey proxies the wrapped cryptography key
        key = getattr(key.key, '_wrapped', key.key)
    if isinstance(key, ec.EllipticCurvePrivateKey):
        key = key.public_key()
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise errors.InvalidKey(
            'Expected an EC public key, got {0}'.format(type(key).__name__))
    if not isinstance(key.curve, ec.SECP256R1):
        raise errors.InvalidKey(
            'Expected curve {0}, got {1}'.format(CRV, key.curve.name))
    return key


def _encode_coordinate(value: int) -> str:
    try:
        raw = value.to_bytes(COORDINATE_SIZE, byteorder='big', signed=False)
    except OverflowError as error:
        raise errors.InvalidKey('Coordinate does not fit the curve: {0}'.format(error))
    return jose.encode_b64jose(raw)


def encode(key: KeyLike) -> Dict[str, str]:
    """JWK representation of the public half of ``key``.

    :returns: ``{"kty": "EC", "crv": "P-256", "x": ..., "y": ...}``
    :rtype: dict

    """
    numbers = public_key(key).public_numbers()
    return {
        'kty': KTY,
        'crv': CRV,
        'x': _encode_coordinate(numbers.x),
        'y': _encode_coordinate(numbers.y),
    }


def thumbprint(key: KeyLike) -> str:
    """Account key thumbprint.

    SHA-256 over the compact JWK serialized with lexicographically sorted
    members, as lowercase hex. Stable for a given key pair.

    :rtype: str

    """
    return jose.JWKEC(key=public_key(key)).thumbprint(hash_function=hashes.SHA256).hex()


def same_key(first: KeyLike, second: KeyLike) -> bool:
    """Do both keys have the same public half?"""
    return public_key(first).public_numbers() == public_key(second).public_numbers()
