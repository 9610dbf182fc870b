"""ACME-specific JWS.

ACME wraps every authenticated request in a flattened JWS whose protected
header carries ``alg``, exactly one of ``jwk`` or ``kid``, ``nonce`` and
``url``. Only ES256 over P-256 is supported. The classes here layer the ACME
header fields on top of josepy; the ``jwk`` member is produced by
`acmeflow.jwk.encode` and the protected header is dumped as compact JSON.

"""
import json
import logging
from typing import Any
from typing import Dict
from typing import Optional
from typing import Union

from cryptography.hazmat.primitives.asymmetric import ec
import josepy as jose

from acmeflow import errors
from acmeflow import jwk

logger = logging.getLogger(__name__)

COMPACT_SEPARATORS = (',', ':')


class JWKBinding(jose.ImmutableMap):
    """Bind a request to the account by embedding its public key.

    Used for requests sent before the server has assigned a key
    identifier (account creation and lookup).

    :ivar key: Account public (or private) key.

    """
    __slots__ = ('key',)


class KIDBinding(jose.ImmutableMap):
    """Bind a request to the account by its server-assigned URL.

    :ivar str kid: Account URL returned by the server.

    """
    __slots__ = ('kid',)


Binding = Union[JWKBinding, KIDBinding]


class Header(jose.Header):
    """ACME-specific JOSE Header. Implements nonce, kid, and url.
    """
    jwk: Optional[jose.JWK] = jose.field(
        'jwk', omitempty=True, encoder=jwk.encode, decoder=jose.JWK.from_json)
    kid: Optional[str] = jose.field('kid', omitempty=True)  # type: ignore[assignment]
    nonce: Optional[str] = jose.field('nonce', omitempty=True)
    url: Optional[str] = jose.field('url', omitempty=True)

    def json_dumps(self, **kwargs: Any) -> str:
        kwargs.setdefault('separators', COMPACT_SEPARATORS)
        return super().json_dumps(**kwargs)


class Signature(jose.Signature):
    """ACME-specific Signature. Uses ACME-specific Header for customer fields."""
    __slots__ = jose.Signature._orig_slots  # type: ignore[attr-defined]  # pylint: disable=protected-access,no-member

    header_cls = Header
    header: Header = jose.field(
        'header', omitempty=True, default=header_cls(),
        decoder=header_cls.from_json)


class SignedEnvelope(jose.JWS):
    """Flattened JWS sent as an ACME request body.

    ``payload`` holds the raw payload bytes, ``b""`` for POST-as-GET;
    `json_dumps` renders the ``protected``/``payload``/``signature``
    members.

    """
    signature_cls = Signature
    __slots__ = jose.JWS._orig_slots  # type: ignore[attr-defined]  # pylint: disable=protected-access

    @classmethod
    def sign(cls, payload: bytes, key: jose.JWK, nonce: str, url: str,  # type: ignore[override]  # pylint: disable=arguments-differ
             kid: Optional[str] = None) -> 'SignedEnvelope':
        # jwk and kid are mutually exclusive
        include_jwk = kid is None
        return super().sign(payload, key=key, alg=jose.ES256,
                            protect=frozenset(['nonce', 'url', 'kid', 'jwk', 'alg']),
                            nonce=nonce, url=url, kid=kid,
                            include_jwk=include_jwk)

    def protected_header(self) -> Dict[str, Any]:
        """Decoded protected header, members in serialized order."""
        return json.loads(self.signature.protected)

    def decoded_payload(self) -> Optional[Any]:
        """Decoded payload, ``None`` for POST-as-GET."""
        if not self.payload:
            return None
        return json.loads(self.payload.decode('utf-8'))

    def verify(self, key: jwk.KeyLike) -> bool:  # type: ignore[override]  # pylint: disable=arguments-differ
        """Verify the signature with the public half of ``key``."""
        return super().verify(jose.JWKEC(key=jwk.public_key(key)))


def encode_payload(payload: Any) -> bytes:
    """Compact JSON bytes of a request payload.

    :param payload: JSON serializable object, possibly holding
        `josepy.JSONDeSerializable` values, or ``None`` for an empty body
        (POST-as-GET).

    :raises .SerializationError: if ``payload`` cannot be rendered as
        strict JSON (NaN and infinities included).

    """
    if payload is None:
        return b''
    try:
        return json.dumps(payload, default=jose.JSONDeSerializable.json_dump_default,
                          separators=COMPACT_SEPARATORS, allow_nan=False).encode('utf-8')
    except (TypeError, ValueError, jose.SerializationError) as error:
        raise errors.SerializationError(
            'Cannot serialize payload {0!r}: {1}'.format(payload, error))


def signing_key(key: Any, binding: Binding) -> jose.JWKEC:
    """Check ``key`` can sign for ``binding``.

    :raises .InvalidKey: if ``key`` is not a P-256 private key.
    :raises .KeyMismatchError: if ``key`` does not match a `JWKBinding`.

    :rtype: `josepy.JWKEC`

    """
    if isinstance(key, jose.JWK):
        key = getattr(key.key, '_wrapped', key.key)
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise errors.InvalidKey(
            'Expected an EC private key, got {0}'.format(type(key).__name__))
    # validates the curve
    jwk.public_key(key)
    if isinstance(binding, JWKBinding) and not jwk.same_key(binding.key, key):
        raise errors.KeyMismatchError('Signing key does not match the JWK binding')
    return jose.JWKEC(key=key)


def sign_encoded(payload: bytes, url: str, nonce: str, binding: Binding,
                 key: jose.JWKEC) -> SignedEnvelope:
    """Sign payload bytes already produced by `encode_payload`.

    ``key`` must come from `signing_key`.

    :raises .MissingNonce: if ``nonce`` is empty.

    """
    if not nonce:
        raise errors.MissingNonce({})
    kid = binding.kid if isinstance(binding, KIDBinding) else None
    logger.debug('Signing request to %s with %s', url, type(binding).__name__)
    return SignedEnvelope.sign(payload, key=key, nonce=nonce, url=url, kid=kid)


def sign(payload: Any, url: str, nonce: str, binding: Binding,
         key: Any) -> SignedEnvelope:
    """Build the signed envelope for one request.

    :param payload: Request body, see `encode_payload`.
    :param str url: Exact URL the envelope will be posted to.
    :param str nonce: Unused anti-replay nonce.
    :param binding: `JWKBinding` or `KIDBinding`.
    :param key: Account private key, `cryptography` EC key or
        `josepy.JWKEC`.

    :raises .MissingNonce: if ``nonce`` is empty.
    :raises .InvalidKey: if ``key`` is not a P-256 private key.
    :raises .KeyMismatchError: if ``key`` does not match a `JWKBinding`.
    :raises .SerializationError: if ``payload`` cannot be serialized.

    :rtype: `SignedEnvelope`

    """
    return sign_encoded(encode_payload(payload), url, nonce, binding,
                        signing_key(key, binding))
