"""Crypto utilities."""
import base64
import re
from typing import List
from typing import Optional
from typing import Union

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
import josepy as jose

from acmeflow import errors
from acmeflow import jwk

_PEM_ARMOR_RE = re.compile(r'-----(BEGIN|END) [A-Z ]+-----')


def generate_account_key() -> ec.EllipticCurvePrivateKey:
    """Generate a new P-256 account key."""
    return ec.generate_private_key(ec.SECP256R1())


def load_account_key(key_pem: bytes, password: Optional[bytes] = None
                     ) -> ec.EllipticCurvePrivateKey:
    """Load a PEM encoded P-256 account key.

    :raises .InvalidKey: if the PEM cannot be parsed or holds another kind
        of key.

    """
    try:
        key = serialization.load_pem_private_key(key_pem, password=password)
    except (ValueError, TypeError) as error:
        raise errors.InvalidKey('Cannot load account key: {0}'.format(error))
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise errors.InvalidKey(
            'Account key must be an EC key, got {0}'.format(type(key).__name__))
    # checks the curve
    jwk.public_key(key)
    return key


def dump_account_key(key: ec.EllipticCurvePrivateKey) -> bytes:
    """PEM (PKCS#8, unencrypted) serialization of an account key."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption())


def make_csr(private_key_pem: bytes, domains: List[str]) -> bytes:
    """Generate a CSR containing ``domains`` as subjectAltNames.

    :param bytes private_key_pem: Private key, in PEM PKCS#8 format.
    :param list domains: DNS names to include in subjectAltNames of CSR.

    :returns: PEM-encoded Certificate Signing Request.

    """
    private_key = serialization.load_pem_private_key(private_key_pem, password=None)
    if not domains:
        raise ValueError("At least one domain is required")

    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([]))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]),
            critical=False,
        )
    )
    csr = builder.sign(private_key, hashes.SHA256())
    return csr.public_bytes(serialization.Encoding.PEM)


def csr_pem_to_b64url(csr_pem: Union[bytes, str]) -> str:
    """base64url (unpadded) of the DER bytes of a PEM CSR.

    Only the armor lines and whitespace are stripped; the base64 body is
    re-encoded with the URL safe alphabet.

    """
    try:
        if isinstance(csr_pem, bytes):
            csr_pem = csr_pem.decode('ascii')
        body = ''.join(_PEM_ARMOR_RE.sub('', csr_pem).split())
        der = base64.b64decode(body, validate=True)
    except ValueError as error:
        raise errors.SerializationError('Invalid CSR PEM: {0}'.format(error))
    return jose.encode_b64jose(der)
