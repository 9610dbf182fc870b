"""ACME client errors."""
from typing import Any
from typing import Mapping


class Error(Exception):
    """Generic acmeflow error."""


class Unauthenticated(Error):
    """No account key is available to authenticate requests."""


class InvalidKey(Error):
    """Key material is malformed or not an ES256 (P-256) key."""


class KeyMismatchError(InvalidKey):
    """Signing key does not correspond to the key in the JWS binding."""


class SerializationError(Error):
    """Request payload cannot be rendered to JSON."""


class ProtocolError(Error):
    """Server response is well-formed but semantically invalid.

    Raised e.g. when a required field is missing from an order or when
    an object cannot be decoded.

    """


class ClientError(Error):
    """Network error."""


class TransportError(ClientError):
    """HTTP transport failure.

    :ivar error: Original exception raised by the transport.

    """
    def __init__(self, error: Exception, *args: Any) -> None:
        super().__init__(*args)
        self.error = error

    def __str__(self) -> str:
        return 'Transport error: {0}'.format(self.error)


class NonceError(ClientError):
    """Server response nonce error."""


class MissingNonce(NonceError):
    """No anti-replay nonce available to sign a request.

    Servers "MUST include a Replay-Nonce header field in each successful
    response to a POST"; the nonce endpoint must include one as well.

    :ivar headers: Mapping of HTTP headers of the offending response.

    """
    def __init__(self, headers: Mapping[str, str], *args: Any) -> None:
        super().__init__(*args)
        self.headers = dict(headers)

    def __str__(self) -> str:
        return ('No replay nonce available, last response headers: {0} '
                '(This may be a service outage)'.format(self.headers))


class ConflictError(ClientError):
    """Server returned 409 (Conflict), or the account already exists.

    :ivar str location: ``Location`` of the existing resource.

    """
    def __init__(self, location: str) -> None:
        self.location = location
        super().__init__()

    def __str__(self) -> str:
        return 'Conflict with existing resource at {0}'.format(self.location)
