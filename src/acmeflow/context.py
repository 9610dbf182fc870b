"""Account context shared by all operations of a client."""
import logging
import threading
from typing import Any
from typing import Optional

from acmeflow import errors
from acmeflow import jwk
from acmeflow import jws

logger = logging.getLogger(__name__)


class ClientContext:
    """Account key plus the values derived from it and cached.

    The account URL (used as ``kid``) and the key thumbprint are computed at
    most once and then reused; recomputing either is idempotent, so
    concurrent initialization is harmless.

    :ivar key: Account private key (`cryptography` EC key or
        `josepy.JWKEC`), or ``None`` for an unauthenticated context.

    """
    def __init__(self, key: Any, account_url: Optional[str] = None) -> None:
        self.key = key
        self._account_url = account_url
        self._thumbprint: Optional[str] = None
        self._lock = threading.Lock()

    def require_key(self) -> Any:
        """Return the account key.

        :raises .Unauthenticated: if the context has no key.

        """
        if self.key is None:
            raise errors.Unauthenticated('An account key is required for this operation')
        return self.key

    @property
    def account_url(self) -> Optional[str]:
        """Account URL assigned by the server, if known."""
        return self._account_url

    @account_url.setter
    def account_url(self, value: str) -> None:
        with self._lock:
            if self._account_url != value:
                logger.debug('Caching account URL %s', value)
            self._account_url = value

    @property
    def thumbprint(self) -> str:
        """Thumbprint of the account public key (see `.jwk.thumbprint`)."""
        if self._thumbprint is None:
            key = self.require_key()
            with self._lock:
                if self._thumbprint is None:
                    self._thumbprint = jwk.thumbprint(key)
        return self._thumbprint

    def jwk_binding(self) -> jws.JWKBinding:
        """Binding embedding the account public key."""
        return jws.JWKBinding(key=self.require_key())

    def kid_binding(self) -> jws.KIDBinding:
        """Binding referencing the account URL.

        :raises .Unauthenticated: if the account URL is not known yet.

        """
        self.require_key()
        if self._account_url is None:
            raise errors.Unauthenticated('Account URL is not known yet')
        return jws.KIDBinding(kid=self._account_url)
