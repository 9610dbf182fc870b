"""ACME client API."""
import datetime
import logging
import threading
import time
from typing import Any
from typing import Iterable
from typing import List
from typing import Optional

import josepy as jose
import requests
from requests.adapters import HTTPAdapter

from acmeflow import challenges
from acmeflow import crypto_util
from acmeflow import errors
from acmeflow import jws
from acmeflow import messages
from acmeflow.context import ClientContext

logger = logging.getLogger(__name__)

DEFAULT_NETWORK_TIMEOUT = 45

POLL_INTERVAL = 5
"""Seconds to sleep between authorization polls in `Client.wait`."""


class Client:
    """ACME client driving orders through their lifecycle.

    Every request is signed with the account key held by ``context``.
    Requests are issued one at a time; a single `Client` (and its
    `ClientNetwork`) must not be used from several threads at once.

    :ivar messages.Directory directory:
    :ivar .ClientNetwork net: Client network.
    :ivar .ClientContext context: Account key and cached account data.
    """

    def __init__(self, directory: messages.Directory, net: 'ClientNetwork',
                 context: ClientContext) -> None:
        """Initialize.

        :param .messages.Directory directory: Directory Resource
        :param .ClientNetwork net: Client network.
        :param .ClientContext context: Account context.
        """
        self.directory = directory
        self.net = net
        self.context = context

    @classmethod
    def get_directory(cls, url: str, net: 'ClientNetwork') -> messages.Directory:
        """
        Retrieves the ACME directory (RFC 8555 section 7.1.1) from the ACME server.

        :param str url: the URL where the ACME directory is available
        :param ClientNetwork net: the ClientNetwork to use to make the request

        :returns: the ACME directory object
        :rtype: messages.Directory
        """
        return messages.Directory.from_json(_json(net.get(url)))

    def new_account(self, registration: messages.Registration
                    ) -> messages.RegistrationResource:
        """Register a new account.

        Signed with the account public key embedded (``jwk``); the returned
        account URL is cached in the context.

        :param .Registration registration:

        :raises .ConflictError: in case the account already exists. The
            account URL is cached nevertheless.

        :returns: Registration Resource.
        :rtype: `.RegistrationResource`

        """
        response = self._post(self.directory['newAccount'], registration,
                              binding=self.context.jwk_binding())
        uri = response.headers.get('Location')
        if uri is None:
            raise errors.ProtocolError('Account response carries no Location header')
        self.context.account_url = uri
        # if account already exists
        if response.status_code == 200:
            raise errors.ConflictError(uri)
        logger.info('Registered account %s', uri)
        return messages.RegistrationResource(
            body=messages.Registration.from_server(_json(response)), uri=uri)

    def query_account(self) -> messages.RegistrationResource:
        """Look up the existing account of the context key.

        :raises .messages.Error: ``accountDoesNotExist`` if the server does
            not know the key.

        :rtype: `.RegistrationResource`

        """
        only_existing = messages.Registration(only_return_existing=True)
        response = self._post(self.directory['newAccount'], only_existing,
                              binding=self.context.jwk_binding())
        uri = response.headers.get('Location')
        if uri is None:
            raise errors.ProtocolError('Account response carries no Location header')
        self.context.account_url = uri
        return messages.RegistrationResource(
            body=messages.Registration.from_server(_json(response)), uri=uri)

    def create_order(self, identifiers: Iterable[str],
                     not_before: Optional[datetime.datetime] = None,
                     not_after: Optional[datetime.datetime] = None
                     ) -> messages.OrderResource:
        """Request a new Order object from the server.

        :param identifiers: Domain names, e.g. ``["*.example.com",
            "example.com"]``.
        :param datetime.datetime not_before: Requested start of validity.
            Not supported by every CA.
        :param datetime.datetime not_after: Requested end of validity.
            Not supported by every CA.

        :raises .Unauthenticated: if the context has no account key.

        :returns: The newly created order.
        :rtype: OrderResource
        """
        self._ensure_account()
        kwargs: dict = {}
        if not_before is not None:
            kwargs['not_before'] = not_before
        if not_after is not None:
            kwargs['not_after'] = not_after
        order = messages.NewOrder(
            identifiers=tuple(messages.Identifier.dns(name) for name in identifiers),
            **kwargs)
        response = self._post(self.directory['newOrder'], order)
        orderr = messages.OrderResource(
            body=messages.Order.from_server(_json(response)),
            uri=response.headers.get('Location'))
        logger.info('Created order %s for %s', orderr.uri,
                    ', '.join(ident.value for ident in orderr.body.identifiers or ()))
        return orderr

    def finalize_order(self, orderr: messages.OrderResource,
                       csr_pem: bytes) -> messages.OrderResource:
        """Send the CSR for an order whose authorizations are valid.

        :param messages.OrderResource orderr: order to finalize
        :param bytes csr_pem: CSR in PEM format.

        :returns: updated order, typically ``processing`` or ``valid``
        :rtype: messages.OrderResource
        """
        self._ensure_account()
        request = messages.CertificateRequest(csr=crypto_util.csr_pem_to_b64url(csr_pem))
        response = self._post(orderr.body.finalize, request)
        return orderr.update(body=messages.Order.from_server(_json(response)),
                             uri=response.headers.get('Location', orderr.uri))

    def refresh_order(self, orderr: messages.OrderResource) -> messages.OrderResource:
        """Fetch the current state of an order."""
        if orderr.uri is None:
            raise errors.ProtocolError('Order has no URL to refresh from')
        self._ensure_account()
        response = self._post_as_get(orderr.uri)
        return orderr.update(body=messages.Order.from_server(_json(response)))

    def fetch_certificate(self, orderr: messages.OrderResource) -> str:
        """Download the PEM certificate chain of a valid order.

        :raises .ProtocolError: if the order has no certificate URL yet.

        :rtype: str
        """
        if orderr.body.certificate is None:
            raise errors.ProtocolError(
                'Order {0} has no certificate (status {1})'.format(
                    orderr.uri, orderr.body.status))
        self._ensure_account()
        response = self._post_as_get(orderr.body.certificate,
                                     accept=ClientNetwork.PEM_CHAIN_CONTENT_TYPE)
        return response.text

    def get_authorizations(self, orderr: messages.OrderResource
                           ) -> List[messages.Authorization]:
        """Fetch every authorization of the order.

        :returns: Authorizations, in the order of ``orderr.body.authorizations``.
        :rtype: `list` of `.Authorization`
        """
        self._ensure_account()
        return [messages.Authorization.from_server(_json(self._post_as_get(url)))
                for url in orderr.body.authorizations]

    def describe_pending_challenges(self, orderr: messages.OrderResource,
                                    preferred_type: str
                                    ) -> List[messages.ChallengeDescription]:
        """What has to be published for the challenges still to be solved.

        Only ``pending`` authorizations are considered, and on them only
        ``pending`` or ``invalid`` challenges of ``preferred_type``. Wildcard
        authorizations always use DNS-01. TLS-ALPN-01 challenges are never
        described.

        :param str preferred_type: `.CHALLENGE_DNS01` or `.CHALLENGE_HTTP01`.

        :rtype: `list` of `.ChallengeDescription`
        """
        thumbprint = self.context.thumbprint
        descriptions = []
        for authz in self.get_authorizations(orderr):
            if authz.status != messages.STATUS_PENDING:
                continue
            for challb in authz.challenges:
                if not challenges.wanted(authz, challb, preferred_type):
                    continue
                description = challenges.describe(authz, challb, thumbprint)
                if description is not None:
                    descriptions.append(description)
        return descriptions

    def validate_challenge(self, challenge_url: str) -> messages.Challenge:
        """Ask the server to validate a challenge.

        Returns as soon as the server acknowledged; use `wait` to follow
        the outcome.

        :rtype: `.Challenge`
        """
        self._ensure_account()
        response = self._post(challenge_url, {})
        challb = messages.Challenge.from_server(_json(response))
        logger.info('Requested validation of %s, status %s', challenge_url, challb.status.name)
        return challb

    def validate_challenges(self, orderr: messages.OrderResource,
                            preferred_type: str) -> List[messages.Challenge]:
        """Validate every challenge `describe_pending_challenges` returns."""
        return [self.validate_challenge(description.url) for description in
                self.describe_pending_challenges(orderr, preferred_type)]

    def wait(self, orderr: messages.OrderResource, timeout: float,
             cancel: Optional[threading.Event] = None) -> List[messages.Authorization]:
        """Wait for the authorizations of an order to leave ``pending``.

        Polls once and returns right away when no authorization is
        pending. Otherwise sleeps `POLL_INTERVAL` seconds, bounded by
        ``timeout``, and polls once more. Setting ``cancel`` interrupts the
        sleep, in which case no further poll is made.

        :param float timeout: Seconds from now after which to give up.
        :param threading.Event cancel: Set to abort the wait.

        :returns: Authorizations that are not ``valid``; empty on success.
            Running out of time is not an error.
        :rtype: `list` of `.Authorization`
        """
        deadline = time.monotonic() + timeout
        authzs = self.get_authorizations(orderr)
        pending = [authz for authz in authzs if authz.status == messages.STATUS_PENDING]
        if pending:
            if cancel is None:
                cancel = threading.Event()
            delay = min(POLL_INTERVAL, max(0.0, deadline - time.monotonic()))
            logger.info('Waiting %.1f seconds for %d pending authorization(s)',
                        delay, len(pending))
            if cancel.wait(delay):
                logger.info('Wait for order %s cancelled', orderr.uri)
            else:
                authzs = self.get_authorizations(orderr)
        not_valid = [authz for authz in authzs if authz.status != messages.STATUS_VALID]
        for authz in not_valid:
            logger.info('Authorization for %s is %s',
                        authz.identifier.value, authz.status.name)
        return not_valid

    def _ensure_account(self) -> jws.KIDBinding:
        self.context.require_key()
        if self.context.account_url is None:
            logger.debug('Account URL unknown, looking up account')
            self.query_account()
        return self.context.kid_binding()

    def _post(self, url: str, obj: Any, binding: Optional[jws.Binding] = None,
              **kwargs: Any) -> requests.Response:
        """Sign ``obj`` with a fresh nonce and post it to ``url``."""
        if binding is None:
            binding = self.context.kid_binding()
        # a nonce is single use, take it only once the envelope can be built
        payload = jws.encode_payload(obj)
        key = jws.signing_key(self.context.require_key(), binding)
        nonce = self.net.nonce(getattr(self.directory, 'newNonce', None))
        envelope = jws.sign_encoded(payload, url, nonce, binding, key)
        return self.net.post(url, envelope, **kwargs)

    def _post_as_get(self, url: str, **kwargs: Any) -> requests.Response:
        """
        Send GET request using the POST-as-GET protocol.
        """
        return self._post(url, None, **kwargs)


def _json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError as error:
        raise errors.ProtocolError('Response is not JSON: {0}'.format(error))


class ClientNetwork:
    """Wrapper around requests that posts signed envelopes.

    Keeps the anti-replay nonce handed out by the server, adds the user
    agent and handles Content-Type.

    :param bool verify_ssl: Whether to verify certificates on SSL connections.
    :param str user_agent: String to send as User-Agent header.
    :param int timeout: Timeout for requests.
    """
    JSON_CONTENT_TYPE = 'application/json'
    JOSE_CONTENT_TYPE = 'application/jose+json'
    JSON_ERROR_CONTENT_TYPE = 'application/problem+json'
    PEM_CHAIN_CONTENT_TYPE = 'application/pem-certificate-chain'
    REPLAY_NONCE_HEADER = 'Replay-Nonce'

    def __init__(self, verify_ssl: bool = True, user_agent: str = 'acmeflow-python',
                 timeout: int = DEFAULT_NETWORK_TIMEOUT) -> None:
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent
        self._nonce: Optional[str] = None
        self._last_headers: dict = {}
        self.session = requests.Session()
        self._default_timeout = timeout
        adapter = HTTPAdapter()

        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def __del__(self) -> None:
        # Try to close the session, but don't show exceptions to the
        # user if the call to close() fails.
        try:
            self.session.close()
        except Exception:  # pylint: disable=broad-except
            pass

    @classmethod
    def _check_response(cls, response: requests.Response,
                        content_type: Optional[str] = None) -> requests.Response:
        """Check response content and its type.

        .. note::
           Checking is not strict: wrong server response ``Content-Type``
           HTTP header is ignored if response is an expected JSON object.

        :param str content_type: Expected Content-Type response header.
            If JSON is expected and not present in server response, this
            function will raise an error. Otherwise, wrong Content-Type
            is ignored, but logged.

        :raises .messages.Error: If server response body
            carries HTTP Problem (https://datatracker.ietf.org/doc/html/rfc7807).
        :raises .ClientError: In case of other networking errors.

        """
        response_ct = response.headers.get('Content-Type')
        # Strip parameters from the media-type (rfc2616#section-3.7)
        if response_ct:
            response_ct = response_ct.split(';')[0].strip()
        try:
            jobj = response.json()
        except ValueError:
            jobj = None

        if response.status_code == 409:
            raise errors.ConflictError(response.headers.get('Location', 'UNKNOWN-LOCATION'))

        if not response.ok:
            if jobj is not None:
                if response_ct != cls.JSON_ERROR_CONTENT_TYPE:
                    logger.debug(
                        'Ignoring wrong Content-Type (%r) for JSON Error',
                        response_ct)
                try:
                    raise messages.Error.from_json(jobj)
                except jose.DeserializationError as error:
                    # Couldn't deserialize JSON object
                    raise errors.ClientError((response, error))
            else:
                # response is not JSON object
                raise errors.ClientError(response)
        else:
            if jobj is not None and response_ct != cls.JSON_CONTENT_TYPE:
                logger.debug(
                    'Ignoring wrong Content-Type (%r) for JSON decodable '
                    'response', response_ct)

            if content_type == cls.JSON_CONTENT_TYPE and jobj is None:
                raise errors.ClientError(f'Unexpected response Content-Type: {response_ct}')

        return response

    def _send_request(self, method: str, url: str, *args: Any, **kwargs: Any) -> requests.Response:
        """Send HTTP request.

        Makes sure that `verify_ssl` is respected. Logs request and
        response (with headers). For allowed parameters please see
        `requests.request`.

        :param str method: method for the new `requests.Request` object
        :param str url: URL for the new `requests.Request` object

        :raises .TransportError: in case of any problems

        :returns: HTTP Response
        :rtype: `requests.Response`

        """
        if method == "POST":
            logger.debug('Sending POST request to %s:\n%s',
                         url, kwargs['data'])
        else:
            logger.debug('Sending %s request to %s.', method, url)
        kwargs['verify'] = self.verify_ssl
        kwargs.setdefault('headers', {})
        kwargs['headers'].setdefault('User-Agent', self.user_agent)
        kwargs.setdefault('timeout', self._default_timeout)
        try:
            response = self.session.request(method, url, *args, **kwargs)
        except requests.exceptions.RequestException as error:
            raise errors.TransportError(error) from error

        if "Accept" not in kwargs["headers"]:
            # Make response.text decode as UTF-8 instead of guessing.
            response.encoding = "utf-8"
        logger.debug('Received response:\nHTTP %d\n%s\n\n%s',
                     response.status_code,
                     "\n".join("{0}: {1}".format(k, v)
                               for k, v in response.headers.items()),
                     response.text)
        return response

    def head(self, *args: Any, **kwargs: Any) -> requests.Response:
        """Send HEAD request without checking the response."""
        return self._send_request('HEAD', *args, **kwargs)

    def get(self, url: str, content_type: str = JSON_CONTENT_TYPE,
            **kwargs: Any) -> requests.Response:
        """Send GET request and check response."""
        return self._check_response(
            self._send_request('GET', url, **kwargs), content_type=content_type)

    def _add_nonce(self, response: requests.Response) -> None:
        self._last_headers = dict(response.headers)
        nonce = response.headers.get(self.REPLAY_NONCE_HEADER)
        if nonce:
            logger.debug('Storing nonce: %s', nonce)
            self._nonce = nonce
        else:
            logger.debug('Response from %s carries no nonce', response.url)

    def nonce(self, new_nonce_url: Optional[str] = None) -> str:
        """Hand out an unused nonce.

        The nonce stored from the last response is used once and
        forgotten. When none is stored, a fresh one is requested from
        ``new_nonce_url``.

        :raises .MissingNonce: if no nonce can be obtained.

        """
        if self._nonce is None and new_nonce_url is not None:
            logger.debug('Requesting fresh nonce')
            self._add_nonce(self._check_response(self.head(new_nonce_url), content_type=None))
        nonce, self._nonce = self._nonce, None
        if nonce is None:
            raise errors.MissingNonce(self._last_headers)
        return nonce

    def post(self, url: str, envelope: jws.SignedEnvelope,
             accept: Optional[str] = None, **kwargs: Any) -> requests.Response:
        """POST a signed envelope and check the response.

        The response nonce is stored before the response is checked, so a
        fresh nonce is available after an error too. Nothing is retried.

        :param str accept: Expected response media type, JSON by default.

        """
        headers = {'Content-Type': self.JOSE_CONTENT_TYPE}
        if accept is not None:
            headers['Accept'] = accept
        kwargs.setdefault('headers', headers)
        response = self._send_request('POST', url, data=envelope.json_dumps(), **kwargs)
        self._add_nonce(response)
        return self._check_response(
            response, content_type=self.JSON_CONTENT_TYPE if accept is None else None)
