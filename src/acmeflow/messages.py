"""ACME protocol messages."""
import datetime
from collections.abc import Hashable
from collections.abc import Mapping
from collections.abc import MutableMapping
from typing import Any
from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple
from typing import Type
from typing import TypeVar

import josepy as jose

from acmeflow import errors
from acmeflow import fields

ERROR_PREFIX = "urn:ietf:params:acme:error:"

ERROR_CODES = {
    'accountDoesNotExist': 'The request specified an account that does not exist',
    'alreadyRevoked': 'The request specified a certificate to be revoked that has' \
    ' already been revoked',
    'badCSR': 'The CSR is unacceptable (e.g., due to a short key)',
    'badNonce': 'The client sent an unacceptable anti-replay nonce',
    'badPublicKey': 'The JWS was signed by a public key the server does not support',
    'badRevocationReason': 'The revocation reason provided is not allowed by the server',
    'badSignatureAlgorithm': 'The JWS was signed with an algorithm the server does not support',
    'caa': 'Certification Authority Authorization (CAA) records forbid the CA from issuing' \
    ' a certificate',
    'compound': 'Specific error conditions are indicated in the "subproblems" array',
    'connection': ('The server could not connect to the client to verify the'
                   ' domain'),
    'dns': 'There was a problem with a DNS query during identifier validation',
    'dnssec': 'The server could not validate a DNSSEC signed domain',
    'incorrectResponse': 'Response received didn\'t match the challenge\'s requirements',
    'invalidContact': 'The provided contact URI was invalid',
    'malformed': 'The request message was malformed',
    'rejectedIdentifier': 'The server will not issue certificates for the identifier',
    'orderNotReady': 'The request attempted to finalize an order that is not ready to be finalized',
    'rateLimited': 'There were too many requests of a given type',
    'serverInternal': 'The server experienced an internal error',
    'tls': 'The server experienced a TLS error during domain verification',
    'unauthorized': 'The client lacks sufficient authorization',
    'unsupportedContact': 'A contact URL for an account used an unsupported protocol scheme',
    'unknownHost': 'The server could not resolve a domain name',
    'unsupportedIdentifier': 'An identifier is of an unsupported type',
    'externalAccountRequired': 'The server requires external account binding',
}

ERROR_TYPE_DESCRIPTIONS = {
    ERROR_PREFIX + name: desc for name, desc in ERROR_CODES.items()
}

CHALLENGE_DNS01 = 'dns-01'
CHALLENGE_HTTP01 = 'http-01'
CHALLENGE_TLSALPN01 = 'tls-alpn-01'


class Error(jose.JSONObjectWithFields, errors.Error):
    """ACME error (RFC 7807 problem document).

    :ivar str typ:
    :ivar str title:
    :ivar str detail:

    """
    typ: str = jose.field('type', omitempty=True, default='about:blank')
    title: str = jose.field('title', omitempty=True)
    detail: str = jose.field('detail', omitempty=True)

    @property
    def description(self) -> Optional[str]:
        """Hardcoded error description based on its type.

        :returns: Description if standard ACME error or ``None``.
        :rtype: str

        """
        return ERROR_TYPE_DESCRIPTIONS.get(self.typ)

    @property
    def code(self) -> Optional[str]:
        """ACME error code.

        Basically self.typ without the ERROR_PREFIX.

        :returns: error code if standard ACME code or ``None``.
        :rtype: str

        """
        code = str(self.typ).rsplit(':', maxsplit=1)[-1]
        if code in ERROR_CODES:
            return code
        return None

    def __str__(self) -> str:
        return b' :: '.join(
            part.encode('ascii', 'backslashreplace') for part in
            (self.typ, self.description, self.detail, self.title)
            if part is not None).decode()


class _Constant(jose.JSONDeSerializable, Hashable):
    """ACME constant."""
    __slots__ = ('name',)
    POSSIBLE_NAMES: Dict[str, '_Constant'] = NotImplemented

    def __init__(self, name: str) -> None:
        super().__init__()
        self.POSSIBLE_NAMES[name] = self  # pylint: disable=unsupported-assignment-operation
        self.name = name

    def to_partial_json(self) -> str:
        return self.name

    @classmethod
    def from_json(cls, jobj: str) -> '_Constant':
        if jobj not in cls.POSSIBLE_NAMES:  # pylint: disable=unsupported-membership-test
            raise jose.DeserializationError(f'{cls.__name__} {jobj!r} not recognized')
        return cls.POSSIBLE_NAMES[jobj]

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.name})'

    def __eq__(self, other: Any) -> bool:
        return isinstance(other, type(self)) and other.name == self.name

    def __hash__(self) -> int:
        return hash((self.__class__, self.name))


class Status(_Constant):
    """ACME "status" field."""
    POSSIBLE_NAMES: Dict[str, _Constant] = {}


STATUS_PENDING = Status('pending')
STATUS_READY = Status('ready')
STATUS_PROCESSING = Status('processing')
STATUS_VALID = Status('valid')
STATUS_INVALID = Status('invalid')
STATUS_DEACTIVATED = Status('deactivated')
STATUS_EXPIRED = Status('expired')
STATUS_REVOKED = Status('revoked')


class IdentifierType(_Constant):
    """ACME identifier type."""
    POSSIBLE_NAMES: Dict[str, _Constant] = {}


IDENTIFIER_FQDN = IdentifierType('dns')


class Identifier(jose.JSONObjectWithFields):
    """ACME identifier.

    :ivar IdentifierType typ:
    :ivar str value:

    """
    typ: IdentifierType = jose.field('type', decoder=IdentifierType.from_json)
    value: str = jose.field('value')

    @classmethod
    def dns(cls, value: str) -> 'Identifier':
        """DNS identifier for ``value`` (may be a ``*.`` wildcard)."""
        return cls(typ=IDENTIFIER_FQDN, value=value)


class Directory(jose.JSONDeSerializable):
    """Directory."""

    class Meta(jose.JSONObjectWithFields):
        """Directory Meta."""
        terms_of_service: str = jose.field('termsOfService', omitempty=True)
        website: str = jose.field('website', omitempty=True)
        caa_identities: List[str] = jose.field('caaIdentities', omitempty=True)
        external_account_required: bool = jose.field('externalAccountRequired', omitempty=True)

    def __init__(self, jobj: Mapping[str, Any]) -> None:
        self._jobj = dict(jobj)

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError as error:
            raise AttributeError(str(error))

    def __getitem__(self, name: str) -> Any:
        try:
            return self._jobj[name]
        except KeyError:
            raise KeyError('Directory field "' + name + '" not found')

    def __contains__(self, name: str) -> bool:
        return name in self._jobj

    def to_partial_json(self) -> Dict[str, Any]:
        return self._jobj

    @classmethod
    def from_json(cls, jobj: MutableMapping[str, Any]) -> 'Directory':
        jobj = dict(jobj)
        jobj['meta'] = cls.Meta.from_json(jobj.pop('meta', {}))
        return cls(jobj)


R = TypeVar('R', bound='ResourceBody')


class ResourceBody(jose.JSONObjectWithFields):
    """ACME Resource Body."""

    @classmethod
    def from_server(cls: Type[R], jobj: Any) -> R:
        """Decode a server response, mapping decoding failures to `.ProtocolError`."""
        try:
            return cls.from_json(jobj)
        except jose.DeserializationError as error:
            raise errors.ProtocolError(
                'Cannot decode {0}: {1}'.format(cls.__name__, error))


class Resource(jose.JSONObjectWithFields):
    """ACME Resource.

    :ivar acmeflow.messages.ResourceBody body: Resource body.
    :ivar str uri: Location of the resource.

    """
    body: ResourceBody = jose.field('body')
    uri: str = jose.field('uri', omitempty=True)


class Registration(ResourceBody):
    """Registration (account) Resource Body.

    :ivar tuple contact: Contact URIs, e.g. ``mailto:admin@example.com``.
    :ivar acmeflow.messages.Status status:
    :ivar bool terms_of_service_agreed:
    :ivar bool only_return_existing: Lookup only, do not create.
    :ivar str orders: URL of the account's order list.

    """
    contact: Tuple[str, ...] = jose.field('contact', omitempty=True, default=())
    status: Status = jose.field('status', omitempty=True, decoder=Status.from_json)
    terms_of_service_agreed: bool = jose.field('termsOfServiceAgreed', omitempty=True)
    only_return_existing: bool = jose.field('onlyReturnExisting', omitempty=True)
    orders: str = jose.field('orders', omitempty=True)

    email_prefix = 'mailto:'

    @classmethod
    def from_data(cls, email: Optional[str] = None, **kwargs: Any) -> 'Registration':
        """Create registration body from comma separated ``email`` addresses."""
        details = list(kwargs.pop('contact', ()))
        if email is not None:
            details.extend([cls.email_prefix + mail for mail in email.split(',')])
        if details:
            kwargs['contact'] = tuple(details)
        return cls(**kwargs)

    @property
    def emails(self) -> Tuple[str, ...]:
        """All emails found in the ``contact`` field."""
        return tuple(detail[len(self.email_prefix):] for detail in self.contact
                     if detail.startswith(self.email_prefix))


class RegistrationResource(Resource):
    """Registration Resource.

    :ivar acmeflow.messages.Registration body:

    """
    body: Registration = jose.field('body', decoder=Registration.from_json)


class Challenge(ResourceBody):
    """Challenge object embedded in an Authorization.

    Alternative proofs for the same Authorization; only one needs to
    succeed.

    :ivar str typ: ``dns-01``, ``http-01``, ``tls-alpn-01`` or a type
        unknown to this client.
    :ivar str url: URL to post to in order to trigger validation.
    :ivar str token: Token to publish (verbatim, not decoded).
    :ivar acmeflow.messages.Status status:
    :ivar datetime.datetime validated:
    :ivar acmeflow.messages.Error error:

    """
    typ: str = jose.field('type')
    url: str = jose.field('url')
    token: str = fields.token('token')
    status: Status = jose.field('status', decoder=Status.from_json,
                                omitempty=True, default=STATUS_PENDING)
    validated: datetime.datetime = fields.rfc3339('validated', omitempty=True)
    error: Error = jose.field('error', decoder=Error.from_json,
                              omitempty=True, default=None)


class Authorization(ResourceBody):
    """Authorization Resource Body.

    :ivar acmeflow.messages.Identifier identifier:
    :ivar tuple challenges: `tuple` of `.Challenge`
    :ivar acmeflow.messages.Status status:
    :ivar datetime.datetime expires:
    :ivar bool wildcard: Whether the order asked for ``*.`` + identifier.

    """
    identifier: Identifier = jose.field('identifier', decoder=Identifier.from_json)
    status: Status = jose.field('status', decoder=Status.from_json)
    expires: datetime.datetime = fields.rfc3339('expires', omitempty=True)
    challenges: Tuple[Challenge, ...] = jose.field('challenges', omitempty=True, default=())
    wildcard: bool = jose.field('wildcard', omitempty=True, default=False)

    # Mypy does not understand the josepy magic happening here, and falsely claims
    # that challenges is redefined. Let's ignore the type check here.
    @challenges.decoder  # type: ignore
    def challenges(value: List[Dict[str, Any]]) -> Tuple[Challenge, ...]:  # type: ignore[misc]  # pylint: disable=no-self-argument,missing-function-docstring
        return tuple(Challenge.from_json(chall) for chall in value)


class Order(ResourceBody):
    """Order Resource Body.

    :ivar identifiers: List of identifiers for the certificate.
    :vartype identifiers: `tuple` of `.Identifier`
    :ivar acmeflow.messages.Status status:
    :ivar authorizations: URLs of authorizations.
    :vartype authorizations: `tuple` of `str`
    :ivar str finalize: URL to POST to to request issuance once all
        authorizations have "valid" status.
    :ivar str certificate: URL to download certificate as a fullchain PEM.
    :ivar datetime.datetime not_before:
    :ivar datetime.datetime not_after:
    :ivar datetime.datetime expires: When the order expires.
    :ivar ~.Error error: Any error that occurred during finalization, if applicable.
    """
    identifiers: Tuple[Identifier, ...] = jose.field('identifiers', omitempty=True)
    status: Status = jose.field('status', decoder=Status.from_json, omitempty=True)
    authorizations: Tuple[str, ...] = jose.field('authorizations', omitempty=True)
    finalize: str = jose.field('finalize', omitempty=True)
    certificate: str = jose.field('certificate', omitempty=True)
    not_before: datetime.datetime = fields.rfc3339('notBefore', omitempty=True)
    not_after: datetime.datetime = fields.rfc3339('notAfter', omitempty=True)
    expires: datetime.datetime = fields.rfc3339('expires', omitempty=True)
    error: Error = jose.field('error', omitempty=True, decoder=Error.from_json)

    # Mypy does not understand the josepy magic happening here, and falsely claims
    # that identifiers is redefined. Let's ignore the type check here.
    @identifiers.decoder  # type: ignore
    def identifiers(value: List[Dict[str, Any]]) -> Tuple[Identifier, ...]:  # type: ignore[misc]  # pylint: disable=no-self-argument,missing-function-docstring
        return tuple(Identifier.from_json(identifier) for identifier in value)

    @authorizations.decoder  # type: ignore
    def authorizations(value: List[str]) -> Tuple[str, ...]:  # type: ignore[misc]  # pylint: disable=no-self-argument,missing-function-docstring
        return tuple(value)

    @classmethod
    def from_server(cls, jobj: Any) -> 'Order':
        order = super().from_server(jobj)
        for name in ('status', 'authorizations', 'finalize'):
            if getattr(order, name) is None:
                raise errors.ProtocolError('Order is missing "{0}"'.format(name))
        return order


class NewOrder(Order):
    """New order request payload."""


class OrderResource(Resource):
    """Order Resource.

    :ivar acmeflow.messages.Order body:
    :ivar str uri: Order URL, from the ``Location`` header.

    """
    body: Order = jose.field('body', decoder=Order.from_json)


class CertificateRequest(jose.JSONObjectWithFields):
    """ACME finalize request.

    :ivar str csr: base64url of the DER encoded CSR.

    """
    csr: str = jose.field('csr')


class ChallengeDescription(jose.ImmutableMap):
    """What has to be published to satisfy a challenge.

    Derived locally, never sent to the server.

    :ivar str typ: Challenge type.
    :ivar str endpoint: DNS TXT record name, or full HTTP URL.
    :ivar str value: TXT record value, or HTTP response body.
    :ivar str url: Challenge URL to notify once published.

    """
    __slots__ = ('typ', 'endpoint', 'value', 'url')
