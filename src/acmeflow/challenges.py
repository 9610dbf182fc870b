"""ACME identifier validation challenges.

Computes what a challenge responder has to publish. Nothing here talks to
the network or publishes anything.

"""
import hashlib
import logging
from typing import Optional

import josepy as jose

from acmeflow import messages

logger = logging.getLogger(__name__)

DNS01_LABEL = '_acme-challenge'
HTTP01_URI_ROOT_PATH = '.well-known/acme-challenge'

DESCRIBABLE_STATUSES = frozenset([messages.STATUS_PENDING, messages.STATUS_INVALID])


def key_authorization(token: str, thumbprint: str) -> str:
    """Key authorization ``token + "." + thumbprint``."""
    return '{0}.{1}'.format(token, thumbprint)


def dns01_validation(token: str, thumbprint: str) -> str:
    """TXT record value: base64url of SHA-256 over the key authorization."""
    return jose.encode_b64jose(hashlib.sha256(
        key_authorization(token, thumbprint).encode('utf-8')).digest())


def dns01_validation_domain_name(name: str) -> str:
    """TXT record name for identifier ``name``."""
    return '{0}.{1}'.format(DNS01_LABEL, name)


def http01_uri(name: str, token: str) -> str:
    """URL the server fetches for identifier ``name``."""
    return 'http://{0}/{1}/{2}'.format(name, HTTP01_URI_ROOT_PATH, token)


def describe(authz: messages.Authorization, challb: messages.Challenge,
             thumbprint: str) -> Optional[messages.ChallengeDescription]:
    """Describe what to publish for ``challb``.

    :returns: `.ChallengeDescription`, or ``None`` for challenge types that
        are not described (TLS-ALPN-01 and unknown types).

    """
    name = authz.identifier.value
    if challb.typ == messages.CHALLENGE_DNS01:
        return messages.ChallengeDescription(
            typ=challb.typ,
            endpoint=dns01_validation_domain_name(name),
            value=dns01_validation(challb.token, thumbprint),
            url=challb.url)
    if challb.typ == messages.CHALLENGE_HTTP01:
        return messages.ChallengeDescription(
            typ=challb.typ,
            endpoint=http01_uri(name, challb.token),
            value=key_authorization(challb.token, thumbprint),
            url=challb.url)
    logger.debug('Not describing %s challenge for %s', challb.typ, name)
    return None


def wanted(authz: messages.Authorization, challb: messages.Challenge,
           preferred_type: str) -> bool:
    """Should ``challb`` be answered, given the caller's preferred type?

    Wildcard authorizations can only be proven over DNS, so the preference
    is overridden for them.

    """
    if challb.status not in DESCRIBABLE_STATUSES:
        return False
    if authz.wildcard:
        return challb.typ == messages.CHALLENGE_DNS01
    return challb.typ == preferred_type
