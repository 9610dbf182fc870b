"""ACME JSON fields."""
import datetime
from typing import Any

import josepy as jose
import pyrfc3339


class RFC3339Field(jose.Field):
    """RFC3339 field encoder/decoder.

    Handles decoding/encoding between RFC3339 strings and aware (not
    naive) `datetime.datetime` objects
    (e.g. ``datetime.datetime.now(datetime.timezone.utc)``).

    """

    @classmethod
    def default_encoder(cls, value: datetime.datetime) -> str:
        return pyrfc3339.generate(value)

    @classmethod
    def default_decoder(cls, value: str) -> datetime.datetime:
        try:
            return pyrfc3339.parse(value)
        except ValueError as error:
            raise jose.DeserializationError(error)


class ChallengeToken(jose.Field):
    """Challenge token field.

    Tokens are published verbatim by the challenge responder, so they are
    kept as the server sent them rather than base64-decoded. Only the URL
    safe base64 alphabet is accepted, which also rules out ``/`` and ``..``
    in HTTP-01 paths.

    """
    _ALPHABET = frozenset(
        'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_')

    def decode(self, value: Any) -> Any:
        if not isinstance(value, str) or not value or not set(value) <= self._ALPHABET:
            raise jose.DeserializationError('Invalid token: {0!r}'.format(value))
        return value


def rfc3339(json_name: str, omitempty: bool = False) -> Any:
    """Generates a type-friendly RFC3339 field."""
    return RFC3339Field(json_name, omitempty=omitempty)


def token(json_name: str) -> Any:
    """Generates a type-friendly challenge token field."""
    return ChallengeToken(json_name)
