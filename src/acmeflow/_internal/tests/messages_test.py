"""Tests for acmeflow.messages."""
import datetime
import json
import sys
import unittest

import josepy as jose
import pytest

from acmeflow import errors
from acmeflow import messages


class ErrorTest(unittest.TestCase):
    """Tests for acmeflow.messages.Error."""

    def setUp(self):
        self.error = messages.Error(
            typ=messages.ERROR_PREFIX + 'malformed', detail='foo', title='title')
        self.jobj = {
            'detail': 'foo',
            'title': 'title',
            'type': 'urn:ietf:params:acme:error:malformed',
        }

    def test_default_typ(self):
        assert messages.Error().typ == 'about:blank'

    def test_from_json_empty(self):
        assert messages.Error() == messages.Error.json_loads('{}')

    def test_from_json(self):
        assert self.error == messages.Error.from_json(self.jobj)

    def test_description(self):
        assert 'The request message was malformed' == self.error.description
        assert messages.Error(typ='foo').description is None

    def test_code(self):
        assert 'malformed' == self.error.code
        assert messages.Error(typ='foo').code is None

    def test_str(self):
        assert str(self.error) == (
            'urn:ietf:params:acme:error:malformed :: The request message was '
            'malformed :: foo :: title')

    def test_is_raisable(self):
        with pytest.raises(errors.Error):
            raise self.error


class ConstantTest(unittest.TestCase):
    """Tests for acmeflow.messages.Status."""

    def test_from_json(self):
        assert messages.STATUS_PENDING is messages.Status.from_json('pending')

    def test_from_json_unknown(self):
        with pytest.raises(jose.DeserializationError):
            messages.Status.from_json('snoozing')

    def test_repr(self):
        assert 'Status(valid)' == repr(messages.STATUS_VALID)

    def test_equality(self):
        assert messages.STATUS_VALID == messages.Status('valid')
        assert messages.STATUS_VALID != messages.STATUS_INVALID
        assert messages.STATUS_VALID != messages.IdentifierType('valid')


class DirectoryTest(unittest.TestCase):
    """Tests for acmeflow.messages.Directory."""

    def setUp(self):
        self.directory = messages.Directory.from_json({
            'newNonce': 'https://ca.example/acme/new-nonce',
            'newAccount': 'https://ca.example/acme/new-account',
            'newOrder': 'https://ca.example/acme/new-order',
            'meta': {
                'termsOfService': 'https://ca.example/tos',
                'caaIdentities': ['ca.example'],
            },
        })

    def test_getitem(self):
        assert 'https://ca.example/acme/new-order' == self.directory['newOrder']

    def test_getattr(self):
        assert 'https://ca.example/acme/new-nonce' == self.directory.newNonce

    def test_getitem_fails_with_key_error(self):
        with pytest.raises(KeyError):
            self.directory.__getitem__('foo')

    def test_getattr_fails_with_attribute_error(self):
        with pytest.raises(AttributeError):
            self.directory.__getattr__('foo')

    def test_contains(self):
        assert 'newOrder' in self.directory
        assert 'revokeCert' not in self.directory

    def test_meta(self):
        assert self.directory.meta.terms_of_service == 'https://ca.example/tos'
        assert self.directory.meta.caa_identities == ('ca.example',)

    def test_meta_missing(self):
        directory = messages.Directory.from_json({'newNonce': 'n'})
        assert directory.meta.terms_of_service is None

    def test_to_json(self):
        jobj = self.directory.to_partial_json()
        assert jobj['newAccount'] == 'https://ca.example/acme/new-account'


class RegistrationTest(unittest.TestCase):
    """Tests for acmeflow.messages.Registration."""

    def test_from_data(self):
        reg = messages.Registration.from_data(
            email='admin@example.com,ops@example.com', terms_of_service_agreed=True)
        assert reg.contact == ('mailto:admin@example.com', 'mailto:ops@example.com')
        assert reg.emails == ('admin@example.com', 'ops@example.com')
        assert json.loads(reg.json_dumps()) == {
            'contact': ['mailto:admin@example.com', 'mailto:ops@example.com'],
            'termsOfServiceAgreed': True,
        }

    def test_only_return_existing(self):
        assert messages.Registration(only_return_existing=True).to_json() == {
            'onlyReturnExisting': True}

    def test_from_server(self):
        reg = messages.Registration.from_server({
            'status': 'valid', 'contact': ['mailto:a@example.com'],
            'orders': 'https://ca.example/acme/acct/1/orders'})
        assert reg.status == messages.STATUS_VALID
        assert reg.emails == ('a@example.com',)


class ChallengeTest(unittest.TestCase):
    """Tests for acmeflow.messages.Challenge."""

    def setUp(self):
        self.jobj = {
            'type': 'http-01',
            'url': 'https://ca.example/acme/chall/1',
            'token': 'evaGxfADs6pSRb2LAv9IZf17Dt3juxGJ-PCt92wr-oA',
        }

    def test_from_server(self):
        challb = messages.Challenge.from_server(self.jobj)
        assert challb.typ == 'http-01'
        assert challb.token == 'evaGxfADs6pSRb2LAv9IZf17Dt3juxGJ-PCt92wr-oA'
        assert challb.status == messages.STATUS_PENDING
        assert challb.error is None

    def test_validated_and_error(self):
        self.jobj.update({
            'status': 'invalid',
            'validated': '2024-01-02T03:04:05Z',
            'error': {'type': 'urn:ietf:params:acme:error:dns', 'detail': 'NXDOMAIN'},
        })
        challb = messages.Challenge.from_server(self.jobj)
        assert challb.status == messages.STATUS_INVALID
        assert challb.validated == datetime.datetime(
            2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)
        assert challb.error.code == 'dns'

    def test_unsafe_token(self):
        self.jobj['token'] = '../../etc/passwd'
        with pytest.raises(errors.ProtocolError):
            messages.Challenge.from_server(self.jobj)

    def test_missing_url(self):
        del self.jobj['url']
        with pytest.raises(errors.ProtocolError):
            messages.Challenge.from_server(self.jobj)


class AuthorizationTest(unittest.TestCase):
    """Tests for acmeflow.messages.Authorization."""

    def setUp(self):
        self.jobj = {
            'identifier': {'type': 'dns', 'value': 'example.com'},
            'status': 'pending',
            'expires': '2024-01-09T00:00:00Z',
            'challenges': [
                {'type': 'dns-01', 'url': 'https://ca.example/c/1', 'token': 'abc123'},
                {'type': 'http-01', 'url': 'https://ca.example/c/2', 'token': 'abc123'},
            ],
        }

    def test_from_server(self):
        authz = messages.Authorization.from_server(self.jobj)
        assert authz.identifier == messages.Identifier.dns('example.com')
        assert authz.status == messages.STATUS_PENDING
        assert [challb.typ for challb in authz.challenges] == ['dns-01', 'http-01']
        assert authz.wildcard is False

    def test_wildcard(self):
        self.jobj['wildcard'] = True
        assert messages.Authorization.from_server(self.jobj).wildcard is True

    def test_missing_status(self):
        del self.jobj['status']
        with pytest.raises(errors.ProtocolError):
            messages.Authorization.from_server(self.jobj)

    def test_unknown_status(self):
        self.jobj['status'] = 'snoozing'
        with pytest.raises(errors.ProtocolError):
            messages.Authorization.from_server(self.jobj)


class OrderTest(unittest.TestCase):
    """Tests for acmeflow.messages.Order."""

    def setUp(self):
        self.jobj = {
            'status': 'pending',
            'identifiers': [{'type': 'dns', 'value': 'example.com'}],
            'authorizations': ['https://ca.example/acme/authz/1'],
            'finalize': 'https://ca.example/acme/order/1/finalize',
        }

    def test_from_server(self):
        order = messages.Order.from_server(self.jobj)
        assert order.status == messages.STATUS_PENDING
        assert order.authorizations == ('https://ca.example/acme/authz/1',)
        assert order.identifiers == (messages.Identifier.dns('example.com'),)
        assert order.certificate is None

    def test_missing_required(self):
        for name in ('status', 'authorizations', 'finalize'):
            jobj = dict(self.jobj)
            del jobj[name]
            with pytest.raises(errors.ProtocolError):
                messages.Order.from_server(jobj)

    def test_new_order_json(self):
        order = messages.NewOrder(
            identifiers=(messages.Identifier.dns('*.example.com'),),
            not_after=datetime.datetime(2024, 3, 1, tzinfo=datetime.timezone.utc))
        assert json.loads(order.json_dumps()) == {
            'identifiers': [{'type': 'dns', 'value': '*.example.com'}],
            'notAfter': '2024-03-01T00:00:00Z',
        }

    def test_order_resource(self):
        orderr = messages.OrderResource(body=messages.Order.from_server(self.jobj),
                                        uri='https://ca.example/acme/order/1')
        assert messages.OrderResource.from_json(orderr.to_json()) == orderr


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
