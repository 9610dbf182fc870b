"""Tests for acmeflow.context."""
import sys
import threading
import unittest

import pytest

from acmeflow import errors
from acmeflow import jws
from acmeflow._internal.tests import jwk_test
from acmeflow._internal.tests import test_util
from acmeflow.context import ClientContext

KEY = test_util.load_private_key('ec_p256_key.pem')


class ClientContextTest(unittest.TestCase):
    """Tests for acmeflow.context.ClientContext."""

    def setUp(self):
        self.context = ClientContext(KEY)

    def test_require_key(self):
        assert self.context.require_key() is KEY

    def test_require_key_missing(self):
        with pytest.raises(errors.Unauthenticated):
            ClientContext(None).require_key()

    def test_thumbprint(self):
        assert self.context.thumbprint == jwk_test.THUMBPRINT

    def test_thumbprint_cached(self):
        # pylint: disable=protected-access
        self.context._thumbprint = 'XYZ'
        assert self.context.thumbprint == 'XYZ'

    def test_thumbprint_concurrent(self):
        results = []
        threads = [threading.Thread(target=lambda: results.append(self.context.thumbprint))
                   for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert results == [jwk_test.THUMBPRINT] * 8

    def test_thumbprint_without_key(self):
        with pytest.raises(errors.Unauthenticated):
            ClientContext(None).thumbprint  # pylint: disable=expression-not-assigned

    def test_account_url(self):
        assert self.context.account_url is None
        self.context.account_url = 'https://ca.example/acme/acct/1'
        assert self.context.account_url == 'https://ca.example/acme/acct/1'

    def test_jwk_binding(self):
        assert self.context.jwk_binding() == jws.JWKBinding(key=KEY)

    def test_kid_binding(self):
        context = ClientContext(KEY, account_url='https://ca.example/acme/acct/1')
        assert context.kid_binding() == jws.KIDBinding(kid='https://ca.example/acme/acct/1')

    def test_kid_binding_unknown_account(self):
        with pytest.raises(errors.Unauthenticated):
            self.context.kid_binding()

    def test_kid_binding_without_key(self):
        with pytest.raises(errors.Unauthenticated):
            ClientContext(None, account_url='https://ca.example/acme/acct/1').kid_binding()


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
