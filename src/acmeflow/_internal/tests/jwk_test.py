"""Tests for acmeflow.jwk."""
import hashlib
import sys
import unittest

from cryptography.hazmat.primitives import hashes
import josepy as jose
import pytest

from acmeflow import errors
from acmeflow import jwk
from acmeflow._internal.tests import test_util

KEY = test_util.load_private_key('ec_p256_key.pem')
KEY2 = test_util.load_private_key('ec_p256_key2.pem')

X = 'JinpfueFDPln_rxVnQBc2O2IN1FktvDotbTmYCVSp9Q'
Y = '5S6ggtmH5-ZgDb3Wsg6Xp3VorGhj0pKoTdRJZvdHYOc'
THUMBPRINT = '9ee23c04d55467fb9fe73615c2ca2af8c7eb980d3bdd22669f448e8dc1ea39dd'


class EncodeTest(unittest.TestCase):
    """Tests for acmeflow.jwk.encode."""

    def test_known_key(self):
        assert jwk.encode(KEY) == {'kty': 'EC', 'crv': 'P-256', 'x': X, 'y': Y}

    def test_member_order(self):
        assert list(jwk.encode(KEY)) == ['kty', 'crv', 'x', 'y']

    def test_public_and_private_agree(self):
        assert jwk.encode(KEY) == jwk.encode(KEY.public_key())

    def test_jwk_wrapper(self):
        assert jwk.encode(test_util.load_jwk('ec_p256_key.pem')) == jwk.encode(KEY)

    def test_matches_josepy_members(self):
        assert jwk.encode(KEY) == jose.JWKEC(key=KEY.public_key()).to_json()

    def test_coordinates_are_padded(self):
        for key in (KEY, KEY2):
            encoded = jwk.encode(key)
            for name in ('x', 'y'):
                assert len(encoded[name]) == 43
                assert '=' not in encoded[name]

    def test_p384_rejected(self):
        with pytest.raises(errors.InvalidKey):
            jwk.encode(test_util.load_private_key('ec_p384_key.pem'))

    def test_rsa_rejected(self):
        with pytest.raises(errors.InvalidKey):
            jwk.encode(test_util.load_private_key('rsa2048_key.pem'))

    def test_not_a_key(self):
        with pytest.raises(errors.InvalidKey):
            jwk.encode('not a key')


class ThumbprintTest(unittest.TestCase):
    """Tests for acmeflow.jwk.thumbprint."""

    def test_known_value(self):
        assert jwk.thumbprint(KEY) == THUMBPRINT

    def test_is_hex_sha256_of_sorted_compact_jwk(self):
        canonical = '{"crv":"P-256","kty":"EC","x":"' + X + '","y":"' + Y + '"}'
        assert jwk.thumbprint(KEY) == hashlib.sha256(canonical.encode()).hexdigest()

    def test_matches_josepy(self):
        expected = jose.JWKEC(key=KEY2.public_key()).thumbprint(
            hash_function=hashes.SHA256).hex()
        assert jwk.thumbprint(KEY2) == expected

    def test_jwk_wrapper(self):
        assert jwk.thumbprint(test_util.load_jwk('ec_p256_key.pem')) == THUMBPRINT

    def test_p384_rejected(self):
        with pytest.raises(errors.InvalidKey):
            jwk.thumbprint(test_util.load_private_key('ec_p384_key.pem'))

    def test_stable(self):
        assert jwk.thumbprint(KEY) == jwk.thumbprint(KEY.public_key())
        assert jwk.thumbprint(KEY) == jwk.thumbprint(KEY)

    def test_distinct_keys(self):
        assert jwk.thumbprint(KEY) != jwk.thumbprint(KEY2)


class SameKeyTest(unittest.TestCase):
    """Tests for acmeflow.jwk.same_key."""

    def test_same(self):
        assert jwk.same_key(KEY, KEY.public_key())

    def test_different(self):
        assert not jwk.same_key(KEY, KEY2)


if __name__ == '__main__':
    sys.exit(pytest.main(sys.argv[1:] + [__file__]))  # pragma: no cover
