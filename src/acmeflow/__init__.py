"""ACME order lifecycle client.

This package drives an ACME certificate authority (`RFC 8555`_) through the
order, authorization, challenge and finalization steps needed to obtain a
certificate. Every request is wrapped in an ES256 signed JWS bound to the
account key.

.. _`RFC 8555`: https://datatracker.ietf.org/doc/html/rfc8555

"""
__version__ = '0.3.0'
