"""
Development issuer backend
==========================

In-memory stand-in for the identity backend and issuer node, used to
exercise the client end to end.

Run: python -m issuer_backend
"""

from .api import create_app
from .issuer import IssuerNode, make_did

__all__ = ["create_app", "IssuerNode", "make_did"]
