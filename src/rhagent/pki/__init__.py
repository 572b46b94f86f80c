"""Keyrings, trust exchange and signature checks."""

from rhagent.pki.gpg import GpgIdentity
from rhagent.pki.exchange import TrustExchange
from rhagent.pki.cdn import KurjunClient, verify_signature

__all__ = [
    "GpgIdentity",
    "TrustExchange",
    "KurjunClient",
    "verify_signature",
]
