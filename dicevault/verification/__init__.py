"""
dicevault verification

Binds a house signature to one bet by introspecting the
signature-verification instruction of the current transaction.
"""

from dicevault.verification.verifier import AuthenticatedSignature, SignatureVerifier

__all__ = ["AuthenticatedSignature", "SignatureVerifier"]
