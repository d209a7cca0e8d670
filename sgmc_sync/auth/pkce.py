"""
PKCE (RFC 7636) helpers.
"""

import base64
import hashlib
import secrets

CODE_CHALLENGE_METHOD = "S256"


def _base64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier() -> str:
    """Return a base64url (unpadded) encoding of 32 random bytes."""
    return _base64url(secrets.token_bytes(32))


def generate_code_challenge(verifier: str) -> str:
    """Return base64url(SHA-256(verifier)) without padding."""
    return _base64url(hashlib.sha256(verifier.encode("ascii")).digest())
