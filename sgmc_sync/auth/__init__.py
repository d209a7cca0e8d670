"""
Google account authorization and credential storage.
"""

from .oauth import GoogleOAuthFlow, AuthFlowState, EXPIRY_MARGIN_MS
from .pkce import generate_code_verifier, generate_code_challenge
from .redirect_server import RedirectListener
from .token_store import (
    CredentialStore,
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    TOKEN_EXPIRY_KEY,
    PKCE_VERIFIER_KEY,
)

__all__ = [
    "GoogleOAuthFlow",
    "AuthFlowState",
    "EXPIRY_MARGIN_MS",
    "generate_code_verifier",
    "generate_code_challenge",
    "RedirectListener",
    "CredentialStore",
    "ACCESS_TOKEN_KEY",
    "REFRESH_TOKEN_KEY",
    "TOKEN_EXPIRY_KEY",
    "PKCE_VERIFIER_KEY",
]
