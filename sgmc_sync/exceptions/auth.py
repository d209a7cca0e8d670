"""
Authentication and credential storage errors.
"""

from typing import Optional

from .base import SyncAppException, ErrorContext


class CredentialStoreError(SyncAppException):
    """Credential store could not be read or written."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code="CREDENTIAL_STORE_ERROR",
            context=context,
            user_message="Could not save your Google Drive credentials.",
            cause=cause,
        )


class AuthError(SyncAppException):
    """Base class for authentication failures."""

    def __init__(self, message: str, error_code: str = "AUTH_ERROR",
                 context: Optional[ErrorContext] = None,
                 user_message: Optional[str] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            context=context,
            user_message=user_message or "Google Drive authentication failed. Please reconnect.",
            cause=cause,
        )


class NotAuthenticatedError(AuthError):
    """No refresh token is stored; the user has to connect first."""

    def __init__(self, message: str = "Not authenticated",
                 context: Optional[ErrorContext] = None):
        super().__init__(
            message=message,
            error_code="NOT_AUTHENTICATED",
            context=context,
            user_message="Connect your Google Drive account first.",
        )


class AuthFlowError(AuthError):
    """Interactive authorization did not complete."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code="AUTH_FLOW_FAILED",
            context=context,
            user_message="Google sign-in did not complete. Please try again.",
            cause=cause,
        )


class PkceMissingError(AuthError):
    """Code exchange attempted without a stored PKCE verifier."""

    def __init__(self, context: Optional[ErrorContext] = None):
        super().__init__(
            message="PKCE verifier not found",
            error_code="PKCE_VERIFIER_MISSING",
            context=context,
            user_message="Sign-in session expired. Please start the connection again.",
        )


class TokenExchangeError(AuthError):
    """The token endpoint rejected an authorization code."""

    def __init__(self, status_code: int, response_body: str,
                 context: Optional[ErrorContext] = None):
        super().__init__(
            message=f"Token exchange failed ({status_code}): {response_body}",
            error_code="TOKEN_EXCHANGE_FAILED",
            context=context,
        )
        self.status_code = status_code
        self.response_body = response_body


class RefreshError(AuthError):
    """Refreshing the access token failed. Stored tokens are cleared when the endpoint rejected them."""

    def __init__(self, status_code: int, response_body: str,
                 context: Optional[ErrorContext] = None):
        super().__init__(
            message=f"Failed to refresh token ({status_code}): {response_body}",
            error_code="TOKEN_REFRESH_FAILED",
            context=context,
            user_message="Your Google Drive session expired. Please reconnect.",
        )
        self.status_code = status_code
        self.response_body = response_body
