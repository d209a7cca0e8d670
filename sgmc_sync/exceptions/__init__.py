"""
Exception hierarchy for SGMC Sync.
"""

from .base import (
    SyncAppException,
    ErrorContext,
    create_error_context,
    handle_unexpected_error,
)
from .auth import (
    CredentialStoreError,
    AuthError,
    NotAuthenticatedError,
    AuthFlowError,
    PkceMissingError,
    TokenExchangeError,
    RefreshError,
)
from .transfer import (
    NetworkError,
    DriveAPIError,
    UploadError,
    DownloadError,
    SnapshotError,
    RestoreError,
    AttachmentTransferError,
    SyncInProgressError,
)


class ConfigurationError(SyncAppException):
    """Invalid or missing configuration."""
    pass


__all__ = [
    # Base
    "SyncAppException",
    "ErrorContext",
    "create_error_context",
    "handle_unexpected_error",
    "ConfigurationError",
    # Auth
    "CredentialStoreError",
    "AuthError",
    "NotAuthenticatedError",
    "AuthFlowError",
    "PkceMissingError",
    "TokenExchangeError",
    "RefreshError",
    # Transfer
    "NetworkError",
    "DriveAPIError",
    "UploadError",
    "DownloadError",
    "SnapshotError",
    "RestoreError",
    "AttachmentTransferError",
    "SyncInProgressError",
]
