"""
Errors raised while talking to Drive or moving snapshot and attachment data.
"""

from typing import Optional

from .base import SyncAppException, ErrorContext


class NetworkError(SyncAppException):
    """A request could not reach the remote service."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code="NETWORK_ERROR",
            context=context,
            user_message="Could not reach Google Drive. Check your internet connection.",
            retryable=True,
            cause=cause,
        )


class DriveAPIError(SyncAppException):
    """Drive answered with a non-success status."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response_body: str = "", error_code: str = "DRIVE_API_ERROR",
                 context: Optional[ErrorContext] = None,
                 user_message: Optional[str] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            context=context,
            user_message=user_message or "Google Drive returned an error. Please try again later.",
            retryable=status_code is not None and status_code >= 500,
        )
        self.status_code = status_code
        self.response_body = response_body


class UploadError(DriveAPIError):
    """A file upload was rejected."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response_body: str = "", context: Optional[ErrorContext] = None):
        super().__init__(
            message=message,
            status_code=status_code,
            response_body=response_body,
            error_code="UPLOAD_FAILED",
            context=context,
            user_message="Backup upload failed.",
        )


class DownloadError(DriveAPIError):
    """A file download failed or returned an unusable payload."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 response_body: str = "", context: Optional[ErrorContext] = None):
        super().__init__(
            message=message,
            status_code=status_code,
            response_body=response_body,
            error_code="DOWNLOAD_FAILED",
            context=context,
            user_message="Backup download failed.",
        )


class SnapshotError(SyncAppException):
    """The local store could not be snapshotted."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code="SNAPSHOT_FAILED",
            context=context,
            user_message="Could not create a snapshot of the local database.",
            cause=cause,
        )


class RestoreError(SyncAppException):
    """Replacing the live store failed. The live file was left untouched."""

    def __init__(self, message: str, context: Optional[ErrorContext] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code="RESTORE_FAILED",
            context=context,
            user_message="Restoring the backup failed. Your current data was not changed.",
            cause=cause,
        )


class AttachmentTransferError(SyncAppException):
    """A single attachment failed to upload or download."""

    def __init__(self, file_name: str, message: str,
                 context: Optional[ErrorContext] = None,
                 cause: Optional[Exception] = None):
        super().__init__(
            message=message,
            error_code="ATTACHMENT_TRANSFER_FAILED",
            context=context,
            user_message=f"Attachment {file_name} could not be transferred.",
            retryable=True,
            cause=cause,
        )
        self.file_name = file_name


class SyncInProgressError(SyncAppException):
    """Another sync or restore already holds the sync gate."""

    def __init__(self, operation: str):
        super().__init__(
            message=f"Cannot start {operation}: a sync is already in progress",
            error_code="SYNC_IN_PROGRESS",
            context=ErrorContext(operation=operation),
            user_message="A sync is already running. Please wait for it to finish.",
        )
