"""
Base exception classes for SGMC Sync.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class ErrorContext:
    """Context information attached to an error."""
    operation: Optional[str] = None
    entry_id: Optional[str] = None
    folder_id: Optional[str] = None
    file_name: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)
    additional_context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "operation": self.operation,
            "entry_id": self.entry_id,
            "folder_id": self.folder_id,
            "file_name": self.file_name,
            "timestamp": self.timestamp.isoformat(),
        }
        data = {k: v for k, v in data.items() if v is not None}
        data.update(self.additional_context)
        return data


class SyncAppException(Exception):
    """Base exception for all SGMC Sync errors.

    Carries a machine-readable error code, optional context, and a message
    that is safe to show to the user.
    """

    def __init__(self,
                 message: str,
                 error_code: str,
                 context: Optional[ErrorContext] = None,
                 user_message: Optional[str] = None,
                 retryable: bool = False,
                 cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or ErrorContext()
        self.user_message = user_message or "Something went wrong while syncing. Please try again."
        self.retryable = retryable
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "user_message": self.user_message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
        }

    def to_log_string(self) -> str:
        """Format the error for log output."""
        parts = [f"[{self.error_code}] {self.message}"]
        if self.context.operation:
            parts.append(f"operation={self.context.operation}")
        if self.context.entry_id:
            parts.append(f"entry_id={self.context.entry_id}")
        if self.context.file_name:
            parts.append(f"file={self.context.file_name}")
        if self.cause is not None:
            parts.append(f"cause={type(self.cause).__name__}: {self.cause}")
        return " | ".join(parts)

    def __str__(self) -> str:
        return self.message


def create_error_context(**kwargs) -> ErrorContext:
    """Build an ErrorContext, routing unknown keys into additional_context."""
    known = {"operation", "entry_id", "folder_id", "file_name"}
    context = ErrorContext(**{k: v for k, v in kwargs.items() if k in known})
    context.additional_context = {k: v for k, v in kwargs.items() if k not in known}
    return context


def handle_unexpected_error(error: Exception) -> SyncAppException:
    """Wrap an arbitrary exception so it can be logged and reported uniformly."""
    if isinstance(error, SyncAppException):
        return error

    return SyncAppException(
        message=f"Unexpected error: {error}",
        error_code="UNEXPECTED_ERROR",
        context=create_error_context(error_type=type(error).__name__),
        user_message="An unexpected error occurred.",
        cause=error,
    )
