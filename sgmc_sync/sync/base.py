"""
Result types for sync operations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TransferStatus(Enum):
    """Outcome of a batch transfer."""
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class TransferResult:
    """Counts and failures from an attachment upload or download pass."""
    direction: str
    status: TransferStatus = TransferStatus.IN_PROGRESS
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    bytes_transferred: int = 0
    started_at: datetime = field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed

    @property
    def failed_files(self) -> List[str]:
        return sorted(self.errors)

    def record_success(self, size: int = 0) -> None:
        self.succeeded += 1
        self.bytes_transferred += size

    def record_failure(self, file_name: str, message: str) -> None:
        self.failed += 1
        self.errors[file_name] = message

    def complete(self) -> "TransferResult":
        """Derive the final status and stamp the completion time."""
        if self.failed == 0:
            self.status = TransferStatus.SUCCESS
        elif self.succeeded == 0:
            self.status = TransferStatus.FAILED
        else:
            self.status = TransferStatus.PARTIAL
        self.completed_at = datetime.utcnow()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction,
            "status": self.status.value,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "bytes_transferred": self.bytes_transferred,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "errors": dict(self.errors),
        }
