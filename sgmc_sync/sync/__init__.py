"""
Backup, restore and attachment sync.
"""

from .attachments import (
    AttachmentSync,
    ATTACHMENTS_FOLDER_NAME,
    UPLOAD_BATCH_SIZE,
    DOWNLOAD_BATCH_SIZE,
)
from .backup import BackupEngine, ROOT_FOLDER_NAME, backup_file_name
from .base import TransferResult, TransferStatus
from .connectivity import ConnectivityMonitor
from .service import SyncService, RESTART_DELAY_SECONDS
from .state import (
    SyncState,
    SYNC_STATE_CHANGED,
    CONNECTIVITY_CHANGED,
    OAUTH_COMPLETED,
    RESTART_SCHEDULED,
)

__all__ = [
    # Attachments
    "AttachmentSync",
    "ATTACHMENTS_FOLDER_NAME",
    "UPLOAD_BATCH_SIZE",
    "DOWNLOAD_BATCH_SIZE",
    # Backups
    "BackupEngine",
    "ROOT_FOLDER_NAME",
    "backup_file_name",
    # Results
    "TransferResult",
    "TransferStatus",
    # Coordination
    "ConnectivityMonitor",
    "SyncService",
    "RESTART_DELAY_SECONDS",
    # State
    "SyncState",
    "SYNC_STATE_CHANGED",
    "CONNECTIVITY_CHANGED",
    "OAUTH_COMPLETED",
    "RESTART_SCHEDULED",
]
