"""
Google Drive catalog access.
"""

from .client import DriveClient, DRIVE_API_URL, UPLOAD_API_URL, escape_query_value
from .models import BackupEntry, BackupPage, FOLDER_MIME_TYPE

__all__ = [
    "DriveClient",
    "DRIVE_API_URL",
    "UPLOAD_API_URL",
    "escape_query_value",
    "BackupEntry",
    "BackupPage",
    "FOLDER_MIME_TYPE",
]
