"""
Scheduling for automatic backups.
"""

from .scheduler import AutoSyncScheduler, AUTO_SYNC_JOB_ID

__all__ = ["AutoSyncScheduler", "AUTO_SYNC_JOB_ID"]
