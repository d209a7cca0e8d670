"""
Snapshot backup and restore of the local record store.
"""

import gzip
import logging
import tempfile
import uuid
import zlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .. import __version__
from ..drive.models import BackupPage
from ..exceptions import DownloadError, SnapshotError, SyncAppException, create_error_context
from .attachments import AttachmentSync
from .base import TransferResult

logger = logging.getLogger(__name__)

ROOT_FOLDER_NAME = "SGMC Backups"
BACKUP_PREFIX = "sgmc_backup_"
BACKUP_SUFFIX = ".db.gz"
BACKUP_MIME_TYPE = "application/gzip"


def backup_file_name(now: Optional[datetime] = None) -> str:
    """``sgmc_backup_<ISO timestamp>.db.gz`` with ``:`` and ``.`` replaced by ``-``."""
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
    return f"{BACKUP_PREFIX}{stamp.replace(':', '-').replace('.', '-')}{BACKUP_SUFFIX}"


class BackupEngine:
    """
    Uploads compressed snapshots of the local store and restores them.

    Attachments are synced alongside every backup and restore, but their
    failures never abort the database transfer.
    """

    def __init__(self, auth, drive, local_store, attachments: AttachmentSync,
                 app_version: str = __version__, temp_dir: Optional[Path] = None):
        """
        Initialize the backup engine.

        Args:
            auth: GoogleOAuthFlow providing access tokens
            drive: DriveClient for the remote catalog
            local_store: LocalStore wrapping the live database
            attachments: AttachmentSync for loose files
            app_version: Version recorded on each backup
            temp_dir: Directory for temporary snapshots (system temp by default)
        """
        self.auth = auth
        self.drive = drive
        self.local_store = local_store
        self.attachments = attachments
        self.app_version = app_version
        self.temp_dir = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self.last_attachment_result: Optional[TransferResult] = None

    async def get_root_folder_id(self) -> str:
        return await self.drive.get_or_create_folder(ROOT_FOLDER_NAME)

    async def upload_backup(self) -> str:
        """
        Snapshot, compress and upload the local store.

        Returns:
            Id of the new backup entry

        Raises:
            AuthError: No usable credentials
            SnapshotError: The snapshot could not be taken
            UploadError: Drive rejected the upload
        """
        # Fail fast before touching anything when not authenticated
        await self.auth.get_access_token()

        root_id = await self.get_root_folder_id()

        try:
            self.last_attachment_result = await self.attachments.sync_attachments(root_id)
        except SyncAppException as e:
            self.last_attachment_result = None
            logger.warning(f"Attachment sync failed, continuing with database backup: {e.to_log_string()}")

        snapshot_path = self.temp_dir / f"temp_snapshot_{uuid.uuid4().hex}.db"
        try:
            await self.local_store.snapshot_into(snapshot_path)

            try:
                raw = snapshot_path.read_bytes()
            except OSError as e:
                raise SnapshotError(
                    f"Failed to read snapshot {snapshot_path.name}: {e}",
                    context=create_error_context(operation="read_snapshot", path=str(snapshot_path)),
                    cause=e,
                ) from e
            compressed = gzip.compress(raw)
            patient_count = await self.local_store.count_patients()
            name = backup_file_name()

            entry_id = await self.drive.upload_file(
                name,
                compressed,
                root_id,
                BACKUP_MIME_TYPE,
                properties={
                    "appVersion": self.app_version,
                    "patientCount": str(patient_count),
                },
            )
        finally:
            snapshot_path.unlink(missing_ok=True)

        logger.info(
            f"Backup {name} uploaded as {entry_id} "
            f"({len(raw)} bytes, {len(compressed)} compressed, {patient_count} patients)"
        )
        return entry_id

    async def download_backup(self, entry_id: str) -> bytes:
        """
        Download a backup entry and return the decompressed database bytes.

        Raises:
            AuthError: No usable credentials
            DownloadError: The entry could not be downloaded or decompressed
        """
        await self.auth.get_access_token()

        root_id = await self.get_root_folder_id()

        try:
            self.last_attachment_result = await self.attachments.restore_attachments(root_id)
        except SyncAppException as e:
            self.last_attachment_result = None
            logger.warning(f"Attachment restore failed, continuing with database download: {e.to_log_string()}")

        metadata = await self.drive.get_file_metadata(entry_id, fields="name")
        name = metadata.get("name", "")
        data = await self.drive.download_file(entry_id)

        if not name.endswith(".gz"):
            logger.info(f"Backup {entry_id} ({name}) is not compressed")
            return data

        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise DownloadError(
                f"Backup {name} is not a valid gzip payload: {e}",
                context=create_error_context(operation="decompress_backup", entry_id=entry_id),
            ) from e

    async def restore_backup(self, entry_id: str) -> None:
        """
        Download a backup entry and atomically install it as the live store.

        The caller is responsible for restarting the application afterwards.

        Raises:
            AuthError: No usable credentials
            DownloadError: The entry could not be retrieved
            RestoreError: The live store could not be replaced (left untouched)
        """
        data = await self.download_backup(entry_id)
        await self.local_store.replace_with(data)
        logger.info(f"Restored backup {entry_id} onto {self.local_store.db_path}")

    async def list_backups(self, page_token: Optional[str] = None, page_size: int = 10) -> BackupPage:
        """List one page of backups, newest first."""
        root_id = await self.get_root_folder_id()
        return await self.drive.list_backups(root_id, page_token=page_token, page_size=page_size)
