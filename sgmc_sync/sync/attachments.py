"""
Incremental attachment sync between the local attachments directory and Drive.

Files are matched by name only. Content changes are not detected and
deletions are not propagated in either direction, so stale remote files
accumulate until removed by hand.
"""

import asyncio
import logging
import mimetypes
import os
from pathlib import Path
from typing import Dict, List, Set

from ..exceptions import AttachmentTransferError, SyncAppException, create_error_context
from .base import TransferResult

logger = logging.getLogger(__name__)

ATTACHMENTS_FOLDER_NAME = "attachments"
UPLOAD_BATCH_SIZE = 3
DOWNLOAD_BATCH_SIZE = 5


def chunked(items: List[str], size: int) -> List[List[str]]:
    """Split ``items`` into consecutive batches of at most ``size``."""
    return [items[i:i + size] for i in range(0, len(items), size)]


class AttachmentSync:
    """Uploads missing attachments and downloads missing ones, in bounded batches."""

    def __init__(self, drive, attachments_dir: Path,
                 upload_batch_size: int = UPLOAD_BATCH_SIZE,
                 download_batch_size: int = DOWNLOAD_BATCH_SIZE):
        """
        Initialize attachment sync.

        Args:
            drive: DriveClient (or compatible catalog)
            attachments_dir: Local attachments directory
            upload_batch_size: Concurrent uploads per batch
            download_batch_size: Concurrent downloads per batch
        """
        self.drive = drive
        self.attachments_dir = Path(attachments_dir)
        self.upload_batch_size = upload_batch_size
        self.download_batch_size = download_batch_size

    def list_local_files(self) -> Set[str]:
        """Names of the regular, non-hidden files in the attachments directory."""
        if not self.attachments_dir.is_dir():
            return set()
        return {
            p.name for p in self.attachments_dir.iterdir()
            if p.is_file() and not p.name.startswith(".")
        }

    async def sync_attachments(self, root_folder_id: str) -> TransferResult:
        """
        Upload every local attachment whose name is not present remotely.

        Args:
            root_folder_id: Backup root folder id

        Returns:
            Transfer counts; per-file failures are recorded, not raised
        """
        result = TransferResult(direction="upload")

        folder_id = await self.drive.get_or_create_folder(ATTACHMENTS_FOLDER_NAME, root_folder_id)
        remote = await self.drive.list_remote_files(folder_id)
        local = self.list_local_files()

        pending = sorted(local - set(remote))
        result.skipped = len(local) - len(pending)

        if not pending:
            logger.info("No attachments to upload")
            return result.complete()

        logger.info(f"Uploading {len(pending)} attachments ({result.skipped} already remote)")

        for batch in chunked(pending, self.upload_batch_size):
            await asyncio.gather(*(self._upload_one(name, folder_id, result) for name in batch))

        result.complete()
        logger.info(
            f"Attachment upload finished: {result.succeeded} uploaded, "
            f"{result.failed} failed, {result.skipped} skipped"
        )
        return result

    async def restore_attachments(self, root_folder_id: str) -> TransferResult:
        """
        Download every remote attachment whose name is missing locally.

        Args:
            root_folder_id: Backup root folder id

        Returns:
            Transfer counts; per-file failures are recorded, not raised
        """
        result = TransferResult(direction="download")

        self.attachments_dir.mkdir(parents=True, exist_ok=True)

        folder_id = await self.drive.get_or_create_folder(ATTACHMENTS_FOLDER_NAME, root_folder_id)
        remote = await self.drive.list_remote_files(folder_id)
        local = self.list_local_files()

        pending: Dict[str, str] = {name: file_id for name, file_id in remote.items() if name not in local}
        result.skipped = len(remote) - len(pending)

        if not pending:
            logger.info("No attachments to download")
            return result.complete()

        logger.info(f"Downloading {len(pending)} attachments")

        for batch in chunked(sorted(pending), self.download_batch_size):
            await asyncio.gather(*(self._download_one(name, pending[name], result) for name in batch))

        result.complete()
        logger.info(
            f"Attachment download finished: {result.succeeded} downloaded, "
            f"{result.failed} failed, {result.skipped} skipped"
        )
        return result

    async def _upload_one(self, name: str, folder_id: str, result: TransferResult) -> None:
        path = self.attachments_dir / name
        try:
            data = path.read_bytes()
            mime_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
            await self.drive.upload_file(name, data, folder_id, mime_type)
            result.record_success(len(data))
        except (SyncAppException, OSError) as e:
            self._record_failure(result, name, "upload_attachment", e)

    async def _download_one(self, name: str, file_id: str, result: TransferResult) -> None:
        # Remote names are used as local file names; never escape the directory
        if Path(name).name != name or name in ("", ".", ".."):
            self._record_failure(result, name, "download_attachment", ValueError("unsafe file name"))
            return

        try:
            data = await self.drive.download_file(file_id)
            # A truncated file would count as present on the next diff
            part_path = self.attachments_dir / f".{name}.part"
            part_path.write_bytes(data)
            os.replace(part_path, self.attachments_dir / name)
            result.record_success(len(data))
        except (SyncAppException, OSError) as e:
            self._record_failure(result, name, "download_attachment", e)

    def _record_failure(self, result: TransferResult, name: str, operation: str, cause: Exception) -> None:
        error = AttachmentTransferError(
            name,
            f"Failed to transfer attachment {name}: {cause}",
            context=create_error_context(operation=operation, file_name=name),
            cause=cause,
        )
        logger.warning(error.to_log_string())
        result.record_failure(name, str(cause))
