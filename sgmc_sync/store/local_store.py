"""
Access to the live SQLite record store for snapshotting and restore.

The schema and query layer belong to the host application; this module only
needs a consistent copy of the file, the patient count, and atomic replacement.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from ..exceptions import RestoreError, SnapshotError, create_error_context

logger = logging.getLogger(__name__)

SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


class LocalStore:
    """Snapshot and replace operations on the live store file."""

    def __init__(self, db_path: Path):
        """
        Initialize the local store.

        Args:
            db_path: Path of the live SQLite file
        """
        self.db_path = Path(db_path)
        # Held around every write to the live file
        self.write_lock = asyncio.Lock()

    @property
    def temp_path(self) -> Path:
        return self.db_path.with_name(self.db_path.name + ".tmp")

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a short-lived connection; none is kept across operations."""
        connection = await aiosqlite.connect(str(self.db_path))
        try:
            yield connection
        finally:
            await connection.close()

    async def snapshot_into(self, target: Path) -> None:
        """
        Write a consistent copy of the store to ``target`` with ``VACUUM INTO``.

        Readers and writers are not blocked while the copy is taken.

        Raises:
            SnapshotError: The copy could not be written
        """
        target = Path(target)
        if not self.db_path.exists():
            raise SnapshotError(
                f"Local store not found at {self.db_path}",
                context=create_error_context(operation="snapshot", path=str(self.db_path)),
            )

        try:
            async with self._get_connection() as conn:
                await conn.execute("VACUUM INTO ?", (str(target),))
        except (aiosqlite.Error, OSError) as e:
            logger.error(f"Snapshot of {self.db_path} failed: {e}")
            raise SnapshotError(
                f"Failed to snapshot local store: {e}",
                context=create_error_context(operation="snapshot", path=str(target)),
                cause=e,
            ) from e

        logger.debug(f"Snapshot written to {target}")

    async def count_patients(self) -> int:
        """Number of rows in ``patients``; 0 when the table does not exist yet."""
        try:
            async with self._get_connection() as conn:
                async with conn.execute("SELECT COUNT(*) FROM patients") as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.OperationalError as e:
            logger.warning(f"Could not count patients: {e}")
            return 0
        return int(row[0]) if row else 0

    async def checkpoint(self) -> None:
        """
        Fold any committed WAL frames into the main file and truncate the WAL.

        A no-op for stores not in WAL mode. Failures are logged: the WAL is
        left in place so nothing committed is lost.
        """
        if not self.db_path.exists():
            return

        try:
            async with self._get_connection() as conn:
                async with conn.execute("PRAGMA wal_checkpoint(TRUNCATE)") as cursor:
                    row = await cursor.fetchone()
        except aiosqlite.Error as e:
            logger.warning(f"WAL checkpoint of {self.db_path} failed: {e}")
            return

        if row and row[0]:
            logger.warning(f"WAL checkpoint of {self.db_path} was blocked by an open reader")

    async def replace_with(self, data: bytes) -> None:
        """
        Atomically replace the live store with ``data``.

        The live WAL is checkpointed first, then the bytes are written and
        fsynced to a temp file beside the live file and renamed over it.
        Sidecars are removed only once the rename has succeeded, so a failure
        before that point leaves the live store and its WAL untouched.

        Raises:
            RestoreError: The new content could not be installed
        """
        async with self.write_lock:
            await self.checkpoint()

            tmp_path = self.temp_path
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp_path, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())

                os.replace(tmp_path, self.db_path)
            except OSError as e:
                logger.error(f"Failed to replace live store {self.db_path}: {e}")
                if tmp_path.exists():
                    tmp_path.unlink()
                raise RestoreError(
                    f"Failed to replace local store: {e}",
                    context=create_error_context(operation="replace_store", path=str(self.db_path)),
                    cause=e,
                ) from e

            # A WAL left from the old file would be replayed onto the restored one
            for suffix in SIDECAR_SUFFIXES:
                sidecar = self.db_path.with_name(self.db_path.name + suffix)
                try:
                    sidecar.unlink(missing_ok=True)
                except OSError as e:
                    logger.error(f"Could not remove stale {sidecar.name}: {e}")

        logger.info(f"Local store replaced ({len(data)} bytes)")
