"""
Process-wide sync state with explicit setters and change notifications.

Only ``auto_sync_enabled``, ``last_sync_time`` and ``last_synced_entry_id``
survive a restart; the busy and connectivity flags always start cleared.
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

SYNC_STATE_CHANGED = "sync_state_changed"
CONNECTIVITY_CHANGED = "connectivity_changed"
OAUTH_COMPLETED = "oauth_completed"
RESTART_SCHEDULED = "restart_scheduled"

Listener = Callable[[str, Dict[str, Any]], None]


class SyncState:
    """Observable sync flags owned by the application context."""

    PERSISTED_FIELDS = ("auto_sync_enabled", "last_sync_time", "last_synced_entry_id")

    def __init__(self, storage_path: Optional[Path] = None):
        """
        Initialize sync state.

        Args:
            storage_path: JSON file for the persisted subset (None keeps state in memory)
        """
        self.storage_path = Path(storage_path) if storage_path else None
        self._listeners: List[Listener] = []

        self.is_syncing = False
        self.is_auto_syncing = False
        self.is_online = True
        self.auto_sync_enabled = False
        self.last_sync_time: Optional[int] = None
        self.last_synced_entry_id: Optional[str] = None

    @classmethod
    def load(cls, storage_path: Path) -> "SyncState":
        """Create state from ``storage_path``, ignoring a missing or unreadable file."""
        state = cls(storage_path)
        path = Path(storage_path)
        if not path.exists():
            return state

        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read sync state from {path}, starting fresh: {e}")
            return state

        state.auto_sync_enabled = bool(data.get("auto_sync_enabled", False))
        state.last_sync_time = data.get("last_sync_time")
        state.last_synced_entry_id = data.get("last_synced_entry_id")
        return state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """Deliver ``event`` to every listener. Listener errors are logged, not raised."""
        payload = payload if payload is not None else self.to_dict()
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception as e:
                logger.error(f"Sync state listener failed on {event}: {e}", exc_info=True)

    def set_syncing(self, value: bool) -> None:
        self._update("is_syncing", value)

    def set_auto_syncing(self, value: bool) -> None:
        self._update("is_auto_syncing", value)

    def set_online(self, value: bool) -> None:
        if self.is_online == value:
            return
        self.is_online = value
        self.notify(CONNECTIVITY_CHANGED, {"is_online": value})

    def set_auto_sync_enabled(self, value: bool) -> None:
        self._update("auto_sync_enabled", value)

    def set_last_sync_time(self, value: Optional[int]) -> None:
        self._update("last_sync_time", value)

    def set_last_synced_entry_id(self, value: Optional[str]) -> None:
        self._update("last_synced_entry_id", value)

    def _update(self, name: str, value: Any) -> None:
        if getattr(self, name) == value:
            return
        setattr(self, name, value)
        if name in self.PERSISTED_FIELDS:
            self.save()
        self.notify(SYNC_STATE_CHANGED)

    def save(self) -> None:
        """Write the persisted subset to disk."""
        if self.storage_path is None:
            return

        data = {name: getattr(self, name) for name in self.PERSISTED_FIELDS}
        try:
            self.storage_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.storage_path, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            # Non-fatal: the in-memory values stay authoritative
            logger.error(f"Failed to save sync state to {self.storage_path}: {e}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_syncing": self.is_syncing,
            "is_auto_syncing": self.is_auto_syncing,
            "is_online": self.is_online,
            "auto_sync_enabled": self.auto_sync_enabled,
            "last_sync_time": self.last_sync_time,
            "last_synced_entry_id": self.last_synced_entry_id,
        }
