"""
Data models for remote Drive entries.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"


@dataclass
class BackupEntry:
    """A database snapshot stored in the backup folder."""
    id: str
    name: str
    created_time: Optional[str] = None
    properties: Dict[str, str] = field(default_factory=dict)

    @property
    def app_version(self) -> Optional[str]:
        return self.properties.get("appVersion")

    @property
    def patient_count(self) -> Optional[int]:
        value = self.properties.get("patientCount")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @property
    def is_compressed(self) -> bool:
        return self.name.endswith(".gz")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_time": self.created_time,
            "app_version": self.app_version,
            "patient_count": self.patient_count,
            "properties": dict(self.properties),
        }

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "BackupEntry":
        """Build from a Drive ``files`` resource."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            created_time=data.get("createdTime"),
            properties=dict(data.get("properties") or {}),
        )


@dataclass
class BackupPage:
    """One page of backup entries, newest first."""
    entries: List[BackupEntry] = field(default_factory=list)
    next_page_token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "next_page_token": self.next_page_token,
        }
