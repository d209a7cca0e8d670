"""
Configuration data classes for SGMC Sync.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class OAuthConfig:
    """Google OAuth client settings."""
    client_id: str = ""
    client_secret: str = ""
    redirect_port: int = 14200
    timeout_seconds: int = 300

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class ControlApiConfig:
    """Loopback control API settings."""
    host: str = "127.0.0.1"
    port: int = 14201
    enabled: bool = True


@dataclass
class SyncSettings:
    """Backup and auto-sync behaviour."""
    interval_minutes: int = 60
    upload_batch_size: int = 3
    download_batch_size: int = 5
    connectivity_check_host: str = "www.googleapis.com"
    connectivity_check_seconds: int = 30


@dataclass
class AppConfig:
    """Top-level application configuration."""
    data_dir: Path = field(default_factory=lambda: Path("data"))
    db_path: Optional[Path] = None
    attachments_dir: Optional[Path] = None
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    sync: SyncSettings = field(default_factory=SyncSettings)
    control_api: ControlApiConfig = field(default_factory=ControlApiConfig)
    token_encryption_key: Optional[str] = None
    log_level: LogLevel = LogLevel.INFO

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.db_path is None:
            self.db_path = self.data_dir / "database.db"
        if self.attachments_dir is None:
            self.attachments_dir = self.data_dir / "attachments"
        self.db_path = Path(self.db_path)
        self.attachments_dir = Path(self.attachments_dir)

    @property
    def token_store_path(self) -> Path:
        return self.data_dir / "auth_store.bin"

    @property
    def control_token_path(self) -> Path:
        return self.data_dir / "control_api.token"

    @property
    def sync_state_path(self) -> Path:
        return self.data_dir / "sync_state.json"

    @property
    def log_path(self) -> Path:
        return self.data_dir / "sgmc_sync.log"
