"""
Environment variable handling for SGMC Sync configuration.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .settings import AppConfig, OAuthConfig, SyncSettings, ControlApiConfig, LogLevel


class EnvironmentLoader:
    """Loads configuration from environment variables."""

    @staticmethod
    def load_config(env_file: Optional[str] = None) -> AppConfig:
        """Load configuration from environment variables.

        Args:
            env_file: Optional path to a .env file (defaults to searching the cwd)
        """
        # override=True so a bundled .env wins over stale shell values
        load_dotenv(env_file, override=True)

        data_dir = Path(os.getenv('DATA_DIR', 'data'))

        oauth = OAuthConfig(
            client_id=os.getenv('GOOGLE_CLIENT_ID', ''),
            client_secret=os.getenv('GOOGLE_CLIENT_SECRET', ''),
            redirect_port=EnvironmentLoader._get_int('OAUTH_REDIRECT_PORT', 14200),
            timeout_seconds=EnvironmentLoader._get_int('OAUTH_TIMEOUT_SECONDS', 300),
        )

        sync = SyncSettings(
            interval_minutes=EnvironmentLoader._get_int('SYNC_INTERVAL_MINUTES', 60),
            upload_batch_size=EnvironmentLoader._get_int('UPLOAD_BATCH_SIZE', 3),
            download_batch_size=EnvironmentLoader._get_int('DOWNLOAD_BATCH_SIZE', 5),
            connectivity_check_host=os.getenv('CONNECTIVITY_CHECK_HOST', 'www.googleapis.com'),
            connectivity_check_seconds=EnvironmentLoader._get_int('CONNECTIVITY_CHECK_SECONDS', 30),
        )

        control_api = ControlApiConfig(
            host=os.getenv('CONTROL_API_HOST', '127.0.0.1'),
            port=EnvironmentLoader._get_int('CONTROL_API_PORT', 14201),
            enabled=os.getenv('CONTROL_API_ENABLED', 'true').lower() == 'true',
        )

        log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
        log_level = LogLevel.INFO
        try:
            log_level = LogLevel(log_level_str)
        except ValueError:
            pass  # Use default

        db_path = os.getenv('DB_PATH')
        attachments_dir = os.getenv('ATTACHMENTS_DIR')

        return AppConfig(
            data_dir=data_dir,
            db_path=Path(db_path) if db_path else None,
            attachments_dir=Path(attachments_dir) if attachments_dir else None,
            oauth=oauth,
            sync=sync,
            control_api=control_api,
            token_encryption_key=os.getenv('TOKEN_ENCRYPTION_KEY') or None,
            log_level=log_level,
        )

    @staticmethod
    def _get_int(key: str, default: int) -> int:
        """Read an integer variable, falling back to the default when unset or malformed."""
        value = os.getenv(key)
        if value is None or not value.strip():
            return default
        try:
            return int(value)
        except ValueError:
            return default
