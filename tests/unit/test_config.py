"""
Tests for configuration loading and validation.
"""

import tempfile
from pathlib import Path

import pytest

from sgmc_sync.config import (
    AppConfig,
    ConfigValidator,
    EnvironmentLoader,
    LogLevel,
    OAuthConfig,
    load_config,
)
from sgmc_sync.exceptions import ConfigurationError

ENV_KEYS = [
    "DATA_DIR", "DB_PATH", "ATTACHMENTS_DIR",
    "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET",
    "OAUTH_REDIRECT_PORT", "OAUTH_TIMEOUT_SECONDS",
    "SYNC_INTERVAL_MINUTES", "UPLOAD_BATCH_SIZE", "DOWNLOAD_BATCH_SIZE",
    "CONNECTIVITY_CHECK_HOST", "CONNECTIVITY_CHECK_SECONDS",
    "CONTROL_API_HOST", "CONTROL_API_PORT", "CONTROL_API_ENABLED",
    "TOKEN_ENCRYPTION_KEY", "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        # Recorded as unset so values loaded from .env files are undone too
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    with tempfile.TemporaryDirectory() as tmpdir:
        # Empty .env so a developer's local file is never picked up
        env_file = Path(tmpdir) / ".env"
        env_file.write_text("")
        yield str(env_file)


class TestEnvironmentLoader:
    """Tests for EnvironmentLoader."""

    def test_defaults(self, clean_env):
        config = EnvironmentLoader.load_config(clean_env)

        assert config.data_dir == Path("data")
        assert config.db_path == Path("data") / "database.db"
        assert config.attachments_dir == Path("data") / "attachments"
        assert config.oauth.redirect_port == 14200
        assert config.oauth.timeout_seconds == 300
        assert config.sync.interval_minutes == 60
        assert config.sync.upload_batch_size == 3
        assert config.sync.download_batch_size == 5
        assert config.control_api.port == 14201
        assert config.control_api.enabled is True
        assert config.token_encryption_key is None
        assert config.log_level == LogLevel.INFO

    def test_reads_environment(self, clean_env, monkeypatch):
        monkeypatch.setenv("DATA_DIR", "/var/lib/sgmc")
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "client")
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "secret")
        monkeypatch.setenv("SYNC_INTERVAL_MINUTES", "15")
        monkeypatch.setenv("CONTROL_API_ENABLED", "false")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("TOKEN_ENCRYPTION_KEY", "passphrase")

        config = EnvironmentLoader.load_config(clean_env)

        assert config.db_path == Path("/var/lib/sgmc/database.db")
        assert config.token_store_path == Path("/var/lib/sgmc/auth_store.bin")
        assert config.sync_state_path == Path("/var/lib/sgmc/sync_state.json")
        assert config.oauth.is_configured()
        assert config.sync.interval_minutes == 15
        assert config.control_api.enabled is False
        assert config.log_level == LogLevel.DEBUG
        assert config.token_encryption_key == "passphrase"

    def test_explicit_paths_override_data_dir(self, clean_env, monkeypatch):
        monkeypatch.setenv("DB_PATH", "/srv/app.db")
        monkeypatch.setenv("ATTACHMENTS_DIR", "/srv/files")

        config = EnvironmentLoader.load_config(clean_env)

        assert config.db_path == Path("/srv/app.db")
        assert config.attachments_dir == Path("/srv/files")

    def test_malformed_numbers_fall_back(self, clean_env, monkeypatch):
        monkeypatch.setenv("SYNC_INTERVAL_MINUTES", "hourly")
        monkeypatch.setenv("LOG_LEVEL", "chatty")

        config = EnvironmentLoader.load_config(clean_env)

        assert config.sync.interval_minutes == 60
        assert config.log_level == LogLevel.INFO

    def test_env_file_values(self, clean_env):
        Path(clean_env).write_text("GOOGLE_CLIENT_ID=from-file\nUPLOAD_BATCH_SIZE=2\n")

        config = EnvironmentLoader.load_config(clean_env)

        assert config.oauth.client_id == "from-file"
        assert config.sync.upload_batch_size == 2


class TestConfigValidator:
    """Tests for ConfigValidator."""

    def test_valid_config(self):
        config = AppConfig(oauth=OAuthConfig(client_id="id", client_secret="secret"))
        assert ConfigValidator.validate_config(config) == []

    def test_missing_credentials(self):
        errors = ConfigValidator.validate_config(AppConfig())
        assert "GOOGLE_CLIENT_ID is not set" in errors
        assert "GOOGLE_CLIENT_SECRET is not set" in errors

    def test_bad_sync_settings(self):
        config = AppConfig(oauth=OAuthConfig(client_id="id", client_secret="secret"))
        config.sync.interval_minutes = 0
        config.sync.upload_batch_size = 0

        errors = ConfigValidator.validate_config(config)

        assert "Sync interval must be at least 1 minute" in errors
        assert "Upload batch size must be positive" in errors

    def test_port_collision(self):
        config = AppConfig(oauth=OAuthConfig(client_id="id", client_secret="secret"))
        config.control_api.port = config.oauth.redirect_port

        errors = ConfigValidator.validate_config(config)
        assert "Control API port must differ from the OAuth redirect port" in errors

    def test_disabled_control_api_is_not_checked(self):
        config = AppConfig(oauth=OAuthConfig(client_id="id", client_secret="secret"))
        config.control_api.enabled = False
        config.control_api.port = 0

        assert ConfigValidator.validate_config(config) == []


class TestLoadConfig:
    def test_invalid_config_raises(self, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(clean_env)

        assert exc_info.value.error_code == "CONFIG_VALIDATION_FAILED"
        assert "GOOGLE_CLIENT_ID" in exc_info.value.message

    def test_valid_config(self, clean_env, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "client")
        monkeypatch.setenv("GOOGLE_CLIENT_SECRET", "secret")

        config = load_config(clean_env)
        assert config.oauth.client_id == "client"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
