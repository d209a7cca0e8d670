"""
Configuration validation for SGMC Sync.
"""

from typing import List

from .settings import AppConfig


class ConfigValidator:
    """Validates configuration settings."""

    @staticmethod
    def validate_config(config: AppConfig) -> List[str]:
        """Validate the entire application configuration."""
        errors = []

        errors.extend(ConfigValidator._validate_oauth(config))
        errors.extend(ConfigValidator._validate_sync(config))
        errors.extend(ConfigValidator._validate_control_api(config))

        return errors

    @staticmethod
    def _validate_oauth(config: AppConfig) -> List[str]:
        errors = []
        oauth = config.oauth

        if not oauth.client_id:
            errors.append("GOOGLE_CLIENT_ID is not set")
        if not oauth.client_secret:
            errors.append("GOOGLE_CLIENT_SECRET is not set")

        # 0 lets the OS pick a free port
        if not (0 <= oauth.redirect_port <= 65535):
            errors.append(f"OAuth redirect port {oauth.redirect_port} is not in valid range (0-65535)")

        if oauth.timeout_seconds <= 0:
            errors.append("OAuth timeout must be positive")

        return errors

    @staticmethod
    def _validate_sync(config: AppConfig) -> List[str]:
        errors = []
        sync = config.sync

        if sync.interval_minutes < 1:
            errors.append("Sync interval must be at least 1 minute")
        if sync.upload_batch_size < 1:
            errors.append("Upload batch size must be positive")
        if sync.download_batch_size < 1:
            errors.append("Download batch size must be positive")
        if sync.connectivity_check_seconds < 1:
            errors.append("Connectivity check period must be positive")

        return errors

    @staticmethod
    def _validate_control_api(config: AppConfig) -> List[str]:
        errors = []
        api = config.control_api

        if api.enabled and not (1 <= api.port <= 65535):
            errors.append(f"Control API port {api.port} is not in valid range (1-65535)")
        if api.enabled and api.port == config.oauth.redirect_port:
            errors.append("Control API port must differ from the OAuth redirect port")

        return errors
