"""
Configuration management for SGMC Sync.
"""

from typing import Optional

from .settings import AppConfig, OAuthConfig, SyncSettings, ControlApiConfig, LogLevel
from .environment import EnvironmentLoader
from .validation import ConfigValidator
from ..exceptions import ConfigurationError, create_error_context


def load_config(env_file: Optional[str] = None) -> AppConfig:
    """Load configuration from the environment and validate it.

    Raises:
        ConfigurationError: One or more settings are invalid
    """
    config = EnvironmentLoader.load_config(env_file)
    errors = ConfigValidator.validate_config(config)
    if errors:
        raise ConfigurationError(
            message=f"Configuration validation failed: {'; '.join(errors)}",
            error_code="CONFIG_VALIDATION_FAILED",
            context=create_error_context(operation="load_config", errors=errors),
            user_message="The application is not configured correctly.",
        )
    return config


__all__ = [
    "AppConfig",
    "OAuthConfig",
    "SyncSettings",
    "ControlApiConfig",
    "LogLevel",
    "EnvironmentLoader",
    "ConfigValidator",
    "load_config",
]
