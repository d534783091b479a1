"""Centralized configuration for the registry client.

Settings are loaded from environment variables (DDB_*) with defaults for
everything, so a bare ``Registry()`` works against the public hub.

Usage:
    from ddb_registry.config import get_settings

    settings = get_settings()
    print(settings.registry_url)
    print(settings.refresh_interval)
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# --- Constants ---

DEFAULT_REGISTRY = "hub.dronedb.app"
DEFAULT_REGISTRY_URL = f"https://{DEFAULT_REGISTRY}"
DEFAULT_TIMEOUT = 30.0
DEFAULT_REFRESH_INTERVAL = 3600.0
DEFAULT_RETRIES = 0


class RegistrySettings(BaseSettings):
    """Registry client settings.

    Attributes:
        registry_url: Base URL of the registry used when none is given.
        timeout: HTTP request timeout in seconds.
        refresh_interval: Seconds between automatic token refreshes.
        retries: Transport-level retries for connection errors. 0 disables
            retrying.
        credentials_path: Optional JSON file for durable credentials. When
            unset, credentials only live for the duration of the process.
    """

    registry_url: str = DEFAULT_REGISTRY_URL
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0)
    refresh_interval: float = Field(default=DEFAULT_REFRESH_INTERVAL, gt=0)
    retries: int = Field(default=DEFAULT_RETRIES, ge=0)
    credentials_path: Path | None = None

    model_config = SettingsConfigDict(
        env_prefix="DDB_",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> RegistrySettings:
    """Get the cached global settings.

    Use clear_settings_cache() to force a reload.
    """
    settings = RegistrySettings()
    logger.debug(f"Loaded settings for registry {settings.registry_url}")
    return settings


def clear_settings_cache() -> None:
    """Clear the cached settings, forcing reload on next get_settings()."""
    get_settings.cache_clear()


# --- Config provider for dependency injection ---


class ConfigProvider:
    """Provider for RegistrySettings that supports dependency injection.

    This allows tests and advanced use cases to override the settings.
    """

    def __init__(self) -> None:
        self._override: RegistrySettings | None = None

    def get(self) -> RegistrySettings:
        """Get the current settings."""
        if self._override is not None:
            return self._override
        return get_settings()

    def set(self, settings: RegistrySettings) -> None:
        """Override the settings."""
        self._override = settings

    def reset(self) -> None:
        """Reset to default settings loading."""
        self._override = None
        clear_settings_cache()


# Global config provider instance
config_provider = ConfigProvider()
