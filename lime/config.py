"""LIME Configuration System.

Loads and validates configuration from ~/.lime/config.json.
Uses Pydantic for schema validation with sensible defaults.

Usage:
    from lime.config import get_config, save_config

    config = get_config()
    print(config.query.page_size)
    print(config.export.self_name)

    # Modify and save
    config.export.self_name = "me"
    save_config(config)
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

LIME_HOME = Path.home() / ".lime"
CONFIG_PATH = LIME_HOME / "config.json"

# Current config schema version
CONFIG_VERSION = 1


class StorageConfig(BaseModel):
    """Persistent media/document store settings.

    Attributes:
        path: SQLite file holding imported media and documents.
        batch_size: Media blobs written per transaction during bulk import.
    """

    path: Path = Field(default_factory=lambda: LIME_HOME / "storage.db")
    batch_size: int = Field(default=50, ge=1, le=10_000)


class MediaConfig(BaseModel):
    """Media locator settings.

    Attributes:
        cache_dir: Directory where loaded blobs are materialized as local files.
            None uses a fresh temporary directory per locator.
    """

    cache_dir: Path | None = None


class QueryConfig(BaseModel):
    """Default limits for reader queries."""

    page_size: int = Field(default=100, ge=1, le=10_000)
    search_limit: int = Field(default=50, ge=1, le=10_000)


class ExportConfig(BaseModel):
    """Transcript export preferences.

    Attributes:
        self_name: Sender label used for the viewer's own messages.
        timezone: IANA zone name for rendered times (None = local time).
    """

    self_name: str = "自分"
    timezone: str | None = None


class RetryConfig(BaseModel):
    """Retry behavior for SQLite lock errors on the persistent store."""

    sqlite_max_attempts: int = Field(default=5, ge=1, le=20)
    sqlite_base_delay: float = Field(default=0.1, ge=0.0, le=10.0)
    sqlite_max_delay: float = Field(default=2.0, ge=0.0, le=60.0)


class LimeConfig(BaseModel):
    """LIME configuration schema.

    Attributes:
        config_version: Schema version.
        storage: Persistent store settings.
        media: Media locator settings.
        query: Reader query defaults.
        export: Export preferences.
        retry: SQLite retry settings.
    """

    config_version: int = CONFIG_VERSION
    storage: StorageConfig = Field(default_factory=StorageConfig)
    media: MediaConfig = Field(default_factory=MediaConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)


# Module-level singleton with thread safety
_config: LimeConfig | None = None
_config_lock = threading.Lock()


def load_config(config_path: Path | None = None) -> LimeConfig:
    """Load configuration from file, return defaults if missing/invalid.

    Args:
        config_path: Optional path to config file. Defaults to ~/.lime/config.json.

    Returns:
        LimeConfig instance with loaded or default values.
    """
    path = config_path or CONFIG_PATH

    if not path.exists():
        logger.debug("Config file not found at %s, using defaults", path)
        return LimeConfig()

    try:
        with path.open(encoding="utf-8") as f:
            data: dict[str, Any] = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in config file %s: %s, using defaults", path, e)
        return LimeConfig()
    except OSError as e:
        logger.warning("Cannot read config file %s: %s, using defaults", path, e)
        return LimeConfig()

    try:
        return LimeConfig.model_validate(data)
    except ValidationError as e:
        logger.warning("Config validation failed: %s, using defaults", e)
        return LimeConfig()


def save_config(config: LimeConfig, config_path: Path | None = None) -> bool:
    """Save configuration to file.

    Args:
        config: Configuration to save.
        config_path: Optional path to config file. Defaults to ~/.lime/config.json.

    Returns:
        True if saved successfully, False otherwise.
    """
    path = config_path or CONFIG_PATH

    try:
        path.parent.mkdir(parents=True, exist_ok=True)

        with path.open("w", encoding="utf-8") as f:
            json.dump(config.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

        os.chmod(path, 0o600)

        logger.debug("Configuration saved to %s", path)
        return True

    except OSError as e:
        logger.error("Failed to save config to %s: %s", path, e)
        return False


def get_config() -> LimeConfig:
    """Get singleton configuration instance.

    Uses double-check locking for thread safety.

    Returns:
        Shared LimeConfig instance.
    """
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = load_config()
    return _config


def reset_config() -> None:
    """Reset singleton configuration for testing."""
    global _config
    with _config_lock:
        _config = None
