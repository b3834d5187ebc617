"""Application configuration helpers."""

from __future__ import annotations

from .errors import ConfigurationError
from .http import MediaInspectorConfig, RetryPolicy, get_media_inspector_config
from .logging import configure_logging
from .similarity import DuplicateThresholds, get_duplicate_thresholds
from .storage import (
    DatabaseConfig,
    StorageConfig,
    auto_migrate_enabled,
    get_database_config,
    get_storage_config,
)
from .sync import DEFAULT_MAPPING_BATCH_SIZE, SyncConfig, get_sync_config

__all__ = [
    "DEFAULT_MAPPING_BATCH_SIZE",
    "ConfigurationError",
    "DatabaseConfig",
    "DuplicateThresholds",
    "MediaInspectorConfig",
    "RetryPolicy",
    "StorageConfig",
    "SyncConfig",
    "auto_migrate_enabled",
    "configure_logging",
    "get_database_config",
    "get_duplicate_thresholds",
    "get_media_inspector_config",
    "get_storage_config",
    "get_sync_config",
]
