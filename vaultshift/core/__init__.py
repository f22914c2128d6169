# ============================================
# FILE: vaultshift/core/__init__.py
# ============================================
"""
Core module for vaultshift - configuration, settings and exceptions.
"""

from vaultshift.core.config import (
    SETTING_KEYS,
    LocalStorageConfig,
    MigrationOptions,
    S3StorageConfig,
    StorageConfig,
    StorageType,
    mask_secret,
)
from vaultshift.core.env import EnvManager, get_env
from vaultshift.core.exceptions import (
    AlreadyRunningError,
    MigrationAbortedError,
    MigrationError,
    MissingDependencyError,
    VaultshiftError,
)
from vaultshift.core.logger import get_logger
from vaultshift.core.settings import (
    InMemorySettingsStore,
    JsonFileSettingsStore,
    SettingsStore,
    load_storage_config,
    save_storage_config,
)

__all__ = [
    "SETTING_KEYS",
    "AlreadyRunningError",
    "EnvManager",
    "InMemorySettingsStore",
    "JsonFileSettingsStore",
    "LocalStorageConfig",
    "MigrationAbortedError",
    "MigrationError",
    "MigrationOptions",
    "MissingDependencyError",
    "S3StorageConfig",
    "SettingsStore",
    "StorageConfig",
    "StorageType",
    "VaultshiftError",
    "get_env",
    "get_logger",
    "load_storage_config",
    "mask_secret",
    "save_storage_config",
]
