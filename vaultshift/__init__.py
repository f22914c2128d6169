# ============================================
# FILE: vaultshift/__init__.py
# ============================================

"""
vaultshift - Object Storage Migration Engine

Moves every stored object from the local filesystem to an S3-compatible
object store while the application keeps serving traffic, then swaps the
active storage provider in place.

- Local filesystem and S3-compatible (AWS S3, MinIO) providers
- Hot-swappable active provider rebuilt on configuration changes
- Cancellable background migration with progress and a cursor-readable log
- Prometheus metrics and structured JSON logging

Usage:
    >>> from vaultshift import StorageService, S3StorageConfig, InMemorySettingsStore
    >>>
    >>> service = StorageService(InMemorySettingsStore())
    >>> destination = S3StorageConfig(
    ...     endpoint="minio.internal:9000",
    ...     bucket="vault",
    ...     access_key="minio",
    ...     secret_key="minio123",
    ...     use_ssl=False,
    ... )
    >>> result = await service.start_migration(destination)
    >>> service.get_migration_progress().to_dict()
    >>>
    >>> # Once completed without failures
    >>> await service.activate_destination()
"""

from vaultshift.core.config import (
    LocalStorageConfig,
    MigrationOptions,
    S3StorageConfig,
    StorageConfig,
    StorageType,
)
from vaultshift.core.exceptions import (
    AlreadyRunningError,
    MigrationAbortedError,
    MigrationError,
    MissingDependencyError,
    VaultshiftError,
)
from vaultshift.core.settings import InMemorySettingsStore, JsonFileSettingsStore, SettingsStore
from vaultshift.migration import (
    MigrationJob,
    MigrationLog,
    MigrationLogEntry,
    MigrationState,
    MigrationStatus,
    StartResult,
)
from vaultshift.service import StorageService
from vaultshift.storage.core import (
    ConnectionTestResult,
    IncompleteConfigError,
    InvalidKeyError,
    NotFoundError,
    StorageError,
    StorageProvider,
    UnreachableError,
)
from vaultshift.storage.factory import create_provider
from vaultshift.storage.registry import ActiveProviderRegistry

__version__ = "0.1.0"

__all__ = [
    "ActiveProviderRegistry",
    "AlreadyRunningError",
    "ConnectionTestResult",
    "IncompleteConfigError",
    "InMemorySettingsStore",
    "InvalidKeyError",
    "JsonFileSettingsStore",
    "LocalStorageConfig",
    "MigrationAbortedError",
    "MigrationError",
    "MigrationJob",
    "MigrationLog",
    "MigrationLogEntry",
    "MigrationOptions",
    "MigrationState",
    "MigrationStatus",
    "MissingDependencyError",
    "NotFoundError",
    "S3StorageConfig",
    "SettingsStore",
    "StartResult",
    "StorageConfig",
    "StorageError",
    "StorageProvider",
    "StorageService",
    "StorageType",
    "UnreachableError",
    "VaultshiftError",
    "__version__",
    "create_provider",
]
