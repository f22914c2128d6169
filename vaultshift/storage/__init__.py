"""
Object storage providers.

Quick Start:
    >>> from vaultshift.storage.factory import create_provider
    >>> provider = create_provider(LocalStorageConfig(root="/srv/vault"))

    # Provider currently serving traffic
    >>> from vaultshift.storage.registry import ActiveProviderRegistry
    >>> registry = ActiveProviderRegistry(settings)
    >>> provider = await registry.get()
"""

from .core import (
    ConnectionTestResult,
    IncompleteConfigError,
    InvalidKeyError,
    NotFoundError,
    ObjectCopyError,
    ObjectInfo,
    ObjectStat,
    StorageError,
    StorageProvider,
    UnreachableError,
    VerificationError,
)

__all__ = [
    "ConnectionTestResult",
    "IncompleteConfigError",
    "InvalidKeyError",
    "NotFoundError",
    "ObjectCopyError",
    "ObjectInfo",
    "ObjectStat",
    "StorageError",
    "StorageProvider",
    "UnreachableError",
    "VerificationError",
]
