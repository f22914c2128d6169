"""
Provider Factory - builds a StorageProvider from a StorageConfig

This module maps configuration types to provider classes so callers never
import backend modules directly. Backends with optional dependencies are
imported on first use.
"""

from collections.abc import Callable
from typing import Any

from vaultshift.core.config import (
    LocalStorageConfig,
    S3StorageConfig,
    StorageConfig,
    StorageType,
)
from vaultshift.storage.core import StorageProvider

ProviderFactory = Callable[[StorageConfig], StorageProvider]


def _create_local_provider(config: LocalStorageConfig) -> StorageProvider:
    """Create local filesystem provider instance."""
    from vaultshift.storage.backends.local import LocalStorageProvider

    config.validate()
    return LocalStorageProvider(root=config.root)


def _create_s3_provider(config: S3StorageConfig) -> StorageProvider:
    """Create S3 provider instance."""
    from vaultshift.storage.backends.s3 import S3StorageProvider

    return S3StorageProvider(config)


# Provider registry mapping storage types to factory functions
_PROVIDER_REGISTRY: dict[StorageType, Callable[[Any], StorageProvider]] = {
    StorageType.LOCAL: _create_local_provider,
    StorageType.S3: _create_s3_provider,
}


def create_provider(config: StorageConfig) -> StorageProvider:
    """
    Create a storage provider for a configuration.

    Args:
        config: LocalStorageConfig or S3StorageConfig

    Returns:
        A new, unshared provider instance

    Raises:
        IncompleteConfigError: If required configuration fields are missing
        MissingDependencyError: If the backend's packages aren't installed
        ValueError: If the configuration type is unknown

    Examples:
        >>> provider = create_provider(LocalStorageConfig(root="/srv/vault"))
        >>> provider = create_provider(S3StorageConfig(
        ...     endpoint="s3.amazonaws.com", bucket="vault",
        ...     access_key="AKIA...", secret_key="...",
        ... ))
    """
    storage_type = getattr(config, "type", None)
    if storage_type not in _PROVIDER_REGISTRY:
        available = ", ".join(t.value for t in _PROVIDER_REGISTRY)
        msg = f"Unknown storage configuration: {config!r}\nAvailable backends: {available}"
        raise ValueError(msg)

    return _PROVIDER_REGISTRY[storage_type](config)


def get_available_backends() -> dict[str, dict[str, Any]]:
    """
    Get information about available storage backends.

    Example:
        >>> for name, info in get_available_backends().items():
        ...     status = "✓" if info["available"] else "✗"
        ...     print(f"{status} {name}: {info['description']}")
    """
    backends = {
        "local": {
            "available": True,
            "description": "Local filesystem below a root directory",
            "install": None,
        }
    }

    try:
        import aioboto3  # noqa: F401

        backends["s3"] = {
            "available": True,
            "description": "S3-compatible object storage (AWS S3, MinIO)",
            "install": None,
        }
    except ImportError:  # pragma: no cover
        backends["s3"] = {
            "available": False,
            "description": "S3-compatible object storage (AWS S3, MinIO)",
            "install": "pip install 'vaultshift[s3]'",
        }

    return backends
