"""
vaultshift Storage Core Module.

Provides shared infrastructure for all storage providers:
- Error hierarchy
- Key normalization
- Value types
- Base provider contract

Usage:
    from vaultshift.storage.core import (
        # Errors
        StorageError,
        InvalidKeyError,
        NotFoundError,
        UnreachableError,

        # Types
        ObjectInfo,
        ObjectStat,
        ConnectionTestResult,

        # Base
        StorageProvider,
    )
"""

from .base import DEFAULT_CHUNK_SIZE, ObjectData, StorageProvider, read_body
from .errors import (
    IncompleteConfigError,
    InvalidKeyError,
    NotFoundError,
    ObjectCopyError,
    StorageError,
    UnreachableError,
    VerificationError,
)
from .keys import format_bytes, guess_content_type, normalize_key, validate_local_key
from .types import ConnectionTestResult, ObjectInfo, ObjectStat

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    # Types
    "ConnectionTestResult",
    "IncompleteConfigError",
    "InvalidKeyError",
    "NotFoundError",
    "ObjectCopyError",
    "ObjectData",
    "ObjectInfo",
    "ObjectStat",
    # Errors
    "StorageError",
    # Base
    "StorageProvider",
    "UnreachableError",
    "VerificationError",
    # Keys
    "format_bytes",
    "guess_content_type",
    "normalize_key",
    "read_body",
    "validate_local_key",
]
