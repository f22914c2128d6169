"""
Unified error hierarchy for storage operations.

All storage-related exceptions inherit from StorageError,
providing consistent error handling across providers.
"""

import re
from typing import Any


class StorageError(Exception):
    """
    Base exception for all storage operations.

    All storage providers raise subclasses of this exception,
    making it easy to catch storage-related errors.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class InvalidKeyError(StorageError):
    """
    Object key is malformed or escapes the provider namespace.

    Raised when:
    - Key is empty after normalization
    - Key contains '.' / '..' segments, NUL bytes or backslashes
    - Resolved local path falls outside the configured root
    """

    def __init__(self, key: str, reason: str = "invalid key", **details):
        super().__init__(f"Invalid object key {key!r}: {reason}", details={"key": key, **details})
        self.key = key
        self.reason = reason


class NotFoundError(StorageError):
    """
    Requested object not found in storage.

    Raised by get, get_stream and stat on an absent key.
    """

    def __init__(self, key: str, backend: str | None = None, **details):
        super().__init__(
            f"Object not found: {key}",
            details={"key": key, "backend": backend, **details},
        )
        self.key = key
        self.backend = backend


class UnreachableError(StorageError):
    """
    Failed to reach the storage backend.

    Raised when:
    - Endpoint cannot be contacted
    - Credentials are rejected
    - Access to the bucket or directory is denied
    """

    def __init__(
        self,
        message: str = "Storage backend is unreachable",
        backend: str | None = None,
        url: str | None = None,
        **details,
    ):
        super().__init__(
            message,
            details={"backend": backend, "url": self._mask_url(url), **details},
        )
        self.backend = backend
        self.url = url

    @staticmethod
    def _mask_url(url: str | None) -> str | None:
        """Mask credentials embedded in a URL."""
        if not url:
            return None
        return re.sub(r"://([^:]+):([^@]+)@", r"://\1:***@", url)


class IncompleteConfigError(StorageError):
    """
    Storage configuration is missing required fields.

    Raised before any connection is attempted.
    """

    def __init__(self, missing: list[str], backend: str | None = None):
        fields = ", ".join(missing)
        super().__init__(
            f"Storage configuration is incomplete; missing: {fields}",
            details={"backend": backend, "missing": missing},
        )
        self.missing = missing
        self.backend = backend


class ObjectCopyError(StorageError):
    """
    Copying a single object failed.

    Recorded by the migration loop and counted; never fatal to a run.
    """

    def __init__(self, key: str, cause: BaseException | str, **details):
        cause_text = str(cause)
        super().__init__(
            f"Failed to migrate {key}: {cause_text}",
            details={
                "key": key,
                "error": cause_text,
                "error_type": type(cause).__name__ if isinstance(cause, BaseException) else None,
                **details,
            },
        )
        self.key = key
        self.cause = cause


class VerificationError(ObjectCopyError):
    """Destination object does not match the source after the copy."""

    def __init__(self, key: str, expected_size: int, actual_size: int | None):
        super().__init__(
            key,
            f"size mismatch after upload (expected {expected_size}, got {actual_size})",
            expected_size=expected_size,
            actual_size=actual_size,
        )
        self.expected_size = expected_size
        self.actual_size = actual_size
