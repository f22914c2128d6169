"""
Base storage provider contract.

Every backend (local filesystem, S3-compatible object store) implements
StorageProvider, which provides common patterns for:
- Context manager support
- Logging
- Never-raising connection tests with timeout protection
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator
from pathlib import Path
from typing import Union

from .types import ConnectionTestResult, ObjectInfo, ObjectStat

ObjectData = Union[bytes, bytearray, str, AsyncIterable[bytes]]

DEFAULT_CHUNK_SIZE = 64 * 1024


async def read_body(data: ObjectData) -> bytes:
    """Collapse any accepted payload shape into bytes."""
    if isinstance(data, str):
        return data.encode("utf-8")
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    chunks = [chunk async for chunk in data]
    return b"".join(chunks)


class StorageProvider(ABC):
    """
    Capability contract shared by all providers.

    Subclasses must implement:
    - put() / get() / get_stream() / exists() / delete()
    - list() / stat()
    - _test_connection()
    - describe()
    """

    backend: str = "unknown"

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or logging.getLogger(self.__class__.__module__)
        self._closed = False

    @property
    def is_closed(self) -> bool:
        """Check if the provider has been closed."""
        return self._closed

    @abstractmethod
    async def put(self, key: str, data: ObjectData, content_type: str | None = None) -> None:
        """
        Store an object, overwriting any existing one under the same key.

        Args:
            key: Object key
            data: bytes, str (UTF-8) or an async iterable of bytes
            content_type: MIME type; guessed from the key when omitted
        """
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """
        Read a whole object.

        Raises:
            NotFoundError: If the key does not exist
        """
        ...

    @abstractmethod
    def get_stream(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """
        Read an object as a stream of chunks.

        Raises:
            NotFoundError: If the key does not exist (on first iteration)
        """
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether an object exists."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete an object; deleting an absent key is a no-op."""
        ...

    @abstractmethod
    def list(self, prefix: str = "") -> AsyncIterator[ObjectInfo]:
        """
        Enumerate objects whose key starts with prefix.

        Each call re-enumerates from scratch.
        """
        ...

    @abstractmethod
    async def stat(self, key: str) -> ObjectStat:
        """
        Get size and modification time.

        Raises:
            NotFoundError: If the key does not exist
        """
        ...

    @abstractmethod
    async def _test_connection(self, probe_write: bool) -> ConnectionTestResult:
        """Backend-specific connectivity check; may raise."""
        ...

    @abstractmethod
    def describe(self) -> str:
        """Human-readable location of this provider (root or endpoint/bucket)."""
        ...

    def key_for_path(self, path: str | Path) -> str | None:
        """Key under which this provider stores a local file, if it does."""
        return None

    async def test_connection(
        self,
        probe_write: bool = False,
        timeout_seconds: float = 10.0,
    ) -> ConnectionTestResult:
        """
        Perform a lightweight round-trip against the backend.

        Never raises: failures and timeouts are reported in the result.

        Args:
            probe_write: Also write, read back and delete a probe object
            timeout_seconds: Maximum time to wait

        Returns:
            ConnectionTestResult describing success or failure
        """
        start = time.perf_counter()

        try:
            result = await asyncio.wait_for(
                self._test_connection(probe_write),
                timeout=timeout_seconds,
            )
        except TimeoutError:
            result = ConnectionTestResult(
                success=False,
                message=f"Connection test timed out after {timeout_seconds}s",
                details={"backend": self.backend},
            )
        except Exception as e:
            result = ConnectionTestResult(
                success=False,
                message=f"Connection failed: {e}",
                details={"backend": self.backend, "error": str(e), "error_type": type(e).__name__},
            )

        result.latency_ms = (time.perf_counter() - start) * 1000
        return result

    async def close(self) -> None:
        """Release resources. The provider should not be used afterwards."""
        self._closed = True

    async def __aenter__(self) -> "StorageProvider":
        """Enter async context."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context, closing the provider."""
        await self.close()

    def _log_operation(self, operation: str, key: str | None = None, **kwargs) -> None:
        """Log a storage operation at debug level."""
        extra = {"operation": operation, "backend": self.backend}
        if key:
            extra["key"] = key
        extra.update(kwargs)

        self._logger.debug(f"Storage operation: {operation}", extra=extra)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.describe()}>"
