# ============================================
# FILE: vaultshift/storage/backends/local.py
# ============================================

"""
Local Filesystem Storage Provider

Stores each object as a file below a root directory; the key is the
relative path. This is the provider the dashboard starts with.

Features:
- Keys are confined to the root (traversal attempts raise InvalidKeyError)
- Atomic writes (temporary sibling file + rename)
- Lazy, restartable listing
- Empty-directory pruning after deletes
- The root's .vaultshift/ directory and .env file are never listed

Example:
    >>> provider = LocalStorageProvider("/srv/vault")
    >>> await provider.put("uploads/extracted_files/a.txt", b"hello")
    >>> await provider.get("uploads/extracted_files/a.txt")
    b'hello'
"""

import asyncio
import os
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import aiofiles
import aiofiles.os

from vaultshift.storage.core import (
    DEFAULT_CHUNK_SIZE,
    ConnectionTestResult,
    InvalidKeyError,
    NotFoundError,
    ObjectData,
    ObjectInfo,
    ObjectStat,
    StorageError,
    StorageProvider,
    normalize_key,
    validate_local_key,
)

PARTIAL_SUFFIX = ".vaultshift-partial"
PROBE_KEY = ".vaultshift-connection-test"

# Entries of the storage root that belong to vaultshift or the host, not to users
RESERVED_ROOT_NAMES = frozenset({".vaultshift", ".env", PROBE_KEY})


def _scan_dir(path: str) -> list[tuple[str, bool, int, float]]:
    """List a directory as (name, is_dir, size, mtime), sorted by name."""
    entries = []
    with os.scandir(path) as it:
        for entry in it:
            if entry.is_dir(follow_symlinks=False):
                entries.append((entry.name, True, 0, 0.0))
            elif entry.is_file(follow_symlinks=False):
                if entry.name.endswith(PARTIAL_SUFFIX):
                    continue
                st = entry.stat(follow_symlinks=False)
                entries.append((entry.name, False, st.st_size, st.st_mtime))
    entries.sort(key=lambda e: e[0])
    return entries


def _prune_empty_dirs(base: str, stop_at: str) -> int:
    """Remove empty directories below base (bottom-up), never stop_at itself."""
    removed = 0
    for dirpath, _dirnames, _filenames in os.walk(base, topdown=False):
        if os.path.samefile(dirpath, stop_at):
            continue
        try:
            os.rmdir(dirpath)
            removed += 1
        except OSError:
            # Not empty
            continue
    return removed


class LocalStorageProvider(StorageProvider):
    """
    Filesystem-backed provider.

    Layout:
        root/
        ├── uploads/
        │   └── extracted_files/
        │       └── {device}/{file}
        └── ...
    """

    backend = "local"

    def __init__(self, root: str | Path | None = None, create_root: bool = True):
        """
        Initialize the local provider.

        Args:
            root: Directory all keys resolve against (default: working directory)
            create_root: Create the root directory if it does not exist
        """
        super().__init__()
        self.root = Path(root or os.getcwd()).resolve()
        if create_root:
            self.root.mkdir(parents=True, exist_ok=True)

    def describe(self) -> str:
        return f"local:{self.root}"

    def _resolve(self, key: str) -> Path:
        """
        Map a key to a path inside the root.

        Raises:
            InvalidKeyError: If the key is malformed or escapes the root
        """
        normalized = validate_local_key(key)
        path = (self.root / normalized).resolve()
        if path == self.root or self.root not in path.parents:
            raise InvalidKeyError(key, "resolves outside the storage root", root=str(self.root))
        return path

    def _key_for(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def key_for_path(self, path: str | Path) -> str | None:
        resolved = Path(path).resolve()
        if self.root not in resolved.parents:
            return None
        return self._key_for(resolved)

    async def put(self, key: str, data: ObjectData, content_type: str | None = None) -> None:
        path = self._resolve(key)
        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
        except (FileExistsError, NotADirectoryError) as e:
            msg = f"Cannot store {key}: a parent path is an existing object"
            raise StorageError(msg, details={"key": key, "backend": self.backend}) from e
        if await aiofiles.os.path.isdir(path):
            msg = f"Cannot store {key}: a directory exists at that key"
            raise StorageError(msg, details={"key": key, "backend": self.backend})

        tmp_path = path.with_name(f".{path.name}.{uuid4().hex[:12]}{PARTIAL_SUFFIX}")
        size = 0
        try:
            async with aiofiles.open(tmp_path, "wb") as f:
                if isinstance(data, str):
                    data = data.encode("utf-8")
                if isinstance(data, (bytes, bytearray)):
                    await f.write(data)
                    size = len(data)
                else:
                    async for chunk in data:
                        await f.write(chunk)
                        size += len(chunk)
            await aiofiles.os.replace(tmp_path, path)
        except BaseException:
            try:
                await aiofiles.os.remove(tmp_path)
            except FileNotFoundError:
                pass
            raise

        self._log_operation("put", key, size=size)

    async def get(self, key: str) -> bytes:
        path = self._resolve(key)
        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise NotFoundError(key, backend=self.backend) from e

        self._log_operation("get", key, size=len(data))
        return data

    async def get_stream(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        path = self._resolve(key)
        try:
            f = await aiofiles.open(path, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as e:
            raise NotFoundError(key, backend=self.backend) from e

        try:
            while chunk := await f.read(chunk_size):
                yield chunk
        finally:
            await f.close()

    async def exists(self, key: str) -> bool:
        return await aiofiles.os.path.isfile(self._resolve(key))

    async def delete(self, key: str) -> None:
        path = self._resolve(key)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return
        self._log_operation("delete", key)

    async def stat(self, key: str) -> ObjectStat:
        path = self._resolve(key)
        try:
            st = await aiofiles.os.stat(path)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise NotFoundError(key, backend=self.backend) from e

        if not os.path.isfile(path):
            raise NotFoundError(key, backend=self.backend)

        return ObjectStat(
            size=st.st_size,
            last_modified=datetime.fromtimestamp(st.st_mtime, UTC),
        )

    def _prefix_dir(self, prefix: str) -> tuple[str, Path]:
        """Normalized prefix and the deepest directory that can contain matches."""
        normalized = normalize_key(prefix)
        segments = normalized.split("/")
        if any(s in (".", "..") for s in segments) or "\x00" in normalized or "\\" in normalized:
            raise InvalidKeyError(prefix, "invalid prefix")

        directory = normalized if normalized.endswith("/") else normalized.rpartition("/")[0]
        return normalized, self.root / directory if directory else self.root

    async def list(self, prefix: str = "") -> AsyncIterator[ObjectInfo]:
        normalized, base = self._prefix_dir(prefix)
        if normalized.split("/", 1)[0] in RESERVED_ROOT_NAMES and "/" in normalized:
            return
        if not await aiofiles.os.path.isdir(base):
            return

        stack = [base]
        while stack:
            directory = stack.pop()
            try:
                entries = await asyncio.to_thread(_scan_dir, str(directory))
            except FileNotFoundError:
                # Removed while listing
                continue

            subdirs = []
            for name, is_dir, size, mtime in entries:
                if directory == self.root and name in RESERVED_ROOT_NAMES:
                    continue
                path = directory / name
                if is_dir:
                    subdirs.append(path)
                    continue
                key = self._key_for(path)
                if key.startswith(normalized):
                    yield ObjectInfo(
                        key=key,
                        size=size,
                        last_modified=datetime.fromtimestamp(mtime, UTC),
                    )
            # Depth-first, alphabetical
            stack.extend(reversed(subdirs))

    async def prune_empty_dirs(self, prefix: str = "") -> int:
        """
        Remove empty directories below prefix.

        Returns:
            Number of directories removed
        """
        _, base = self._prefix_dir(prefix)
        if not await aiofiles.os.path.isdir(base):
            return 0
        removed = await asyncio.to_thread(_prune_empty_dirs, str(base), str(self.root))
        self._log_operation("prune_empty_dirs", prefix or None, removed=removed)
        return removed

    async def _test_connection(self, probe_write: bool) -> ConnectionTestResult:
        details = {
            "root": str(self.root),
            "exists": self.root.is_dir(),
            "readable": False,
            "writable": False,
        }
        if not details["exists"]:
            return ConnectionTestResult(
                success=False,
                message=f"Storage root {self.root} does not exist or is not a directory",
                details=details,
            )

        details["readable"] = os.access(self.root, os.R_OK | os.X_OK)
        details["writable"] = os.access(self.root, os.W_OK)
        if not details["readable"]:
            return ConnectionTestResult(
                success=False,
                message=f"Storage root {self.root} is not readable",
                details=details,
            )

        if probe_write:
            payload = f"Connection test at {datetime.now(UTC).isoformat()}".encode()
            await self.put(PROBE_KEY, payload)
            details["can_read"] = await self.get(PROBE_KEY) == payload
            await self.delete(PROBE_KEY)
            details["can_write"] = details["can_delete"] = True

        return ConnectionTestResult(
            success=True,
            message=f"Local storage at {self.root} is accessible",
            details=details,
        )
