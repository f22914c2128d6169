"""
Settings store boundary.

The host application persists configuration in a key/string-value store.
vaultshift only needs read and write access to it; two implementations are
provided:

- InMemorySettingsStore: for tests and embedding
- JsonFileSettingsStore: a JSON document on disk, used by the CLI

Usage:
    >>> store = InMemorySettingsStore()
    >>> await save_storage_config(store, LocalStorageConfig(root="/srv/vault"))
    >>> config = await load_storage_config(store)
"""

from __future__ import annotations

import asyncio
import json
import os
from abc import ABC, abstractmethod
from pathlib import Path

import aiofiles
import aiofiles.os

from vaultshift.core.config import (
    SETTING_KEYS,
    LocalStorageConfig,
    S3StorageConfig,
    StorageConfig,
    StorageType,
    parse_bool,
)
from vaultshift.core.logger import get_logger

logger = get_logger(__name__)


class SettingsStore(ABC):
    """Key/string-value mapping with async read and write."""

    # File backing the store, when there is one
    path: Path | None = None

    @abstractmethod
    async def get(self, key: str, default: str = "") -> str:
        """Read a setting, returning default when absent."""
        ...

    @abstractmethod
    async def set_many(self, values: dict[str, str]) -> None:
        """Write several settings at once."""
        ...

    async def set(self, key: str, value: str) -> None:
        await self.set_many({key: value})

    async def get_many(self, defaults: dict[str, str]) -> dict[str, str]:
        """Read several settings; keys absent from the store take their default."""
        values = await asyncio.gather(*(self.get(k, d) for k, d in defaults.items()))
        return dict(zip(defaults.keys(), values, strict=True))


class InMemorySettingsStore(SettingsStore):
    """Settings kept in a dict. Not persisted."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    async def get(self, key: str, default: str = "") -> str:
        return self._values.get(key, default)

    async def set_many(self, values: dict[str, str]) -> None:
        self._values.update(values)

    def as_dict(self) -> dict[str, str]:
        return dict(self._values)


class JsonFileSettingsStore(SettingsStore):
    """
    Settings persisted as a flat JSON object.

    Writes go to a temporary file that replaces the document atomically,
    so a crash never leaves a truncated settings file behind.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        async with aiofiles.open(self.path, encoding="utf-8") as f:
            raw = await f.read()
        if not raw.strip():
            return {}
        data = json.loads(raw)
        return {str(k): str(v) for k, v in data.items()}

    async def get(self, key: str, default: str = "") -> str:
        data = await self._read()
        return data.get(key, default)

    async def set_many(self, values: dict[str, str]) -> None:
        async with self._lock:
            data = await self._read()
            data.update(values)

            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2, sort_keys=True))
            await aiofiles.os.replace(tmp_path, self.path)


async def load_s3_config(store: SettingsStore) -> S3StorageConfig:
    """Read the saved S3 settings, complete or not."""
    values = await store.get_many(
        {
            SETTING_KEYS.S3_ENDPOINT: "",
            SETTING_KEYS.S3_REGION: "us-east-1",
            SETTING_KEYS.S3_BUCKET: "",
            SETTING_KEYS.S3_ACCESS_KEY: "",
            SETTING_KEYS.S3_SECRET_KEY: "",
            SETTING_KEYS.S3_PATH_STYLE: "true",
            SETTING_KEYS.S3_USE_SSL: "true",
        }
    )
    return S3StorageConfig(
        endpoint=values[SETTING_KEYS.S3_ENDPOINT],
        region=values[SETTING_KEYS.S3_REGION] or "us-east-1",
        bucket=values[SETTING_KEYS.S3_BUCKET],
        access_key=values[SETTING_KEYS.S3_ACCESS_KEY],
        secret_key=values[SETTING_KEYS.S3_SECRET_KEY],
        path_style=parse_bool(values[SETTING_KEYS.S3_PATH_STYLE], default=True),
        use_ssl=parse_bool(values[SETTING_KEYS.S3_USE_SSL], default=True),
    )


async def load_local_config(store: SettingsStore, default_root: str | None = None) -> LocalStorageConfig:
    root = await store.get(SETTING_KEYS.LOCAL_ROOT, "")
    return LocalStorageConfig(root=root or default_root or os.getcwd())


async def load_storage_config(
    store: SettingsStore,
    default_root: str | None = None,
) -> StorageConfig:
    """
    Read the active storage configuration.

    An "s3" type with incomplete S3 settings falls back to local storage.
    """
    storage_type = (await store.get(SETTING_KEYS.STORAGE_TYPE, StorageType.LOCAL.value)).lower()

    if storage_type == StorageType.S3.value:
        s3_config = await load_s3_config(store)
        if s3_config.is_complete():
            return s3_config
        logger.warning(
            f"S3 configuration incomplete (missing: {', '.join(s3_config.missing_fields())}), "
            "falling back to local storage"
        )
    elif storage_type != StorageType.LOCAL.value:
        logger.warning(f"Unknown storage type {storage_type!r}, falling back to local storage")

    return await load_local_config(store, default_root)


async def save_s3_settings(store: SettingsStore, config: S3StorageConfig) -> None:
    """Persist S3 settings without changing which storage is active."""
    values = config.to_settings()
    values.pop(SETTING_KEYS.STORAGE_TYPE)
    await store.set_many(values)


async def save_storage_config(store: SettingsStore, config: StorageConfig) -> None:
    """Persist a configuration and mark it as the active one."""
    await store.set_many(config.to_settings())
