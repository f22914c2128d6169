"""
Storage and migration configuration.

A storage configuration is a tagged union: either LocalStorageConfig
(a root directory) or S3StorageConfig (an S3-compatible endpoint). Only one
configuration is active at a time; it is persisted in the external settings
store under the keys listed in SETTING_KEYS.

Example:
    >>> config = S3StorageConfig(
    ...     endpoint="minio.internal:9000",
    ...     bucket="vault",
    ...     access_key="minio",
    ...     secret_key="minio123",
    ...     use_ssl=False,
    ... )
    >>> config.validate()
    >>> config.endpoint_url
    'http://minio.internal:9000'
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from vaultshift.core.env import EnvManager, get_env
from vaultshift.storage.core.errors import IncompleteConfigError

MASK_PREFIX = "••••"


class StorageType(Enum):
    """Storage backend discriminator."""

    LOCAL = "local"
    S3 = "s3"


class SETTING_KEYS:
    """Settings-store keys owned by the storage subsystem."""

    STORAGE_TYPE = "storage_type"
    LOCAL_ROOT = "storage_local_root"
    S3_ENDPOINT = "storage_s3_endpoint"
    S3_REGION = "storage_s3_region"
    S3_BUCKET = "storage_s3_bucket"
    S3_ACCESS_KEY = "storage_s3_access_key"
    S3_SECRET_KEY = "storage_s3_secret_key"
    S3_PATH_STYLE = "storage_s3_path_style"
    S3_USE_SSL = "storage_s3_use_ssl"
    MIGRATION_STATUS = "storage_migration_status"
    MIGRATION_PROGRESS = "storage_migration_progress"


def parse_bool(value: str | bool | None, default: bool = False) -> bool:
    """Parse a boolean stored as a settings string ("true"/"1")."""
    if isinstance(value, bool):
        return value
    if value is None or value == "":
        return default
    return value.strip().lower() in ("true", "1")


def format_bool(value: bool) -> str:
    return "true" if value else "false"


def mask_secret(secret: str) -> str:
    """Render a secret for display, keeping only its last four characters."""
    if not secret:
        return ""
    return f"{MASK_PREFIX}{MASK_PREFIX}{secret[-4:]}"


def is_masked(secret: str | None) -> bool:
    """True when a secret is missing or is the masked display form."""
    return not secret or secret.startswith(MASK_PREFIX)


@dataclass(frozen=True)
class LocalStorageConfig:
    """
    Local filesystem storage.

    Attributes:
        root: Directory all keys are resolved against
    """

    root: str = field(default_factory=os.getcwd)

    @property
    def type(self) -> StorageType:
        return StorageType.LOCAL

    def validate(self) -> None:
        if not self.root:
            raise IncompleteConfigError(["root"], backend=self.type.value)

    def to_settings(self) -> dict[str, str]:
        return {
            SETTING_KEYS.STORAGE_TYPE: self.type.value,
            SETTING_KEYS.LOCAL_ROOT: self.root,
        }

    def to_dict(self, mask_secrets: bool = True) -> dict[str, Any]:
        return {"type": self.type.value, "root": self.root}


@dataclass(frozen=True)
class S3StorageConfig:
    """
    S3-compatible object storage (AWS S3, MinIO, ...).

    Attributes:
        endpoint: Host[:port] or full URL of the S3 API
        bucket: Bucket holding all objects
        access_key: Access key id
        secret_key: Secret access key
        region: Signing region
        path_style: Use path-style addressing (required by MinIO)
        use_ssl: Scheme used when the endpoint carries none
    """

    endpoint: str = ""
    bucket: str = ""
    access_key: str = ""
    secret_key: str = field(default="", repr=False)
    region: str = "us-east-1"
    path_style: bool = True
    use_ssl: bool = True

    REQUIRED_FIELDS = ("endpoint", "bucket", "access_key", "secret_key")

    @property
    def type(self) -> StorageType:
        return StorageType.S3

    @property
    def endpoint_url(self) -> str:
        """Endpoint with an explicit scheme."""
        if self.endpoint.startswith(("http://", "https://")):
            return self.endpoint
        scheme = "https://" if self.use_ssl else "http://"
        return f"{scheme}{self.endpoint}"

    def missing_fields(self) -> list[str]:
        return [name for name in self.REQUIRED_FIELDS if not getattr(self, name)]

    def is_complete(self) -> bool:
        return not self.missing_fields()

    def validate(self) -> None:
        """
        Raises:
            IncompleteConfigError: If endpoint, bucket or credentials are missing
        """
        missing = self.missing_fields()
        if missing:
            raise IncompleteConfigError(missing, backend=self.type.value)

    def with_secret_from(self, saved: S3StorageConfig | None) -> S3StorageConfig:
        """
        Fill a masked or empty secret (and other blank fields) from saved settings.

        Forms echo the masked secret back; this resolves it before use.
        """
        if saved is None:
            return self
        return S3StorageConfig(
            endpoint=self.endpoint or saved.endpoint,
            bucket=self.bucket or saved.bucket,
            access_key=self.access_key or saved.access_key,
            secret_key=saved.secret_key if is_masked(self.secret_key) else self.secret_key,
            region=self.region or saved.region or "us-east-1",
            path_style=self.path_style,
            use_ssl=self.use_ssl,
        )

    def to_settings(self) -> dict[str, str]:
        return {
            SETTING_KEYS.STORAGE_TYPE: self.type.value,
            SETTING_KEYS.S3_ENDPOINT: self.endpoint,
            SETTING_KEYS.S3_REGION: self.region,
            SETTING_KEYS.S3_BUCKET: self.bucket,
            SETTING_KEYS.S3_ACCESS_KEY: self.access_key,
            SETTING_KEYS.S3_SECRET_KEY: self.secret_key,
            SETTING_KEYS.S3_PATH_STYLE: format_bool(self.path_style),
            SETTING_KEYS.S3_USE_SSL: format_bool(self.use_ssl),
        }

    def to_dict(self, mask_secrets: bool = True) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "endpoint": self.endpoint,
            "region": self.region,
            "bucket": self.bucket,
            "access_key": self.access_key,
            "secret_key": mask_secret(self.secret_key) if mask_secrets else self.secret_key,
            "path_style": self.path_style,
            "use_ssl": self.use_ssl,
        }


StorageConfig = Union[LocalStorageConfig, S3StorageConfig]


@dataclass
class MigrationOptions:
    """
    Tunables of a migration run.

    Attributes:
        concurrency: Objects copied in parallel (1 = strictly sequential)
        verify: Stat the destination after each put and compare sizes
        log_capacity: Maximum entries kept in the migration log
        progress_log_interval: Emit a progress entry every N processed objects
        connection_timeout_seconds: Timeout of the pre-flight connection tests
    """

    concurrency: int = 1
    verify: bool = True
    log_capacity: int = 1000
    progress_log_interval: int = 10
    connection_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            msg = f"concurrency must be >= 1, got {self.concurrency}"
            raise ValueError(msg)
        if self.log_capacity < 1:
            msg = f"log_capacity must be >= 1, got {self.log_capacity}"
            raise ValueError(msg)
        if self.progress_log_interval < 1:
            msg = f"progress_log_interval must be >= 1, got {self.progress_log_interval}"
            raise ValueError(msg)

    @classmethod
    def from_env(cls, env: EnvManager | None = None) -> MigrationOptions:
        """Build options from VAULTSHIFT_* environment variables."""
        env = env or get_env()
        return cls(
            concurrency=max(1, env.get_int("VAULTSHIFT_MIGRATION_CONCURRENCY", 1)),
            verify=env.get_bool("VAULTSHIFT_VERIFY", True),
            log_capacity=max(1, env.get_int("VAULTSHIFT_LOG_CAPACITY", 1000)),
        )
