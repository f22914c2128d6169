"""
Pytest configuration and shared fixtures for vaultshift tests

Provides:
- MemoryStorageProvider: dict-backed provider with failure injection hooks
- FakeS3Client: in-memory stand-in for an aioboto3 S3 client that raises
  real botocore ClientErrors
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import pytest
from botocore.exceptions import ClientError

from vaultshift.core.config import LocalStorageConfig, MigrationOptions, S3StorageConfig
from vaultshift.core.settings import InMemorySettingsStore
from vaultshift.storage.core import (
    ConnectionTestResult,
    NotFoundError,
    ObjectInfo,
    ObjectStat,
    StorageError,
    StorageProvider,
    read_body,
)

# ============================================
# IN-MEMORY PROVIDER
# ============================================

SEEDED_AT = datetime(2024, 1, 1, tzinfo=UTC)


class MemoryStorageProvider(StorageProvider):
    """
    StorageProvider keeping objects in a dict.

    Failure injection:
        fail_keys: put() raises StorageError for these keys
        corrupt_keys: put() stores a truncated payload for these keys
        before_put: awaited with the key before every put
        list_error: raised by list() after yielding list_error_after objects
        connection_ok: result of the connection test
    """

    backend = "memory"

    def __init__(self, name: str = "memory", objects: dict[str, bytes] | None = None):
        super().__init__()
        self.name = name
        self.objects: dict[str, bytes] = dict(objects or {})
        self.modified: dict[str, datetime] = dict.fromkeys(self.objects, SEEDED_AT)
        self.content_types: dict[str, str | None] = {}
        self.fail_keys: set[str] = set()
        self.corrupt_keys: set[str] = set()
        self.before_put: Callable[[str], Awaitable[None]] | None = None
        self.list_error: Exception | None = None
        self.list_error_after = 0
        self.connection_ok = True
        self.put_calls: list[str] = []

    def describe(self) -> str:
        return f"memory:{self.name}"

    async def put(self, key, data, content_type=None):
        if self.before_put is not None:
            await self.before_put(key)
        self.put_calls.append(key)
        if key in self.fail_keys:
            raise StorageError(f"simulated failure writing {key}")
        body = await read_body(data)
        if key in self.corrupt_keys:
            body = body[:-1]
        self.objects[key] = body
        self.modified[key] = datetime.now(UTC)
        self.content_types[key] = content_type

    async def get(self, key):
        try:
            return self.objects[key]
        except KeyError as e:
            raise NotFoundError(key, backend=self.backend) from e

    async def get_stream(self, key, chunk_size=4):
        data = await self.get(key)
        for i in range(0, len(data), chunk_size):
            yield data[i : i + chunk_size]

    async def exists(self, key):
        return key in self.objects

    async def delete(self, key):
        self.objects.pop(key, None)
        self.modified.pop(key, None)

    async def stat(self, key):
        data = await self.get(key)
        return ObjectStat(size=len(data), last_modified=self.modified.get(key, SEEDED_AT))

    async def list(self, prefix=""):
        for index, key in enumerate(sorted(self.objects)):
            if self.list_error is not None and index >= self.list_error_after:
                raise self.list_error
            if key.startswith(prefix):
                yield ObjectInfo(key=key, size=len(self.objects[key]))

    async def _test_connection(self, probe_write):
        if not self.connection_ok:
            return ConnectionTestResult(success=False, message=f"{self.name} is down")
        return ConnectionTestResult(success=True, message=f"{self.name} is reachable")


def make_objects(count: int, size: int = 8) -> dict[str, bytes]:
    """count objects named uploads/obj-000.bin ... with distinct payloads."""
    return {f"uploads/obj-{i:03d}.bin": bytes([i % 256]) * size for i in range(count)}


# ============================================
# FAKE S3 CLIENT
# ============================================


def client_error(code: str, status: int, operation: str = "Operation") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"simulated {code}"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class FakeBody:
    def __init__(self, data: bytes):
        self._data = data
        self.closed = False

    async def read(self) -> bytes:
        return self._data

    async def iter_chunks(self, chunk_size: int = 1024):
        for i in range(0, len(self._data), chunk_size):
            yield self._data[i : i + chunk_size]

    def close(self) -> None:
        self.closed = True


class FakePaginator:
    def __init__(self, client: "FakeS3Client", page_size: int):
        self._client = client
        self._page_size = page_size

    async def paginate(self, Bucket, Prefix="", PaginationConfig=None):
        self._client._check_bucket(Bucket)
        keys = sorted(k for k in self._client.objects if k.startswith(Prefix))
        for i in range(0, len(keys), self._page_size):
            page = keys[i : i + self._page_size]
            yield {
                "Contents": [
                    {
                        "Key": k,
                        "Size": len(self._client.objects[k]),
                        "LastModified": datetime(2024, 1, 1, tzinfo=UTC),
                    }
                    for k in page
                ]
            }


class FakeS3Client:
    """
    In-memory S3 client with the subset of the aioboto3 API the provider uses.

    Attributes:
        bucket_exists: head_bucket raises 404 when False
        denied: every call raises 403 AccessDenied
        fail_puts: put_object raises 500 InternalError for these keys
    """

    def __init__(self, bucket: str = "vault", page_size: int = 2):
        self.bucket = bucket
        self.bucket_exists = True
        self.denied = False
        self.objects: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail_puts: set[str] = set()
        self.page_size = page_size
        self.calls: list[str] = []

    def _check_bucket(self, bucket: str) -> None:
        if self.denied:
            raise client_error("AccessDenied", 403)
        if bucket != self.bucket or not self.bucket_exists:
            raise client_error("NoSuchBucket", 404)

    async def head_bucket(self, Bucket):
        self.calls.append("head_bucket")
        if self.denied:
            raise client_error("403", 403, "HeadBucket")
        if Bucket != self.bucket or not self.bucket_exists:
            raise client_error("404", 404, "HeadBucket")
        return {}

    async def create_bucket(self, Bucket):
        self.calls.append("create_bucket")
        self.bucket = Bucket
        self.bucket_exists = True
        return {}

    async def list_objects_v2(self, Bucket, MaxKeys=1000, Prefix=""):
        self.calls.append("list_objects_v2")
        self._check_bucket(Bucket)
        keys = sorted(k for k in self.objects if k.startswith(Prefix))[:MaxKeys]
        return {"Contents": [{"Key": k, "Size": len(self.objects[k])} for k in keys]}

    async def put_object(self, Bucket, Key, Body, ContentType=None):
        self.calls.append("put_object")
        self._check_bucket(Bucket)
        if Key in self.fail_puts:
            raise client_error("InternalError", 500, "PutObject")
        self.objects[Key] = bytes(Body)
        self.content_types[Key] = ContentType
        return {}

    async def upload_fileobj(self, Fileobj, Bucket, Key, ExtraArgs=None):
        self.calls.append("upload_fileobj")
        self._check_bucket(Bucket)
        self.objects[Key] = Fileobj.read()
        self.content_types[Key] = (ExtraArgs or {}).get("ContentType")

    async def get_object(self, Bucket, Key):
        self.calls.append("get_object")
        self._check_bucket(Bucket)
        if Key not in self.objects:
            raise client_error("NoSuchKey", 404, "GetObject")
        return {"Body": FakeBody(self.objects[Key]), "ContentLength": len(self.objects[Key])}

    async def head_object(self, Bucket, Key):
        self.calls.append("head_object")
        self._check_bucket(Bucket)
        if Key not in self.objects:
            raise client_error("404", 404, "HeadObject")
        return {
            "ContentLength": len(self.objects[Key]),
            "LastModified": datetime(2024, 1, 1, tzinfo=UTC),
        }

    async def delete_object(self, Bucket, Key):
        self.calls.append("delete_object")
        self._check_bucket(Bucket)
        self.objects.pop(Key, None)
        return {}

    def get_paginator(self, operation: str) -> FakePaginator:
        assert operation == "list_objects_v2"
        return FakePaginator(self, self.page_size)


# ============================================
# FIXTURES
# ============================================


@pytest.fixture
def s3_config() -> S3StorageConfig:
    return S3StorageConfig(
        endpoint="minio.test:9000",
        bucket="vault",
        access_key="minio",
        secret_key="minio-secret-1234",
        use_ssl=False,
    )


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def s3_provider(s3_config, fake_s3):
    """S3StorageProvider wired to the in-memory client."""
    from vaultshift.storage.backends.s3 import S3StorageProvider

    provider = S3StorageProvider(s3_config)
    provider._client = fake_s3
    return provider


@pytest.fixture
def settings() -> InMemorySettingsStore:
    return InMemorySettingsStore()


@pytest.fixture
def local_config(tmp_path) -> LocalStorageConfig:
    return LocalStorageConfig(root=str(tmp_path / "vault"))


@pytest.fixture
def fast_options() -> MigrationOptions:
    return MigrationOptions(connection_timeout_seconds=2.0)


@pytest.fixture
def memory_provider() -> Callable[..., MemoryStorageProvider]:
    """Build MemoryStorageProvider instances: memory_provider("name", {key: data})."""
    return MemoryStorageProvider


@pytest.fixture
def sample_objects() -> dict[str, bytes]:
    return make_objects(5)


@pytest.fixture
def make_client_error() -> Callable[..., ClientError]:
    return client_error


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            msg = "condition not met in time"
            raise AssertionError(msg)
        await asyncio.sleep(0.005)


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds (await wait_until(lambda: ...))."""
    return _wait_until
