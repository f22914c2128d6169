# ============================================
# FILE: vaultshift/storage/backends/s3.py
# ============================================

"""
S3-Compatible Object Storage Provider

Wraps an aioboto3 S3 client. Compatible with AWS S3, MinIO and any other
S3-compatible store. ``path_style`` and ``use_ssl`` only change request
addressing, never semantics.

Requires: pip install aioboto3

Example:
    >>> provider = S3StorageProvider(S3StorageConfig(
    ...     endpoint="localhost:9000", bucket="vault",
    ...     access_key="minio", secret_key="minio123", use_ssl=False,
    ... ))
    >>> async with provider:
    ...     await provider.put("uploads/a.txt", b"hello")
"""

import asyncio
import io
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

from vaultshift.core.config import S3StorageConfig
from vaultshift.core.exceptions import MissingDependencyError
from vaultshift.storage.core import (
    DEFAULT_CHUNK_SIZE,
    ConnectionTestResult,
    NotFoundError,
    ObjectData,
    ObjectInfo,
    ObjectStat,
    StorageError,
    StorageProvider,
    UnreachableError,
    guess_content_type,
    normalize_key,
    read_body,
)

try:
    import aioboto3
    from botocore.config import Config as BotocoreConfig
    from botocore.exceptions import BotoCoreError, ClientError

    AIOBOTO3_AVAILABLE = True
except ImportError:
    AIOBOTO3_AVAILABLE = False  # pragma: no cover
    aioboto3 = None  # pragma: no cover
    BotocoreConfig = None  # pragma: no cover
    BotoCoreError = ClientError = Exception  # type: ignore[assignment,misc]  # pragma: no cover

MULTIPART_THRESHOLD = 5 * 1024 * 1024
PROBE_KEY = ".vaultshift-connection-test"

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}
_DENIED_CODES = {"403", "AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch"}


def _error_code(error: Exception) -> str:
    """Error code of a botocore ClientError ("" for anything else)."""
    response = getattr(error, "response", None) or {}
    code = response.get("Error", {}).get("Code")
    if code:
        return str(code)
    status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return str(status) if status else ""


def _is_not_found(error: Exception) -> bool:
    return isinstance(error, ClientError) and _error_code(error) in _NOT_FOUND_CODES


class S3StorageProvider(StorageProvider):
    """
    S3-compatible object storage provider.

    The client is created lazily on first use and reused; close() releases it.
    """

    backend = "s3"

    def __init__(
        self,
        config: S3StorageConfig,
        multipart_threshold: int = MULTIPART_THRESHOLD,
        **client_kwargs: Any,
    ):
        """
        Initialize the S3 provider.

        Args:
            config: Endpoint, bucket and credentials
            multipart_threshold: Objects larger than this use a multipart upload
            **client_kwargs: Extra keyword arguments for session.client("s3")
        """
        if not AIOBOTO3_AVAILABLE:
            raise MissingDependencyError("aioboto3", "S3 storage provider")

        config.validate()

        super().__init__()
        self.config = config
        self.bucket = config.bucket
        self.multipart_threshold = multipart_threshold
        self.client_kwargs = client_kwargs
        self._session = None
        self._client: Any = None
        self._client_cm: Any = None
        self._lock = asyncio.Lock()

    def describe(self) -> str:
        return f"s3:{self.config.endpoint_url}/{self.bucket}"

    async def _get_client(self):
        """Get S3 client, creating if necessary"""
        if self._client is not None:
            return self._client

        async with self._lock:
            if self._client is None:
                try:
                    self._session = aioboto3.Session(
                        aws_access_key_id=self.config.access_key,
                        aws_secret_access_key=self.config.secret_key,
                        region_name=self.config.region or "us-east-1",
                    )
                    self._client_cm = self._session.client(
                        "s3",
                        endpoint_url=self.config.endpoint_url,
                        config=BotocoreConfig(
                            s3={"addressing_style": "path" if self.config.path_style else "virtual"},
                        ),
                        **self.client_kwargs,
                    )
                    self._client = await self._client_cm.__aenter__()
                except Exception as e:
                    msg = f"Failed to create S3 client: {e}"
                    raise UnreachableError(
                        msg, backend=self.backend, url=self.config.endpoint_url
                    ) from e

        return self._client

    def _translate(self, error: Exception, key: str | None, operation: str) -> StorageError:
        """Map botocore errors onto the storage error hierarchy."""
        if key is not None and _is_not_found(error):
            return NotFoundError(key, backend=self.backend)

        code = _error_code(error)
        if code in _DENIED_CODES:
            return UnreachableError(
                f"Access denied to bucket {self.bucket!r} during {operation}",
                backend=self.backend,
                url=self.config.endpoint_url,
                code=code,
            )
        if isinstance(error, ClientError):
            return StorageError(
                f"S3 {operation} failed: {error}",
                details={"key": key, "code": code, "bucket": self.bucket},
            )
        return UnreachableError(
            f"Cannot reach S3 endpoint during {operation}: {error}",
            backend=self.backend,
            url=self.config.endpoint_url,
        )

    async def put(self, key: str, data: ObjectData, content_type: str | None = None) -> None:
        s3 = await self._get_client()
        object_key = normalize_key(key)
        body = await read_body(data)
        content_type = content_type or guess_content_type(object_key)

        try:
            if len(body) > self.multipart_threshold:
                await s3.upload_fileobj(
                    io.BytesIO(body),
                    self.bucket,
                    object_key,
                    ExtraArgs={"ContentType": content_type},
                )
            else:
                await s3.put_object(
                    Bucket=self.bucket,
                    Key=object_key,
                    Body=body,
                    ContentType=content_type,
                )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, None, "put") from e

        self._log_operation("put", object_key, size=len(body))

    async def get(self, key: str) -> bytes:
        s3 = await self._get_client()
        object_key = normalize_key(key)

        try:
            response = await s3.get_object(Bucket=self.bucket, Key=object_key)
            data = await response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "get") from e

        self._log_operation("get", object_key, size=len(data))
        return data

    async def get_stream(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        s3 = await self._get_client()
        object_key = normalize_key(key)

        try:
            response = await s3.get_object(Bucket=self.bucket, Key=object_key)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "get") from e

        body = response["Body"]
        try:
            async for chunk in body.iter_chunks(chunk_size):
                yield chunk
        finally:
            body.close()

    async def exists(self, key: str) -> bool:
        s3 = await self._get_client()
        try:
            await s3.head_object(Bucket=self.bucket, Key=normalize_key(key))
            return True
        except (ClientError, BotoCoreError) as e:
            if _is_not_found(e):
                return False
            raise self._translate(e, None, "exists") from e

    async def delete(self, key: str) -> None:
        s3 = await self._get_client()
        object_key = normalize_key(key)
        try:
            await s3.delete_object(Bucket=self.bucket, Key=object_key)
        except (ClientError, BotoCoreError) as e:
            if _is_not_found(e):
                return
            raise self._translate(e, None, "delete") from e
        self._log_operation("delete", object_key)

    async def stat(self, key: str) -> ObjectStat:
        s3 = await self._get_client()
        try:
            response = await s3.head_object(Bucket=self.bucket, Key=normalize_key(key))
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, key, "stat") from e

        return ObjectStat(
            size=int(response.get("ContentLength", 0)),
            last_modified=response.get("LastModified"),
        )

    async def list(self, prefix: str = "") -> AsyncIterator[ObjectInfo]:
        s3 = await self._get_client()
        paginator = s3.get_paginator("list_objects_v2")

        try:
            async for page in paginator.paginate(
                Bucket=self.bucket,
                Prefix=normalize_key(prefix),
                PaginationConfig={"PageSize": 1000},
            ):
                for obj in page.get("Contents", []):
                    yield ObjectInfo(
                        key=obj["Key"],
                        size=obj.get("Size"),
                        last_modified=obj.get("LastModified"),
                    )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, None, "list") from e

    async def _test_connection(self, probe_write: bool) -> ConnectionTestResult:
        details: dict[str, Any] = {
            "endpoint": self.config.endpoint_url,
            "bucket": self.bucket,
            "bucket_exists": False,
            "can_list": False,
        }
        s3 = await self._get_client()

        try:
            await s3.head_bucket(Bucket=self.bucket)
            details["bucket_exists"] = True
        except ClientError as e:
            code = _error_code(e)
            if code in _NOT_FOUND_CODES | {"NoSuchBucket"} and probe_write:
                try:
                    await s3.create_bucket(Bucket=self.bucket)
                    details["bucket_exists"] = True
                    details["bucket_created"] = True
                except ClientError as create_error:
                    return ConnectionTestResult(
                        success=False,
                        message=(
                            f'Bucket "{self.bucket}" does not exist and could not be created: '
                            f"{create_error}"
                        ),
                        details=details,
                    )
            elif code in _NOT_FOUND_CODES | {"NoSuchBucket"}:
                return ConnectionTestResult(
                    success=False,
                    message=f'Bucket "{self.bucket}" does not exist',
                    details=details,
                )
            elif code in _DENIED_CODES:
                return ConnectionTestResult(
                    success=False,
                    message=(
                        f'Access denied to bucket "{self.bucket}". '
                        "Check your credentials and permissions."
                    ),
                    details=details,
                )
            else:
                return ConnectionTestResult(
                    success=False,
                    message=(
                        f"Cannot connect to S3 endpoint: {code or type(e).__name__}. {e}. "
                        "Make sure the endpoint URL and port are correct "
                        "(for MinIO use the S3 API port, not the console port)."
                    ),
                    details=details,
                )
        except BotoCoreError as e:
            return ConnectionTestResult(
                success=False,
                message=f"Cannot connect to S3 endpoint {self.config.endpoint_url}: {e}",
                details=details,
            )

        try:
            await s3.list_objects_v2(Bucket=self.bucket, MaxKeys=1)
            details["can_list"] = True
        except (ClientError, BotoCoreError) as e:
            return ConnectionTestResult(
                success=False,
                message=f"Cannot list bucket: {e}",
                details=details,
            )

        if not probe_write:
            return ConnectionTestResult(
                success=True,
                message=f'Bucket "{self.bucket}" is reachable',
                details=details,
            )

        return await self._probe_read_write(s3, details)

    async def _probe_read_write(self, s3, details: dict[str, Any]) -> ConnectionTestResult:
        """Write, read back and delete a probe object."""
        details.update(can_write=False, can_read=False, can_delete=False)
        payload = f"Connection test at {datetime.now(UTC).isoformat()}".encode()

        steps = (
            ("write", "can_write"),
            ("read", "can_read"),
            ("delete", "can_delete"),
        )
        for step, flag in steps:
            try:
                if step == "write":
                    await s3.put_object(
                        Bucket=self.bucket, Key=PROBE_KEY, Body=payload, ContentType="text/plain"
                    )
                    details[flag] = True
                elif step == "read":
                    response = await s3.get_object(Bucket=self.bucket, Key=PROBE_KEY)
                    details[flag] = await response["Body"].read() == payload
                else:
                    await s3.delete_object(Bucket=self.bucket, Key=PROBE_KEY)
                    details[flag] = True
            except (ClientError, BotoCoreError) as e:
                return ConnectionTestResult(
                    success=False,
                    message=f"Cannot {step} {'to' if step == 'write' else 'from'} bucket: {e}",
                    details=details,
                )

        if not details["can_read"]:
            return ConnectionTestResult(
                success=False,
                message="Test object read back from the bucket does not match what was written",
                details=details,
            )

        return ConnectionTestResult(
            success=True,
            message="Connection successful! All operations (read, write, delete) verified.",
            details=details,
        )

    async def close(self) -> None:
        """Close S3 client"""
        if self._client_cm is not None:
            await self._client_cm.__aexit__(None, None, None)
        self._client = None
        self._client_cm = None
        self._session = None
        await super().close()
