"""Source-file storage — local upload directory, S3 / MinIO or Aliyun OSS bucket.

Both backends expose the file as a local path inside an async context
manager.  Remote objects are downloaded to a temporary file that is
removed when the context exits, whatever happens inside it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from kb_ingest.errors import StorageError

if TYPE_CHECKING:
    from kb_ingest.config import Settings

logger = logging.getLogger(__name__)


class StorageBackend(ABC):
    """Read access to uploaded source files by storage key."""

    @abstractmethod
    def local_copy(self, key: str) -> Any:
        """Async context manager yielding a local :class:`Path` for *key*."""
        ...

    async def fetch(self, key: str) -> bytes:
        """Return the full content stored under *key*."""
        async with self.local_copy(key) as path:
            return await asyncio.to_thread(path.read_bytes)


class LocalStorage(StorageBackend):
    """Files on local disk.

    Absolute keys are used as-is; relative keys resolve against *upload_dir*.
    Nothing is copied, so nothing is deleted afterwards.
    """

    def __init__(self, upload_dir: str | Path = "uploads") -> None:
        self.upload_dir = Path(upload_dir)

    def resolve(self, key: str) -> Path:
        path = Path(key)
        return path if path.is_absolute() else self.upload_dir / path

    @asynccontextmanager
    async def local_copy(self, key: str) -> AsyncIterator[Path]:
        path = self.resolve(key)
        if not path.is_file():
            raise StorageError(f"File not found in local storage: {path}")
        yield path


class S3Storage(StorageBackend):
    """Objects in an S3 / MinIO bucket.

    Parameters
    ----------
    bucket:
        Bucket holding the uploads.
    endpoint_url:
        Custom endpoint for MinIO or other S3-compatible stores.
    addressing_style:
        ``path`` for MinIO, ``virtual`` for Aliyun OSS.
    temp_dir:
        Where downloads are written while a document is processed.
    client:
        Pre-built boto3 S3 client (tests inject a stub here).
    """

    def __init__(
        self,
        bucket: str,
        *,
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        access_key: str | None = None,
        secret_key: str | None = None,
        temp_dir: str | Path = ".temp",
        addressing_style: str = "path",
        client: Any = None,
    ) -> None:
        if not bucket:
            raise ValueError("S3Storage requires a bucket name")
        self.bucket = bucket
        self.temp_dir = Path(temp_dir)
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url or None,
            aws_access_key_id=access_key or None,
            aws_secret_access_key=secret_key or None,
            config=Config(s3={"addressing_style": addressing_style}),
        )

    @asynccontextmanager
    async def local_copy(self, key: str) -> AsyncIterator[Path]:
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        fd, name = tempfile.mkstemp(prefix="kb-", suffix=Path(key).suffix, dir=self.temp_dir)
        os.close(fd)
        path = Path(name)
        try:
            await self._download(key, path)
            yield path
        finally:
            path.unlink(missing_ok=True)
            logger.debug("Removed temp file %s", path)

    async def _download(self, key: str, path: Path) -> None:
        logger.info("Downloading s3://%s/%s to %s", self.bucket, key, path)
        try:
            await asyncio.to_thread(self._client.download_file, self.bucket, key, str(path))
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            raise StorageError(f"S3 error downloading {key} ({code})") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 error downloading {key}: {exc}") from exc


def oss_endpoint(region: str) -> str:
    """S3-compatible endpoint of an Aliyun OSS region, e.g. ``oss-cn-hangzhou``."""
    return f"https://{region}.aliyuncs.com"


def get_storage(settings: Settings) -> StorageBackend:
    """Build the storage backend selected by ``settings.storage_mode``."""
    if settings.storage_mode == "s3":
        return S3Storage(
            settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            temp_dir=settings.temp_dir,
        )
    if settings.storage_mode == "oss":
        return S3Storage(
            settings.s3_bucket,
            endpoint_url=settings.s3_endpoint_url or oss_endpoint(settings.s3_region),
            region=settings.s3_region,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            temp_dir=settings.temp_dir,
            addressing_style="virtual",
        )
    return LocalStorage(settings.upload_dir)
