"""
Durable storage for rendered export artifacts.

Two backends share one async interface:
- LocalArtifactStorage: a directory on disk (default, used in development and tests)
- S3ArtifactStorage: any S3-compatible object storage through boto3

Object keys look like `exports/{uuid}.pdf`.
"""
import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import StorageBackend, get_settings
from app.utils.prometheus_metrics import record_external_request

logger = logging.getLogger("app.storage")


class StorageError(Exception):
    """Storage backend failed (I/O error, network, credentials)."""


class ArtifactMissingError(StorageError):
    """The requested object does not exist."""


@dataclass
class StoredObject:
    key: str
    size: int
    modified_at: datetime  # naive UTC


class ArtifactStorage(Protocol):
    async def put(self, key: str, content: bytes, content_type: str) -> None: ...

    async def get(self, key: str) -> bytes: ...

    async def exists(self, key: str) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def size(self, key: str) -> Optional[int]: ...

    async def list(self, prefix: str) -> List[StoredObject]: ...


class LocalArtifactStorage:
    """
    Filesystem backend rooted at `root`.

    Writes go to a temp file in the same directory and are renamed into
    place, so a reader never sees a partially written artifact.
    """

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Invalid object key: {key}")
        return path

    def _write(self, path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(content)
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def put(self, key: str, content: bytes, content_type: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(self._write, path, content)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}") from e

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise ArtifactMissingError(key) from e
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).is_file)

    async def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e

    async def size(self, key: str) -> Optional[int]:
        try:
            stat = await asyncio.to_thread(self._path(key).stat)
        except FileNotFoundError:
            return None
        return stat.st_size

    def _list(self, prefix: str) -> List[StoredObject]:
        base = self.root / prefix
        if not base.is_dir():
            return []
        objects = []
        for path in base.rglob("*"):
            if not path.is_file() or path.name.startswith(".tmp-"):
                continue
            stat = path.stat()
            objects.append(StoredObject(
                key=path.relative_to(self.root).as_posix(),
                size=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).replace(tzinfo=None),
            ))
        return objects

    async def list(self, prefix: str) -> List[StoredObject]:
        return await asyncio.to_thread(self._list, prefix)


class S3ArtifactStorage:
    """
    S3-compatible object storage. boto3 is blocking, so every call runs in a
    worker thread.
    """

    _MISSING_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

    def __init__(self, bucket: str, client=None):
        self.settings = get_settings()
        self.bucket = bucket
        self._client = client

    def _get_client(self):
        if self._client is not None:
            return self._client
        kwargs = {
            "region_name": self.settings.s3_region_name,
            "config": Config(signature_version="s3v4", retries={"max_attempts": 3}),
        }
        if self.settings.s3_endpoint_url:
            kwargs["endpoint_url"] = self.settings.s3_endpoint_url
        if self.settings.s3_access_key and self.settings.s3_secret_key:
            kwargs["aws_access_key_id"] = self.settings.s3_access_key
            kwargs["aws_secret_access_key"] = self.settings.s3_secret_key
        self._client = boto3.client("s3", **kwargs)
        return self._client

    def _is_missing(self, error: ClientError) -> bool:
        return str(error.response.get("Error", {}).get("Code")) in self._MISSING_CODES

    async def _call(self, operation: str, key: str, **params):
        client = self._get_client()
        method = getattr(client, operation)
        async with record_external_request("object_storage"):
            return await asyncio.to_thread(method, Bucket=self.bucket, **params)

    async def put(self, key: str, content: bytes, content_type: str) -> None:
        try:
            await self._call("put_object", key, Key=key, Body=content, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            logger.error("Object upload failed", extra={"event": "storage", "object": key, "error": str(e)})
            raise StorageError(f"Failed to upload {key}") from e

    async def get(self, key: str) -> bytes:
        try:
            response = await self._call("get_object", key, Key=key)
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            if self._is_missing(e):
                raise ArtifactMissingError(key) from e
            raise StorageError(f"Failed to download {key}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to download {key}") from e

    async def exists(self, key: str) -> bool:
        return await self.size(key) is not None

    async def size(self, key: str) -> Optional[int]:
        try:
            response = await self._call("head_object", key, Key=key)
        except ClientError as e:
            if self._is_missing(e):
                return None
            raise StorageError(f"Failed to stat {key}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to stat {key}") from e
        return int(response.get("ContentLength", 0))

    async def delete(self, key: str) -> bool:
        # S3 DELETE succeeds for missing keys; check first to report it
        if not await self.exists(key):
            return False
        try:
            await self._call("delete_object", key, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to delete {key}") from e
        return True

    async def list(self, prefix: str) -> List[StoredObject]:
        client = self._get_client()

        def _list_all() -> List[StoredObject]:
            paginator = client.get_paginator("list_objects_v2")
            objects = []
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    modified = item["LastModified"]
                    if modified.tzinfo is not None:
                        modified = modified.astimezone(timezone.utc).replace(tzinfo=None)
                    objects.append(StoredObject(key=item["Key"], size=int(item["Size"]), modified_at=modified))
            return objects

        try:
            async with record_external_request("object_storage"):
                return await asyncio.to_thread(_list_all)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Failed to list {prefix}") from e


_storage_service: Optional[ArtifactStorage] = None


def get_storage_service() -> ArtifactStorage:
    """Configured storage backend (singleton)."""
    global _storage_service
    if _storage_service is None:
        settings = get_settings()
        if settings.export_storage_backend == StorageBackend.S3:
            _storage_service = S3ArtifactStorage(settings.s3_bucket)
        else:
            _storage_service = LocalArtifactStorage(settings.export_local_root)
        logger.info(
            "Export storage ready",
            extra={"event": "storage", "backend": settings.export_storage_backend.value},
        )
    return _storage_service
