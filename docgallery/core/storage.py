"""
File storage abstraction. S3 OR local filesystem. Controlled by FF_USE_S3 flag.

Every backend exposes the same three operations the pipelines need:
store (new collision-resistant name), read, and an idempotent delete.
"""

import asyncio
import logging
import mimetypes
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import get_settings
from .errors import PersistenceError
from .flags import get_flags

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredFile:
    name: str   # server-assigned unique file name
    path: str   # where the backend keeps it (local path or S3 URL)


def unique_name(suggested_ext: str = "") -> str:
    ext = suggested_ext if not suggested_ext or suggested_ext.startswith(".") else f".{suggested_ext}"
    return f"{uuid.uuid4().hex}{ext.lower()}"


class StorageBackend(ABC):
    @abstractmethod
    async def store(self, file_bytes: bytes, suggested_ext: str = "") -> StoredFile:
        """Write bytes under a new unique name."""
        ...

    @abstractmethod
    async def read(self, path: str) -> bytes:
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Remove a stored file. Silent if it is already gone."""
        ...

    @abstractmethod
    async def exists(self, path: str) -> bool:
        ...


class S3Storage(StorageBackend):
    def __init__(self):
        self._client = None

    def _get_client(self):
        if self._client is None:
            import boto3

            settings = get_settings()
            kwargs = {"region_name": settings.aws_region}
            if settings.aws_access_key_id:
                kwargs["aws_access_key_id"] = settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
            self._client = boto3.client("s3", **kwargs)
        return self._client

    def _key(self, path: str) -> str:
        # Accept either the bare key or the full URL returned by store()
        return path.rsplit(".amazonaws.com/", 1)[-1].lstrip("/")

    async def store(self, file_bytes: bytes, suggested_ext: str = "") -> StoredFile:
        settings = get_settings()
        name = unique_name(suggested_ext)
        key = f"uploads/{name}"

        client = self._get_client()
        try:
            await asyncio.to_thread(
                client.put_object,
                Bucket=settings.s3_bucket_name,
                Key=key,
                Body=file_bytes,
                ContentType=_guess_content_type(name),
            )
        except Exception as e:
            raise PersistenceError(f"S3 upload failed: {e}") from e

        url = f"https://{settings.s3_bucket_name}.s3.{settings.aws_region}.amazonaws.com/{key}"
        logger.info("Uploaded to S3: %s", key)
        return StoredFile(name=name, path=url)

    async def read(self, path: str) -> bytes:
        settings = get_settings()
        client = self._get_client()
        try:
            obj = await asyncio.to_thread(
                client.get_object, Bucket=settings.s3_bucket_name, Key=self._key(path)
            )
            return await asyncio.to_thread(obj["Body"].read)
        except Exception as e:
            raise PersistenceError(f"S3 read failed: {e}") from e

    async def delete(self, path: str) -> None:
        # S3 delete_object is already a no-op for missing keys
        settings = get_settings()
        client = self._get_client()
        try:
            await asyncio.to_thread(
                client.delete_object, Bucket=settings.s3_bucket_name, Key=self._key(path)
            )
        except Exception as e:
            raise PersistenceError(f"S3 delete failed: {e}") from e
        logger.info("Deleted from S3: %s", self._key(path))

    async def exists(self, path: str) -> bool:
        settings = get_settings()
        client = self._get_client()
        try:
            await asyncio.to_thread(
                client.head_object, Bucket=settings.s3_bucket_name, Key=self._key(path)
            )
            return True
        except Exception:
            return False


class LocalStorage(StorageBackend):
    def __init__(self, base_path: Optional[str] = None):
        self.base_path = Path(base_path or get_settings().upload_dir)

    async def store(self, file_bytes: bytes, suggested_ext: str = "") -> StoredFile:
        name = unique_name(suggested_ext)
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            file_path = self.base_path / name
            file_path.write_bytes(file_bytes)
        except OSError as e:
            raise PersistenceError(f"Failed to save file: {e}") from e

        logger.info("Saved locally: %s", file_path)
        return StoredFile(name=name, path=str(file_path))

    async def read(self, path: str) -> bytes:
        try:
            return Path(path).read_bytes()
        except OSError as e:
            raise PersistenceError(f"Failed to read file: {e}") from e

    async def delete(self, path: str) -> None:
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to delete file: {e}") from e
        logger.info("Deleted locally: %s", path)

    async def exists(self, path: str) -> bool:
        return Path(path).is_file()


def get_storage() -> StorageBackend:
    """Return the active storage backend based on feature flags."""
    flags = get_flags()
    if flags.use_s3:
        return S3Storage()
    return LocalStorage()


def _guess_content_type(filename: str) -> str:
    ct, _ = mimetypes.guess_type(filename)
    return ct or "application/octet-stream"
