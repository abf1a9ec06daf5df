"""Storage abstraction for contribution images.

Provides a pluggable storage backend. Default is the local filesystem; an
S3-compatible MinIO bucket is used when ``S3_ENDPOINT`` is configured.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path

from minio import Minio
from minio.error import S3Error

from id100.config import settings

logger = logging.getLogger("id100.storage")


class StorageBackend(ABC):
    """Abstract storage backend for uploaded images."""

    @abstractmethod
    async def save(self, key: str, data: bytes, content_type: str) -> str:
        """Save file data. Returns the storage key."""
        ...

    @abstractmethod
    async def load(self, key: str) -> bytes:
        """Load file data by key. Raises FileNotFoundError if missing."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete file by key. No-op if not found."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...


class LocalStorageBackend(StorageBackend):
    """Local filesystem storage for single-server deployments and development."""

    def __init__(self, base_dir: str | None = None):
        self._base_dir = Path(base_dir or settings.storage_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        # Keys must not escape the storage directory
        safe_key = key.replace("..", "").replace("/", "_").replace("\\", "_")
        return self._base_dir / safe_key

    async def save(self, key: str, data: bytes, content_type: str) -> str:
        await asyncio.to_thread(self._path(key).write_bytes, data)
        return key

    async def load(self, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {key}")
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    async def exists(self, key: str) -> bool:
        return self._path(key).exists()


class InMemoryStorageBackend(StorageBackend):
    """In-memory storage for testing. No disk I/O."""

    def __init__(self):
        self._store: dict[str, bytes] = {}

    async def save(self, key: str, data: bytes, content_type: str) -> str:
        self._store[key] = data
        return key

    async def load(self, key: str) -> bytes:
        if key not in self._store:
            raise FileNotFoundError(f"File not found: {key}")
        return self._store[key]

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def exists(self, key: str) -> bool:
        return key in self._store


class MinioStorageBackend(StorageBackend):
    """S3-compatible object storage. The sync client runs in worker threads."""

    def __init__(
        self,
        *,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        secure: bool = True,
    ):
        self._client = Minio(
            endpoint=endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
        )
        self._bucket = bucket
        self._bucket_checked = False
        logger.info("MinIO storage at %s bucket=%s secure=%s", endpoint, bucket, secure)

    def _ensure_bucket(self) -> None:
        if self._bucket_checked:
            return
        if not self._client.bucket_exists(self._bucket):
            self._client.make_bucket(self._bucket)
            logger.info("Created bucket %s", self._bucket)
        self._bucket_checked = True

    async def save(self, key: str, data: bytes, content_type: str) -> str:
        def _put() -> None:
            self._ensure_bucket()
            self._client.put_object(
                bucket_name=self._bucket,
                object_name=key,
                data=BytesIO(data),
                length=len(data),
                content_type=content_type,
            )

        await asyncio.to_thread(_put)
        return key

    async def load(self, key: str) -> bytes:
        def _get() -> bytes:
            try:
                response = self._client.get_object(self._bucket, key)
            except S3Error as e:
                if e.code == "NoSuchKey":
                    raise FileNotFoundError(f"File not found: {key}") from e
                raise
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()

        return await asyncio.to_thread(_get)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._client.remove_object, self._bucket, key)

    async def exists(self, key: str) -> bool:
        def _stat() -> bool:
            try:
                self._client.stat_object(self._bucket, key)
            except S3Error as e:
                if e.code in ("NoSuchKey", "NoSuchObject"):
                    return False
                raise
            return True

        return await asyncio.to_thread(_stat)


def generate_storage_key(challenge_number: int, filename: str) -> str:
    """Generate a unique storage key for an uploaded image.

    Format: challenge_{n}_{uuid4}_{sanitized_filename}
    """
    safe_name = "".join(
        c if c.isalnum() or c in (".", "-", "_") else "_"
        for c in filename
    )[:100]
    return f"challenge_{challenge_number}_{uuid.uuid4().hex}_{safe_name}"


def _default_backend() -> StorageBackend:
    if settings.s3_endpoint:
        return MinioStorageBackend(
            endpoint=settings.s3_endpoint,
            access_key=settings.s3_access_key,
            secret_key=settings.s3_secret_key,
            bucket=settings.s3_bucket,
            secure=settings.s3_secure,
        )
    return LocalStorageBackend()


# Module-level singleton, replaced in tests
_storage: StorageBackend | None = None


def get_storage() -> StorageBackend:
    """Get the current storage backend."""
    global _storage
    if _storage is None:
        _storage = _default_backend()
    return _storage


def set_storage(backend: StorageBackend | None) -> None:
    """Set the storage backend (used for testing)."""
    global _storage
    _storage = backend
