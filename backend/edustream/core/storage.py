"""Object storage backends.

Supports: Google Cloud Storage (JSON API), local filesystem and S3-compatible
storage (AWS S3, MinIO, and GCS through its interoperability endpoint).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from edustream.core.config import settings

# S3 DeleteObjects accepts at most this many keys per request
DELETE_BATCH_SIZE = 1000

# Hosts whose S3-compatible API has no multi-object delete
SINGLE_DELETE_HOSTS = frozenset({"storage.googleapis.com"})


class StorageError(Exception):
    """Raised when a storage operation fails."""
    pass


@dataclass
class StorageConfig:
    """Storage configuration."""
    backend: str  # gcs, local, s3
    bucket: str = ""
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    local_path: str = "./storage"


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Check if an object exists."""
        pass

    @abstractmethod
    def list_files(self, prefix: str = "") -> list[str]:
        """List object keys starting with prefix."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a single object. Returns False if it did not exist."""
        pass

    @abstractmethod
    def delete_prefix(self, prefix: str) -> int:
        """Delete every object whose key starts with prefix.

        Returns:
            Number of deleted objects
        """
        pass


class LocalStorage(StorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, config: StorageConfig):
        self.base_path = Path(config.local_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, key: str) -> Path:
        return self.base_path / key

    def exists(self, key: str) -> bool:
        return self._get_full_path(key).is_file()

    def list_files(self, prefix: str = "") -> list[str]:
        files = []
        for path in self.base_path.rglob("*"):
            if not path.is_file():
                continue
            key = path.relative_to(self.base_path).as_posix()
            if key.startswith(prefix):
                files.append(key)
        return sorted(files)

    def delete(self, key: str) -> bool:
        file_path = self._get_full_path(key)
        if not file_path.is_file():
            return False
        try:
            file_path.unlink()
        except OSError as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e
        return True

    def delete_prefix(self, prefix: str) -> int:
        deleted = 0
        for key in self.list_files(prefix):
            if self.delete(key):
                deleted += 1
        return deleted


class S3Storage(StorageBackend):
    """S3-compatible storage backend."""

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self._client = client

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            import boto3
            from botocore.config import Config as BotoConfig

            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
            }

            if self.config.access_key and self.config.secret_key:
                client_kwargs["aws_access_key_id"] = self.config.access_key
                client_kwargs["aws_secret_access_key"] = self.config.secret_key

            # For GCS interoperability, MinIO or other S3-compatible storage
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )

            self._client = boto3.client(**client_kwargs)

        return self._client

    def exists(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self._get_client().head_object(Bucket=self.config.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise StorageError(f"Failed to check {key}: {e}") from e

    def list_files(self, prefix: str = "") -> list[str]:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            paginator = self._get_client().get_paginator("list_objects_v2")
            files = []
            for page in paginator.paginate(Bucket=self.config.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    files.append(obj["Key"])
            return files
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to list {prefix}: {e}") from e

    def delete(self, key: str) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self._get_client().delete_object(Bucket=self.config.bucket, Key=key)
            return True
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e

    @property
    def supports_batch_delete(self) -> bool:
        if not self.config.endpoint_url:
            return True
        return urlparse(self.config.endpoint_url).hostname not in SINGLE_DELETE_HOSTS

    def delete_prefix(self, prefix: str) -> int:
        from botocore.exceptions import BotoCoreError, ClientError

        keys = self.list_files(prefix)
        if not self.supports_batch_delete:
            for key in keys:
                self.delete(key)
            return len(keys)

        client = self._get_client()
        deleted = 0
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            try:
                response = client.delete_objects(
                    Bucket=self.config.bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            except (BotoCoreError, ClientError) as e:
                raise StorageError(f"Failed to delete objects under {prefix}: {e}") from e

            errors = response.get("Errors", [])
            if errors:
                first = errors[0]
                raise StorageError(
                    f"Failed to delete {len(errors)} object(s) under {prefix}: "
                    f"{first.get('Key')}: {first.get('Message')}"
                )
            deleted += len(batch)
        return deleted


class GCSStorage(StorageBackend):
    """Google Cloud Storage backend on the JSON API."""

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self._client = client

    def _get_client(self):
        """Get or create the storage client from Application Default Credentials."""
        if self._client is None:
            from google.cloud import storage

            self._client = storage.Client()
        return self._client

    def _bucket(self):
        return self._get_client().bucket(self.config.bucket)

    def exists(self, key: str) -> bool:
        from google.api_core.exceptions import GoogleAPIError

        try:
            return self._bucket().blob(key).exists()
        except GoogleAPIError as e:
            raise StorageError(f"Failed to check {key}: {e}") from e

    def list_files(self, prefix: str = "") -> list[str]:
        from google.api_core.exceptions import GoogleAPIError

        try:
            return [blob.name for blob in self._get_client().list_blobs(self.config.bucket, prefix=prefix)]
        except GoogleAPIError as e:
            raise StorageError(f"Failed to list {prefix}: {e}") from e

    def delete(self, key: str) -> bool:
        from google.api_core.exceptions import GoogleAPIError, NotFound

        try:
            self._bucket().blob(key).delete()
            return True
        except NotFound:
            return False
        except GoogleAPIError as e:
            raise StorageError(f"Failed to delete {key}: {e}") from e

    def delete_prefix(self, prefix: str) -> int:
        from google.api_core.exceptions import GoogleAPIError

        keys = self.list_files(prefix)
        if not keys:
            return 0

        missing = []
        try:
            # Objects removed between listing and deleting are not an error
            self._bucket().delete_blobs(keys, on_error=missing.append)
        except GoogleAPIError as e:
            raise StorageError(f"Failed to delete objects under {prefix}: {e}") from e
        return len(keys) - len(missing)


def create_storage(config: StorageConfig) -> StorageBackend:
    """Create the storage backend named by config.backend."""
    backend_type = config.backend.lower()

    if backend_type == "gcs":
        return GCSStorage(config)
    elif backend_type == "local":
        return LocalStorage(config)
    elif backend_type in ("s3", "minio"):
        return S3Storage(config)
    else:
        raise ValueError(f"Unsupported storage backend: {backend_type}")


_default_storage: Optional[StorageBackend] = None


def get_storage() -> StorageBackend:
    """Get the default storage backend for the video bucket."""
    global _default_storage
    if _default_storage is None:
        _default_storage = create_storage(
            StorageConfig(
                backend=settings.STORAGE_BACKEND,
                bucket=settings.VIDEO_BUCKET,
                region=settings.STORAGE_REGION,
                access_key=settings.STORAGE_ACCESS_KEY,
                secret_key=settings.STORAGE_SECRET_KEY,
                endpoint_url=settings.STORAGE_ENDPOINT_URL,
                local_path=settings.LOCAL_STORAGE_PATH,
            )
        )
    return _default_storage
