"""Object storage supporting S3, MinIO and the local filesystem.

Uploaded media is written once under a fresh key and read back through
presigned URLs, so the backends only need object creation, deletion and
URL signing.
"""

import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from tubely.core.config import settings


class StorageError(Exception):
    """Raised when an object store operation fails."""

    pass


@dataclass
class StorageResult:
    """Result of a storage operation."""
    success: bool
    bucket: str
    key: str
    file_size: int = 0
    etag: Optional[str] = None
    error_message: Optional[str] = None


@dataclass
class StorageConfig:
    """Storage configuration."""
    backend: str  # local, s3, minio
    bucket: str = ""
    region: str = ""
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    use_ssl: bool = True
    local_path: str = "./storage"


class StorageBackend(ABC):
    """Abstract base class for storage backends."""

    bucket: str

    @abstractmethod
    def upload(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a local file as a single object."""
        pass

    @abstractmethod
    def delete(self, key: str, bucket: Optional[str] = None) -> bool:
        """Delete an object."""
        pass

    @abstractmethod
    def generate_presigned_url(self, bucket: str, key: str, expires_in: int) -> str:
        """Return a time-limited GET URL for an object.

        Raises:
            StorageError: If the URL cannot be generated
        """
        pass


class LocalStorage(StorageBackend):
    """Local filesystem storage backend.

    Buckets map to directories below ``local_path``. Intended for
    development; URLs are plain ``file://`` paths without expiry.
    """

    def __init__(self, config: StorageConfig):
        self.base_path = Path(config.local_path)
        self.bucket = config.bucket or "local"
        (self.base_path / self.bucket).mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, key: str, bucket: Optional[str] = None) -> Path:
        return self.base_path / (bucket or self.bucket) / key

    def upload(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Copy a file into local storage."""
        try:
            dest_path = self._get_full_path(key)
            dest_path.parent.mkdir(parents=True, exist_ok=True)

            shutil.copy2(file_path, dest_path)

            return StorageResult(
                success=True,
                bucket=self.bucket,
                key=key,
                file_size=dest_path.stat().st_size,
            )
        except OSError as e:
            return StorageResult(
                success=False,
                bucket=self.bucket,
                key=key,
                error_message=str(e),
            )

    def delete(self, key: str, bucket: Optional[str] = None) -> bool:
        try:
            file_path = self._get_full_path(key, bucket)
            if file_path.exists():
                file_path.unlink()
                return True
            return False
        except OSError:
            return False

    def generate_presigned_url(self, bucket: str, key: str, expires_in: int) -> str:
        path = self._get_full_path(key, bucket)
        if not path.exists():
            raise StorageError(f"Object not found: {bucket}/{key}")
        return f"file://{path.absolute()}"


class S3Storage(StorageBackend):
    """S3/MinIO compatible storage backend."""

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self.bucket = config.bucket
        self._client = client

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            import boto3
            from botocore.config import Config as BotoConfig

            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
                "config": BotoConfig(signature_version="s3v4"),
            }

            if self.config.access_key and self.config.secret_key:
                client_kwargs["aws_access_key_id"] = self.config.access_key
                client_kwargs["aws_secret_access_key"] = self.config.secret_key

            # For MinIO or other S3-compatible storage
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                client_kwargs["config"] = BotoConfig(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                )
                if not self.config.use_ssl:
                    # Allow non-SSL for local MinIO
                    client_kwargs["use_ssl"] = False

            self._client = boto3.client(**client_kwargs)

        return self._client

    def upload(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        """Upload a file to S3/MinIO with a single PutObject."""
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            client = self._get_client()
            file_size = os.path.getsize(file_path)

            with open(file_path, "rb") as f:
                response = client.put_object(
                    Bucket=self.bucket,
                    Key=key,
                    Body=f,
                    ContentType=content_type,
                )

            return StorageResult(
                success=True,
                bucket=self.bucket,
                key=key,
                file_size=file_size,
                etag=response.get("ETag", "").strip('"'),
            )
        except (BotoCoreError, ClientError, OSError) as e:
            return StorageResult(
                success=False,
                bucket=self.bucket,
                key=key,
                error_message=str(e),
            )

    def delete(self, key: str, bucket: Optional[str] = None) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self._get_client().delete_object(Bucket=bucket or self.bucket, Key=key)
            return True
        except (BotoCoreError, ClientError):
            return False

    def generate_presigned_url(self, bucket: str, key: str, expires_in: int) -> str:
        """Presign a GetObject request.

        Args:
            bucket: Bucket holding the object
            key: Object key
            expires_in: URL lifetime in seconds

        Returns:
            Presigned URL

        Raises:
            StorageError: If signing fails (e.g. no credentials)
        """
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            return self._get_client().generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to presign {bucket}/{key}: {e}") from e


class Storage:
    """Universal storage interface.

    Automatically selects the appropriate backend based on configuration.
    """

    _instance: Optional["Storage"] = None

    def __init__(
        self,
        config: Optional[StorageConfig] = None,
        backend: Optional[StorageBackend] = None,
    ):
        """Initialize storage with configuration.

        Args:
            config: Storage configuration (uses settings if not provided)
            backend: Ready-made backend, bypassing configuration
        """
        if backend is not None:
            self.config = config
            self._backend = backend
            return

        if config is None:
            config = StorageConfig(
                backend=settings.STORAGE_BACKEND,
                bucket=settings.STORAGE_BUCKET,
                region=settings.STORAGE_REGION,
                access_key=settings.STORAGE_ACCESS_KEY,
                secret_key=settings.STORAGE_SECRET_KEY,
                endpoint_url=settings.STORAGE_ENDPOINT_URL,
                use_ssl=settings.STORAGE_USE_SSL,
                local_path=settings.LOCAL_STORAGE_PATH,
            )

        self.config = config
        self._backend = self._create_backend(config)

    def _create_backend(self, config: StorageConfig) -> StorageBackend:
        backend_type = config.backend.lower()

        if backend_type == "local":
            return LocalStorage(config)
        elif backend_type in ("s3", "minio", "aws"):
            return S3Storage(config)
        else:
            raise ValueError(f"Unsupported storage backend: {backend_type}")

    @classmethod
    def get_instance(cls) -> "Storage":
        """Get singleton storage instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @property
    def bucket(self) -> str:
        """Bucket that new objects are written to."""
        return self._backend.bucket

    def upload(
        self,
        file_path: str,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> StorageResult:
        return self._backend.upload(file_path, key, content_type)

    def delete(self, key: str, bucket: Optional[str] = None) -> bool:
        return self._backend.delete(key, bucket)

    def generate_presigned_url(self, bucket: str, key: str, expires_in: int) -> str:
        return self._backend.generate_presigned_url(bucket, key, expires_in)


def get_storage() -> Storage:
    """Get the default storage instance (FastAPI dependency)."""
    return Storage.get_instance()
