"""Object-storage configuration model."""

from __future__ import annotations

from pydantic import BaseModel, Field

from tierstore.config import DEFAULT_BUCKET, DEFAULT_REGION, ObjectStorageProvider, Settings


class StorageConfig(BaseModel):
    """Resolved configuration for the object-storage tier.

    Attributes:
        provider: Backend to use, None for relational-only mode.
        bucket: Bucket holding offloaded blobs.
        region: S3 region name.
        endpoint: Optional custom S3 endpoint URL.
        access_key_id: S3 access key.
        secret_access_key: S3 secret key.
        local_root: Root directory for the filesystem backend.
    """

    provider: ObjectStorageProvider | None = Field(default=None, description="Object storage backend")
    bucket: str = Field(default=DEFAULT_BUCKET, description="Bucket name")
    region: str = Field(default=DEFAULT_REGION, description="S3 region")
    endpoint: str | None = Field(default=None, description="Custom S3 endpoint")
    access_key_id: str | None = Field(default=None, repr=False)
    secret_access_key: str | None = Field(default=None, repr=False)
    local_root: str | None = Field(default=None, description="Filesystem object root")

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageConfig":
        """Build a StorageConfig from application settings."""
        return cls(
            provider=settings.object_storage_provider,
            bucket=settings.S3_BUCKET,
            region=settings.S3_REGION,
            endpoint=settings.S3_ENDPOINT,
            access_key_id=settings.AWS_ACCESS_KEY_ID,
            secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
            local_root=settings.LOCAL_OBJECT_ROOT,
        )

    @property
    def enabled(self) -> bool:
        """Whether blobs are offloaded to object storage."""
        return self.provider is not None
