"""Application configuration with Pydantic Settings.

Settings are loaded from environment variables and .env files. The
object-storage fields double as the offload switch: the presence of
AWS_ACCESS_KEY_ID turns S3 offloading on, and their absence means the
store runs in relational-only mode.

Examples:
    >>> from tierstore.config import get_settings
    >>> settings = get_settings()
    >>> settings.object_storage_provider
    's3'

Tests:
    - tests/unit/test_config.py::TestSettings
    - tests/unit/test_config.py::TestObjectStorageProvider
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BUCKET = "tierstore-blobs"
DEFAULT_REGION = "us-west-1"


class ObjectStorageProvider(str, Enum):
    """Supported object-storage backends."""

    S3 = "s3"
    LOCAL = "local"


class Settings(BaseSettings):
    """tierstore settings.

    Attributes:
        DATABASE_URL: Database connection string (SQLite or PostgreSQL)
        DEBUG: Echo SQL statements
        LOG_LEVEL: Root log level for the CLI
        AWS_ACCESS_KEY_ID: S3 access key; enables offload mode when set
        AWS_SECRET_ACCESS_KEY: S3 secret key
        S3_ENDPOINT: Optional custom S3 endpoint (MinIO, Ceph, ...)
        S3_REGION: S3 region name
        S3_BUCKET: Bucket holding offloaded blobs
        LOCAL_OBJECT_ROOT: Directory used as object storage when no S3
            credentials are present
        MIGRATION_BATCH_SIZE: Default number of rows per migration batch
        MIGRATION_CONCURRENCY: Maximum concurrent uploads per batch
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./tierstore.db",
        description="Database connection string",
    )
    DEBUG: bool = Field(default=False, description="Echo SQL statements")
    LOG_LEVEL: str = Field(default="INFO", description="Log level")

    # Object storage
    AWS_ACCESS_KEY_ID: str | None = Field(default=None, description="S3 access key")
    AWS_SECRET_ACCESS_KEY: str | None = Field(default=None, description="S3 secret key")
    S3_ENDPOINT: str | None = Field(default=None, description="Custom S3 endpoint URL")
    S3_REGION: str = Field(default=DEFAULT_REGION, description="S3 region")
    S3_BUCKET: str = Field(default=DEFAULT_BUCKET, description="S3 bucket name")
    LOCAL_OBJECT_ROOT: str | None = Field(
        default=None,
        description="Filesystem directory used as object storage (development)",
    )

    # Migration
    MIGRATION_BATCH_SIZE: int = Field(
        default=1000,
        description="Rows moved to object storage per batch",
        ge=1,
    )
    MIGRATION_CONCURRENCY: int = Field(
        default=16,
        description="Concurrent uploads per migration batch",
        ge=1,
        le=256,
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL format."""
        valid_prefixes = ("sqlite", "postgresql", "postgres")
        if not any(v.startswith(prefix) for prefix in valid_prefixes):
            raise ValueError(
                f"DATABASE_URL must start with one of: {valid_prefixes}"
            )
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown LOG_LEVEL: {v}")
        return level

    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def object_storage_provider(self) -> ObjectStorageProvider | None:
        """Detect which object storage, if any, is configured.

        S3 credentials win over a local object root. None means
        relational-only mode.
        """
        if self.AWS_ACCESS_KEY_ID:
            return ObjectStorageProvider.S3
        if self.LOCAL_OBJECT_ROOT:
            return ObjectStorageProvider.LOCAL
        return None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings: The application settings.
    """
    return Settings()
