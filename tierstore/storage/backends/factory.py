"""Factory for creating the object-storage backend."""

from __future__ import annotations

from tierstore.config import ObjectStorageProvider
from tierstore.errors import ConfigurationError
from tierstore.storage.backends.base import ObjectStorageBackend
from tierstore.storage.backends.local import LocalObjectStorage
from tierstore.storage.backends.s3 import S3ObjectStorage
from tierstore.storage.config import StorageConfig


def make_object_storage(config: StorageConfig) -> ObjectStorageBackend | None:
    """Create the object-storage backend described by ``config``.

    Args:
        config: Resolved storage configuration.

    Returns:
        A backend, or None for relational-only mode.

    Raises:
        ConfigurationError: If the provider is missing required settings.
    """
    if config.provider is None:
        return None

    if config.provider == ObjectStorageProvider.S3:
        if not config.bucket:
            raise ConfigurationError("S3_BUCKET required for S3 object storage")
        return S3ObjectStorage.from_config(config)

    if config.provider == ObjectStorageProvider.LOCAL:
        if not config.local_root:
            raise ConfigurationError("LOCAL_OBJECT_ROOT required for local object storage")
        return LocalObjectStorage(config.local_root)

    raise ConfigurationError(f"Object storage provider {config.provider} not supported")
