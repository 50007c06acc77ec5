"""Object-storage backends for offloaded blobs."""

from tierstore.storage.backends.base import ObjectStorageBackend
from tierstore.storage.backends.factory import make_object_storage
from tierstore.storage.backends.local import LocalObjectStorage
from tierstore.storage.backends.s3 import S3ObjectStorage

__all__ = [
    "LocalObjectStorage",
    "ObjectStorageBackend",
    "S3ObjectStorage",
    "make_object_storage",
]
