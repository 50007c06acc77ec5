"""Abstract base class for object-storage backends."""

from __future__ import annotations

from abc import ABC, abstractmethod


class ObjectStorageBackend(ABC):
    """Abstract key/value object store for offloaded blobs.

    Implementations are shared across concurrent operations and must not
    keep per-call state. Keys are path keys, used verbatim.
    """

    @abstractmethod
    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Store ``data`` under ``key``, replacing any existing object.

        Args:
            key: Path key.
            data: Object bytes.
            content_type: Content type recorded as object metadata.

        Raises:
            StorageFatalError: If the object could not be stored.
        """

    @abstractmethod
    async def get_object(self, key: str) -> bytes:
        """Fetch the bytes stored under ``key``.

        Args:
            key: Path key.

        Returns:
            Object bytes.

        Raises:
            RetrievalError: If the object is missing or cannot be fetched.
        """

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if an object exists under ``key``."""
