"""Local filesystem object-storage backend using pathlib.

Objects are files under ``root``, one per key. Content types are not
persisted; the relational row remains their authority.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path

from tierstore.errors import RetrievalError, StorageFatalError
from tierstore.storage.backends.base import ObjectStorageBackend


class LocalObjectStorage(ObjectStorageBackend):
    """Pathlib-based object storage for development and tests.

    Keys map to nested paths, so a key cannot also be the directory of
    another key: ``a`` and ``a/b`` cannot both be stored.
    """

    def __init__(self, root: str | os.PathLike[str]) -> None:
        self.root = Path(root)

    def _object_path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root.resolve()):
            raise ValueError(f"Key escapes object root: {key}")
        return path

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        """Write an object to a local file."""
        try:
            await asyncio.to_thread(self._write, self._object_path(key), data)
        except (OSError, ValueError) as e:
            raise StorageFatalError(key, e) from e

    async def get_object(self, key: str) -> bytes:
        """Read an object from a local file."""
        try:
            return await asyncio.to_thread(self._object_path(key).read_bytes)
        except (OSError, ValueError) as e:
            raise RetrievalError(key, e) from e

    async def exists(self, key: str) -> bool:
        """Check if a local object file exists."""
        try:
            return self._object_path(key).is_file()
        except ValueError:
            return False

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as tmp:
            tmp.write(data)
        try:
            os.replace(tmp.name, path)
        except OSError:
            os.unlink(tmp.name)
            raise
