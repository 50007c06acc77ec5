"""Tiered blob store - the path key to payload mapping.

Each path key has exactly one row in ``files``. When object storage is
configured every write is uploaded there first and the row only records
that the payload is offloaded; otherwise the bytes are stored inline.
Reads hide the difference.

Examples:
    >>> from tierstore.storage.store import TieredBlobStore
    >>> store = TieredBlobStore.from_settings(get_settings())
    >>> async with transaction(store.session_factory) as session:
    ...     await store.put(session, "serde/index.html", "text/html", data)
    >>> blob = await store.get("serde/index.html")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from os import PathLike
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tierstore.config import Settings
from tierstore.database import get_session_factory
from tierstore.errors import BlobNotFoundError, ConfigurationError, StorageNotConfiguredError
from tierstore.models import Blob, BlobLocation, File
from tierstore.storage.backends import ObjectStorageBackend, make_object_storage
from tierstore.storage.classify import ContentClassifier
from tierstore.storage.config import StorageConfig
from tierstore.storage.ingest import add_path_into_database
from tierstore.storage.manifest import FileManifest

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS: dict[str, Any] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert_statement(dialect_name: str, values: dict[str, Any]):
    """Build ``INSERT ... ON CONFLICT (path) DO UPDATE`` for ``files``.

    Args:
        dialect_name: SQLAlchemy dialect name of the target database.
        values: Column values for the row.

    Returns:
        Executable insert statement.
    """
    try:
        insert = _UPSERT_DIALECTS[dialect_name]
    except KeyError:
        raise ConfigurationError(f"Unsupported database dialect: {dialect_name}") from None

    stmt = insert(File).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=[File.path],
        set_={
            "mime": stmt.excluded.mime,
            "location": stmt.excluded.location,
            "content": stmt.excluded.content,
            "date_updated": stmt.excluded.date_updated,
        },
    )


class TieredBlobStore:
    """Blob store over a relational table and optional object storage.

    Whether blobs are offloaded is decided once, by the backend passed
    at construction.

    Attributes:
        session_factory: Factory for read sessions.
        object_storage: Object-storage backend, None for relational-only mode.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        object_storage: ObjectStorageBackend | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.object_storage = object_storage

    @classmethod
    def from_settings(cls, settings: Settings) -> "TieredBlobStore":
        """Create a store using the global engine and configured backend."""
        backend = make_object_storage(StorageConfig.from_settings(settings))
        if backend is None:
            logger.info("No object storage configured, storing blobs inline")
        return cls(session_factory=get_session_factory(), object_storage=backend)

    @property
    def offloading(self) -> bool:
        """Whether writes go to object storage."""
        return self.object_storage is not None

    async def put(
        self,
        session: AsyncSession,
        path: str,
        content_type: str,
        data: bytes,
    ) -> BlobLocation:
        """Upsert a blob within the caller's transaction.

        With object storage configured the row is locked and the upload
        happens first; if it fails StorageFatalError propagates and nothing
        is staged. The lock keeps a concurrent migration batch from
        selecting the row and overwriting the new object with its old
        inline bytes. The row is then written with a single upsert
        statement.

        Args:
            session: Session with an open transaction.
            path: Path key.
            content_type: Content type to record.
            data: Payload bytes.

        Returns:
            The tier the payload was written to.

        Raises:
            StorageFatalError: If the upload to object storage fails.
        """
        if self.object_storage is not None:
            await session.execute(
                select(File.path).where(File.path == path).with_for_update()
            )
            await self.object_storage.put_object(path, data, content_type)
            location = BlobLocation.S3
            content = None
        else:
            location = BlobLocation.INLINE
            content = data

        stmt = upsert_statement(
            session.get_bind().dialect.name,
            {
                "path": path,
                "mime": content_type,
                "location": location,
                "content": content,
                "date_updated": datetime.now(timezone.utc),
            },
        )
        await session.execute(stmt)
        return location

    async def get(self, path: str) -> Blob:
        """Read a blob, fetching offloaded payloads from object storage.

        Content type and timestamp always come from the row. There is no
        fallback or retry when an offloaded fetch fails.

        Args:
            path: Path key.

        Returns:
            The blob with its payload.

        Raises:
            BlobNotFoundError: If no row exists for ``path``.
            RetrievalError: If the offloaded payload cannot be fetched.
            StorageNotConfiguredError: If the row is offloaded but this
                store has no object storage.
        """
        async with self.session_factory() as session:
            row = await session.get(File, path)

        if row is None:
            raise BlobNotFoundError(path)

        if row.is_offloaded:
            content = await self._fetch(row.path)
            location = BlobLocation.S3
        else:
            content = row.content
            location = BlobLocation.INLINE

        return Blob(
            path=row.path,
            mime=row.mime,
            date_updated=as_utc(row.date_updated),
            content=content,
            location=location,
        )

    async def exists(self, path: str) -> bool:
        """Check whether a row exists for ``path``."""
        async with self.session_factory() as session:
            result = await session.execute(select(File.path).where(File.path == path))
            return result.first() is not None

    async def count(self, location: BlobLocation | None = None) -> int:
        """Count rows, optionally only those in one tier."""
        stmt = select(func.count()).select_from(File)
        if location == BlobLocation.INLINE:
            stmt = stmt.where(inline_clause())
        elif location == BlobLocation.S3:
            stmt = stmt.where(~inline_clause())
        async with self.session_factory() as session:
            return (await session.execute(stmt)).scalar_one()

    async def add_path(
        self,
        root: str | PathLike[str],
        prefix: str,
        classifier: ContentClassifier | None = None,
    ) -> FileManifest:
        """Ingest a local tree under ``prefix`` in one transaction.

        See ``tierstore.storage.ingest.add_path_into_database``.
        """
        return await add_path_into_database(self, root, prefix, classifier=classifier)

    async def _fetch(self, path: str) -> bytes:
        if self.object_storage is None:
            raise StorageNotConfiguredError(
                f"{path} is offloaded but no object storage is configured"
            )
        return await self.object_storage.get_object(path)


def inline_clause():
    """SQL condition matching rows whose payload is stored inline."""
    return File.location == BlobLocation.INLINE


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    SQLite drops the offset of stored timestamps; they were written in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
