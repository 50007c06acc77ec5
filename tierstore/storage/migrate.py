"""Migration worker: move inline blobs to object storage in batches.

A batch is selected, uploaded and flipped to offloaded inside one
transaction. Uploads run concurrently; if any of them fails the whole
batch is rolled back and every selected row stays inline, so a failed
batch can simply be run again. A row is never marked offloaded unless its
bytes were confirmed written to object storage.

Selected rows are locked for the batch. An offloading ingestion of the
same path locks the row before uploading, so the two never interleave.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tierstore.database import transaction
from tierstore.errors import StorageFatalError, StorageNotConfiguredError, TransactionError
from tierstore.models import LEGACY_OFFLOAD_MARKER, BlobLocation, File
from tierstore.storage.backends import ObjectStorageBackend
from tierstore.storage.store import TieredBlobStore, inline_clause

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 16


async def select_inline_batch(session: AsyncSession, n: int) -> list[tuple[str, str, bytes]]:
    """Select up to ``n`` inline rows as ``(path, mime, content)``.

    Rows are locked for the rest of the transaction where the database
    supports it; rows locked by another worker are skipped. Order is
    unspecified.
    """
    stmt = (
        select(File.path, File.mime, File.content)
        .where(inline_clause())
        .limit(n)
        .with_for_update(skip_locked=True)
    )
    result = await session.execute(stmt)
    return [(row.path, row.mime, row.content) for row in result]


async def upload_batch(
    backend: ObjectStorageBackend,
    rows: list[tuple[str, str, bytes]],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[str]:
    """Upload every row concurrently and wait for all of them.

    Args:
        backend: Object-storage backend.
        rows: ``(path, mime, content)`` tuples.
        concurrency: Maximum uploads in flight.

    Returns:
        Uploaded paths, in input order.

    Raises:
        StorageFatalError: If any upload failed.
    """
    semaphore = asyncio.Semaphore(concurrency)

    async def upload(path: str, mime: str, content: bytes) -> str:
        async with semaphore:
            try:
                await backend.put_object(path, content, mime)
            except StorageFatalError:
                raise
            except Exception as e:
                raise StorageFatalError(path, e) from e
        return path

    results = await asyncio.gather(
        *(upload(path, mime, content) for path, mime, content in rows),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, BaseException)]
    if failures:
        logger.error(f"{len(failures)} of {len(rows)} uploads failed, aborting batch")
        raise failures[0]

    return list(results)


async def mark_offloaded(session: AsyncSession, paths: list[str]) -> None:
    """Flip ``paths`` to offloaded, dropping their inline bytes.

    Only rows that are still inline are changed. If any of them was
    rewritten since it was selected the uploaded bytes may be stale, so the
    batch is aborted.

    Raises:
        TransactionError: If fewer than ``len(paths)`` rows were flipped.
    """
    if not paths:
        return
    result = await session.execute(
        update(File)
        .where(File.path.in_(paths), File.location == BlobLocation.INLINE)
        .values(location=BlobLocation.S3, content=None)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != len(paths):
        raise TransactionError(
            f"{len(paths) - result.rowcount} of {len(paths)} rows changed during migration"
        )


async def move_to_object_storage(
    store: TieredBlobStore,
    n: int,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[str]:
    """Move up to ``n`` inline blobs to object storage.

    Content types and paths are carried over unchanged; only the payload
    location changes.

    Args:
        store: Tiered blob store with object storage configured.
        n: Maximum rows in the batch.
        concurrency: Maximum uploads in flight.

    Returns:
        Paths that were moved, empty when no inline rows remain.

    Raises:
        ValueError: If ``n`` is not a positive integer.
        StorageNotConfiguredError: If the store has no object storage.
        StorageFatalError: If any upload failed; no row was changed.
    """
    if not isinstance(n, int) or isinstance(n, bool) or n < 1:
        raise ValueError(f"batch size must be a positive integer, got {n!r}")
    if store.object_storage is None:
        raise StorageNotConfiguredError("moving blobs requires object storage")

    async with transaction(store.session_factory) as session:
        rows = await select_inline_batch(session, n)
        if not rows:
            logger.info("No inline blobs left to move")
            return []

        logger.info(f"Moving {len(rows)} blobs to object storage")
        paths = await upload_batch(store.object_storage, rows, concurrency=concurrency)
        await mark_offloaded(session, paths)

    logger.info(f"Moved {len(paths)} blobs to object storage")
    return paths


async def convert_legacy_markers(store: TieredBlobStore) -> int:
    """Convert rows written in the old marker format to offloaded rows.

    Older deployments kept offloaded rows inline with ``LEGACY_OFFLOAD_MARKER``
    as their content. Run this once after upgrading such a table; afterwards
    an inline payload equal to the marker is ordinary content.

    Returns:
        Number of rows converted.
    """
    async with transaction(store.session_factory) as session:
        result = await session.execute(
            update(File)
            .where(
                File.location == BlobLocation.INLINE,
                File.content == LEGACY_OFFLOAD_MARKER,
            )
            .values(location=BlobLocation.S3, content=None)
            .execution_options(synchronize_session=False)
        )

    logger.info(f"Converted {result.rowcount} legacy marker rows to offloaded")
    return result.rowcount
