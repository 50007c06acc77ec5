"""Ingestion pipeline: store a local file tree under a key prefix.

Every file under the root is read, classified and upserted into the
tiered store. All rows for the tree are staged in one transaction that
commits only after the last file succeeds, so a failure leaves no part of
the tree visible. Files that cannot be opened for lack of permission
(lock files left by build tools, typically) are skipped.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession

from tierstore.database import transaction
from tierstore.storage.classify import ContentClassifier
from tierstore.storage.manifest import FileManifest
from tierstore.storage.paths import list_files, make_key

if TYPE_CHECKING:
    from tierstore.storage.store import TieredBlobStore

logger = logging.getLogger(__name__)


def read_file(path: Path) -> bytes | None:
    """Read a file, returning None if permission to open it is denied."""
    try:
        with open(path, "rb") as f:
            return f.read()
    except PermissionError:
        logger.debug(f"Skipping unreadable file: {path}")
        return None


async def ingest_tree(
    session: AsyncSession,
    store: TieredBlobStore,
    classifier: ContentClassifier,
    root: str | os.PathLike[str],
    prefix: str,
) -> FileManifest:
    """Stage every file under ``root`` into ``session``.

    The caller owns the transaction. Object-storage uploads, when
    configured, happen before each row is staged.

    Args:
        session: Session with an open transaction.
        store: Tiered blob store.
        classifier: Content classifier.
        root: Local file or directory.
        prefix: Key prefix for the tree.

    Returns:
        Manifest of the ingested files in processing order.

    Raises:
        PathNotFoundError: If ``root`` does not exist.
        ClassificationError: If a file cannot be classified.
        StorageFatalError: If an upload to object storage fails.
    """
    root = Path(root)
    base = root if root.is_dir() else root.parent
    manifest = FileManifest(prefix=prefix)

    for relative in list_files(root):
        content = await asyncio.to_thread(read_file, base / relative)
        if content is None:
            continue

        key = make_key(prefix, relative)
        mime = classifier.classify(content, relative.suffix)
        await store.put(session, key, mime, content)
        manifest.add(mime, relative, size_bytes=len(content))

    return manifest


async def add_path_into_database(
    store: TieredBlobStore,
    root: str | os.PathLike[str],
    prefix: str,
    classifier: ContentClassifier | None = None,
) -> FileManifest:
    """Ingest ``root`` under ``prefix`` in a single transaction.

    The classifier is set up before the transaction opens, so a sniffer
    that cannot start aborts the run before anything is written.

    Args:
        store: Tiered blob store.
        root: Local file or directory.
        prefix: Key prefix for the tree.
        classifier: Optional classifier, libmagic-backed by default.

    Returns:
        Manifest of the ingested files.
    """
    classifier = classifier or ContentClassifier()

    async with transaction(store.session_factory) as session:
        manifest = await ingest_tree(session, store, classifier, root, prefix)

    logger.info(
        f"Ingested {len(manifest)} files under {prefix or '/'} "
        f"({manifest.total_size_bytes} bytes, {'offloaded' if store.offloading else 'inline'})"
    )
    return manifest
