"""Tiered blob storage package.

Provides enumeration of local artifact trees, content classification,
the tiered store itself, tree ingestion and the inline-to-object-storage
migration worker.

Examples:
    >>> from tierstore.storage import TieredBlobStore
    >>> store = TieredBlobStore.from_settings(get_settings())
    >>> manifest = await store.add_path("target/doc", "serde/1.0.0")
    >>> blob = await store.get("serde/1.0.0/serde/index.html")
"""

from tierstore.storage.classify import ContentClassifier
from tierstore.storage.config import StorageConfig
from tierstore.storage.ingest import add_path_into_database, ingest_tree
from tierstore.storage.manifest import FileEntry, FileManifest
from tierstore.storage.migrate import convert_legacy_markers, move_to_object_storage
from tierstore.storage.paths import list_files, make_key
from tierstore.storage.store import TieredBlobStore

__all__ = [
    "ContentClassifier",
    "FileEntry",
    "FileManifest",
    "StorageConfig",
    "TieredBlobStore",
    "add_path_into_database",
    "convert_legacy_markers",
    "ingest_tree",
    "list_files",
    "make_key",
    "move_to_object_storage",
]
