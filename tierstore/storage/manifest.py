"""File manifest returned by ingestion.

Lists the files stored by one ingestion run as ``(content_type,
relative_path)`` pairs, in processing order. Downstream consumers take it
as a nested array: ``[["text/html", "index.html"], ...]``.

Examples:
    >>> from tierstore.storage.manifest import FileManifest
    >>> manifest = FileManifest()
    >>> manifest.add("text/css", Path("static/main.css"))
    >>> manifest.to_json()
    '[["text/css","static/main.css"]]'
"""

from __future__ import annotations

import json
import os
from pathlib import PurePath

from pydantic import BaseModel, Field


class FileEntry(BaseModel):
    """A single ingested file."""

    mime_type: str
    path: str
    size_bytes: int = 0

    def as_pair(self) -> list[str]:
        return [self.mime_type, self.path]


class FileManifest(BaseModel):
    """Ordered listing of the files written by one ingestion run.

    Attributes:
        prefix: Key prefix the tree was stored under.
        files: Entries in processing order.
    """

    prefix: str = ""
    files: list[FileEntry] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.files)

    def __iter__(self):
        return iter(self.files)

    def add(self, mime_type: str, path: str | os.PathLike[str], size_bytes: int = 0) -> FileEntry:
        """Append an entry; ``path`` is stored with ``/`` separators."""
        if isinstance(path, PurePath):
            path = path.as_posix()
        entry = FileEntry(mime_type=mime_type, path=os.fspath(path), size_bytes=size_bytes)
        self.files.append(entry)
        return entry

    @property
    def total_size_bytes(self) -> int:
        return sum(f.size_bytes for f in self.files)

    def pairs(self) -> list[tuple[str, str]]:
        """Return ``(content_type, relative_path)`` tuples."""
        return [(f.mime_type, f.path) for f in self.files]

    def to_json_list(self) -> list[list[str]]:
        """Return the nested-array form."""
        return [f.as_pair() for f in self.files]

    def to_json(self, indent: int | None = None) -> str:
        """Serialize the nested-array form to JSON."""
        separators = None if indent is not None else (",", ":")
        return json.dumps(self.to_json_list(), indent=indent, separators=separators)

    @classmethod
    def from_json(cls, text: str, prefix: str = "") -> "FileManifest":
        """Parse the nested-array form produced by ``to_json``."""
        manifest = cls(prefix=prefix)
        for mime_type, path in json.loads(text):
            manifest.add(mime_type, path)
        return manifest
