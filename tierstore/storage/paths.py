"""File tree enumeration and path-key construction.

Path keys are ``/``-joined and never start with a separator; the same
string is the relational primary key and the object-storage key.

Examples:
    >>> from tierstore.storage.paths import list_files, make_key
    >>> list_files("target/doc")
    [PosixPath('index.html'), PosixPath('serde/index.html')]
    >>> make_key("serde/1.0.0", Path("serde/index.html"))
    'serde/1.0.0/serde/index.html'
"""

from __future__ import annotations

import os
from pathlib import Path

from tierstore.errors import PathNotFoundError


def list_files(path: str | os.PathLike[str]) -> list[Path]:
    """List the regular files under ``path``, relative to it.

    A single file yields its own name. Directories are walked recursively
    with entries sorted by name, so the order is stable for an unchanged
    tree. Symlinks and special files are skipped.

    Args:
        path: File or directory to enumerate.

    Returns:
        Relative paths of regular files.

    Raises:
        PathNotFoundError: If ``path`` does not exist.
    """
    root = Path(path)

    if not root.exists():
        raise PathNotFoundError(root)
    if root.is_file():
        return [Path(root.name)]

    files: list[Path] = []
    if root.is_dir():
        _walk(root, root, files)
    return files


def _walk(root: Path, directory: Path, files: list[Path]) -> None:
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda entry: entry.name)

    for entry in entries:
        if entry.is_file(follow_symlinks=False):
            files.append(Path(entry.path).relative_to(root))
        elif entry.is_dir(follow_symlinks=False):
            _walk(root, Path(entry.path), files)


def make_key(prefix: str, relative: str | os.PathLike[str]) -> str:
    """Join a key prefix and a relative file path into a path key.

    Separators are normalized to ``/`` and empty segments dropped, so the
    key never has a leading, trailing or doubled separator.

    Args:
        prefix: Key prefix, e.g. ``"serde/1.0.0"``. May be empty.
        relative: Path relative to the ingested root.

    Returns:
        The path key.
    """
    rel = Path(relative)
    parts = [p for p in prefix.replace("\\", "/").split("/") if p]
    parts.extend(p for p in rel.parts if p not in (rel.anchor, ""))
    if not parts:
        raise ValueError("path key cannot be empty")
    return "/".join(parts)
