"""Content-type classification for ingested files.

Types are sniffed from the bytes with libmagic. libmagic reports
stylesheets and scripts as ``text/plain``, which browsers refuse to apply,
so the file extension corrects those two cases.

Examples:
    >>> from tierstore.storage.classify import ContentClassifier
    >>> classifier = ContentClassifier()
    >>> classifier.classify(b"body { margin: 0 }", ".css")
    'text/css'
"""

from __future__ import annotations

import logging
from typing import Callable

import magic

from tierstore.errors import ClassificationError

logger = logging.getLogger(__name__)

PLAIN_TEXT = "text/plain"

# Extension -> type used when the sniffer only says "plain text"
PLAIN_TEXT_OVERRIDES: dict[str, str] = {
    "css": "text/css",
    "js": "application/javascript",
}

Sniffer = Callable[[bytes], str]


def _open_libmagic() -> Sniffer:
    try:
        cookie = magic.Magic(mime=True)
    except (magic.MagicException, OSError, ImportError) as e:
        raise ClassificationError(f"failed to initialize libmagic: {e}") from e
    return cookie.from_buffer


def normalize_extension(extension: str | None) -> str:
    """Lowercase an extension and strip its leading dot."""
    if not extension:
        return ""
    return extension.lower().lstrip(".")


class ContentClassifier:
    """Maps file bytes plus an extension hint to a content type.

    The sniffer is opened once, when the classifier is built; a failure
    there raises ClassificationError before any file is processed.

    Attributes:
        sniffer: Callable returning a MIME type for a buffer.
    """

    def __init__(self, sniffer: Sniffer | None = None) -> None:
        self.sniffer = sniffer or _open_libmagic()

    def sniff(self, data: bytes) -> str:
        """Return the type the sniffer assigns to ``data``."""
        try:
            return self.sniffer(data)
        except ClassificationError:
            raise
        except Exception as e:
            raise ClassificationError(f"failed to classify content: {e}") from e

    def classify(self, data: bytes, extension: str | None = None) -> str:
        """Classify ``data``.

        Args:
            data: Raw file content.
            extension: File extension, with or without the dot.

        Returns:
            Normalized content type.
        """
        mime = self.sniff(data)
        if mime == PLAIN_TEXT:
            override = PLAIN_TEXT_OVERRIDES.get(normalize_extension(extension))
            if override:
                logger.debug(f"Overriding {mime} with {override} for .{normalize_extension(extension)}")
                return override
        return mime
