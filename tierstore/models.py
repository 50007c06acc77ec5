"""SQLAlchemy models for tierstore.

One table, ``files``, holds a row per path key. The row is the single
source of truth for a blob's content type, last update time and payload
location; the payload itself is either inline in ``content`` or offloaded
to object storage under the same key.

Examples:
    >>> from tierstore.models import File, BlobLocation
    >>> row = File(
    ...     path="serde/1.0.0/index.html",
    ...     mime="text/html",
    ...     location=BlobLocation.INLINE,
    ...     content=b"<html></html>",
    ... )

Tests:
    - tests/unit/test_models.py
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    LargeBinary,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Payload written by older deployments in place of the bytes of an
# offloaded blob. Only convert_legacy_markers() interprets it; reads trust
# the location column.
LEGACY_OFFLOAD_MARKER = b"in-s3"


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class BlobLocation(str, Enum):
    """Where a blob's payload lives.

    States:
        INLINE: Bytes stored in ``files.content``
        S3: Bytes stored in object storage under the row's path
    """

    INLINE = "inline"
    S3 = "s3"


class File(Base):
    """A stored artifact, keyed by its path.

    Attributes:
        path: Path key, ``prefix/relative-path`` without a leading slash
        mime: Content type computed at ingestion time
        date_updated: Time of the last upsert
        location: Payload tier
        content: Inline bytes, NULL once offloaded
    """

    __tablename__ = "files"
    __table_args__ = (
        CheckConstraint(
            "(location = 'inline' AND content IS NOT NULL) "
            "OR (location = 's3' AND content IS NULL)",
            name="ck_files_single_location",
        ),
    )

    path: Mapped[str] = mapped_column(Text, primary_key=True)
    mime: Mapped[str] = mapped_column(String(255))
    date_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )
    location: Mapped[BlobLocation] = mapped_column(
        SQLEnum(
            BlobLocation,
            name="bloblocation",
            values_callable=lambda enum: [member.value for member in enum],
            native_enum=False,
            length=16,
        ),
        default=BlobLocation.INLINE,
        index=True,
    )
    content: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)

    def __repr__(self) -> str:
        return f"<File(path={self.path}, mime={self.mime}, location={self.location.value})>"

    @property
    def is_offloaded(self) -> bool:
        """True when the payload lives in object storage."""
        return self.location == BlobLocation.S3


@dataclass
class Blob:
    """A blob as returned by a read, payload already resolved.

    ``location`` reports where the bytes were fetched from; it is
    informational only.
    """

    path: str
    mime: str
    date_updated: datetime
    content: bytes
    location: BlobLocation = BlobLocation.INLINE
