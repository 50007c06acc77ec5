"""Tests for tierstore.storage.store module.

Covers:
    - put/get round trip in inline and offload modes
    - overwrite semantics and timestamps
    - NotFound and retrieval failures
    - fatal upload failures leave nothing staged
    - payloads equal to the legacy offload marker
    - UTC timestamps
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import insert, select
from sqlalchemy.dialects import postgresql

from tierstore.database import transaction
from tierstore.errors import (
    BlobNotFoundError,
    ConfigurationError,
    NotFoundError,
    RetrievalError,
    StorageFatalError,
    StorageNotConfiguredError,
)
from tierstore.models import LEGACY_OFFLOAD_MARKER, BlobLocation, File
from tierstore.storage.migrate import convert_legacy_markers
from tierstore.storage.store import TieredBlobStore, as_utc, upsert_statement


async def put_one(store, path, mime, data):
    async with transaction(store.session_factory) as session:
        return await store.put(session, path, mime, data)


async def fetch_row(session_factory, path):
    async with session_factory() as session:
        return await session.get(File, path)


class TestRoundTrip:
    """put() followed by get() returns the same blob in either tier."""

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        await put_one(store, "serde/1.0.0/index.html", "text/html", b"<html>serde</html>")

        blob = await store.get("serde/1.0.0/index.html")
        assert blob.path == "serde/1.0.0/index.html"
        assert blob.mime == "text/html"
        assert blob.content == b"<html>serde</html>"
        assert blob.date_updated is not None

    @pytest.mark.asyncio
    async def test_empty_payload(self, store):
        await put_one(store, "empty.txt", "inode/x-empty", b"")
        blob = await store.get("empty.txt")
        assert blob.content == b""
        assert blob.mime == "inode/x-empty"

    @pytest.mark.asyncio
    async def test_binary_payload(self, store):
        data = bytes(range(256)) * 4
        await put_one(store, "bin/data.bin", "application/octet-stream", data)
        assert (await store.get("bin/data.bin")).content == data

    @pytest.mark.asyncio
    async def test_replace_updates_content_and_type(self, store):
        await put_one(store, "a/style.css", "text/plain", b"old")
        first = await store.get("a/style.css")

        await put_one(store, "a/style.css", "text/css", b"new content")
        second = await store.get("a/style.css")

        assert second.content == b"new content"
        assert second.mime == "text/css"
        assert second.date_updated >= first.date_updated

    @pytest.mark.asyncio
    async def test_replace_keeps_single_row(self, store, session_factory):
        for i in range(3):
            await put_one(store, "a/index.html", "text/html", f"v{i}".encode())

        async with session_factory() as session:
            rows = (await session.execute(select(File).where(File.path == "a/index.html"))).scalars().all()
        assert len(rows) == 1
        assert (await store.get("a/index.html")).content == b"v2"


class TestTiering:
    """Where put() places the payload."""

    @pytest.mark.asyncio
    async def test_inline_mode_stores_bytes_in_row(self, inline_store, session_factory):
        location = await put_one(inline_store, "k/file.txt", "text/plain", b"payload")

        row = await fetch_row(session_factory, "k/file.txt")
        assert location == BlobLocation.INLINE
        assert row.location == BlobLocation.INLINE
        assert row.content == b"payload"
        assert not inline_store.offloading

    @pytest.mark.asyncio
    async def test_offload_mode_keeps_bytes_out_of_row(
        self, offload_store, session_factory, object_storage
    ):
        location = await put_one(offload_store, "k/file.txt", "text/plain", b"payload")

        row = await fetch_row(session_factory, "k/file.txt")
        assert location == BlobLocation.S3
        assert row.location == BlobLocation.S3
        assert row.content is None
        assert row.mime == "text/plain"
        assert await object_storage.exists("k/file.txt")
        assert await object_storage.get_object("k/file.txt") == b"payload"
        assert offload_store.offloading

    @pytest.mark.asyncio
    async def test_get_reports_tier(self, offload_store):
        await put_one(offload_store, "k/file.txt", "text/plain", b"payload")
        assert (await offload_store.get("k/file.txt")).location == BlobLocation.S3

    @pytest.mark.asyncio
    async def test_upload_failure_is_fatal(self, session_factory):
        backend = AsyncMock()
        backend.put_object.side_effect = StorageFatalError("k/file.txt", "connection reset")
        store = TieredBlobStore(session_factory, object_storage=backend)

        with pytest.raises(StorageFatalError):
            await put_one(store, "k/file.txt", "text/plain", b"payload")

        assert await fetch_row(session_factory, "k/file.txt") is None

    @pytest.mark.asyncio
    async def test_upload_failure_does_not_fall_back_inline(self, session_factory):
        backend = AsyncMock()
        backend.put_object.side_effect = StorageFatalError("k/file.txt")
        store = TieredBlobStore(session_factory, object_storage=backend)

        with pytest.raises(StorageFatalError):
            await put_one(store, "k/file.txt", "text/plain", b"payload")
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_upload_sends_content_type(self, session_factory):
        backend = AsyncMock()
        store = TieredBlobStore(session_factory, object_storage=backend)

        await put_one(store, "k/app.js", "application/javascript", b"var a;")
        backend.put_object.assert_awaited_once_with("k/app.js", b"var a;", "application/javascript")


class TestGetFailures:
    """Errors surfaced by get()."""

    @pytest.mark.asyncio
    async def test_missing_key(self, store):
        with pytest.raises(BlobNotFoundError) as exc_info:
            await store.get("nope/index.html")
        assert exc_info.value.key == "nope/index.html"
        assert isinstance(exc_info.value, NotFoundError)

    @pytest.mark.asyncio
    async def test_missing_object_is_retrieval_error(self, offload_store, object_root):
        await put_one(offload_store, "k/file.txt", "text/plain", b"payload")
        (object_root / "k" / "file.txt").unlink()

        with pytest.raises(RetrievalError):
            await offload_store.get("k/file.txt")

    @pytest.mark.asyncio
    async def test_transport_error_is_not_retried(self, session_factory, offload_store):
        await put_one(offload_store, "k/file.txt", "text/plain", b"payload")

        backend = AsyncMock()
        backend.get_object.side_effect = RetrievalError("k/file.txt", "timeout")
        reader = TieredBlobStore(session_factory, object_storage=backend)

        with pytest.raises(RetrievalError):
            await reader.get("k/file.txt")
        backend.get_object.assert_awaited_once_with("k/file.txt")

    @pytest.mark.asyncio
    async def test_offloaded_row_without_object_storage(self, offload_store, inline_store):
        await put_one(offload_store, "k/file.txt", "text/plain", b"payload")
        with pytest.raises(StorageNotConfiguredError):
            await inline_store.get("k/file.txt")


class TestLegacyMarker:
    """Payloads equal to the old in-band offload marker."""

    @pytest.mark.asyncio
    async def test_marker_bytes_round_trip(self, store):
        await put_one(store, "k/notes.txt", "text/plain", LEGACY_OFFLOAD_MARKER)

        blob = await store.get("k/notes.txt")
        assert blob.content == LEGACY_OFFLOAD_MARKER
        assert blob.mime == "text/plain"

    @pytest.mark.asyncio
    async def test_marker_bytes_inline_without_object_storage(self, inline_store):
        await put_one(inline_store, "k/notes.txt", "text/plain", b"in-s3")

        blob = await inline_store.get("k/notes.txt")
        assert blob.location == BlobLocation.INLINE
        assert await inline_store.count(BlobLocation.INLINE) == 1

    @pytest.mark.asyncio
    async def test_converted_marker_row_is_fetched_from_object_storage(
        self, offload_store, session_factory, object_storage
    ):
        await object_storage.put_object("old/index.html", b"<html>old</html>", "text/html")
        async with transaction(session_factory) as session:
            await session.execute(
                insert(File).values(
                    path="old/index.html",
                    mime="text/html",
                    location=BlobLocation.INLINE,
                    content=LEGACY_OFFLOAD_MARKER,
                )
            )

        assert await convert_legacy_markers(offload_store) == 1

        blob = await offload_store.get("old/index.html")
        assert blob.content == b"<html>old</html>"
        assert blob.location == BlobLocation.S3
        assert await offload_store.count(BlobLocation.INLINE) == 0


class TestTimestamps:
    """date_updated is reported the same way on every database."""

    @pytest.mark.asyncio
    async def test_date_updated_is_utc_aware(self, store):
        before = datetime.now(timezone.utc) - timedelta(seconds=5)
        await put_one(store, "k/file.txt", "text/plain", b"x")

        blob = await store.get("k/file.txt")
        assert blob.date_updated.tzinfo is not None
        assert blob.date_updated.utcoffset() == timedelta(0)
        assert blob.date_updated >= before

    @pytest.mark.fast
    def test_as_utc(self):
        naive = datetime(2024, 1, 2, 3, 4, 5)
        assert as_utc(naive) == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        offset = datetime(2024, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))
        assert as_utc(offset).hour == 3


class TestHelpers:
    """exists(), count() and the upsert statement."""

    @pytest.mark.asyncio
    async def test_exists(self, store):
        assert not await store.exists("k/file.txt")
        await put_one(store, "k/file.txt", "text/plain", b"x")
        assert await store.exists("k/file.txt")

    @pytest.mark.asyncio
    async def test_count_by_location(self, inline_store, offload_store):
        await put_one(inline_store, "a.txt", "text/plain", b"a")
        await put_one(inline_store, "b.txt", "text/plain", b"b")
        await put_one(offload_store, "c.txt", "text/plain", b"c")

        assert await inline_store.count() == 3
        assert await inline_store.count(BlobLocation.INLINE) == 2
        assert await inline_store.count(BlobLocation.S3) == 1

    @pytest.mark.fast
    def test_postgres_upsert_uses_on_conflict(self):
        stmt = upsert_statement(
            "postgresql",
            {"path": "a", "mime": "text/plain", "location": BlobLocation.INLINE, "content": b"x"},
        )
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ON CONFLICT (path) DO UPDATE" in sql
        assert "date_updated" in sql

    @pytest.mark.fast
    def test_unknown_dialect_rejected(self):
        with pytest.raises(ConfigurationError):
            upsert_statement("mssql", {"path": "a"})
