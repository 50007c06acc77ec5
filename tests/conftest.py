"""
Pytest configuration and fixtures for tierstore tests.

Runs against a file-backed SQLite database per test by default. Set
TEST_DATABASE_URL to a postgresql+asyncpg URL to run the same tests
against PostgreSQL.
"""
import logging
import os
from pathlib import Path
from typing import AsyncGenerator, Literal

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from tierstore.database import drop_db, init_db, make_session_factory
from tierstore.storage.backends.local import LocalObjectStorage
from tierstore.storage.classify import ContentClassifier
from tierstore.storage.store import TieredBlobStore

logger = logging.getLogger(__name__)

PNG_HEADER = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR"


# ============================================
# Database Detection & Utilities
# ============================================

def detect_database_type(url: str) -> Literal["sqlite", "postgresql", "unknown"]:
    """Detect database type from connection URL."""
    if url.startswith("sqlite"):
        return "sqlite"
    elif url.startswith("postgresql"):
        return "postgresql"
    return "unknown"


def get_test_database_url(tmp_path: Path) -> tuple[str, Literal["sqlite", "postgresql"]]:
    """Get the database URL for one test.

    Logic:
    1. TEST_DATABASE_URL pointing at PostgreSQL: use it
    2. Otherwise: a SQLite file inside the test's tmp_path
    """
    env_db_url = os.getenv("TEST_DATABASE_URL")

    if env_db_url and detect_database_type(env_db_url) == "postgresql":
        return env_db_url, "postgresql"

    if env_db_url:
        logger.warning(f"Ignoring non-PostgreSQL TEST_DATABASE_URL: {env_db_url}")
    return f"sqlite+aiosqlite:///{tmp_path / 'tierstore.db'}", "sqlite"


def stub_sniffer(data: bytes) -> str:
    """Deterministic stand-in for libmagic."""
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.lstrip().lower().startswith((b"<!doctype html", b"<html")):
        return "text/html"
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return "application/octet-stream"
    return "text/plain"


# ============================================
# Test Fixtures
# ============================================

@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a test database engine with the files table."""
    url, db_type = get_test_database_url(tmp_path)

    if db_type == "sqlite":
        engine = create_async_engine(url, connect_args={"check_same_thread": False})

        @event.listens_for(engine.sync_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    else:
        engine = create_async_engine(url, pool_pre_ping=True)
        await drop_db(engine)

    await init_db(engine)

    yield engine

    if db_type == "postgresql":
        await drop_db(engine)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def object_root(tmp_path: Path) -> Path:
    return tmp_path / "objects"


@pytest.fixture
def object_storage(object_root: Path) -> LocalObjectStorage:
    return LocalObjectStorage(object_root)


@pytest.fixture
def inline_store(session_factory) -> TieredBlobStore:
    """Store in relational-only mode."""
    return TieredBlobStore(session_factory)


@pytest.fixture
def offload_store(session_factory, object_storage) -> TieredBlobStore:
    """Store that offloads every write to object storage."""
    return TieredBlobStore(session_factory, object_storage=object_storage)


@pytest.fixture(params=["inline", "offload"])
def store(request, session_factory, object_storage) -> TieredBlobStore:
    """Store in each mode, for tier-transparency tests."""
    if request.param == "inline":
        return TieredBlobStore(session_factory)
    return TieredBlobStore(session_factory, object_storage=object_storage)


@pytest.fixture
def classifier() -> ContentClassifier:
    return ContentClassifier(sniffer=stub_sniffer)


@pytest.fixture
def artifact_tree(tmp_path: Path) -> Path:
    """A small generated documentation tree.

    Layout:
        doc/index.html
        doc/search-index.js
        doc/static/rustdoc.css
        doc/static/logo.png
        doc/serde/index.html
    """
    root = tmp_path / "doc"
    (root / "static").mkdir(parents=True)
    (root / "serde").mkdir()
    (root / "index.html").write_bytes(b"<!DOCTYPE html><html><body>crates</body></html>")
    (root / "search-index.js").write_bytes(b"var searchIndex = {};\n")
    (root / "static" / "rustdoc.css").write_bytes(b"body { margin: 0; }\n")
    (root / "static" / "logo.png").write_bytes(PNG_HEADER)
    (root / "serde" / "index.html").write_bytes(b"<html><body>serde</body></html>")
    return root


# ============================================
# Pytest Configuration
# ============================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "fast: Fast unit tests (no external services)"
    )
    config.addinivalue_line(
        "markers", "s3: Tests exercising the S3 backend through a stubbed client"
    )
