"""
Pytest Configuration and Shared Fixtures

Each test gets its own SQLite database file and blob directory under
pytest's tmp_path, so tests never share state.
"""

from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from fileshare.config import Settings
from fileshare.database import build_engine, build_sessionmaker, init_models
from fileshare.main import create_app
from fileshare.services.blob_store import InMemoryBlobStore, LocalBlobStore
from fileshare.services.catalog import MetadataCatalog
from fileshare.services.file_store import FileStore


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh SQLite database with all tables created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def catalog(engine: AsyncEngine) -> MetadataCatalog:
    return MetadataCatalog(build_sessionmaker(engine))


# =============================================================================
# Blob Store Fixtures
# =============================================================================

@pytest.fixture
def blob_dir(tmp_path: Path) -> Path:
    return tmp_path / "blobs"


@pytest.fixture
def local_blobs(blob_dir: Path) -> LocalBlobStore:
    return LocalBlobStore(blob_dir, chunk_size=4)


@pytest.fixture
def memory_blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore(chunk_size=4)


# =============================================================================
# Store / App Fixtures
# =============================================================================

@pytest.fixture
def store(catalog: MetadataCatalog, local_blobs: LocalBlobStore) -> FileStore:
    """Coordinator over a real SQLite catalog and an on-disk blob store."""
    return FileStore(catalog, local_blobs)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'unused.db'}",
        FILE_STORAGE_PATH=str(tmp_path / "unused-blobs"),
        ORPHAN_SCAN_INTERVAL=0,
        ORPHAN_GRACE_SECONDS=0,
        PARTIAL_UPLOAD_MAX_AGE=0,
    )


@pytest_asyncio.fixture
async def client(store: FileStore, test_settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to an app using the injected store."""
    app = create_app(file_store=store, app_settings=test_settings)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
