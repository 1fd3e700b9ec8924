"""Test fixtures for the dose schedule backend."""
from __future__ import annotations

import os
import uuid
from collections.abc import AsyncIterator
from datetime import UTC, datetime

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")

from dosetrack.api import deps
from dosetrack.core.config import get_settings
from dosetrack.core.security import create_access_token
from dosetrack.db.base import Base
from dosetrack.db.session import dispose_engine, get_sessionmaker
from dosetrack.main import app

# A Thursday, midway through the first week of March 2025.
FIXED_NOW = datetime(2025, 3, 6, 12, 0, tzinfo=UTC)


@pytest.fixture(scope="session")
def db_url(tmp_path_factory: pytest.TempPathFactory) -> str:
    """Provide a temporary SQLite database URL for the test session."""
    db_path = tmp_path_factory.mktemp("db") / "test.db"
    return f"sqlite+aiosqlite:///{db_path}"


@pytest_asyncio.fixture()
async def reset_database(db_url: str) -> AsyncIterator[None]:
    """Drop and recreate the database schema for an isolated test."""
    os.environ["DATABASE_URL"] = db_url
    get_settings.cache_clear()
    get_settings()

    await dispose_engine(db_url)
    engine = create_async_engine(db_url, future=True)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
        await connection.run_sync(Base.metadata.create_all)
    await engine.dispose()
    yield
    await dispose_engine(db_url)


@pytest_asyncio.fixture()
async def session(reset_database: None, db_url: str) -> AsyncIterator[AsyncSession]:
    sessionmaker = get_sessionmaker(db_url)
    async with sessionmaker() as db_session:
        yield db_session


@pytest.fixture()
def owner_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest_asyncio.fixture()
async def app_context(
    reset_database: None, owner_id: uuid.UUID
) -> AsyncIterator[dict[str, object]]:
    """Yield an async client acting as ``owner_id`` with the clock pinned."""
    app.dependency_overrides[deps.get_now] = lambda: FIXED_NOW
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield {
                "client": client,
                "owner_id": owner_id,
                "headers": {"Authorization": f"Bearer {create_access_token(str(owner_id))}"},
                "now": FIXED_NOW,
            }
    finally:
        app.dependency_overrides.pop(deps.get_now, None)
