"""Shared test fixtures.

Every test gets a fresh SQLite database file (aiosqlite) and an AsyncMock
Redis client; the FastAPI app has its session and Redis dependencies
overridden to use them.
"""

from __future__ import annotations

import os

os.environ.setdefault("FG_JWT_ALGORITHM", "HS256")
os.environ.setdefault("FG_JWT_SECRET", "focusgarden-test-secret-0123456789abcdef")
os.environ.setdefault("FG_LOG_FORMAT", "console")
os.environ.setdefault("FG_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from collections.abc import AsyncGenerator  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool  # noqa: E402

from focusgarden.auth.jwt import create_access_token, reset_keys  # noqa: E402
from focusgarden.config import get_settings  # noqa: E402
from focusgarden.database import get_session  # noqa: E402
from focusgarden.db import models  # noqa: E402, F401
from focusgarden.db.base import Base  # noqa: E402
from focusgarden.dependencies import get_redis_dep  # noqa: E402
from focusgarden.garden.catalog import SpeciesCatalog, load_catalog  # noqa: E402

get_settings.cache_clear()
reset_keys()

TEST_USER_ID = 4242
OTHER_USER_ID = 7


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'garden.db'}",
        poolclass=NullPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A direct database session for service calls and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def catalog() -> SpeciesCatalog:
    return load_catalog()


@pytest.fixture
def mock_redis() -> MagicMock:
    """Redis stand-in recording pub/sub publishes."""
    redis = MagicMock()
    redis.publish = AsyncMock(return_value=1)
    return redis


@pytest_asyncio.fixture
async def client(session_factory, mock_redis) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client with DB and Redis dependencies overridden."""
    from focusgarden.main import create_app

    app = create_app()

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def override_get_redis() -> AsyncGenerator[object, None]:
        yield mock_redis

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_redis_dep] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(TEST_USER_ID)}"}


@pytest_asyncio.fixture
async def authed_client(client: AsyncClient, auth_headers: dict[str, str]) -> AsyncClient:
    client.headers.update(auth_headers)
    return client
