from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from libs.common.config import get_settings
from libs.db.base import Base

# Import all models so metadata includes every table
from services.store_service import models as _store_models  # noqa: F401

settings = get_settings()


@pytest_asyncio.fixture
async def test_engine():
    """
    Fresh schema per test.

    The default in-memory SQLite database lives on a single shared connection
    (StaticPool) so every session in a test sees the same data.
    """
    if settings.DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            settings.DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_async_engine(settings.DATABASE_URL, future=True)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session. Code under test commits and rolls back freely."""
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest_asyncio.fixture
async def store_client(db_session, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient bound to the store app with the DB dependencies
    pointed at the test database. Auth goes through real bearer tokens
    (see tests.factories.auth_headers).
    """
    from libs.db.session import get_async_db, get_session_factory
    from services.store_service.app.main import app

    app.dependency_overrides[get_async_db] = lambda: db_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


def pytest_collection_modifyitems(config, items):
    """Skip row-lock tests on SQLite, which has no SELECT ... FOR UPDATE."""
    if not settings.DATABASE_URL.startswith("sqlite"):
        return
    skip_postgres = pytest.mark.skip(
        reason="needs PostgreSQL: set TEST_DATABASE_URL=postgresql://... and rerun"
    )
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_postgres)
