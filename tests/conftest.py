"""Pytest fixtures for statutory engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from statutory_engine.api.app import create_app
from statutory_engine.api.dependencies import (
    get_db_session,
    get_rule_set_cache,
    get_statutory_engine,
)
from statutory_engine.calculators.engine import StatutoryEngine
from statutory_engine.config import Settings
from statutory_engine.models import Base
from statutory_engine.rules.cache import RuleSetCache

# In-memory SQLite shared by every connection of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def settings() -> Settings:
    """Settings that do not depend on the environment."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        database_url_sync="sqlite:///:memory:",
        engine_version="1.0.0",
        host="127.0.0.1",
        port=8000,
        debug=False,
        batch_max_workers=4,
        log_level="DEBUG",
    )


@pytest.fixture
def statutory_engine(settings: Settings) -> StatutoryEngine:
    return StatutoryEngine(settings)


@pytest.fixture
async def db_engine():
    """Create test database engine with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(session_factory, statutory_engine) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app, backed by the test database."""
    app = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    cache = RuleSetCache()
    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_statutory_engine] = lambda: statutory_engine
    app.dependency_overrides[get_rule_set_cache] = lambda: cache

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
