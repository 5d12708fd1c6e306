"""
Fragfolio Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Autouse (every test):
    └── reset_state: empties ai_cache, provider instances and per-user limiters

    Function-scoped:
    ├── mock_db_session: AsyncMock session (no real DB needed)
    ├── db_engine / db_session: in-memory aiosqlite schema from Base.metadata
    ├── fake_provider: AsyncMock provider returned by provider_factory.create
    └── test_client: HTTPX AsyncClient on the app, DB dependency → db_session
"""

import os

# Override settings for testing BEFORE any fragfolio import
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ["GEMINI_API_KEY"] = ""
os.environ["AI_DEFAULT_PROVIDER"] = "openai"
os.environ["ADMIN_USER_IDS"] = "1"
os.environ["RETRY_MAX_ATTEMPTS"] = "1"
os.environ["RATE_LIMIT_REQUESTS"] = "100000"
os.environ["LOG_LEVEL"] = "WARNING"

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fragfolio.cache import ai_cache
from fragfolio.database import Base
import fragfolio.models  # noqa: F401
from fragfolio.services.normalization_service import batch_normalization_limiter, normalization_limiter
from fragfolio.services.provider_factory import provider_factory


@pytest.fixture(autouse=True)
def reset_state():
    ai_cache.clear()
    provider_factory.reset()
    normalization_limiter.reset()
    batch_normalization_limiter.reset()
    yield
    ai_cache.clear()
    provider_factory.reset()


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A mock async database session.

    begin_nested() works as an async context manager so services that write
    inside a SAVEPOINT can be exercised without a database.
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()

    @asynccontextmanager
    async def begin_nested():
        yield

    session.begin_nested = MagicMock(side_effect=begin_nested)
    return session


@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite database with every table created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")

    # sqlite3 manages transactions itself and breaks SAVEPOINT; hand control
    # back to SQLAlchemy so begin_nested() behaves as on PostgreSQL.
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Provider Fixtures
# ══════════════════════════════════════════════════════════════════════════

def provider_result(**payload):
    """The envelope AIProvider._envelope() adds around every payload."""
    return {
        "response_time_ms": 120.0,
        "provider": "openai",
        "ai_provider": "openai",
        "ai_model": "gpt-4o-mini",
        "cost_estimate": 0.0002,
        "tokens_used": 150,
        **payload,
    }


@pytest.fixture
def fake_provider():
    """
    An AIProvider stand-in handed out by provider_factory.create().

    Usage:
        async def test_x(fake_provider):
            fake_provider.complete.return_value = provider_result(suggestions=[...])
    """
    provider = MagicMock()
    provider.name = "openai"
    provider.complete = AsyncMock()
    provider.normalize = AsyncMock()
    provider.normalize_from_input = AsyncMock()
    provider.suggest_notes = AsyncMock()
    provider.suggest_attributes = AsyncMock()
    provider.health_check = AsyncMock(return_value=True)
    provider.aclose = AsyncMock()
    with patch.object(provider_factory, "create", return_value=provider):
        yield provider


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(db_session):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from fragfolio.database import get_db_session
    from fragfolio.main import app

    async def override_db():
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
