"""
Scrapbook Backend — Test Configuration (conftest.py)
=====================================================

Shared pytest fixtures for the whole suite.

Fixture Hierarchy (all function-scoped):
    ├── db_engine: fresh in-memory SQLite database with every table created
    ├── session_factory: sessionmaker bound to that engine
    ├── db_session: one AsyncSession for service-level tests
    ├── make_user: helper that inserts a user row
    ├── mock_db_session: AsyncMock session for pure unit tests
    └── test_client: HTTPX AsyncClient over the ASGI app, with
                     get_db_session pointed at db_engine

The in-memory database lives on a single shared connection (StaticPool) so
every session in a test sees the same data.
"""

import os

# ══════════════════════════════════════════════════════════════════════════
# Environment Setup (must run before any scrapbook import)
# ══════════════════════════════════════════════════════════════════════════

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["IDENTITY_GATEWAY_KEY"] = "test-gateway-key"
os.environ["ALLOW_DEV_LOGIN"] = "true"
os.environ["ADMIN_LOGIN_ID"] = "admin"
os.environ["ADMIN_LOGIN_PASS"] = "admin-pass"
os.environ["ALLOWED_EMAIL_DOMAINS"] = "iima.ac.in"
os.environ["PUBLIC_BASE_URL"] = "https://scrapbook.test"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"

import itertools  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

import scrapbook.models  # noqa: E402,F401
from scrapbook.database import Base, enable_sqlite_foreign_keys, get_db_session  # noqa: E402
from scrapbook.models import User  # noqa: E402
from scrapbook.services.identity_service import new_share_code  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """
    A session for service tests. Services only flush, so a test sees its
    own writes without committing.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


_emails = itertools.count(1)


@pytest.fixture
def make_user():
    """
    Insert a user directly (bypassing the sign-in workflow).

    Usage:
        user = await make_user(db_session, email="a@iima.ac.in", alias="Ace")
    """

    async def _make(session, email=None, display_name=None, **fields):
        n = next(_emails)
        user = User(
            email=email or f"member{n}@iima.ac.in",
            display_name=display_name or f"Member {n}",
            share_code=new_share_code(),
            **fields,
        )
        session.add(user)
        await session.flush()
        return user

    return _make


# ══════════════════════════════════════════════════════════════════════════
# Mocks
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A MagicMock that simulates AsyncSession behavior.

    Usage:
        mock_db_session.get.return_value = None
        assert await access_service.approve(mock_db_session, 1) is None
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory):
    """
    HTTPX AsyncClient wired to the FastAPI app.

    Each request gets its own session on the test database and commits on
    success, like the real dependency.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from scrapbook.main import app

    async def _override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
