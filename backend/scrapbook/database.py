"""
Scrapbook Backend — Database Session Management
================================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
How:   Creates an async engine, provides a session dependency that
       auto-commits on success and auto-rolls-back on error.
Who:   Used by route handlers via FastAPI's dependency injection system.
When:  Engine is created at module import; sessions are created per-request.

Duplicate suppression:
    Allowlist entries, welcome entries, pending access requests and score
    rows are written with single-statement upserts keyed on their unique
    constraints (`insert_ignore` / `upsert_statement` below). PostgreSQL is
    the production dialect; SQLite is used by the test-suite. Both support
    `INSERT ... ON CONFLICT`.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy import event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from scrapbook.config import settings


def _engine_options(url: str) -> Dict[str, Any]:
    """Pool options only apply to server databases, not to SQLite files."""
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return options


def enable_sqlite_foreign_keys(async_engine: AsyncEngine) -> None:
    """SQLite ships with foreign keys off; turn them on for every connection."""
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# ── Engine Configuration ──────────────────────────────────────────────────
engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))
enable_sqlite_foreign_keys(engine)

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: attributes stay readable after the request commits
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Base class for all ORM models; its metadata is what Alembic migrates."""
    pass


# ── Dialect-aware upserts ─────────────────────────────────────────────────
def _dialect_insert(db: AsyncSession, table):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Upserts are not supported on dialect '{dialect}'")


def insert_ignore(db: AsyncSession, table, **values):
    """
    Build `INSERT ... ON CONFLICT DO NOTHING` for `table`.

    No conflict target is named, so any unique constraint (including
    partial unique indexes) absorbs the duplicate. The executed result's
    `rowcount` is 0 when the row already existed.
    """
    return _dialect_insert(db, table).values(**values).on_conflict_do_nothing()


def upsert_statement(db: AsyncSession, table):
    """Return a bare dialect insert so callers can attach `on_conflict_do_update`."""
    return _dialect_insert(db, table)


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Commits when the handler returns, rolls back and re-raises when it fails,
    and always closes the session.

    Example usage in a route:
        @router.get("/api/leaderboard")
        async def leaderboard(db: AsyncSession = Depends(get_db_session)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def create_all_tables() -> None:
    """Create missing tables directly from the model metadata (dev / tests)."""
    import scrapbook.models  # noqa: F401  registers every model on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Closes all pooled connections during application shutdown."""
    await engine.dispose()
