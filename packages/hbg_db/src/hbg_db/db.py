from collections.abc import AsyncGenerator
from typing import Any, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None

NOT_INITIALIZED = "Database not initialized. Call init_db() first."
# QueuePool options the SQLite dialects reject
POOL_ONLY_OPTIONS = ("pool_size", "max_overflow", "pool_pre_ping")


def normalize_url(database_url: str) -> str:
    """Route plain ``postgresql://`` URLs to the asyncpg driver."""
    if database_url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + database_url.removeprefix("postgresql://")
    return database_url


def _engine_options(is_sqlite: bool, echo: bool, extra: dict[str, Any]) -> dict[str, Any]:
    options = {"echo": echo, **extra}
    if is_sqlite:
        for name in POOL_ONLY_OPTIONS:
            options.pop(name, None)
        options.setdefault("connect_args", {"check_same_thread": False})
    else:
        options.setdefault("pool_pre_ping", True)
    return options


def _enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """Cascades (project -> plans, distribution -> emails, ...) need the pragma."""

    @event.listens_for(engine.sync_engine.pool, "connect")  # pragma: no cover
    def _set_sqlite_pragma(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def init_db(database_url: str, *, echo: bool = False, **engine_kwargs: Any) -> None:
    """
    Create the process-wide async engine and session factory.

    Pool options (`pool_size`, `max_overflow`, ...) are dropped for SQLite.
    Sessions keep their objects loaded after commit.

    Example:
        >>> init_db("sqlite+aiosqlite:///hbg.db", pool_size=10)
    """
    global _engine, _session_factory

    url = normalize_url(database_url)
    is_sqlite = url.startswith("sqlite")
    _engine = create_async_engine(url, **_engine_options(is_sqlite, echo, engine_kwargs))
    if is_sqlite:
        _enable_sqlite_foreign_keys(_engine)

    _session_factory = async_sessionmaker(
        bind=_engine,
        expire_on_commit=False,
        autoflush=False,
    )


def _require_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError(NOT_INITIALIZED)
    return _engine


def _require_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError(NOT_INITIALIZED)
    return _session_factory


async def create_all() -> None:
    """Create the tables of every imported model."""
    from .models import Model

    async with _require_engine().begin() as conn:
        await conn.run_sync(Model.metadata.create_all)


async def close_db() -> None:
    if _engine is not None:
        await _engine.dispose()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for work that outlives a request (hub calls, workers)."""
    return _require_session_factory()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding one session per request.

    Example:
        >>> @router.get("/api/receivers")
        ... async def receivers(db: AsyncSession = Depends(get_db)): ...
    """
    async with _require_session_factory()() as session:
        yield session
