from unittest.mock import patch

import pytest
from hbg_db import db
from sqlalchemy.ext.asyncio import AsyncSession

pytestmark = pytest.mark.asyncio


async def test_require_session_factory_raises_runtime_error():
    with (
        patch("hbg_db.db._session_factory", None),
        pytest.raises(RuntimeError, match=r"Database not initialized"),
    ):
        db.get_session_factory()


async def test_create_all_requires_engine():
    with (
        patch("hbg_db.db._engine", None),
        pytest.raises(RuntimeError, match=r"Database not initialized"),
    ):
        await db.create_all()


async def test_postgres_url_is_normalized_to_asyncpg():
    with patch("hbg_db.db.create_async_engine") as create_engine:
        db.init_db("postgresql://user:pw@localhost/hbg")

    url = create_engine.call_args.args[0]
    assert url.startswith("postgresql+asyncpg://")
    assert create_engine.call_args.kwargs["pool_pre_ping"] is True


async def test_get_db_yields_session(init_test_db):  # noqa: ARG001
    async for session in db.get_db():
        assert isinstance(session, AsyncSession)


def test_sqlite_drops_pool_options():
    options = db._engine_options(True, False, {"pool_size": 10, "max_overflow": 20})

    assert "pool_size" not in options
    assert "max_overflow" not in options
    assert options["connect_args"] == {"check_same_thread": False}


def test_other_urls_are_left_alone():
    assert db.normalize_url("sqlite+aiosqlite:///hbg.db") == "sqlite+aiosqlite:///hbg.db"
    assert (
        db.normalize_url("postgresql+asyncpg://u@h/hbg") == "postgresql+asyncpg://u@h/hbg"
    )
