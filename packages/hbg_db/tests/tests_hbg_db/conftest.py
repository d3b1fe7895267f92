import pytest_asyncio
from hbg_db import db as db_module
from hbg_db.models import Model

from . import models  # noqa: F401

DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture()
async def init_test_db():
    """Initialize a fresh in-memory database for each test."""
    db_module.init_db(DATABASE_URL, echo=False)

    async_engine = db_module._engine
    assert async_engine is not None

    async with async_engine.begin() as conn:
        await conn.run_sync(Model.metadata.create_all)

    yield

    await db_module.close_db()


@pytest_asyncio.fixture()
async def db_session(init_test_db):  # noqa: ARG001
    """Provide a database session for tests."""
    async for session in db_module.get_db():
        yield session
