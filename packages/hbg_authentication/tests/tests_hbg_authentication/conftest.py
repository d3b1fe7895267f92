from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI, Request
from hbg_authentication import User
from hbg_authentication.backend import TokenAuthenticationBackend
from hbg_authentication.dependencies import require_user
from hbg_authentication.middleware import TokenAuthenticationMiddleware
from hbg_core.exceptions import HbgError
from hbg_db import db as db_module
from hbg_db.models import Model
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse

DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def init_test_db():
    db_module.init_db(DATABASE_URL, echo=False)

    async_engine = db_module._engine
    assert async_engine is not None

    async with async_engine.begin() as conn:
        await conn.run_sync(Model.metadata.create_all)

    yield

    await db_module.close_db()


@pytest_asyncio.fixture()
async def db_session(init_test_db):  # noqa: ARG001
    async for session in db_module.get_db():
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_user(db_session: AsyncSession) -> User:
    user = User(username="testuser", email="test@example.com", is_active=True)
    user.set_password("password123")

    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture(scope="function")
async def inactive_test_user(db_session: AsyncSession) -> User:
    user = User(username="inactive", email="inactive@example.com", is_active=False)
    user.set_password("password123")

    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest.fixture
def backend() -> TokenAuthenticationBackend:
    return TokenAuthenticationBackend()


@pytest_asyncio.fixture
async def middleware_app(db_session: AsyncSession) -> FastAPI:  # noqa: ARG001
    """App guarded by the token middleware with an open and a protected route."""
    app = FastAPI()
    factory = db_module._require_session_factory()
    app.add_middleware(TokenAuthenticationMiddleware, session_maker=factory)  # ty:ignore[invalid-argument-type]

    @app.exception_handler(HbgError)
    async def _hbg_error(_request: Request, exc: HbgError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.get("/whoami")
    def whoami(request: Request) -> dict:
        user = request.state.user
        return {
            "username": getattr(user, "username", None),
            "user_id": getattr(user, "id", None),
        }

    @app.get("/hub/whoami")
    def hub_whoami(request: Request) -> dict:
        return {"user_id": getattr(request.state.user, "id", None)}

    @app.get("/protected")
    def protected(user: User = Depends(require_user)) -> dict:
        return {"subject_id": user.subject_id}

    return app


@pytest_asyncio.fixture
async def middleware_client(middleware_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=middleware_app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
