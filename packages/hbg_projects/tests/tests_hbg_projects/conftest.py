import json
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from hbg_authentication.models import User
from hbg_core.exceptions import HbgError
from hbg_db import db as db_module
from hbg_db.models import Model
from hbg_hub import ClientConnection
from hbg_projects import ProjectHub, ProjectsService
from hbg_projects import router as projects_router
from hbg_projects.schemas import ProjectCreate
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


def make_user(user_id: int, username: str) -> User:
    return User(id=user_id, username=username, is_active=True, is_staff=False)


@pytest.fixture
def owner() -> User:
    return make_user(1, "owner")


@pytest.fixture
def stranger() -> User:
    return make_user(2, "stranger")


@pytest_asyncio.fixture
async def project(db_session: AsyncSession, owner: User):
    return await ProjectsService(db_session).create_project(
        ProjectCreate(name="Office", description="Second floor"), owner.subject_id
    )


class FakeSocket:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send_json(self, payload: dict[str, Any]) -> None:
        self.sent.append(payload)

    def last_completion(self) -> dict[str, Any]:
        return [m for m in self.sent if m["type"] == "completion"][-1]

    def events(self, target: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == "event" and m["target"] == target]


def frame(target: str, *arguments: Any, invocation_id: str = "1") -> str:
    return json.dumps(
        {"type": "invocation", "id": invocation_id, "target": target, "arguments": list(arguments)}
    )


@pytest_asyncio.fixture
async def hub(init_test_db) -> ProjectHub:  # noqa: ARG001
    return ProjectHub(db_module.get_session_factory())


async def connect(hub: ProjectHub, connection_id: str, user: User) -> ClientConnection:
    connection = ClientConnection(
        id=connection_id,
        websocket=FakeSocket(),  # ty:ignore[invalid-argument-type]
        user=user,
    )
    await hub.manager.connect(connection)
    return connection


def build_app(current_user: User) -> FastAPI:
    app = FastAPI()

    @app.middleware("http")
    async def inject_user(request: Request, call_next):
        request.state.user = current_user
        return await call_next(request)

    @app.exception_handler(HbgError)
    async def _hbg_error(_request: Request, exc: HbgError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    app.include_router(projects_router)
    return app


@pytest_asyncio.fixture
async def owner_client(db_session, owner) -> AsyncGenerator[AsyncClient, None]:  # noqa: ARG001
    transport = ASGITransport(app=build_app(owner))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def stranger_client(db_session, stranger) -> AsyncGenerator[AsyncClient, None]:  # noqa: ARG001
    transport = ASGITransport(app=build_app(stranger))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
