import json
import uuid
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from hbg_authentication.models import User
from hbg_constructor import (
    ConstructorHub,
    ConstructorService,
    GeneratedFile,
    JewelryType,
    router,
)
from hbg_constructor.schemas import ConfigurationCreate, ProjectCreate
from hbg_core.exceptions import HbgError
from hbg_db import db as db_module
from hbg_db.models import Model
from hbg_hub import ClientConnection
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


class StaticImageGenerator:
    """Pretends every prompt produced the same picture."""

    def __init__(self) -> None:
        self.prompts: list[tuple[str, str]] = []

    async def generate(
        self,
        prompt: str,
        aspect_ratio: str,
        *,
        configuration_id: uuid.UUID,
        project_id: uuid.UUID,
    ) -> GeneratedFile:
        self.prompts.append((prompt, aspect_ratio))
        name = f"jewelry_{configuration_id}_{len(self.prompts)}.jpg"
        return GeneratedFile(
            url=f"https://files.example.com/{project_id}/{name}",
            file_name=name,
            thumbnail_url=f"https://files.example.com/{project_id}/thumb_{name}",
        )


@pytest.fixture
def generator() -> StaticImageGenerator:
    return StaticImageGenerator()


@pytest_asyncio.fixture
async def project(db_session: AsyncSession, owner: User):
    return await ConstructorService(db_session).create_project(
        ProjectCreate(name="Wedding ring", jewelry_type=JewelryType.RING), owner.subject_id
    )


@pytest_asyncio.fixture
async def configuration(db_session: AsyncSession, owner: User, project):
    return await ConstructorService(db_session).create_configuration(
        project.id,
        ConfigurationCreate(
            configuration_name="Classic",
            form_data={"material": "Gold", "gemstone": "Diamond", "style": "Vintage"},
        ),
        owner.subject_id,
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


async def connect(hub: ConstructorHub, connection_id: str, user: User) -> ClientConnection:
    connection = ClientConnection(
        id=connection_id,
        websocket=FakeSocket(),  # ty:ignore[invalid-argument-type]
        user=user,
    )
    await hub.manager.connect(connection)
    return connection


def build_app(current_user: User, generator=None) -> FastAPI:
    app = FastAPI()
    app.state.image_generator = generator

    @app.middleware("http")
    async def inject_user(request: Request, call_next):
        request.state.user = current_user
        return await call_next(request)

    @app.exception_handler(HbgError)
    async def _hbg_error(_request: Request, exc: HbgError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    app.include_router(router)
    return app


@pytest_asyncio.fixture
async def owner_client(db_session, owner, generator) -> AsyncGenerator[AsyncClient, None]:  # noqa: ARG001
    transport = ASGITransport(app=build_app(owner, generator))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def stranger_client(db_session, stranger) -> AsyncGenerator[AsyncClient, None]:  # noqa: ARG001
    transport = ASGITransport(app=build_app(stranger))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
