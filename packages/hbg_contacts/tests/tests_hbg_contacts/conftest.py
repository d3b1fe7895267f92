import json
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from hbg_authentication.models import User
from hbg_contacts import ChatHub, ChatService, router
from hbg_contacts.schemas import ConversationCreate
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
def alice() -> User:
    return make_user(1, "alice")


@pytest.fixture
def bob() -> User:
    return make_user(2, "bob")


@pytest.fixture
def carol() -> User:
    return make_user(3, "carol")


def service_for(db: AsyncSession, user: User) -> ChatService:
    return ChatService(db, user.subject_id, user.username)


@pytest_asyncio.fixture
async def direct(db_session: AsyncSession, alice: User, bob: User):
    conversation, _ = await service_for(db_session, alice).create_conversation(
        ConversationCreate(participant_ids=[bob.subject_id])
    )
    return conversation


@pytest_asyncio.fixture
async def group(db_session: AsyncSession, alice: User, bob: User, carol: User):
    conversation, _ = await service_for(db_session, alice).create_conversation(
        ConversationCreate(
            participant_ids=[bob.subject_id, carol.subject_id], title="Design team"
        )
    )
    return conversation


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


async def connect(hub: ChatHub, connection_id: str, user: User) -> ClientConnection:
    """Register the connection and run the hub's connect hook, like the endpoint does."""
    connection = ClientConnection(
        id=connection_id,
        websocket=FakeSocket(),  # ty:ignore[invalid-argument-type]
        user=user,
    )
    await hub.manager.connect(connection)
    await hub.on_connected(connection)
    return connection


async def disconnect(hub: ChatHub, connection: ClientConnection) -> None:
    await hub.on_disconnected(connection)
    hub.manager.disconnect(connection.id)


def build_app(current_user: User, hub: ChatHub | None = None) -> FastAPI:
    app = FastAPI()
    if hub is not None:
        app.state.contacts_hub = hub

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
async def alice_client(db_session, alice) -> AsyncGenerator[AsyncClient, None]:  # noqa: ARG001
    transport = ASGITransport(app=build_app(alice))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def carol_client(db_session, carol) -> AsyncGenerator[AsyncClient, None]:  # noqa: ARG001
    transport = ASGITransport(app=build_app(carol))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
