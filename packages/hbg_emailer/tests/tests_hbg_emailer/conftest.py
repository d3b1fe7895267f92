import json
from dataclasses import dataclass
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI, Request
from hbg_authentication.models import User
from hbg_core.exceptions import HbgError
from hbg_db import db as db_module
from hbg_db.models import Model
from hbg_emailer import (
    Distribution,
    DistributionWorker,
    Email,
    EmailerHub,
    EmailStatus,
    Receiver,
    Sender,
    Template,
    routers,
)
from hbg_hub import ClientConnection, ConnectionManager
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


@dataclass
class Campaign:
    sender_id: int
    template_id: int
    distribution_id: int
    receiver_ids: list[int]
    email_ids: list[int]


@pytest_asyncio.fixture
async def campaign(db_session: AsyncSession, owner: User) -> Campaign:
    """A distribution of the owner with three receivers, none of them sent yet."""
    sender = Sender(
        user_id=owner.subject_id,
        name="Newsletter",
        address="news@example.com",
        server_address="smtp.example.com",
        passcode="secret",
    )
    template = Template(user_id=owner.subject_id, name="Welcome", content="<p>Hello</p>")
    receivers = [
        Receiver(user_id=owner.subject_id, name=name, address=f"{name.lower()}@example.com")
        for name in ("Alice", "Bob", "Carol")
    ]
    distribution = Distribution(
        sender=sender, template=template, name="October", subject="News of October"
    )
    distribution.emails = [Email(receiver=r, status=EmailStatus.NONE) for r in receivers]
    db_session.add(distribution)
    await db_session.commit()
    return Campaign(
        sender_id=sender.id,
        template_id=template.id,
        distribution_id=distribution.id,
        receiver_ids=[r.id for r in receivers],
        email_ids=[e.id for e in distribution.emails],
    )


class FakeMailer:
    """Records messages instead of talking to an SMTP server."""

    def __init__(self, fail_for: str | None = None, fail_on_enter: bool = False) -> None:
        self.fail_for = fail_for
        self.fail_on_enter = fail_on_enter
        self.senders: list[Sender] = []
        self.sent: list[Any] = []
        self.closed = 0

    def __call__(self, sender: Sender) -> "FakeMailer":
        self.senders.append(sender)
        return self

    async def __aenter__(self) -> "FakeMailer":
        if self.fail_on_enter:
            raise ConnectionRefusedError("smtp.example.com refused the connection")
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.closed += 1

    async def send(self, message: Any) -> None:
        if self.fail_for and self.fail_for in message["To"]:
            raise RuntimeError(f"550 mailbox unavailable: {message['To']}")
        self.sent.append(message)

    @property
    def recipients(self) -> list[str]:
        return [m["To"] for m in self.sent]


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def manager() -> ConnectionManager:
    return ConnectionManager()


@pytest_asyncio.fixture
async def worker(init_test_db, manager, mailer) -> DistributionWorker:  # noqa: ARG001
    return DistributionWorker(db_module.get_session_factory(), manager, mailer_factory=mailer)


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
async def hub(init_test_db, manager) -> EmailerHub:  # noqa: ARG001
    return EmailerHub(db_module.get_session_factory(), manager)


async def connect(hub: EmailerHub, connection_id: str, user: User) -> ClientConnection:
    connection = ClientConnection(
        id=connection_id,
        websocket=FakeSocket(),  # ty:ignore[invalid-argument-type]
        user=user,
    )
    await hub.manager.connect(connection)
    return connection


def build_app(current_user: User, worker: DistributionWorker) -> FastAPI:
    app = FastAPI()
    app.state.distribution_worker = worker

    @app.middleware("http")
    async def inject_user(request: Request, call_next):
        request.state.user = current_user
        return await call_next(request)

    @app.exception_handler(HbgError)
    async def _hbg_error(_request: Request, exc: HbgError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    for router in routers:
        app.include_router(router)
    return app


@pytest_asyncio.fixture
async def owner_client(db_session, owner, worker) -> AsyncGenerator[AsyncClient, None]:  # noqa: ARG001
    transport = ASGITransport(app=build_app(owner, worker))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest_asyncio.fixture
async def stranger_client(db_session, stranger, worker) -> AsyncGenerator[AsyncClient, None]:  # noqa: ARG001
    transport = ASGITransport(app=build_app(stranger, worker))
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
