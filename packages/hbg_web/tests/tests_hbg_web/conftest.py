from typing import Any, Iterator

import pytest
from fastapi.testclient import TestClient
from hbg_authentication import User
from hbg_core.config import HbgSettings
from hbg_db import db as db_module
from hbg_web import create_app

PASSWORD = "password123"


class RecordingMailer:
    """Mailer factory that keeps the messages instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[Any] = []

    def __call__(self, sender) -> "RecordingMailer":
        return self

    async def __aenter__(self) -> "RecordingMailer":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        return None

    async def send(self, message: Any) -> None:
        self.sent.append(message)


async def create_user(username: str, email: str) -> None:
    async with db_module.get_session_factory()() as db:
        user = User(username=username, email=email, is_active=True)
        user.set_password(PASSWORD)
        db.add(user)
        await db.commit()


@pytest.fixture
def settings() -> HbgSettings:
    return HbgSettings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        ENABLE_SEEDING=True,
        DEFAULT_SENDER_ADDRESS="noreply@example.com",
        DEFAULT_SENDER_SERVER="smtp.example.com",
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def client(settings, mailer) -> Iterator[TestClient]:
    app = create_app(settings, mailer_factory=mailer)
    with TestClient(app) as test_client:
        test_client.portal.call(create_user, "alice", "alice@example.com")
        test_client.portal.call(create_user, "bob", "bob@example.com")
        yield test_client


def login(client: TestClient, username: str) -> str:
    response = client.post("/api/auth/login", json={"username": username, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


@pytest.fixture
def alice_token(client) -> str:
    return login(client, "alice")


@pytest.fixture
def bob_token(client) -> str:
    return login(client, "bob")


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
