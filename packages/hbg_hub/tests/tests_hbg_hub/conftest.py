from typing import Any

import pytest
from hbg_authentication.models import User
from hbg_db import db as db_module
from hbg_hub import ClientConnection, ConnectionManager

DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeSocket:
    """Records what the hub sends; optionally fails like a dead peer."""

    def __init__(self, *, broken: bool = False) -> None:
        self.sent: list[dict[str, Any]] = []
        self.broken = broken

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.broken:
            raise ConnectionResetError("peer went away")
        self.sent.append(payload)

    def events(self, target: str | None = None) -> list[dict[str, Any]]:
        return [
            m
            for m in self.sent
            if m["type"] == "event" and (target is None or m["target"] == target)
        ]

    def completions(self) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == "completion"]


def make_user(user_id: int = 1, username: str = "alice") -> User:
    return User(id=user_id, username=username, is_active=True, is_staff=False)


def make_connection(
    connection_id: str, user: User | None = None, *, broken: bool = False
) -> ClientConnection:
    return ClientConnection(
        id=connection_id,
        websocket=FakeSocket(broken=broken),  # ty:ignore[invalid-argument-type]
        user=user or make_user(),
    )


@pytest.fixture
def session_factory():
    db_module.init_db(DATABASE_URL, echo=False)
    return db_module.get_session_factory()


@pytest.fixture
def manager() -> ConnectionManager:
    return ConnectionManager()
