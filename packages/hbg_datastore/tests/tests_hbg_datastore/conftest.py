import json
from itertools import count
from typing import Any

import pytest
import pytest_asyncio
from hbg_authentication.models import User
from hbg_core.exceptions import AccessDeniedException, NotFoundException
from hbg_datastore import HubClientBase
from hbg_db import db as db_module
from hbg_hub import ClientConnection, CrudAction, CrudHub, EntityHandler, HubContext

DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class ReceiverHandler(EntityHandler[dict]):
    """Receivers per mailing list kept in memory; list 13 is read-only."""

    entity = "Receiver"

    def __init__(self) -> None:
        self.rows: dict[int, dict[str, Any]] = {}
        self._ids = count(1)

    async def authorize(self, ctx: HubContext, subject_id: Any, action: CrudAction) -> None:
        if subject_id == 13 and action != CrudAction.LOAD:
            raise AccessDeniedException("Unauthorized access to the project")

    async def load(self, ctx, subject_id):
        return [row for row in self.rows.values() if row["list"] == subject_id]

    async def insert(self, ctx, values, subject_id):
        row = {"id": next(self._ids), "list": subject_id, **values}
        self.rows[row["id"]] = row
        return row

    async def update(self, ctx, key, values, subject_id):
        if key not in self.rows:
            raise NotFoundException(f"Receiver with key {key} not found in the project {subject_id}")
        self.rows[key].update(values)
        return self.rows[key]

    async def remove(self, ctx, key, subject_id):
        self.rows.pop(key, None)


class LoopbackSocket:
    """Server side of a loopback connection: frames go straight to the client."""

    def __init__(self, client: "LoopbackHubClient") -> None:
        self.client = client

    async def send_json(self, payload: dict[str, Any]) -> None:
        await self.client.handle_message(payload)


class LoopbackHubClient(HubClientBase):
    """Hub client wired to an in-process hub instead of a WebSocket."""

    def __init__(self, hub: CrudHub, connection_id: str, user: User) -> None:
        super().__init__()
        self.hub = hub
        self.sent: list[dict[str, Any]] = []
        self.connection = ClientConnection(
            id=connection_id,
            websocket=LoopbackSocket(self),  # ty:ignore[invalid-argument-type]
            user=user,
        )

    async def _send_frame(self, frame: dict[str, Any]) -> None:
        self.sent.append(frame)
        await self.hub.dispatch(self.connection, json.dumps(frame))


def make_user(user_id: int, username: str) -> User:
    return User(id=user_id, username=username, is_active=True, is_staff=False)


@pytest.fixture
def session_factory():
    db_module.init_db(DATABASE_URL, echo=False)
    return db_module.get_session_factory()


@pytest.fixture
def handler() -> ReceiverHandler:
    return ReceiverHandler()


@pytest_asyncio.fixture
async def hub(session_factory, handler):
    return CrudHub(session_factory, handlers=[handler])


@pytest_asyncio.fixture
async def clients(hub):
    alice = LoopbackHubClient(hub, "alice", make_user(1, "alice"))
    bob = LoopbackHubClient(hub, "bob", make_user(2, "bob"))
    for client in (alice, bob):
        await hub.manager.connect(client.connection)
    return alice, bob
