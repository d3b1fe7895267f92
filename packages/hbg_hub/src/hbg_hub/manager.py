import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from fastapi.websockets import WebSocket
from hbg_authentication.models import User

from .protocol import event_message

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ClientConnection:
    """A connected hub client and the groups it belongs to."""

    id: str
    websocket: WebSocket
    user: User
    groups: set[str] = field(default_factory=set)

    @property
    def user_id(self) -> str:
        return self.user.subject_id

    async def send_json(self, payload: dict[str, Any]) -> None:
        await self.websocket.send_json(payload)


def user_group(user_id: str) -> str:
    return f"user:{user_id}"


class ConnectionManager:
    """
    Registry of the live connections of one hub and their groups.

    Everything runs on the event loop thread, so the registry is plain
    dicts and sets. A connection that fails while being sent to is dropped
    and the fan-out continues with the others.

    Examples:
        >>> manager = ConnectionManager()
        >>> await manager.connect(connection)
        >>> manager.add_to_group(connection.id, "project:3")
        >>> await manager.send_to_group("project:3", "addedPlan", {"id": 1})
    """

    def __init__(self) -> None:
        self._connections: dict[str, ClientConnection] = {}
        self._groups: dict[str, set[str]] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def get(self, connection_id: str) -> ClientConnection | None:
        return self._connections.get(connection_id)

    def group_members(self, group: str) -> set[str]:
        return set(self._groups.get(group, ()))

    async def connect(self, connection: ClientConnection) -> None:
        self._connections[connection.id] = connection
        self.add_to_group(connection.id, user_group(connection.user_id))
        logger.debug("Connection %s opened for user %s", connection.id, connection.user_id)

    def disconnect(self, connection_id: str) -> None:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return
        for group in list(connection.groups):
            self._discard_member(group, connection_id)
        connection.groups.clear()
        logger.debug("Connection %s closed", connection_id)

    def add_to_group(self, connection_id: str, group: str) -> None:
        connection = self._connections.get(connection_id)
        if connection is None:
            return
        self._groups.setdefault(group, set()).add(connection_id)
        connection.groups.add(group)

    def remove_from_group(self, connection_id: str, group: str) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.groups.discard(group)
        self._discard_member(group, connection_id)

    def _discard_member(self, group: str, connection_id: str) -> None:
        members = self._groups.get(group)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._groups[group]

    async def send_to_connection(self, connection_id: str, event: str, *args: Any) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            return False
        return await self._safe_send(connection, event_message(event, *args))

    async def send_to_group(
        self,
        group: str,
        event: str,
        *args: Any,
        exclude: str | Iterable[str] | None = None,
    ) -> int:
        """Push an event to every member of `group`; returns how many received it."""
        if isinstance(exclude, str):
            excluded = {exclude}
        else:
            excluded = set(exclude or ())
        payload = event_message(event, *args)
        delivered = 0
        for connection_id in list(self._groups.get(group, ())):
            if connection_id in excluded:
                continue
            connection = self._connections.get(connection_id)
            if connection is not None and await self._safe_send(connection, payload):
                delivered += 1
        return delivered

    async def send_to_user(self, user_id: str, event: str, *args: Any) -> int:
        return await self.send_to_group(user_group(user_id), event, *args)

    async def send_payload(self, connection: ClientConnection, payload: dict[str, Any]) -> bool:
        return await self._safe_send(connection, payload)

    async def _safe_send(self, connection: ClientConnection, payload: dict[str, Any]) -> bool:
        try:
            await connection.send_json(payload)
        except Exception:
            logger.exception("Dropping connection %s after a failed send", connection.id)
            self.disconnect(connection.id)
            return False
        return True
