import logging
from typing import Any

from .base import DataStore, PushChange
from .connection import HubConnection

logger = logging.getLogger(__name__)


class HubDataStore(DataStore):
    """
    DataStore over the CRUD targets of a hub entity.

    Every call carries `subject_id`; loading joins the subject group so that
    `added`, `updated` and `removed` pushes of other clients reach `on_push`.

    Examples:
        >>> plans = HubDataStore(connection, "Plan", subject_id=3)
        >>> await plans.insert({"name": "Ground floor"})
    """

    def __init__(
        self,
        connection: HubConnection,
        entity: str,
        key: str = "id",
        subject_id: Any = None,
    ):
        super().__init__(key)
        self.connection = connection
        self.entity = entity
        self.subject_id = subject_id
        self._handlers = {
            f"loaded{entity}": self._on_loaded,
            f"added{entity}": self._on_added,
            f"updated{entity}": self._on_updated,
            f"removed{entity}": self._on_removed,
        }
        for event, handler in self._handlers.items():
            connection.on(event, handler)

    def close(self) -> None:
        """Stop listening to the entity's pushes."""
        for event, handler in self._handlers.items():
            self.connection.off(event, handler)

    async def load(self, **options: Any) -> list[dict[str, Any]]:  # noqa: ARG002
        return list(await self.connection.invoke(f"load{self.entity}", self.subject_id) or [])

    async def insert(self, values: dict[str, Any]) -> dict[str, Any]:
        return await self.connection.invoke(f"insert{self.entity}", values, self.subject_id)

    async def update(self, key: Any, values: dict[str, Any]) -> None:
        await self.connection.invoke(f"update{self.entity}", key, values, self.subject_id)

    async def remove(self, key: Any) -> None:
        await self.connection.invoke(f"remove{self.entity}", key, self.subject_id)

    # --- Pushes ---

    async def _on_loaded(self, items: list[dict[str, Any]]) -> None:
        await self.push(
            [
                PushChange(type="insert", key=self.key_of(item), data=item, index=0)
                for item in items or []
            ]
        )

    async def _on_added(self, item: dict[str, Any]) -> None:
        await self.push([PushChange(type="insert", key=self.key_of(item), data=item)])

    async def _on_updated(self, key: Any, item: dict[str, Any] | None = None) -> None:
        if key is None and item is not None:
            key = self.key_of(item)
        await self.push([PushChange(type="update", key=key, data=item)])

    async def _on_removed(self, key: Any) -> None:
        await self.push([PushChange(type="remove", key=key)])
