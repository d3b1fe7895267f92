import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Literal, Optional

from pydantic import BaseModel

logger = logging.getLogger(__name__)

ChangeType = Literal["insert", "update", "remove"]


class PushChange(BaseModel):
    """One change a store reports to its subscribers."""

    type: ChangeType
    key: Any = None
    data: Optional[dict[str, Any]] = None
    index: Optional[int] = None


PushCallback = Callable[[list[PushChange]], Awaitable[None] | None]


class DataStoreError(Exception):
    """A store operation could not be carried out."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class DataStore(ABC):
    """
    Load/insert/update/remove over some backend, keyed by `key`.

    Changes made by other clients arrive through `on_push` subscriptions.

    Examples:
        >>> store = RestDataStore(client, RestUrls(load_url="/api/receivers"))
        >>> unsubscribe = store.on_push(print)
        >>> await store.load(skip=0, take=20)
    """

    def __init__(self, key: str = "id"):
        self.key = key
        self._push_callbacks: list[PushCallback] = []

    @abstractmethod
    async def load(self, **options: Any) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def insert(self, values: dict[str, Any]) -> dict[str, Any]: ...

    @abstractmethod
    async def update(self, key: Any, values: dict[str, Any]) -> None: ...

    @abstractmethod
    async def remove(self, key: Any) -> None: ...

    def key_of(self, item: dict[str, Any]) -> Any:
        return item.get(self.key)

    def on_push(self, callback: PushCallback) -> Callable[[], None]:
        """Subscribe to pushed changes; returns the unsubscribe function."""
        self._push_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._push_callbacks:
                self._push_callbacks.remove(callback)

        return unsubscribe

    async def push(self, changes: list[PushChange]) -> None:
        if not changes:
            return
        for callback in list(self._push_callbacks):
            result = callback(changes)
            if inspect.isawaitable(result):
                await result
