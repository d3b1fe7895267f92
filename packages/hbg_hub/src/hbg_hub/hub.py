import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from hbg_authentication.models import User
from hbg_core.exceptions import HbgError, ValidationFailedException
from hbg_core.logging import scoped_correlation_id
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .exceptions import HubMethodNotFound, InvalidMessage
from .manager import ClientConnection, ConnectionManager, user_group
from .protocol import (
    RECEIVE_ERROR_EVENT,
    SERVER_ERROR_TYPE,
    ErrorInfo,
    completion_message,
    error_completion_message,
    event_message,
    parse_invocation,
    peek_invocation_id,
)

logger = logging.getLogger(__name__)

HubHandler = Callable[..., Awaitable[Any]]


@dataclass
class HubContext:
    """What a hub method sees of the invocation it serves."""

    hub: "Hub"
    connection: ClientConnection
    db: AsyncSession

    @property
    def user(self) -> User:
        return self.connection.user

    @property
    def user_id(self) -> str:
        return self.connection.user_id

    @property
    def connection_id(self) -> str:
        return self.connection.id

    @property
    def manager(self) -> ConnectionManager:
        return self.hub.manager

    async def reply(self, event: str, *args: Any) -> bool:
        """Push an event to the calling connection only."""
        return await self.manager.send_to_connection(self.connection_id, event, *args)

    async def send_to_user(self, event: str, *args: Any) -> int:
        """Push an event to every connection of the calling user."""
        return await self.manager.send_to_group(user_group(self.user_id), event, *args)


def hub_method(name: str | None = None):
    """
    Expose a coroutine method as a hub target.

    The target defaults to the method name; matching is case-insensitive.

    Examples:
        >>> class ChatHub(Hub):
        ...     @hub_method("SendChatMessage")
        ...     async def send_chat_message(self, ctx, project_id, message):
        ...         ...
    """

    def decorator(func: HubHandler) -> HubHandler:
        func.__hub_target__ = name or func.__name__  # type: ignore[attr-defined]
        return func

    return decorator


class Hub:
    """
    RPC endpoint over one WebSocket route.

    Each invocation runs with its own `AsyncSession` under the connection id
    as correlation id. Results go back in a completion; `HbgError`s keep their
    status, anything else is reported as a 500 `ServerError`.
    """

    name: str = "hub"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        manager: ConnectionManager | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.manager = manager or ConnectionManager()
        self._methods: dict[str, tuple[str, HubHandler]] = {}
        for attr in dir(type(self)):
            func = getattr(type(self), attr, None)
            target = getattr(func, "__hub_target__", None)
            if target:
                self.register(target, getattr(self, attr))

    @property
    def targets(self) -> list[str]:
        return sorted(target for target, _ in self._methods.values())

    def register(self, target: str, handler: HubHandler) -> None:
        """Register `handler(ctx, *arguments)` under `target`."""
        key = target.lower()
        if key in self._methods:
            msg = f"Hub method '{target}' is already registered on {self.name}"
            raise ValueError(msg)
        self._methods[key] = (target, handler)

    async def on_connected(self, connection: ClientConnection) -> None:  # noqa: ARG002
        """Hook run after the connection joined its user group."""
        return None

    async def on_disconnected(self, connection: ClientConnection) -> None:  # noqa: ARG002
        return None

    async def dispatch(self, connection: ClientConnection, raw: str | bytes) -> None:
        """Run one incoming frame and answer it."""
        with scoped_correlation_id(connection.id):
            try:
                invocation = parse_invocation(raw)
            except InvalidMessage as e:
                await self._send_error(
                    connection, peek_invocation_id(raw), e, always_complete=True
                )
                return

            try:
                result = await self.invoke(connection, invocation.target, invocation.arguments)
            except Exception as e:
                await self._send_error(connection, invocation.id, e, target=invocation.target)
                return

            if invocation.expects_completion:
                await self.manager.send_payload(
                    connection, completion_message(invocation.id, result)
                )

    async def invoke(
        self, connection: ClientConnection, target: str, arguments: list[Any]
    ) -> Any:
        entry = self._methods.get(target.lower())
        if entry is None:
            msg = f"Method '{target}' does not exist on hub '{self.name}'"
            raise HubMethodNotFound(msg)
        _, handler = entry

        async with self.session_factory() as db:
            ctx = HubContext(hub=self, connection=connection, db=db)
            try:
                inspect.signature(handler).bind(ctx, *arguments)
            except TypeError as e:
                msg = f"Invalid arguments for '{target}': {e}"
                raise ValidationFailedException(msg) from e
            try:
                return await handler(ctx, *arguments)
            except ValidationError as e:
                raise ValidationFailedException(str(e)) from e

    async def _send_error(
        self,
        connection: ClientConnection,
        invocation_id: str | None,
        exc: Exception,
        *,
        target: str | None = None,
        always_complete: bool = False,
    ) -> None:
        if isinstance(exc, HbgError):
            error = ErrorInfo(type=exc.error_type, message=exc.message, status=exc.status_code)
            logger.info("Hub %s call %s failed: %s", self.name, target, exc.message)
        else:
            logger.exception("Hub %s call %s raised an unexpected error", self.name, target)
            error = ErrorInfo(
                type=SERVER_ERROR_TYPE,
                message="An unexpected error occurred",
                status=500,
            )

        if invocation_id is not None or always_complete:
            payload = error_completion_message(invocation_id, error)
        else:
            payload = event_message(RECEIVE_ERROR_EVENT, error.model_dump())
        await self.manager.send_payload(connection, payload)
