import asyncio
import inspect
import itertools
import json
import logging
from typing import Any, Awaitable, Callable, Protocol

import httpx
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)

EventHandler = Callable[..., Awaitable[None] | None]


class HubInvocationError(Exception):
    """The hub answered an invocation with an error completion."""

    def __init__(self, type: str, message: str, status: int | None = None):  # noqa: A002
        super().__init__(f"{type}: {message}")
        self.type = type
        self.message = message
        self.status = status


class HubConnection(Protocol):
    async def invoke(self, target: str, *args: Any) -> Any: ...

    async def send(self, target: str, *args: Any) -> None: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    def off(self, event: str, handler: EventHandler | None = None) -> None: ...


class HubClientBase:
    """
    Handler registry and completion bookkeeping shared by hub transports.

    Subclasses implement `_send_frame` and feed every received frame to
    `handle_message`.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._pending: dict[str, asyncio.Future[Any]] = {}
        self._ids = itertools.count(1)

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event.lower(), []).append(handler)

    def off(self, event: str, handler: EventHandler | None = None) -> None:
        key = event.lower()
        if handler is None:
            self._handlers.pop(key, None)
            return
        handlers = self._handlers.get(key, [])
        if handler in handlers:
            handlers.remove(handler)

    async def _send_frame(self, frame: dict[str, Any]) -> None:
        raise NotImplementedError

    async def invoke(self, target: str, *args: Any) -> Any:
        invocation_id = str(next(self._ids))
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[invocation_id] = future
        try:
            await self._send_frame(
                {
                    "type": "invocation",
                    "id": invocation_id,
                    "target": target,
                    "arguments": list(args),
                }
            )
            return await future
        finally:
            self._pending.pop(invocation_id, None)

    async def send(self, target: str, *args: Any) -> None:
        """Fire-and-forget invocation; errors come back as `ReceiveError` events."""
        await self._send_frame(
            {"type": "invocation", "id": None, "target": target, "arguments": list(args)}
        )

    async def handle_message(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        if kind == "completion":
            future = self._pending.get(str(message.get("id")))
            if future is None or future.done():
                logger.debug("Completion for unknown invocation %s", message.get("id"))
                return
            error = message.get("error")
            if error:
                future.set_exception(
                    HubInvocationError(
                        error.get("type", "Error"), error.get("message", ""), error.get("status")
                    )
                )
            else:
                future.set_result(message.get("result"))
        elif kind == "event":
            await self._emit(message.get("target", ""), message.get("arguments") or [])
        else:
            logger.warning("Ignoring hub frame of type %r", kind)

    async def _emit(self, event: str, arguments: list[Any]) -> None:
        handlers = list(self._handlers.get(event.lower(), ()))
        if not handlers:
            logger.debug("No handler for hub event %s", event)
        for handler in handlers:
            result = handler(*arguments)
            if inspect.isawaitable(result):
                await result

    def _fail_pending(self, exc: BaseException) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()


class WebSocketHubConnection(HubClientBase):
    """
    Hub client over a `websockets` connection.

    The access token travels as the ``access_token`` query parameter, which
    is where the hub looks for it on WebSocket handshakes.

    Examples:
        >>> async with WebSocketHubConnection("ws://localhost:8000/hub/proj", token) as hub:
        ...     plans = await hub.invoke("loadPlan", 3)
    """

    def __init__(
        self,
        url: str,
        access_token: str | None = None,
        *,
        open_timeout: float = 10.0,
    ) -> None:
        super().__init__()
        ws_url = httpx.URL(url)
        if access_token:
            ws_url = ws_url.copy_merge_params({"access_token": access_token})
        self.url = str(ws_url)
        self.open_timeout = open_timeout
        self._websocket: ClientConnection | None = None
        self._reader: asyncio.Task[None] | None = None

    @property
    def connected(self) -> bool:
        return self._websocket is not None

    async def start(self) -> None:
        if self._websocket is not None:
            return
        self._websocket = await connect(self.url, open_timeout=self.open_timeout)
        self._reader = asyncio.create_task(self._read_loop(), name="hub-reader")
        logger.info("Hub connection to %s opened", self.url.split("?", 1)[0])

    async def stop(self) -> None:
        websocket, self._websocket = self._websocket, None
        if websocket is not None:
            await websocket.close()
        if self._reader is not None:
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None
        self._fail_pending(ConnectionError("Hub connection closed"))

    async def __aenter__(self) -> "WebSocketHubConnection":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def _send_frame(self, frame: dict[str, Any]) -> None:
        if self._websocket is None:
            msg = "Hub connection is not started"
            raise ConnectionError(msg)
        await self._websocket.send(json.dumps(frame))

    async def _read_loop(self) -> None:
        websocket = self._websocket
        if websocket is None:
            return
        try:
            async for raw in websocket:
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.warning("Dropping malformed hub frame")
                    continue
                try:
                    await self.handle_message(message)
                except Exception:
                    logger.exception("Hub event handler failed")
        except ConnectionClosed as e:
            logger.info("Hub connection closed: %s", e)
        finally:
            self._fail_pending(ConnectionError("Hub connection closed"))
