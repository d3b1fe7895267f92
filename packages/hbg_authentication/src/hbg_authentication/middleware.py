import logging
from typing import Any, Awaitable, Callable, Final

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp

from .backend import TokenAuthenticationBackend
from .schemas import AnonymousUser

logger = logging.getLogger(__name__)

ACCESS_TOKEN_QUERY_PARAM = "access_token"


def extract_token(conn: HTTPConnection) -> str:
    """Read the bearer token from the Authorization header or, for hubs, the query."""
    header = conn.headers.get("authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    if conn.scope["type"] == "websocket" or conn.url.path.startswith("/hub"):
        return conn.query_params.get(ACCESS_TOKEN_QUERY_PARAM, "")
    return ""


class TokenAuthenticationMiddleware:
    """
    Resolve the bearer token of every HTTP request and WebSocket connection.

    The result lands on ``state.user`` (an `AnonymousUser` when the token is
    missing or invalid) and ``state.auth`` (the `AccessToken` row).
    """

    def __init__(
        self,
        app: ASGIApp,
        session_maker: async_sessionmaker[AsyncSession],
        backend: TokenAuthenticationBackend | None = None,
    ):
        self.app: Final[ASGIApp] = app
        self.backend: Final[TokenAuthenticationBackend] = (
            backend or TokenAuthenticationBackend()
        )
        self.session_maker: Final[async_sessionmaker[AsyncSession]] = session_maker

    async def __call__(
        self,
        scope: dict[str, Any],
        receive: Callable[[], Awaitable[Any]],
        send,
    ) -> Any:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return None
        conn = HTTPConnection(scope)

        conn.state.user = AnonymousUser()
        conn.state.auth = None

        token = extract_token(conn)
        if token:
            try:
                async with self.session_maker() as db:
                    result = await self.backend.authenticate(db, token)

                    if result.success:
                        db.expunge(result.user)
                        conn.state.user = result.user
                        conn.state.auth = result.extra.get("token")
                    else:
                        logger.debug(
                            "Authentication failed for token ending in ...%s: %s",
                            token[-4:],
                            result.message,
                        )
            except Exception:
                logger.exception(
                    "Authentication middleware encountered an unexpected error"
                )

        return await self.app(scope, receive, send)
