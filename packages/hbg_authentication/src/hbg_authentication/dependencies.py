from typing import cast

from fastapi import Depends
from hbg_core.exceptions import AuthenticationFailedException
from starlette.requests import HTTPConnection

from .backend import TokenAuthenticationBackend
from .models import User
from .schemas import AnonymousUser


def get_current_user(conn: HTTPConnection) -> User | AnonymousUser:
    """User resolved by `TokenAuthenticationMiddleware` for this request or socket."""
    user = getattr(conn.state, "user", None)
    if user is None:
        return AnonymousUser()
    return cast("User | AnonymousUser", user)


def require_user(
    user: User | AnonymousUser = Depends(get_current_user),
) -> User:
    """Dependency that rejects anonymous callers with 401."""
    if not user.is_authenticated or not user.is_active:
        raise AuthenticationFailedException("Unauthorized")
    return cast("User", user)


def get_auth_backend(conn: HTTPConnection) -> TokenAuthenticationBackend:
    """The app's backend from ``app.state.auth_backend``, or one with default settings."""
    backend = getattr(conn.app.state, "auth_backend", None)
    return backend or TokenAuthenticationBackend()
