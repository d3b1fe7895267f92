from .backend import TokenAuthenticationBackend
from .dependencies import get_current_user, require_user
from .middleware import TokenAuthenticationMiddleware
from .models import AccessToken, User
from .schemas import AnonymousUser, AuthenticationResult, LoginSchema, TokenResponse, UserSchema

__all__ = [
    "AccessToken",
    "AnonymousUser",
    "AuthenticationResult",
    "TokenAuthenticationBackend",
    "TokenAuthenticationMiddleware",
    "LoginSchema",
    "TokenResponse",
    "User",
    "UserSchema",
    "get_current_user",
    "require_user",
]
