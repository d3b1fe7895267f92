from .config import HbgSettings, get_settings, hbg_settings
from .exceptions import (
    AccessDeniedException,
    AuthenticationFailedException,
    HbgError,
    NotFoundException,
    ValidationFailedException,
)
from .schemas.parameter import LoadOptions
from .schemas.response import LoadResult

__all__ = [
    "AccessDeniedException",
    "AuthenticationFailedException",
    "HbgError",
    "HbgSettings",
    "LoadOptions",
    "LoadResult",
    "NotFoundException",
    "ValidationFailedException",
    "get_settings",
    "hbg_settings",
]
