from .db import close_db, create_all, get_db, get_session_factory, init_db
from .exceptions import DoesNotExistError, HbgDBError, MultipleObjectsReturnedError
from .models import Model, TimestampMixin
from .pagination import load_page
from .partial import apply_partial, partial_values
from .transaction import atomic

__all__ = [
    "DoesNotExistError",
    "HbgDBError",
    "Model",
    "MultipleObjectsReturnedError",
    "TimestampMixin",
    "apply_partial",
    "atomic",
    "close_db",
    "create_all",
    "get_db",
    "get_session_factory",
    "init_db",
    "load_page",
    "partial_values",
]
