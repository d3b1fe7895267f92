from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from hbg_authentication.models import User
from hbg_authentication.schemas import AnonymousUser
from starlette.requests import HTTPConnection

T = TypeVar("T")


class BasePermission(ABC, Generic[T]):
    """
    A check evaluated before a route or hub method runs.

    `has_permission` sees only the connection and the user; object level checks
    such as project permission rows go through `has_object_permission`.
    """

    message: str = "You do not have permission to perform this action"

    @abstractmethod
    async def has_permission(
        self, conn: HTTPConnection, user: User | AnonymousUser
    ) -> bool:
        raise NotImplementedError

    async def has_object_permission(
        self,
        conn: HTTPConnection,  # noqa: ARG002
        obj: T,  # noqa: ARG002
        user: User | AnonymousUser,  # noqa: ARG002
    ) -> bool:
        return True


class IsAuthenticated(BasePermission[Any]):
    """Allow access only to authenticated, active users."""

    message = "Authentication credentials were not provided"

    async def has_permission(
        self,
        conn: HTTPConnection,  # noqa: ARG002
        user: User | AnonymousUser,
    ) -> bool:
        return bool(user.is_authenticated and user.is_active)


class IsOwner(BasePermission[Any]):
    """Object level check on the `user_id` column of emailer and constructor rows."""

    async def has_permission(
        self,
        conn: HTTPConnection,  # noqa: ARG002
        user: User | AnonymousUser,
    ) -> bool:
        return bool(user.is_authenticated)

    async def has_object_permission(
        self,
        conn: HTTPConnection,  # noqa: ARG002
        obj: Any,
        user: User | AnonymousUser,
    ) -> bool:
        owner = getattr(obj, "user_id", None)
        return owner is not None and owner == user.subject_id


