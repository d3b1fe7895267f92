from fastapi import Depends
from hbg_authentication import AnonymousUser, User
from hbg_authentication.dependencies import get_current_user
from hbg_core.exceptions import AccessDeniedException, AuthenticationFailedException
from starlette.requests import HTTPConnection

from .permissions import BasePermission, IsAuthenticated


def handle_permission_denied(
    user: User | AnonymousUser, permission: BasePermission
) -> None:
    """Anonymous callers get 401, authenticated ones 403."""
    if not user.is_authenticated:
        raise AuthenticationFailedException(permission.message)
    raise AccessDeniedException(permission.message)


async def check_object_permissions(
    conn: HTTPConnection,
    obj: object,
    user: User | AnonymousUser,
    permissions: list[BasePermission],
) -> None:
    for permission in permissions:
        if not await permission.has_object_permission(conn, obj, user):
            handle_permission_denied(user, permission)


def permission_dependency(permissions: list[BasePermission]):
    """FastAPI dependency factory for checking permissions.

    Args:
        permissions (list[BasePermission]): A list of permissions to check.

    Returns the current user when every permission passes.
    """

    async def permission_dependency_factory(
        conn: HTTPConnection, user: User | AnonymousUser = Depends(get_current_user)
    ):
        for permission in permissions:
            if not await permission.has_permission(conn, user):
                handle_permission_denied(user, permission)
        return user

    return permission_dependency_factory


auth_required = permission_dependency([IsAuthenticated()])
