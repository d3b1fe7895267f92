from .dependencies import (
    auth_required,
    check_object_permissions,
    permission_dependency,
)
from .permissions import BasePermission, IsAuthenticated, IsOwner

__all__ = [
    "BasePermission",
    "IsAuthenticated",
    "IsOwner",
    "auth_required",
    "check_object_permissions",
    "permission_dependency",
]
