from .endpoint import hub_endpoint
from .entities import CrudAction, CrudHub, EntityHandler
from .exceptions import HubMethodNotFound, InvalidMessage
from .hub import Hub, HubContext, hub_method
from .manager import ClientConnection, ConnectionManager, user_group
from .protocol import RECEIVE_ERROR_EVENT, Invocation

__all__ = [
    "RECEIVE_ERROR_EVENT",
    "ClientConnection",
    "ConnectionManager",
    "CrudAction",
    "CrudHub",
    "EntityHandler",
    "Hub",
    "HubContext",
    "HubMethodNotFound",
    "InvalidMessage",
    "Invocation",
    "hub_endpoint",
    "hub_method",
    "user_group",
]
