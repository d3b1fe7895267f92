from .base import DataStore, DataStoreError, PushCallback, PushChange
from .connection import (
    HubClientBase,
    HubConnection,
    HubInvocationError,
    WebSocketHubConnection,
)
from .hub import HubDataStore
from .rest import RestDataStore, RestUrls

__all__ = [
    "DataStore",
    "DataStoreError",
    "HubClientBase",
    "HubConnection",
    "HubDataStore",
    "HubInvocationError",
    "PushCallback",
    "PushChange",
    "RestDataStore",
    "RestUrls",
    "WebSocketHubConnection",
]
