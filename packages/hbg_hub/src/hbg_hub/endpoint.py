import logging
import uuid

from fastapi import WebSocket, WebSocketDisconnect, status
from hbg_core.exceptions import AuthenticationFailedException

from .hub import Hub
from .manager import ClientConnection
from .protocol import RECEIVE_ERROR_EVENT, ErrorInfo, event_message

logger = logging.getLogger(__name__)


def hub_endpoint(hub: Hub):
    """
    Build the WebSocket route handler serving `hub`.

    The user comes from `TokenAuthenticationMiddleware`. Anonymous sockets get
    one `ReceiveError` event and are closed with 1008 (policy violation).

    Examples:
        >>> app.add_api_websocket_route("/hub/proj", hub_endpoint(project_hub))
    """

    async def endpoint(websocket: WebSocket) -> None:
        await websocket.accept()

        user = getattr(websocket.state, "user", None)
        if user is None or not user.is_authenticated:
            error = AuthenticationFailedException("Authentication required")
            await websocket.send_json(
                event_message(
                    RECEIVE_ERROR_EVENT,
                    ErrorInfo(
                        type=error.error_type,
                        message=error.message,
                        status=error.status_code,
                    ).model_dump(),
                )
            )
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        connection = ClientConnection(id=uuid.uuid4().hex, websocket=websocket, user=user)
        await hub.manager.connect(connection)
        logger.info("User %s connected to hub %s", connection.user_id, hub.name)
        try:
            await hub.on_connected(connection)
            while True:
                raw = await websocket.receive_text()
                await hub.dispatch(connection, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await hub.on_disconnected(connection)
            hub.manager.disconnect(connection.id)
            logger.info("User %s disconnected from hub %s", connection.user_id, hub.name)

    return endpoint
