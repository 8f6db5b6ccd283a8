"""Real-time scan feed for the admin dashboard.

Browsers cannot set an Authorization header on a WebSocket handshake, so the
admin bearer token is passed as the ``token`` query parameter.
"""

import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

from app.api.deps import Notifier, authenticate_admin_token
from app.core.errors import APIException

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/scans")
async def scan_feed(
    websocket: WebSocket,
    notifier: Notifier,
    token: str | None = Query(None),
):
    """
    Push ``student:scanned`` / ``artist:scanned`` events to an admin client.

    The server only sends; anything the client sends is read and ignored so
    disconnects are noticed.
    """
    try:
        admin = authenticate_admin_token(token)
    except APIException:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await notifier.connect(websocket, admin=admin)
    try:
        await websocket.send_json({"event": "admin:connected", "data": {"admin": admin}})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Scan feed client disconnected: {admin}")
    finally:
        await notifier.disconnect(websocket)
