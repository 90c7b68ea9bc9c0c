import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from netsentinel.services.display_session import DisplayConnectionManager, state_message
from netsentinel.services.kiosk_controller import KioskController

router = APIRouter(prefix="/api/kiosk", tags=["Kiosk Display"])
logger = logging.getLogger(__name__)


@router.websocket("/ws")
async def display_endpoint(websocket: WebSocket, client_id: str | None = None):
    """Stream kiosk state to a display and accept its wake taps."""
    controller: KioskController = websocket.app.state.kiosk_controller
    manager: DisplayConnectionManager = websocket.app.state.display_manager
    client_id = client_id or f"display-{uuid.uuid4().hex[:8]}"

    session = await manager.connect(websocket, client_id)
    await manager.send_message(client_id, state_message(controller.snapshot()))

    try:
        while True:
            message = await websocket.receive_json()
            session.update_activity()
            msg_type = message.get("type") if isinstance(message, dict) else None

            if msg_type == "wake":
                await controller.wake_screen()
            elif msg_type == "ping":
                await manager.send_message(client_id, {"type": "pong"})
            elif msg_type == "get_state":
                await manager.send_message(client_id, state_message(controller.snapshot()))
            else:
                logger.debug(f"Ignoring display message from {client_id}: {msg_type!r}")
    except WebSocketDisconnect:
        logger.debug(f"Display {client_id} closed the connection")
    finally:
        manager.disconnect(client_id)
