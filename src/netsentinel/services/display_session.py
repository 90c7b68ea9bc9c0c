import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import WebSocket

from netsentinel.schemas.kiosk import KioskStateSnapshot

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DisplaySession:
    """Tracks a single connected display client."""

    client_id: str
    websocket: WebSocket
    connected_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)

    def update_activity(self) -> None:
        self.last_activity = _utcnow()


class DisplayConnectionManager:
    """Manages WebSocket connections of kiosk displays and fans out state."""

    def __init__(self):
        self.active_connections: Dict[str, DisplaySession] = {}

    async def connect(self, websocket: WebSocket, client_id: str) -> DisplaySession:
        """Accept a new WebSocket connection and create a session."""
        await websocket.accept()
        session = DisplaySession(client_id=client_id, websocket=websocket)
        self.active_connections[client_id] = session
        logger.info(f"Display connected: {client_id}")
        return session

    def disconnect(self, client_id: str) -> None:
        if self.active_connections.pop(client_id, None) is not None:
            logger.info(f"Display disconnected: {client_id}")

    async def send_message(self, client_id: str, message: dict[str, Any]) -> None:
        """Send a JSON message to one display; drop it if the socket is gone."""
        session = self.active_connections.get(client_id)
        if session is None:
            return
        try:
            await session.websocket.send_json(message)
        except Exception as e:
            logger.warning(f"Error sending to display {client_id}: {e}")
            self.disconnect(client_id)

    async def broadcast(self, message: dict[str, Any]) -> None:
        clients = list(self.active_connections.keys())
        logger.debug(f"Broadcasting {message.get('type')} to {len(clients)} display(s)")
        for client_id in clients:
            await self.send_message(client_id, message)

    async def publish_state(self, snapshot: KioskStateSnapshot) -> None:
        """Controller listener: push the latest kiosk state to every display."""
        await self.broadcast(state_message(snapshot))


def state_message(snapshot: KioskStateSnapshot) -> dict[str, Any]:
    return {"type": "kiosk_state", "state": snapshot.model_dump(mode="json")}


__all__ = ["DisplayConnectionManager", "DisplaySession", "state_message"]
