"""WebSocket connection manager for live notification updates."""
import asyncio
import json
import logging
from typing import Dict, Set, Any

from fastapi import WebSocket

from ..domain import QueueEntry
from ..utils.time_utils import utc_now

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks each user's open WebSockets and pushes dispatch results to them."""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket):
        """Accept a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self.active_connections.setdefault(user_id, set()).add(websocket)
        logger.info(f"WebSocket connected for {user_id}. Total connections: {self.connection_count}")

    async def disconnect(self, user_id: str, websocket: WebSocket):
        """Remove a disconnected WebSocket."""
        async with self._lock:
            connections = self.active_connections.get(user_id)
            if connections is not None:
                connections.discard(websocket)
                if not connections:
                    del self.active_connections[user_id]
        logger.info(f"WebSocket disconnected for {user_id}. Total connections: {self.connection_count}")

    async def send_to_user(self, user_id: str, message: Dict[str, Any]):
        """Send a message to every connection of one user."""
        async with self._lock:
            connections = list(self.active_connections.get(user_id, ()))

        if not connections:
            return

        message_json = json.dumps(message, default=str)

        # Send to all connections, removing any that fail
        disconnected = []
        for websocket in connections:
            try:
                await websocket.send_text(message_json)
            except Exception as e:
                logger.debug(f"Failed to send to WebSocket: {e}")
                disconnected.append(websocket)

        if disconnected:
            async with self._lock:
                user_connections = self.active_connections.get(user_id, set())
                for ws in disconnected:
                    user_connections.discard(ws)
                if not user_connections:
                    self.active_connections.pop(user_id, None)

    async def broadcast_dispatch_result(self, entry: QueueEntry, result: Dict[str, Any]):
        """Dispatcher listener: tell the entry's owner a notification went out."""
        await self.send_to_user(entry.user_id, {
            "type": "notification_dispatched",
            "notification_type": entry.notification_type,
            "medicine_id": entry.medicine_id,
            "scheduled_datetime": entry.scheduled_datetime.isoformat(),
            "result": result,
            "dispatched_at": utc_now().isoformat(),
        })

    @property
    def connection_count(self) -> int:
        """Return the number of active connections."""
        return sum(len(connections) for connections in self.active_connections.values())


# Global instance
websocket_manager = ConnectionManager()
