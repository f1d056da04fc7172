# unisocial/common/websocket.py

import json
import logging
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Presence registry and best-effort fan-out.

    The transport (the /ws endpoint) owns connect/disconnect; everything else
    only looks connections up or asks for a notification to be delivered.
    """

    def __init__(self):
        # user_id -> the user's live WebSocket; one connection per user
        self.active_connections: Dict[int, WebSocket] = {}

    async def connect(self, user_id: int, websocket: WebSocket):
        # accept() is done by the endpoint; a newer connection replaces an older one
        self.active_connections[user_id] = websocket
        logger.info("User %s connected (%d online)", user_id, len(self.active_connections))

    def disconnect(self, user_id: int, websocket: Optional[WebSocket] = None):
        current = self.active_connections.get(user_id)
        if current is None:
            return
        if websocket is not None and current is not websocket:
            # an older socket closing after a reconnect
            return
        del self.active_connections[user_id]
        logger.info("User %s disconnected (%d online)", user_id, len(self.active_connections))

    def get_connection(self, user_id: int) -> Optional[WebSocket]:
        return self.active_connections.get(user_id)

    def is_online(self, user_id: int) -> bool:
        return user_id in self.active_connections

    def get_online_ids(self) -> List[int]:
        return list(self.active_connections.keys())

    async def notify(self, user_id: int, event: str, payload: Dict[str, Any]) -> bool:
        """
        Push ``{"event", "data"}`` to the user's live connection.

        Returns True if the message was handed to the socket. Never raises:
        offline users are skipped, send failures are logged and the dead
        connection is dropped. No retry.
        """
        websocket = self.get_connection(user_id)
        if websocket is None:
            logger.debug("Skipping %s for offline user %s", event, user_id)
            return False

        message = json.dumps({"event": event, "data": payload}, default=str)
        try:
            await websocket.send_text(message)
        except Exception as e:
            logger.warning("Failed to deliver %s to user %s: %s", event, user_id, e)
            self.disconnect(user_id, websocket)
            return False
        return True


manager = ConnectionManager()
