import json
import logging
import uuid
from typing import Dict, Iterable

from fastapi import WebSocket

from .schemas import Outbound

logger = logging.getLogger(__name__)


# WebSocket connection registry, keyed by endpoint id
class ConnectionManager:
    def __init__(self):
        self.active_connections: Dict[str, WebSocket] = {}

    def __len__(self):
        return len(self.active_connections)

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        endpoint_id = uuid.uuid4().hex
        self.active_connections[endpoint_id] = websocket
        logger.info(f"Endpoint {endpoint_id} connected")
        return endpoint_id

    def disconnect(self, endpoint_id: str):
        if endpoint_id in self.active_connections:
            del self.active_connections[endpoint_id]
            logger.info(f"Endpoint {endpoint_id} disconnected")

    async def send_personal_message(self, message: dict, endpoint_id: str):
        websocket = self.active_connections.get(endpoint_id)
        if websocket is None:
            logger.debug(f"No connection for {endpoint_id}, dropping {message.get('type')}")
            return
        try:
            await websocket.send_text(json.dumps(message))
        except Exception as e:
            logger.error(f"Failed to send message to endpoint {endpoint_id}: {e}")
            self.disconnect(endpoint_id)

    async def deliver(self, outbound: Iterable[Outbound]):
        for item in outbound:
            await self.send_personal_message({"type": item.event, "data": item.data}, item.target)
