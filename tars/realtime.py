"""
TARS - Realtime Channel

WebSocket channel for UI layers that want live provider status and shared
analysis results.

Every frame is a JSON object ``{"type": ..., "data": ...}``.

Inbound:
- ``get_provider_status``            -> ``provider_status`` (health snapshot)
- ``analyze_content`` {content, analysisType?}
                                     -> ``analysis_complete`` to the sender and
                                        ``analysis_broadcast`` to everyone else

Outbound on connect: ``welcome`` with the client id and a provider snapshot.
The HTTP format and generate endpoints push ``format_complete`` and
``generate_complete`` to every connected client.
Bad frames get an ``error`` frame; the connection stays open.
"""

import json
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

from .client import TarsClient
from .observability.logging import get_logger


logger = get_logger(__name__)

CONTENT_PREVIEW_CHARS = 100


class RealtimeHub:
    """Tracks connected WebSocket clients and dispatches their messages."""

    def __init__(self):
        self._clients: Dict[str, WebSocket] = {}

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def send(self, websocket: WebSocket, message_type: str, data: Any):
        await websocket.send_json({"type": message_type, "data": data})

    async def broadcast(self, message_type: str, data: Any, exclude: Optional[str] = None):
        """Send to every connected client except ``exclude``."""
        for client_id, websocket in list(self._clients.items()):
            if client_id == exclude:
                continue
            try:
                await self.send(websocket, message_type, data)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug("Dropping unreachable realtime client", client_id=client_id, error=str(e))
                self._clients.pop(client_id, None)

    async def serve(self, websocket: WebSocket, client: TarsClient):
        """Run one connection until the peer disconnects."""
        await websocket.accept()
        client_id = f"ws_{uuid.uuid4().hex[:12]}"
        self._clients[client_id] = websocket
        logger.info("Realtime client connected", client_id=client_id, clients=self.client_count)

        try:
            await self.send(websocket, "welcome", {
                "message": "Connected to TARS realtime channel",
                "timestamp": int(time.time() * 1000),
                "clientId": client_id,
                "providers": client.get_provider_status(),
            })

            while True:
                raw = await websocket.receive_text()
                await self._dispatch(websocket, client_id, client, raw)
        except WebSocketDisconnect:
            pass
        finally:
            self._clients.pop(client_id, None)
            logger.info("Realtime client disconnected", client_id=client_id, clients=self.client_count)

    async def _dispatch(self, websocket: WebSocket, client_id: str, client: TarsClient, raw: str):
        try:
            message = json.loads(raw)
        except ValueError:
            await self.send(websocket, "error", {"message": "Messages must be JSON objects."})
            return

        if not isinstance(message, dict):
            await self.send(websocket, "error", {"message": "Messages must be JSON objects."})
            return

        message_type = message.get("type", "")
        data = message.get("data") or {}

        if message_type == "get_provider_status":
            await self.send(websocket, "provider_status", client.get_provider_status())

        elif message_type == "analyze_content":
            await self._analyze(websocket, client_id, client, data)

        else:
            await self.send(websocket, "error", {"message": f"Unknown message type: {message_type!r}"})

    async def _analyze(self, websocket: WebSocket, client_id: str, client: TarsClient, data: Dict[str, Any]):
        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content, str) or not content.strip():
            await self.send(websocket, "error", {"message": "Content is required and must be a string."})
            return

        result = await client.analyze_content(content, data.get("analysisType") or "general")
        payload = result.to_dict()

        await self.send(websocket, "analysis_complete", payload)
        await self.broadcast(
            "analysis_broadcast",
            {
                **payload,
                "contentPreview": content[:CONTENT_PREVIEW_CHARS] + "...",
                "timestamp": int(time.time() * 1000),
                "clientId": client_id,
            },
            exclude=client_id,
        )
