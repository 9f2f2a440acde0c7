"""
Editor event fan-out over WebSockets.

Two events go out to every open editor:
- `code_updated` carries the new buffer after any session change
- `render_result` carries the latest render error, or null once a render succeeds
"""

import asyncio
import json
import logging
from typing import Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketManager:
    """Open editor sockets; a socket whose send fails is forgotten."""

    def __init__(self):
        self._connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self._connections.add(websocket)
        logger.info("WebSocket connected (%d open)", len(self._connections))

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self._connections.discard(websocket)
        logger.info("WebSocket disconnected (%d open)", len(self._connections))

    async def broadcast(self, message: dict):
        """Encode an editor event once and push it to every socket."""
        if not self._connections:
            return

        message_text = json.dumps(message)
        failed: Set[WebSocket] = set()

        async with self._lock:
            for websocket in self._connections:
                try:
                    await websocket.send_text(message_text)
                except Exception as e:
                    logger.debug("Dropping WebSocket after failed send: %s", e)
                    failed.add(websocket)

            self._connections -= failed

    async def notify_code_updated(self, code: str, render_error: str | None = None):
        """Push the whole buffer so editors can replace their text."""
        await self.broadcast({
            "type": "code_updated",
            "code": code,
            "render_error": render_error,
        })

    async def notify_render_result(self, render_error: str | None):
        await self.broadcast({
            "type": "render_result",
            "render_error": render_error,
        })

    @property
    def connection_count(self) -> int:
        return len(self._connections)
