"""
Realtime Connections
====================

WebSocket connection registry for in-app notifications. A user may hold
several open connections (tabs); each receives every message.
"""

import asyncio
import json
from typing import Any, Dict, List, Set

from fastapi import WebSocket

from supportwatch.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """Manages WebSocket connections per user."""

    def __init__(self):
        self._connections: Dict[str, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, user_id: str) -> None:
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self._connections.setdefault(user_id, set()).add(websocket)
        logger.debug("Realtime client connected", extra={"user_id": user_id})

    async def disconnect(self, websocket: WebSocket, user_id: str) -> None:
        """Remove a WebSocket connection."""
        async with self._lock:
            self._discard(user_id, [websocket])

    async def send_to_user(self, user_id: str, message: Dict[str, Any]) -> int:
        """
        Send a message to all connections of a user.

        Returns the number of connections that received it. Connections that
        fail are dropped.
        """
        async with self._lock:
            connections = list(self._connections.get(user_id, ()))

        if not connections:
            return 0

        data = json.dumps(message, default=str)
        closed: List[WebSocket] = []
        for websocket in connections:
            try:
                await websocket.send_text(data)
            except Exception as e:
                logger.debug("Dropping realtime connection", extra={"user_id": user_id, "error": str(e)})
                closed.append(websocket)

        if closed:
            async with self._lock:
                self._discard(user_id, closed)
        return len(connections) - len(closed)

    def get_connected_count(self, user_id: str) -> int:
        return len(self._connections.get(user_id, ()))

    def get_total_connections(self) -> int:
        return sum(len(connections) for connections in self._connections.values())

    def _discard(self, user_id: str, websockets: List[WebSocket]) -> None:
        connections = self._connections.get(user_id)
        if connections is None:
            return
        for websocket in websockets:
            connections.discard(websocket)
        if not connections:
            del self._connections[user_id]
