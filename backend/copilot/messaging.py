"""WebSocket connection registry for cockpit live updates.

This module tracks open client sockets and lets the broadcaster fan out
payloads to each of them.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection:
    """One open client link wrapped around a FastAPI ``WebSocket``."""

    def __init__(self, websocket: WebSocket) -> None:
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.is_open = True
        self.connected_at = time.monotonic()
        self.last_activity = self.connected_at

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def mark_closed(self) -> None:
        self.is_open = False

    async def send_text(self, text: str) -> None:
        if not self.is_open:
            raise RuntimeError(f"connection {self.id} is closed")
        await self.websocket.send_text(text)

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, open={self.is_open})"


class ConnectionManager:
    """In-memory registry of currently open connections."""

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._lock = asyncio.Lock()

    async def register(self, connection: Connection) -> None:
        async with self._lock:
            self._connections[connection.id] = connection
        logger.info("WebSocket client connected (%s). Total connections: %d", connection.id, len(self._connections))

    async def unregister(self, connection: Connection) -> bool:
        """Remove ``connection``; returns False when it was not registered."""

        connection.mark_closed()
        async with self._lock:
            removed = self._connections.pop(connection.id, None) is not None
        if removed:
            logger.info(
                "WebSocket client disconnected (%s). Total connections: %d", connection.id, len(self._connections)
            )
        return removed

    async def for_each(self, fn: Callable[[Connection], Awaitable[Any]]) -> None:
        """Run ``fn`` concurrently for every open connection registered at call time.

        A slow or failing connection does not hold up the others.
        """

        async with self._lock:
            targets = list(self._connections.values())

        async def _visit(connection: Connection) -> None:
            if connection.is_open:
                await fn(connection)

        results = await asyncio.gather(*(_visit(c) for c in targets), return_exceptions=True)
        for connection, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning("Connection %s callback failed: %s", connection.id, result)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection: object) -> bool:
        return isinstance(connection, Connection) and connection.id in self._connections
