"""Fan-out of cockpit state and events to every open connection.

The broadcaster owns the 1 Hz full-state push, immediate event
notifications (action results, voice commands, simulator connectivity),
the initial sync for a newly attached client, and replies to client
``ping`` / ``request_state`` frames.
"""

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from fastapi import WebSocket

from .config import settings
from .exceptions import ProtocolError
from .messaging import Connection, ConnectionManager
from .protocol import (
    MessageType,
    action_result_message,
    connection_message,
    parse_client_message,
    pong_message,
    simconnect_status_message,
    state_update_message,
    voice_command_message,
)
from .state import StateStore
from .telemetry.base import TelemetrySource

if TYPE_CHECKING:
    from .control import ControlActionResult

logger = logging.getLogger(__name__)


class Broadcaster:
    """Pushes snapshots and events to the registry's connections."""

    def __init__(
        self,
        registry: ConnectionManager,
        store: StateStore,
        source: TelemetrySource,
        interval_ms: int | None = None,
        send_timeout_ms: int | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.source = source
        self.interval_ms = interval_ms if interval_ms is not None else settings.broadcast_interval_ms
        self.send_timeout_ms = send_timeout_ms if send_timeout_ms is not None else settings.broadcast_send_timeout_ms
        self._task: asyncio.Task | None = None
        source.add_status_listener(self.notify_simconnect_status)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            try:
                await self.push_state()
            except Exception:
                logger.exception("State broadcast tick failed")

    async def push_state(self) -> int:
        """Broadcast the current snapshot when anyone is listening and the source is live."""

        if not len(self.registry) or not self.source.is_live():
            return 0
        return await self.broadcast(state_update_message(self.store.snapshot()))

    async def broadcast(self, message: dict[str, Any]) -> int:
        """Send ``message`` to every registered connection; returns the delivery count.

        Connections are written concurrently and each send is bounded by
        ``send_timeout_ms``. A failing or stalled connection is logged and
        skipped. It leaves the registry through its own close signal.
        """

        text = json.dumps(message)
        delivered = 0

        async def _deliver(connection: Connection) -> None:
            nonlocal delivered
            if await self._send_text(connection, text):
                delivered += 1

        await self.registry.for_each(_deliver)
        return delivered

    async def send_to(self, connection: Connection, message: dict[str, Any]) -> bool:
        return await self._send_text(connection, json.dumps(message))

    async def _send_text(self, connection: Connection, text: str) -> bool:
        try:
            await asyncio.wait_for(connection.send_text(text), self.send_timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.warning("Send to client %s timed out after %dms", connection.id, self.send_timeout_ms)
            return False
        except Exception as exc:
            logger.debug("Failed to send to client %s: %s", connection.id, exc)
            return False
        return True

    async def notify_action(self, result: "ControlActionResult") -> int:
        return await self.broadcast(
            action_result_message(result.action, result.success, result.details, result.timestamp)
        )

    async def notify_voice_command(self, command: str, recognized: bool) -> int:
        return await self.broadcast(voice_command_message(command, recognized))

    async def notify_simconnect_status(self, connected: bool) -> int:
        return await self.broadcast(simconnect_status_message(connected))

    async def attach(self, websocket: WebSocket) -> Connection:
        """Accept ``websocket``, give it the initial sync, then register it."""

        await websocket.accept()
        connection = Connection(websocket)
        await self.sync_connection(connection)
        await self.registry.register(connection)
        return connection

    async def sync_connection(self, connection: Connection) -> None:
        await self.send_to(connection, connection_message(self.source.is_live()))
        await self.send_to(connection, state_update_message(self.store.snapshot()))

    async def handle_client_message(self, connection: Connection, raw: str | bytes) -> None:
        connection.touch()
        try:
            message_type = parse_client_message(raw)
        except ProtocolError as exc:
            logger.warning("Discarding malformed message from %s: %s", connection.id, exc)
            return
        if message_type is None:
            logger.info("Unknown message type from %s: %.80r", connection.id, raw)
            return
        if message_type == MessageType.ping:
            await self.send_to(connection, pong_message())
        elif message_type == MessageType.request_state:
            await self.send_to(connection, state_update_message(self.store.snapshot()))
