"""Client-side connection lifecycle manager for the cockpit channel.

``CockpitClient`` opens the persistent connection to the relay, dispatches
typed server envelopes to subscribers, keeps the link alive with periodic
pings, and reconnects with a fixed delay up to a bounded number of
attempts. Once the attempts are used up it stops in ``exhausted`` until
``connect()`` is called again.
"""

import asyncio
import inspect
import json
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit

import websockets

from .config import settings
from .exceptions import ProtocolError
from .protocol import (
    ConnectionMessage,
    SimConnectStatusMessage,
    StateUpdateMessage,
    parse_server_message,
    ping_message,
    request_state_message,
)
from .state import CockpitState

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    reconnecting = "reconnecting"
    exhausted = "exhausted"


class ClientEvent(str, Enum):
    """Closed set of events a subscriber can listen for.

    ``connected``, ``disconnected`` and ``exhausted`` carry ``None``; the
    others carry the parsed envelope of the same name from ``protocol``.
    """

    connected = "connected"
    disconnected = "disconnected"
    exhausted = "exhausted"
    connection = "connection"
    state_update = "state_update"
    action_result = "action_result"
    voice_command = "voice_command"
    simconnect_status = "simconnect_status"
    pong = "pong"


@dataclass(frozen=True)
class Outcome:
    ok: bool
    reason: Optional[str] = None


@dataclass
class ReconnectState:
    max_attempts: int
    delay_ms: int
    attempts: int = 0


Listener = Callable[[Any], Any]
Connector = Callable[[str], Awaitable[Any]]


def websocket_url(origin: str) -> str:
    """Map a page origin onto the relay socket, e.g. https://host:3000 -> wss://host:3000/."""

    parts = urlsplit(origin)
    scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
    return urlunsplit((scheme, parts.netloc, "/", "", ""))


async def _open_websocket(url: str) -> Any:
    return await websockets.connect(url, open_timeout=10, ping_interval=None)


class CockpitClient:
    def __init__(
        self,
        origin: str | None = None,
        *,
        reconnect_delay_ms: int | None = None,
        max_reconnect_attempts: int | None = None,
        ping_interval_ms: int | None = None,
        connector: Connector | None = None,
    ) -> None:
        self.url = websocket_url(origin or settings.client_origin)
        self.reconnect = ReconnectState(
            max_attempts=(
                max_reconnect_attempts
                if max_reconnect_attempts is not None
                else settings.client_max_reconnect_attempts
            ),
            delay_ms=reconnect_delay_ms if reconnect_delay_ms is not None else settings.client_reconnect_delay_ms,
        )
        self.ping_interval_ms = ping_interval_ms if ping_interval_ms is not None else settings.client_ping_interval_ms
        self.state = ConnectionState.disconnected
        self.latest_state: CockpitState | None = None
        self.simconnect_live = False
        self._connector = connector or _open_websocket
        self._ws: Any = None
        self._listeners: dict[ClientEvent, list[Listener]] = defaultdict(list)
        self._reader_task: asyncio.Task | None = None
        self._ping_task: asyncio.Task | None = None
        self._retry_task: asyncio.Task | None = None
        self._closed = False
        self._settled: asyncio.Event | None = None
        self._connect_lock = asyncio.Lock()

    # Subscriptions

    def on(self, event: ClientEvent, listener: Listener) -> None:
        self._listeners[ClientEvent(event)].append(listener)

    def off(self, event: ClientEvent, listener: Listener) -> None:
        listeners = self._listeners.get(ClientEvent(event), [])
        if listener in listeners:
            listeners.remove(listener)

    async def _emit(self, event: ClientEvent, payload: Any = None) -> None:
        for listener in list(self._listeners.get(event, [])):
            try:
                result = listener(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener for %s failed", event.value)

    # Lifecycle

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.connected and self._ws is not None

    async def connect(self) -> Outcome:
        """Open the connection; also the only way out of ``exhausted``."""

        async with self._connect_lock:
            if self.is_connected:
                return Outcome(True)
            self._closed = False
            self._settled_event().clear()
            # a pending retry may already be inside the connector
            await self._cancel(self._retry_task)
            self._retry_task = None
            if self.is_connected:
                return Outcome(True)
            if self.state == ConnectionState.exhausted:
                self.reconnect.attempts = 0
            return await self._open()

    async def close(self) -> None:
        """Tear the session down: no retry, no ping, socket closed."""

        self._closed = True
        for task in (self._retry_task, self._ping_task, self._reader_task):
            await self._cancel(task)
        self._retry_task = self._ping_task = self._reader_task = None
        ws, self._ws = self._ws, None
        if ws is not None:
            try:
                await ws.close()
            except Exception as exc:
                logger.debug("Error closing WebSocket: %s", exc)
        self.state = ConnectionState.disconnected
        self._settled_event().set()

    async def wait_settled(self) -> ConnectionState:
        """Block until the client is closed or has exhausted its retries."""

        await self._settled_event().wait()
        return self.state

    def _settled_event(self) -> asyncio.Event:
        if self._settled is None:
            self._settled = asyncio.Event()
        return self._settled

    async def _open(self) -> Outcome:
        self.state = ConnectionState.connecting
        logger.info("Connecting to WebSocket: %s", self.url)
        try:
            ws = await self._connector(self.url)
        except Exception as exc:
            logger.warning("Failed to open WebSocket: %s", exc)
            if not self._closed:
                await self._schedule_retry()
            return Outcome(False, str(exc) or type(exc).__name__)
        if self._closed:
            await ws.close()
            return Outcome(False, "client closed")

        self._ws = ws
        self.state = ConnectionState.connected
        self.reconnect.attempts = 0
        logger.info("WebSocket connected")
        self._reader_task = asyncio.create_task(self._read_loop(ws))
        self._ping_task = asyncio.create_task(self._ping_loop())
        await self._emit(ClientEvent.connected)
        return Outcome(True)

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                await self._dispatch(raw)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("WebSocket error: %s", exc)
        if self._ws is ws and not self._closed:
            await self._on_lost()

    async def _on_lost(self) -> None:
        logger.info("WebSocket disconnected")
        self._ws = None
        await self._cancel(self._ping_task)
        self._ping_task = None
        self.state = ConnectionState.reconnecting
        await self._emit(ClientEvent.disconnected)
        await self._schedule_retry()

    async def _schedule_retry(self) -> bool:
        if self.reconnect.attempts >= self.reconnect.max_attempts:
            self.state = ConnectionState.exhausted
            logger.error("Max reconnection attempts reached")
            await self._emit(ClientEvent.exhausted)
            self._settled_event().set()
            return False
        self.reconnect.attempts += 1
        self.state = ConnectionState.reconnecting
        logger.info(
            "Reconnecting in %.1fs... (Attempt %d/%d)",
            self.reconnect.delay_ms / 1000,
            self.reconnect.attempts,
            self.reconnect.max_attempts,
        )
        self._retry_task = asyncio.create_task(self._retry_after_delay())
        return True

    async def _retry_after_delay(self) -> None:
        await asyncio.sleep(self.reconnect.delay_ms / 1000)
        await self._open()

    async def _ping_loop(self) -> None:
        while True:
            await asyncio.sleep(self.ping_interval_ms / 1000)
            if self.is_connected:
                await self.ping()

    async def _cancel(self, task: asyncio.Task | None) -> None:
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # Messages

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = parse_server_message(raw)
        except ProtocolError as exc:
            logger.error("Error parsing WebSocket message: %s", exc)
            return
        if message is None:
            logger.info("Unknown message type: %.80r", raw)
            return

        if isinstance(message, StateUpdateMessage):
            # Full snapshot, replaces whatever was held before.
            self.latest_state = message.data
        elif isinstance(message, ConnectionMessage):
            logger.info("Connection status: %s (simconnect=%s)", message.status, message.simconnect)
            self.simconnect_live = message.simconnect
        elif isinstance(message, SimConnectStatusMessage):
            self.simconnect_live = message.connected
        await self._emit(ClientEvent(message.type), message)

    async def send(self, message: dict[str, Any]) -> Outcome:
        """Send when connected; otherwise a logged no-op. Never raises."""

        ws = self._ws
        if not self.is_connected or ws is None:
            logger.warning("WebSocket not connected, cannot send %s", message.get("type"))
            return Outcome(False, "not connected")
        try:
            await ws.send(json.dumps(message))
        except Exception as exc:
            logger.warning("Failed to send %s: %s", message.get("type"), exc)
            return Outcome(False, str(exc) or type(exc).__name__)
        return Outcome(True)

    async def ping(self) -> Outcome:
        return await self.send(ping_message())

    async def request_state(self) -> Outcome:
        return await self.send(request_state_message())
