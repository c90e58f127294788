"""Process-level wiring of the relay components.

``Relay`` constructs the single state store, telemetry source, connection
registry, broadcaster and control gateway, and ties their lifecycle to the
server's startup and shutdown.
"""

import asyncio
import logging

from .broadcaster import Broadcaster
from .config import settings
from .control import ControlGateway
from .messaging import ConnectionManager
from .state import StateStore
from .telemetry.base import TelemetrySource
from .telemetry.mock_source import MockTelemetrySource
from .telemetry.simconnect_source import SimConnectTelemetrySource

logger = logging.getLogger(__name__)


def pick_source(store: StateStore) -> TelemetrySource:
    if settings.telemetry_mode == "simconnect":
        return SimConnectTelemetrySource(store, poll_interval_ms=settings.telemetry_poll_ms)
    return MockTelemetrySource(store)


async def _attempt_connect(source: TelemetrySource, attempt: int, attempts: int, retry_ms: int) -> bool:
    logger.info("Attempt %d/%d to connect to the simulator...", attempt, attempts)
    if await source.connect():
        logger.info("MSFS Copilot ready")
        return True
    if attempt < attempts:
        logger.info("Retrying in %.1f seconds...", retry_ms / 1000)
    else:
        logger.error("Failed to connect after %d attempts; ensure the simulator is running and restart", attempts)
    return False


async def connect_telemetry(
    source: TelemetrySource,
    attempts: int,
    retry_ms: int,
    *,
    first_attempt: int = 1,
) -> bool:
    """Try ``source.connect()`` up to ``attempts`` times, ``retry_ms`` apart."""

    for attempt in range(first_attempt, attempts + 1):
        if attempt > 1:
            await asyncio.sleep(retry_ms / 1000)
        if await _attempt_connect(source, attempt, attempts, retry_ms):
            return True
    return False


class Relay:
    """Owns one instance of every server-side collaborator."""

    def __init__(
        self,
        store: StateStore | None = None,
        source: TelemetrySource | None = None,
        interval_ms: int | None = None,
    ) -> None:
        self.store = store if store is not None else (source.store if source is not None else StateStore())
        self.source = source if source is not None else pick_source(self.store)
        self.registry = ConnectionManager()
        self.broadcaster = Broadcaster(self.registry, self.store, self.source, interval_ms)
        self.gateway = ControlGateway(self.source, self.broadcaster)
        self._connect_task: asyncio.Task | None = None

    async def start(self) -> None:
        await self.broadcaster.start()
        attempts = max(1, settings.telemetry_connect_attempts)
        retry_ms = settings.telemetry_connect_retry_ms
        # First attempt inline so the app starts with a known source status.
        if await _attempt_connect(self.source, 1, attempts, retry_ms) or attempts == 1:
            return
        self._connect_task = asyncio.create_task(
            connect_telemetry(self.source, attempts, retry_ms, first_attempt=2)
        )


    async def stop(self) -> None:
        task = self._connect_task
        self._connect_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.broadcaster.stop()
        await self.source.disconnect()
        logger.info("Relay stopped")
