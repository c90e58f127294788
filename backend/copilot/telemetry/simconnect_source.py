"""SimConnect-backed telemetry source for MSFS.

Polls a fixed table of simulation variables off the event loop and merges
them into the state store; control methods map onto simulator events.
Requires the ``SimConnect`` distribution (``pip install .[simconnect]``)
and a running simulator on the same machine.
"""

import asyncio
import logging
import math
from collections.abc import Callable
from typing import Any

from ..state import StateStore
from .base import TelemetrySource

logger = logging.getLogger(__name__)


def _flag(value: Any) -> bool:
    return bool(round(float(value)))


def _same(value: Any) -> float:
    return float(value)


def _radians_to_degrees(value: Any) -> float:
    return math.degrees(float(value)) % 360.0


def _radians_to_coordinate(value: Any) -> float:
    return math.degrees(float(value))


def _percent(value: Any) -> float:
    # Some handle/position vars arrive as 0..1 fractions.
    value = float(value)
    return value * 100.0 if value <= 1.0 else value


# (simulation variable, state path, converter)
SIMVARS: list[tuple[str, tuple[str, str], Callable[[Any], Any]]] = [
    ("AUTOPILOT_MASTER", ("autopilot", "master"), _flag),
    ("AUTOPILOT_ALTITUDE_LOCK", ("autopilot", "altitude_hold"), _flag),
    ("AUTOPILOT_HEADING_LOCK", ("autopilot", "heading_hold"), _flag),
    ("AUTOPILOT_NAV1_LOCK", ("autopilot", "nav_mode"), _flag),
    ("AUTOPILOT_APPROACH_HOLD", ("autopilot", "approach_mode"), _flag),
    ("AUTOPILOT_ALTITUDE_LOCK_VAR", ("autopilot", "target_altitude"), _same),
    ("AUTOPILOT_HEADING_LOCK_DIR", ("autopilot", "target_heading"), _same),
    ("LIGHT_BEACON", ("lights", "beacon"), _flag),
    ("LIGHT_STROBE", ("lights", "strobe"), _flag),
    ("LIGHT_NAV", ("lights", "nav"), _flag),
    ("LIGHT_LANDING", ("lights", "landing"), _flag),
    ("LIGHT_TAXI", ("lights", "taxi"), _flag),
    ("GEAR_HANDLE_POSITION", ("gear", "position"), _same),
    ("FLAPS_HANDLE_PERCENT", ("flaps", "position"), _percent),
    ("COM_ACTIVE_FREQUENCY:1", ("radio", "com1"), _same),
    ("COM_ACTIVE_FREQUENCY:2", ("radio", "com2"), _same),
    ("NAV_ACTIVE_FREQUENCY:1", ("radio", "nav1"), _same),
    ("NAV_ACTIVE_FREQUENCY:2", ("radio", "nav2"), _same),
    ("PLANE_ALTITUDE", ("aircraft", "altitude"), _same),
    ("PLANE_HEADING_DEGREES_TRUE", ("aircraft", "heading"), _radians_to_degrees),
    ("AIRSPEED_INDICATED", ("aircraft", "airspeed"), _same),
    ("VERTICAL_SPEED", ("aircraft", "vertical_speed"), _same),
    ("PLANE_LATITUDE", ("aircraft", "latitude"), _radians_to_coordinate),
    ("PLANE_LONGITUDE", ("aircraft", "longitude"), _radians_to_coordinate),
    ("FUEL_TOTAL_QUANTITY", ("fuel", "total"), _same),
    ("FUEL_LEFT_QUANTITY", ("fuel", "left"), _same),
    ("FUEL_RIGHT_QUANTITY", ("fuel", "right"), _same),
]

ENGINE_SIMVARS: list[tuple[str, str, Callable[[Any], Any]]] = [
    ("GENERAL_ENG_RPM", "rpm", _same),
    ("GENERAL_ENG_THROTTLE_LEVER_POSITION", "throttle", _same),
    ("GENERAL_ENG_COMBUSTION", "running", _flag),
]

MAX_ENGINES = 4

LIGHT_EVENTS = {
    "beacon": "TOGGLE_BEACON_LIGHTS",
    "strobe": "STROBES_TOGGLE",
    "nav": "TOGGLE_NAV_LIGHTS",
    "landing": "LANDING_LIGHTS_TOGGLE",
    "taxi": "TOGGLE_TAXI_LIGHTS",
}

RADIO_EVENTS = {
    "com1": "COM_RADIO_SET",
    "com2": "COM2_RADIO_SET",
    "nav1": "NAV1_RADIO_SET",
    "nav2": "NAV2_RADIO_SET",
}

FLAPS_DETENTS = 4


def _open_simconnect(poll_interval_ms: int) -> tuple[Any, Any, Any]:
    from SimConnect import AircraftEvents, AircraftRequests, SimConnect

    handle = SimConnect()
    return handle, AircraftRequests(handle, _time=poll_interval_ms), AircraftEvents(handle)


def flaps_index(position: float) -> int:
    """Convert a 0-100 % flaps request into a detent index."""

    return int(round((position / 100.0) * FLAPS_DETENTS))


def radio_param(frequency: float) -> int:
    """Encode a MHz frequency as the integer event parameter, e.g. 118.50 -> 11850."""

    return int(round(frequency * 100))


class SimConnectTelemetrySource(TelemetrySource):
    """Talks to the simulator through a SimConnect handle."""

    def __init__(
        self,
        store: StateStore,
        poll_interval_ms: int = 1000,
        connector: Callable[[int], tuple[Any, Any, Any]] = _open_simconnect,
    ) -> None:
        super().__init__(store)
        self.poll_interval_ms = poll_interval_ms
        self._connector = connector
        self._handle: Any = None
        self._requests: Any = None
        self._events: Any = None
        self._poll_task: asyncio.Task | None = None

    async def connect(self) -> bool:
        logger.info("Connecting to MSFS via SimConnect...")
        try:
            self._handle, self._requests, self._events = await asyncio.to_thread(
                self._connector, self.poll_interval_ms
            )
        except Exception as exc:
            logger.error("Failed to connect to MSFS: %s", exc)
            self._handle = self._requests = self._events = None
            await self._set_live(False)
            return False
        logger.info("Connected to MSFS")
        await self._set_live(True)
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())
        return True

    async def disconnect(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        handle = self._handle
        self._handle = self._requests = self._events = None
        if handle is not None:
            try:
                await asyncio.to_thread(handle.exit)
                logger.info("Disconnected from MSFS")
            except Exception as exc:
                logger.error("Error disconnecting from MSFS: %s", exc)
        await self._set_live(False)

    async def poll_once(self) -> bool:
        """Read every variable once and merge the result; False when the read failed."""

        try:
            partial = await asyncio.to_thread(self._read_partial)
        except Exception as exc:
            logger.error("Telemetry poll failed: %s", exc)
            await self._set_live(False)
            return False
        self.store.update(partial)
        return True

    async def _poll_loop(self) -> None:
        while self._live:
            if not await self.poll_once():
                return
            await asyncio.sleep(self.poll_interval_ms / 1000)

    def _read_partial(self) -> dict[str, Any]:
        requests = self._requests
        if requests is None:
            raise RuntimeError("SimConnect handle is not open")
        partial: dict[str, Any] = {}
        for simvar, (section, field), convert in SIMVARS:
            value = requests.get(simvar)
            if value is None:
                continue
            try:
                partial.setdefault(section, {})[field] = convert(value)
            except (TypeError, ValueError):
                logger.debug("Unreadable value for %s: %r", simvar, value)

        count = requests.get("NUMBER_OF_ENGINES")
        engines: dict[int, dict[str, Any]] = {}
        for index in range(1, min(int(count or 0), MAX_ENGINES) + 1):
            params: dict[str, Any] = {}
            for simvar, field, convert in ENGINE_SIMVARS:
                value = requests.get(f"{simvar}:{index}")
                if value is not None:
                    params[field] = convert(value)
            engines[index] = params
        if engines:
            partial["engines"] = engines
        return partial

    def _send_event(self, name: str, value: int = 0) -> bool:
        if not self._live or self._events is None:
            return False
        try:
            event = self._events.find(name)
            if event is None:
                logger.error("Unknown simulator event: %s", name)
                return False
            event(value)
            return True
        except Exception as exc:
            logger.error("Error sending %s: %s", name, exc)
            return False

    def toggle_autopilot(self) -> bool:
        return self._send_event("AP_MASTER")

    def set_altitude_hold(self, altitude: float) -> bool:
        return self._send_event("AP_ALT_VAR_SET_ENGLISH", int(altitude)) and self._send_event("AP_ALT_HOLD_ON")

    def set_heading_hold(self, heading: float) -> bool:
        return self._send_event("HEADING_BUG_SET", int(heading)) and self._send_event("AP_HDG_HOLD_ON")

    def toggle_nav_mode(self) -> bool:
        return self._send_event("AP_NAV1_HOLD")

    def toggle_approach_mode(self) -> bool:
        return self._send_event("AP_APR_HOLD")

    def toggle_light(self, kind: str) -> bool:
        event = LIGHT_EVENTS.get(kind)
        if event is None:
            return False
        return self._send_event(event)

    def toggle_gear(self) -> bool:
        return self._send_event("GEAR_TOGGLE")

    def set_gear_up(self) -> bool:
        return self._send_event("GEAR_UP")

    def set_gear_down(self) -> bool:
        return self._send_event("GEAR_DOWN")

    def set_flaps(self, position: float) -> bool:
        return self._send_event("FLAPS_SET", flaps_index(position))

    def increase_flaps(self) -> bool:
        return self._send_event("FLAPS_INCR")

    def decrease_flaps(self) -> bool:
        return self._send_event("FLAPS_DECR")

    def set_radio_frequency(self, radio: str, frequency: float) -> bool:
        event = RADIO_EVENTS.get(radio)
        if event is None:
            return False
        return self._send_event(event, radio_param(frequency))
