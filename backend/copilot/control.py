"""Control gateway between the HTTP surface and the telemetry source.

Each action validates its input, short-circuits when the source is not
live, invokes the source, and reports the outcome to every client as an
``action_result`` event.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .broadcaster import Broadcaster
from .exceptions import InvalidControlInput
from .state import LIGHT_KINDS, RADIO_KINDS
from .telemetry.base import TelemetrySource
from .utils import utc_iso_now

logger = logging.getLogger(__name__)

ALTITUDE_RANGE = (0.0, 50000.0)
HEADING_RANGE = (0.0, 360.0)
FLAPS_RANGE = (0.0, 100.0)
FREQUENCY_RANGE = (108.0, 137.0)

NOT_LIVE_REASON = "telemetry source not live"


@dataclass
class ControlActionResult:
    """Outcome of one control action, sent once to all clients."""

    action: str
    success: bool
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=utc_iso_now)


def _check_range(name: str, value: Any, bounds: tuple[float, float]) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidControlInput(f"Invalid {name} value")
    low, high = bounds
    if not low <= value <= high:
        raise InvalidControlInput(f"Invalid {name} value ({low:g}-{high:g})")
    return float(value)


class ControlGateway:
    """Validates and forwards control requests to the telemetry source."""

    def __init__(self, source: TelemetrySource, broadcaster: Broadcaster) -> None:
        self.source = source
        self.broadcaster = broadcaster

    async def _perform(
        self,
        action: str,
        invoke: Callable[[], bool],
        details: dict[str, Any] | None = None,
    ) -> ControlActionResult:
        details = dict(details or {})
        if not self.source.is_live():
            result = ControlActionResult(action, False, {**details, "reason": NOT_LIVE_REASON})
        else:
            try:
                success = bool(invoke())
            except Exception as exc:
                logger.error("Control action %s raised: %s", action, exc)
                success = False
            result = ControlActionResult(action, success, details)
        logger.info("Control action %s -> %s", action, "ok" if result.success else "failed")
        await self.broadcaster.notify_action(result)
        return result

    async def toggle_autopilot(self) -> ControlActionResult:
        return await self._perform("autopilot_toggle", self.source.toggle_autopilot)

    async def set_altitude_hold(self, altitude: Any) -> ControlActionResult:
        value = _check_range("altitude", altitude, ALTITUDE_RANGE)
        return await self._perform(
            "altitude_hold", lambda: self.source.set_altitude_hold(value), {"altitude": altitude}
        )

    async def set_heading_hold(self, heading: Any) -> ControlActionResult:
        value = _check_range("heading", heading, HEADING_RANGE)
        return await self._perform("heading_hold", lambda: self.source.set_heading_hold(value), {"heading": heading})

    async def toggle_nav_mode(self) -> ControlActionResult:
        return await self._perform("nav_mode", self.source.toggle_nav_mode)

    async def toggle_approach_mode(self) -> ControlActionResult:
        return await self._perform("approach_mode", self.source.toggle_approach_mode)

    async def toggle_light(self, kind: str) -> ControlActionResult:
        if kind not in LIGHT_KINDS:
            raise InvalidControlInput("Invalid light type")
        return await self._perform(f"light_{kind}", lambda: self.source.toggle_light(kind))

    async def set_all_lights(self, state: str) -> ControlActionResult:
        if state not in ("on", "off"):
            raise InvalidControlInput('State must be "on" or "off"')
        wanted = state == "on"
        results: list[dict[str, Any]] = []

        def _apply() -> bool:
            lights = self.source.read_snapshot().lights
            for kind in LIGHT_KINDS:
                if getattr(lights, kind) == wanted:
                    results.append({"light": kind, "success": True, "changed": False})
                    continue
                results.append({"light": kind, "success": self.source.toggle_light(kind), "changed": True})
            return all(item["success"] for item in results)

        details: dict[str, Any] = {"results": results}
        return await self._perform(f"all_lights_{state}", _apply, details)

    async def toggle_gear(self) -> ControlActionResult:
        return await self._perform("gear_toggle", self.source.toggle_gear)

    async def set_gear_up(self) -> ControlActionResult:
        return await self._perform("gear_up", self.source.set_gear_up)

    async def set_gear_down(self) -> ControlActionResult:
        return await self._perform("gear_down", self.source.set_gear_down)

    async def set_flaps(self, position: Any) -> ControlActionResult:
        value = _check_range("flaps position", position, FLAPS_RANGE)
        return await self._perform("flaps_set", lambda: self.source.set_flaps(value), {"position": position})

    async def increase_flaps(self) -> ControlActionResult:
        return await self._perform("flaps_increase", self.source.increase_flaps)

    async def decrease_flaps(self) -> ControlActionResult:
        return await self._perform("flaps_decrease", self.source.decrease_flaps)

    async def set_radio_frequency(self, radio: str, frequency: Any) -> ControlActionResult:
        if radio not in RADIO_KINDS:
            raise InvalidControlInput("Invalid radio type")
        value = _check_range("frequency", frequency, FREQUENCY_RANGE)
        return await self._perform(
            f"radio_{radio}", lambda: self.source.set_radio_frequency(radio, value), {"frequency": frequency}
        )
