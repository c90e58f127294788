"""In-process aircraft for local development and repeatable tests.

Controls act directly on the state store, so the next ``state_update``
reflects them without a real simulator behind the relay.
"""

import logging
from collections.abc import Mapping
from typing import Any

from ..state import LIGHT_KINDS, RADIO_KINDS, StateStore
from .base import TelemetrySource

logger = logging.getLogger(__name__)

FLAPS_STEP = 25.0


class MockTelemetrySource(TelemetrySource):
    """Deterministic source; ``connect`` fails ``fail_connects`` times first."""

    def __init__(self, store: StateStore, fail_connects: int = 0) -> None:
        super().__init__(store)
        self.fail_connects = fail_connects
        self.connect_calls = 0
        self.commands: list[tuple[str, Any]] = []

    async def connect(self) -> bool:
        self.connect_calls += 1
        if self.connect_calls <= self.fail_connects:
            logger.warning("Mock telemetry connect attempt %d refused", self.connect_calls)
            await self._set_live(False)
            return False
        await self._set_live(True)
        return True

    async def disconnect(self) -> None:
        await self._set_live(False)

    async def go_offline(self) -> None:
        await self._set_live(False)

    def feed(self, partial: Mapping[str, Any]) -> None:
        """Inject telemetry as if the simulator had reported it."""

        self.store.update(partial)

    def _record(self, name: str, value: Any = None) -> bool:
        if not self.is_live():
            return False
        self.commands.append((name, value))
        return True

    def toggle_autopilot(self) -> bool:
        if not self._record("AP_MASTER"):
            return False
        ap = self.store.read().autopilot
        self.store.update({"autopilot": {"master": not ap.master}})
        return True

    def set_altitude_hold(self, altitude: float) -> bool:
        if not self._record("AP_ALT_VAR_SET_ENGLISH", altitude):
            return False
        self.store.update({"autopilot": {"target_altitude": altitude, "altitude_hold": True}})
        return True

    def set_heading_hold(self, heading: float) -> bool:
        if not self._record("HEADING_BUG_SET", heading):
            return False
        self.store.update({"autopilot": {"target_heading": heading, "heading_hold": True}})
        return True

    def toggle_nav_mode(self) -> bool:
        if not self._record("AP_NAV1_HOLD"):
            return False
        ap = self.store.read().autopilot
        self.store.update({"autopilot": {"nav_mode": not ap.nav_mode}})
        return True

    def toggle_approach_mode(self) -> bool:
        if not self._record("AP_APR_HOLD"):
            return False
        ap = self.store.read().autopilot
        self.store.update({"autopilot": {"approach_mode": not ap.approach_mode}})
        return True

    def toggle_light(self, kind: str) -> bool:
        if kind not in LIGHT_KINDS or not self._record("TOGGLE_LIGHT", kind):
            return False
        current = getattr(self.store.read().lights, kind)
        self.store.update({"lights": {kind: not current}})
        return True

    def toggle_gear(self) -> bool:
        if not self._record("GEAR_TOGGLE"):
            return False
        position = self.store.read().gear.position
        self.store.update({"gear": {"position": 0.0 if position >= 0.5 else 1.0}})
        return True

    def set_gear_up(self) -> bool:
        if not self._record("GEAR_UP"):
            return False
        self.store.update({"gear": {"position": 0.0}})
        return True

    def set_gear_down(self) -> bool:
        if not self._record("GEAR_DOWN"):
            return False
        self.store.update({"gear": {"position": 1.0}})
        return True

    def set_flaps(self, position: float) -> bool:
        if not self._record("FLAPS_SET", position):
            return False
        self.store.update({"flaps": {"position": position}})
        return True

    def increase_flaps(self) -> bool:
        if not self._record("FLAPS_INCR"):
            return False
        position = self.store.read().flaps.position
        self.store.update({"flaps": {"position": min(100.0, position + FLAPS_STEP)}})
        return True

    def decrease_flaps(self) -> bool:
        if not self._record("FLAPS_DECR"):
            return False
        position = self.store.read().flaps.position
        self.store.update({"flaps": {"position": max(0.0, position - FLAPS_STEP)}})
        return True

    def set_radio_frequency(self, radio: str, frequency: float) -> bool:
        if radio not in RADIO_KINDS or not self._record("RADIO_SET", (radio, frequency)):
            return False
        self.store.update({"radio": {radio: frequency}})
        return True
