"""Shared contract for pluggable telemetry/control sources."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Union

from ..state import CockpitState, StateStore

logger = logging.getLogger(__name__)

StatusListener = Callable[[bool], Union[None, Awaitable[None]]]


class TelemetrySource:
    """Minimal interface implemented by all simulator backends.

    A source writes telemetry into the injected ``StateStore`` and accepts
    control commands. Control methods return a success flag synchronously
    and report ``False`` when the source is not live.
    """

    def __init__(self, store: StateStore) -> None:
        self.store = store
        self._live = False
        self._status_listeners: list[StatusListener] = []

    def is_live(self) -> bool:
        return self._live

    def read_snapshot(self) -> CockpitState:
        return self.store.read()

    def add_status_listener(self, listener: StatusListener) -> None:
        self._status_listeners.append(listener)

    async def _set_live(self, live: bool) -> None:
        if live == self._live:
            return
        self._live = live
        logger.info("Telemetry source is now %s", "live" if live else "offline")
        for listener in list(self._status_listeners):
            try:
                result = listener(live)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Telemetry status listener failed")

    async def connect(self) -> bool:
        raise NotImplementedError

    async def disconnect(self) -> None:
        raise NotImplementedError

    def toggle_autopilot(self) -> bool:
        raise NotImplementedError

    def set_altitude_hold(self, altitude: float) -> bool:
        raise NotImplementedError

    def set_heading_hold(self, heading: float) -> bool:
        raise NotImplementedError

    def toggle_nav_mode(self) -> bool:
        raise NotImplementedError

    def toggle_approach_mode(self) -> bool:
        raise NotImplementedError

    def toggle_light(self, kind: str) -> bool:
        raise NotImplementedError

    def toggle_gear(self) -> bool:
        raise NotImplementedError

    def set_gear_up(self) -> bool:
        raise NotImplementedError

    def set_gear_down(self) -> bool:
        raise NotImplementedError

    def set_flaps(self, position: float) -> bool:
        raise NotImplementedError

    def increase_flaps(self) -> bool:
        raise NotImplementedError

    def decrease_flaps(self) -> bool:
        raise NotImplementedError

    def set_radio_frequency(self, radio: str, frequency: float) -> bool:
        raise NotImplementedError
