"""Cockpit state snapshot and the store that owns it.

The store holds the single authoritative ``CockpitState`` for the process.
Telemetry sources push partial updates into it; the broadcaster reads it.
Updates merge field-by-field: anything a source does not report keeps its
previous value.
"""

import logging
from collections.abc import Mapping
from functools import lru_cache
from typing import Any, Optional

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class AircraftState(BaseModel):
    altitude: float = 0.0
    heading: float = 0.0
    airspeed: float = 0.0
    vertical_speed: float = 0.0
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class AutopilotState(BaseModel):
    master: bool = False
    altitude_hold: bool = False
    heading_hold: bool = False
    nav_mode: bool = False
    approach_mode: bool = False
    target_altitude: float = 0.0
    target_heading: float = 0.0


class LightsState(BaseModel):
    beacon: bool = False
    strobe: bool = False
    nav: bool = False
    landing: bool = False
    taxi: bool = False


class GearState(BaseModel):
    # 0.0 = up, 1.0 = down
    position: float = 0.0


class FlapsState(BaseModel):
    # percent, 0-100
    position: float = 0.0


class RadioState(BaseModel):
    com1: float = 0.0
    com2: float = 0.0
    nav1: float = 0.0
    nav2: float = 0.0


class FuelState(BaseModel):
    total: float = 0.0
    left: float = 0.0
    right: float = 0.0


class EngineState(BaseModel):
    rpm: float = 0.0
    throttle: float = 0.0
    running: bool = False


class CockpitState(BaseModel):
    """Full cockpit snapshot. Every field has a default so it is never partial."""

    aircraft: AircraftState = Field(default_factory=AircraftState)
    autopilot: AutopilotState = Field(default_factory=AutopilotState)
    lights: LightsState = Field(default_factory=LightsState)
    gear: GearState = Field(default_factory=GearState)
    flaps: FlapsState = Field(default_factory=FlapsState)
    radio: RadioState = Field(default_factory=RadioState)
    fuel: FuelState = Field(default_factory=FuelState)
    engines: dict[int, EngineState] = Field(default_factory=dict)


LIGHT_KINDS = tuple(LightsState.model_fields)
RADIO_KINDS = tuple(RadioState.model_fields)


@lru_cache(maxsize=None)
def _adapter_for(annotation: Any) -> TypeAdapter:
    return TypeAdapter(annotation)


class StateStore:
    """Owner of the process-wide ``CockpitState``.

    Single writer (the telemetry source) and single reader (the broadcaster)
    on one event loop, so no locking is needed.
    """

    def __init__(self, initial: CockpitState | None = None) -> None:
        self._state = initial if initial is not None else CockpitState()

    def update(self, partial: Mapping[str, Any]) -> None:
        """Merge the fields present in ``partial``; unknown fields are ignored."""

        if not isinstance(partial, Mapping):
            logger.debug("Ignoring non-mapping telemetry update: %r", partial)
            return
        for key, value in partial.items():
            if key == "engines":
                self._merge_engines(value)
                continue
            section = getattr(self._state, key, None) if key in CockpitState.model_fields else None
            if isinstance(section, BaseModel) and isinstance(value, Mapping):
                _merge_model(section, value)

    def read(self) -> CockpitState:
        return self._state

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-ready deep copy safe to hand outside the process."""

        return self._state.model_dump(mode="json")

    def _merge_engines(self, value: Any) -> None:
        if not isinstance(value, Mapping):
            return
        for raw_index, params in value.items():
            try:
                index = int(raw_index)
            except (TypeError, ValueError):
                logger.debug("Ignoring engine with invalid index: %r", raw_index)
                continue
            if not isinstance(params, Mapping):
                continue
            engine = self._state.engines.get(index)
            if engine is None:
                engine = EngineState()
                self._state.engines[index] = engine
            _merge_model(engine, params)


def _merge_model(model: BaseModel, partial: Mapping[str, Any]) -> None:
    fields = type(model).model_fields
    for key, value in partial.items():
        field = fields.get(key)
        if field is None:
            continue
        try:
            coerced = _adapter_for(field.annotation).validate_python(value)
        except ValidationError:
            logger.debug("Ignoring invalid value for %s.%s: %r", type(model).__name__, key, value)
            continue
        setattr(model, key, coerced)
