"""Telemetry sources: mock behavior, SimConnect mapping and startup retries."""

import asyncio
import math

from copilot.config import settings
from copilot.relay import Relay, connect_telemetry
from copilot.state import StateStore
from copilot.telemetry.mock_source import MockTelemetrySource
from copilot.telemetry.simconnect_source import SimConnectTelemetrySource, flaps_index, radio_param


class _FakeRequests:
    def __init__(self, values: dict) -> None:
        self.values = values
        self.fail = False

    def get(self, name: str):
        if self.fail:
            raise OSError("simulator closed")
        return self.values.get(name)


class _FakeEvent:
    def __init__(self, log: list, name: str) -> None:
        self.log = log
        self.name = name

    def __call__(self, value: int = 0) -> None:
        self.log.append((self.name, value))


class _FakeEvents:
    def __init__(self) -> None:
        self.log: list = []

    def find(self, name: str):
        if name == "NOT_AN_EVENT":
            return None
        return _FakeEvent(self.log, name)


class _FakeHandle:
    def __init__(self) -> None:
        self.exited = False

    def exit(self) -> None:
        self.exited = True


def _simconnect(values: dict):
    handle, requests, events = _FakeHandle(), _FakeRequests(values), _FakeEvents()
    source = SimConnectTelemetrySource(
        StateStore(), poll_interval_ms=3600_000, connector=lambda _ms: (handle, requests, events)
    )
    return source, handle, requests, events


def test_simconnect_poll_maps_variables_into_store():
    values = {
        "PLANE_ALTITUDE": 10000.0,
        "PLANE_HEADING_DEGREES_TRUE": math.radians(270),
        "AIRSPEED_INDICATED": 150.0,
        "AUTOPILOT_MASTER": 1.0,
        "LIGHT_BEACON": 1,
        "LIGHT_TAXI": 0,
        "GEAR_HANDLE_POSITION": 1.0,
        "FLAPS_HANDLE_PERCENT": 0.5,
        "COM_ACTIVE_FREQUENCY:1": 118.5,
        "NUMBER_OF_ENGINES": 2,
        "GENERAL_ENG_RPM:1": 2400.0,
        "GENERAL_ENG_COMBUSTION:1": 1,
        "GENERAL_ENG_RPM:2": 2350.0,
    }
    source, _handle, _requests, _events = _simconnect(values)

    async def run() -> bool:
        assert await source.connect()
        ok = await source.poll_once()
        await source.disconnect()
        return ok

    assert asyncio.run(run()) is True
    state = source.read_snapshot()
    assert state.aircraft.altitude == 10000
    assert round(state.aircraft.heading) == 270
    assert state.aircraft.airspeed == 150
    assert state.aircraft.vertical_speed == 0
    assert state.autopilot.master is True
    assert state.lights.beacon is True
    assert state.lights.taxi is False
    assert state.gear.position == 1
    assert state.flaps.position == 50
    assert state.radio.com1 == 118.5
    assert state.engines[1].rpm == 2400
    assert state.engines[1].running is True
    assert state.engines[2].rpm == 2350


def test_simconnect_failed_poll_marks_source_offline():
    source, _handle, requests, _events = _simconnect({"PLANE_ALTITUDE": 500.0})
    statuses: list[bool] = []
    source.add_status_listener(statuses.append)

    async def run() -> bool:
        await source.connect()
        requests.fail = True
        ok = await source.poll_once()
        await source.disconnect()
        return ok

    assert asyncio.run(run()) is False
    assert source.is_live() is False
    assert statuses == [True, False]


def test_simconnect_controls_send_events():
    source, handle, _requests, events = _simconnect({})

    async def run() -> list[bool]:
        await source.connect()
        results = [
            source.toggle_autopilot(),
            source.set_altitude_hold(12000),
            source.toggle_light("landing"),
            source.toggle_light("cabin"),
            source.set_flaps(50),
            source.set_radio_frequency("com1", 118.5),
            source.set_gear_down(),
            source._send_event("NOT_AN_EVENT"),
        ]
        await source.disconnect()
        return results

    results = asyncio.run(run())
    assert results == [True, True, True, False, True, True, True, False]
    assert events.log == [
        ("AP_MASTER", 0),
        ("AP_ALT_VAR_SET_ENGLISH", 12000),
        ("AP_ALT_HOLD_ON", 0),
        ("LANDING_LIGHTS_TOGGLE", 0),
        ("FLAPS_SET", 2),
        ("COM_RADIO_SET", 11850),
        ("GEAR_DOWN", 0),
    ]
    assert handle.exited is True
    assert source.toggle_gear() is False


def test_simconnect_connect_failure_returns_false():
    def refuse(_ms):
        raise ConnectionError("no simulator")

    source = SimConnectTelemetrySource(StateStore(), connector=refuse)
    assert asyncio.run(source.connect()) is False
    assert source.is_live() is False
    assert source.toggle_autopilot() is False


def test_event_parameter_encoding():
    assert flaps_index(0) == 0
    assert flaps_index(50) == 2
    assert flaps_index(100) == 4
    assert radio_param(118.50) == 11850


def test_mock_controls_require_live_source():
    source = MockTelemetrySource(StateStore())
    assert source.set_gear_down() is False
    asyncio.run(source.connect())
    assert source.set_gear_down() is True
    assert source.read_snapshot().gear.position == 1
    assert source.toggle_gear() is True
    assert source.read_snapshot().gear.position == 0
    assert source.increase_flaps() is True
    assert source.increase_flaps() is True
    assert source.decrease_flaps() is True
    assert source.read_snapshot().flaps.position == 25


def test_connect_telemetry_retries_until_success():
    source = MockTelemetrySource(StateStore(), fail_connects=2)
    assert asyncio.run(connect_telemetry(source, attempts=5, retry_ms=1)) is True
    assert source.connect_calls == 3
    assert source.is_live()


def test_connect_telemetry_gives_up_after_max_attempts():
    source = MockTelemetrySource(StateStore(), fail_connects=99)
    assert asyncio.run(connect_telemetry(source, attempts=3, retry_ms=1)) is False
    assert source.connect_calls == 3


def test_relay_start_connects_inline_then_retries_in_background():
    settings.telemetry_connect_attempts = 3
    source = MockTelemetrySource(StateStore(), fail_connects=1)
    relay = Relay(source=source, interval_ms=60_000)

    async def run() -> tuple[int, bool]:
        await relay.start()
        inline = source.connect_calls
        await asyncio.sleep(0.1)
        live = source.is_live()
        await relay.stop()
        return inline, live

    assert asyncio.run(run()) == (1, True)
    assert source.connect_calls == 2


def test_relay_start_with_single_attempt_does_not_retry():
    source = MockTelemetrySource(StateStore(), fail_connects=99)
    relay = Relay(source=source, interval_ms=60_000)

    async def run() -> None:
        await relay.start()
        await asyncio.sleep(0.05)
        await relay.stop()

    asyncio.run(run())
    assert source.connect_calls == 1
    assert not source.is_live()
