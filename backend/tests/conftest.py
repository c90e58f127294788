"""Shared pytest fixtures: force mock telemetry and fast timers per test."""

import pytest

from copilot.config import settings


@pytest.fixture(autouse=True)
def fast_settings():
    overrides = {
        "telemetry_mode": "mock",
        "telemetry_connect_attempts": 1,
        "telemetry_connect_retry_ms": 10,
        "broadcast_interval_ms": 1000,
        "client_reconnect_delay_ms": 10,
        "client_max_reconnect_attempts": 5,
        "client_ping_interval_ms": 30000,
    }
    original = {name: getattr(settings, name) for name in overrides}
    for name, value in overrides.items():
        setattr(settings, name, value)
    yield
    for name, value in original.items():
        setattr(settings, name, value)
