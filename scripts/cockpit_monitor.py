#!/usr/bin/env python
"""Terminal monitor for a running relay.

Connects to the relay's persistent channel, prints one line per cockpit
snapshot and every event, and exits once the client is closed or has
used up its reconnection attempts.
"""

import argparse
import asyncio

from copilot.client import ClientEvent, CockpitClient
from copilot.config import settings
from copilot.utils import setup_logging


def _format_state(message) -> str:
    state = message.data
    ac = state.aircraft
    ap = state.autopilot
    return (
        f"ALT {ac.altitude:8.0f} ft  HDG {ac.heading:5.1f}  IAS {ac.airspeed:5.1f} kt  VS {ac.vertical_speed:6.0f}  "
        f"AP {'ON ' if ap.master else 'OFF'}  GEAR {state.gear.position:.2f}  FLAPS {state.flaps.position:5.1f}%"
    )


async def _run(args: argparse.Namespace) -> None:
    client = CockpitClient(
        args.origin,
        reconnect_delay_ms=args.reconnect_delay_ms,
        max_reconnect_attempts=args.max_attempts,
    )
    client.on(ClientEvent.connected, lambda _: print("[connected]"))
    client.on(ClientEvent.disconnected, lambda _: print("[disconnected]"))
    client.on(ClientEvent.exhausted, lambda _: print("[gave up reconnecting]"))
    client.on(ClientEvent.state_update, lambda msg: print(_format_state(msg)))
    client.on(
        ClientEvent.action_result,
        lambda msg: print(f"[action] {msg.action}: {'ok' if msg.success else 'failed'} {msg.details or ''}"),
    )
    client.on(ClientEvent.voice_command, lambda msg: print(f"[voice] {msg.command!r}"))
    client.on(
        ClientEvent.simconnect_status,
        lambda msg: print(f"[simulator] {'connected' if msg.connected else 'disconnected'}"),
    )
    if args.request_state:
        client.on(ClientEvent.connected, lambda _: client.request_state())

    await client.connect()
    try:
        await client.wait_settled()
    finally:
        await client.close()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--origin", default=settings.client_origin, help="relay origin, e.g. http://localhost:3000")
    parser.add_argument("--max-attempts", type=int, default=settings.client_max_reconnect_attempts)
    parser.add_argument("--reconnect-delay-ms", type=int, default=settings.client_reconnect_delay_ms)
    parser.add_argument("--request-state", action="store_true", help="ask for a snapshot after each (re)connect")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    setup_logging(args.log_level)
    try:
        asyncio.run(_run(args))
    except KeyboardInterrupt:
        print("\nStopped")


if __name__ == "__main__":
    main()
