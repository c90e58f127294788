"""Client connection lifecycle: dispatch, reconnection policy and liveness."""

import asyncio

from copilot.client import ClientEvent, CockpitClient, ConnectionState, Outcome, websocket_url
from copilot.protocol import ActionResultMessage, StateUpdateMessage
from fakes import ScriptedConnector


def _client(connector: ScriptedConnector, **kwargs) -> CockpitClient:
    kwargs.setdefault("reconnect_delay_ms", 5)
    kwargs.setdefault("max_reconnect_attempts", 5)
    return CockpitClient("http://localhost:3000", connector=connector, **kwargs)


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def _recorder(client: CockpitClient, *events: ClientEvent) -> list[tuple[str, object]]:
    seen: list[tuple[str, object]] = []
    for event in events:
        client.on(event, lambda payload, name=event.value: seen.append((name, payload)))
    return seen


def test_websocket_url_follows_page_origin():
    assert websocket_url("http://localhost:3000") == "ws://localhost:3000/"
    assert websocket_url("https://cockpit.example.com") == "wss://cockpit.example.com/"
    assert websocket_url("http://192.168.1.20:3000/index.html") == "ws://192.168.1.20:3000/"


def test_connect_success_resets_attempts_and_emits_connected():
    connector = ScriptedConnector()
    client = _client(connector)
    seen = _recorder(client, ClientEvent.connected)

    async def run() -> Outcome:
        client.reconnect.attempts = 3
        outcome = await client.connect()
        await client.close()
        return outcome

    outcome = asyncio.run(run())
    assert outcome == Outcome(True)
    assert connector.urls == ["ws://localhost:3000/"]
    assert client.reconnect.attempts == 0
    assert seen == [("connected", None)]
    assert client.state == ConnectionState.disconnected
    assert connector.sockets[0].closed


def test_messages_dispatch_as_typed_envelopes():
    connector = ScriptedConnector()
    client = _client(connector)
    seen = _recorder(
        client,
        ClientEvent.connection,
        ClientEvent.state_update,
        ClientEvent.action_result,
        ClientEvent.voice_command,
        ClientEvent.simconnect_status,
        ClientEvent.pong,
    )

    async def run() -> None:
        await client.connect()
        socket = connector.sockets[0]
        socket.feed({"type": "connection", "status": "connected", "simconnect": True})
        socket.feed({"type": "state_update", "data": {"aircraft": {"altitude": 10000, "heading": 270}}})
        socket.feed("{broken json")
        socket.feed({"type": "weather_update", "wind": 12})
        socket.feed({"type": "action_result", "action": "gear_down", "success": False, "details": {}})
        socket.feed({"type": "voice_command", "command": "gear down", "recognized": True})
        socket.feed({"type": "state_update", "data": {"aircraft": {"heading": 90}}})
        socket.feed({"type": "simconnect_status", "connected": False})
        socket.feed({"type": "pong"})
        await _wait_for(lambda: len(seen) == 7)
        assert client.is_connected
        await client.close()

    asyncio.run(run())
    assert [name for name, _ in seen] == [
        "connection",
        "state_update",
        "action_result",
        "voice_command",
        "state_update",
        "simconnect_status",
        "pong",
    ]
    assert isinstance(seen[1][1], StateUpdateMessage)
    assert isinstance(seen[2][1], ActionResultMessage)
    assert seen[2][1].success is False
    # every snapshot replaces the previous one wholesale
    assert client.latest_state.aircraft.heading == 90
    assert client.latest_state.aircraft.altitude == 0
    assert client.simconnect_live is False


def test_connection_loss_reconnects_after_delay():
    connector = ScriptedConnector()
    client = _client(connector)
    seen = _recorder(client, ClientEvent.connected, ClientEvent.disconnected)

    async def run() -> None:
        await client.connect()
        connector.sockets[0].drop()
        await _wait_for(lambda: client.state == ConnectionState.reconnecting or len(connector.sockets) == 2)
        await _wait_for(lambda: len(connector.sockets) == 2 and client.is_connected)
        await client.close()

    asyncio.run(run())
    assert [name for name, _ in seen] == ["connected", "disconnected", "connected"]
    assert connector.calls == 2
    assert client.reconnect.attempts == 0


def test_reconnection_stops_after_max_attempts():
    connector = ScriptedConnector(failures=100)
    client = _client(connector)
    seen = _recorder(client, ClientEvent.exhausted, ClientEvent.connected)

    async def run() -> ConnectionState:
        outcome = await client.connect()
        assert outcome.ok is False
        assert "refused" in outcome.reason
        final = await asyncio.wait_for(client.wait_settled(), timeout=2)
        calls = connector.calls
        await asyncio.sleep(0.05)
        assert connector.calls == calls
        return final

    assert asyncio.run(run()) == ConnectionState.exhausted
    # the initial attempt plus five scheduled retries, and no sixth retry
    assert connector.calls == 6
    assert client.reconnect.attempts == 5
    assert seen == [("exhausted", None)]


def test_explicit_connect_recovers_from_exhaustion():
    connector = ScriptedConnector(failures=6)
    client = _client(connector, max_reconnect_attempts=5)

    async def run() -> None:
        await client.connect()
        await asyncio.wait_for(client.wait_settled(), timeout=2)
        assert client.state == ConnectionState.exhausted
        outcome = await client.connect()
        assert outcome.ok
        assert client.is_connected
        await client.close()

    asyncio.run(run())
    assert connector.calls == 7
    assert client.reconnect.attempts == 0


def test_send_while_disconnected_is_a_quiet_noop():
    connector = ScriptedConnector()
    client = _client(connector)

    async def run() -> list[Outcome]:
        return [await client.ping(), await client.request_state(), await client.send({"type": "ping"})]

    outcomes = asyncio.run(run())
    assert all(outcome.ok is False for outcome in outcomes)
    assert outcomes[0].reason == "not connected"
    assert connector.calls == 0


def test_request_state_and_periodic_ping_while_connected():
    connector = ScriptedConnector()
    client = _client(connector, ping_interval_ms=10)

    async def run() -> None:
        await client.connect()
        socket = connector.sockets[0]
        assert await client.request_state() == Outcome(True)
        await _wait_for(lambda: sum(1 for m in socket.sent if m["type"] == "ping") >= 2)
        await client.close()
        sent = len(socket.sent)
        await asyncio.sleep(0.05)
        assert len(socket.sent) == sent

    asyncio.run(run())
    assert connector.sockets[0].sent[0] == {"type": "request_state"}


def test_close_cancels_pending_retry():
    connector = ScriptedConnector(failures=1)
    client = _client(connector, reconnect_delay_ms=50)

    async def run() -> None:
        await client.connect()
        assert client.state == ConnectionState.reconnecting
        await client.close()
        await asyncio.sleep(0.1)

    asyncio.run(run())
    assert connector.calls == 1
    assert client.state == ConnectionState.disconnected


def test_failing_listener_does_not_block_others():
    connector = ScriptedConnector()
    client = _client(connector)
    calls: list[str] = []

    def broken(_payload) -> None:
        raise ValueError("listener bug")

    async def async_listener(_payload) -> None:
        calls.append("async")

    client.on(ClientEvent.connected, broken)
    client.on(ClientEvent.connected, async_listener)
    client.on(ClientEvent.connected, lambda _p: calls.append("sync"))

    async def run() -> None:
        await client.connect()
        client.off(ClientEvent.connected, broken)
        await client.close()

    asyncio.run(run())
    assert calls == ["async", "sync"]


def test_connect_during_pending_retry_opens_a_single_socket():
    connector = ScriptedConnector(failures=1, open_delay=0.05)
    client = _client(connector)

    async def run() -> None:
        await client.connect()
        assert client.state == ConnectionState.reconnecting
        # the retry fires after 5ms and is still inside the slow connector
        await asyncio.sleep(0.02)
        outcome = await client.connect()
        assert outcome.ok
        await asyncio.sleep(0.1)
        assert client.is_connected
        assert len(connector.sockets) == 1
        await client.close()

    asyncio.run(run())
    assert all(socket.closed for socket in connector.sockets)


def test_concurrent_connect_calls_share_one_socket():
    connector = ScriptedConnector(open_delay=0.02)
    client = _client(connector)

    async def run() -> list[Outcome]:
        outcomes = await asyncio.gather(client.connect(), client.connect())
        await client.close()
        return list(outcomes)

    assert asyncio.run(run()) == [Outcome(True), Outcome(True)]
    assert connector.calls == 1
    assert connector.sockets[0].closed
