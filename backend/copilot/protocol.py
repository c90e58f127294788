"""Wire protocol for the persistent cockpit channel.

Every frame is a JSON object with a mandatory ``type`` field. Builders
return plain dicts ready for ``json.dumps``; parsers turn inbound frames
into typed envelopes.
"""

import json
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from .exceptions import ProtocolError
from .state import CockpitState
from .utils import utc_iso_now


class MessageType(str, Enum):
    connection = "connection"
    state_update = "state_update"
    action_result = "action_result"
    voice_command = "voice_command"
    simconnect_status = "simconnect_status"
    pong = "pong"
    ping = "ping"
    request_state = "request_state"


SERVER_MESSAGE_TYPES = frozenset(
    {
        MessageType.connection,
        MessageType.state_update,
        MessageType.action_result,
        MessageType.voice_command,
        MessageType.simconnect_status,
        MessageType.pong,
    }
)
CLIENT_MESSAGE_TYPES = frozenset({MessageType.ping, MessageType.request_state})


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ConnectionMessage(_Envelope):
    type: Literal["connection"] = "connection"
    status: str
    simconnect: bool = False


class StateUpdateMessage(_Envelope):
    type: Literal["state_update"] = "state_update"
    data: CockpitState


class ActionResultMessage(_Envelope):
    type: Literal["action_result"] = "action_result"
    action: str
    success: bool
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[str] = None


class VoiceCommandMessage(_Envelope):
    type: Literal["voice_command"] = "voice_command"
    command: str
    recognized: bool
    timestamp: Optional[str] = None


class SimConnectStatusMessage(_Envelope):
    type: Literal["simconnect_status"] = "simconnect_status"
    connected: bool
    timestamp: Optional[str] = None


class PongMessage(_Envelope):
    type: Literal["pong"] = "pong"


ServerMessage = Annotated[
    Union[
        ConnectionMessage,
        StateUpdateMessage,
        ActionResultMessage,
        VoiceCommandMessage,
        SimConnectStatusMessage,
        PongMessage,
    ],
    Field(discriminator="type"),
]

_server_message_adapter: TypeAdapter = TypeAdapter(ServerMessage)


def connection_message(simconnect: bool, status: str = "connected") -> dict[str, Any]:
    return {"type": MessageType.connection.value, "status": status, "simconnect": simconnect}


def state_update_message(snapshot: dict[str, Any]) -> dict[str, Any]:
    return {"type": MessageType.state_update.value, "data": snapshot}


def action_result_message(
    action: str,
    success: bool,
    details: dict[str, Any] | None = None,
    timestamp: str | None = None,
) -> dict[str, Any]:
    return {
        "type": MessageType.action_result.value,
        "action": action,
        "success": success,
        "details": details or {},
        "timestamp": timestamp or utc_iso_now(),
    }


def voice_command_message(command: str, recognized: bool) -> dict[str, Any]:
    return {
        "type": MessageType.voice_command.value,
        "command": command,
        "recognized": recognized,
        "timestamp": utc_iso_now(),
    }


def simconnect_status_message(connected: bool) -> dict[str, Any]:
    return {
        "type": MessageType.simconnect_status.value,
        "connected": connected,
        "timestamp": utc_iso_now(),
    }


def pong_message() -> dict[str, Any]:
    return {"type": MessageType.pong.value}


def ping_message() -> dict[str, Any]:
    return {"type": MessageType.ping.value}


def request_state_message() -> dict[str, Any]:
    return {"type": MessageType.request_state.value}


def decode_frame(raw: str | bytes) -> dict[str, Any]:
    """Decode one frame into a dict carrying a string ``type``.

    Raises ``ProtocolError`` for anything that is not such an object.
    """

    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", "replace")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProtocolError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise ProtocolError("frame is not a JSON object")
    if not isinstance(payload.get("type"), str):
        raise ProtocolError("frame has no type")
    return payload


def parse_server_message(raw: str | bytes) -> BaseModel | None:
    """Parse a server frame into its envelope model.

    Returns ``None`` for well-formed frames of an unrecognized type.
    """

    payload = decode_frame(raw)
    if payload["type"] not in {t.value for t in SERVER_MESSAGE_TYPES}:
        return None
    try:
        return _server_message_adapter.validate_python(payload)
    except ValidationError as exc:
        raise ProtocolError(f"invalid {payload['type']} payload: {exc.error_count()} error(s)") from exc


def parse_client_message(raw: str | bytes) -> MessageType | None:
    """Return the type of a client frame, or ``None`` when unrecognized."""

    payload = decode_frame(raw)
    try:
        message_type = MessageType(payload["type"])
    except ValueError:
        return None
    if message_type not in CLIENT_MESSAGE_TYPES:
        return None
    return message_type
