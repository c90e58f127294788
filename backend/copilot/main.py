"""FastAPI application entrypoint and REST/WebSocket surface.

Each control endpoint validates its input, answers 503 while the telemetry
source is not live, and otherwise forwards to the control gateway. The
persistent channel is served on ``/`` (what the browser derives from its
own origin) and ``/ws``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .control import ControlActionResult
from .exceptions import InvalidControlInput, TelemetryUnavailableError
from .relay import Relay
from .schemas import AltitudeRequest, FlapsRequest, HeadingRequest, RadioRequest, VoiceCommandRequest
from .utils import setup_logging, utc_iso_now

logger = logging.getLogger(__name__)

router = APIRouter()


def get_relay(request: Request) -> Relay:
    return request.app.state.relay


def live_relay(relay: Relay = Depends(get_relay)) -> Relay:
    if not relay.source.is_live():
        raise TelemetryUnavailableError("SimConnect not connected")
    return relay


def _result_payload(result: ControlActionResult, **echo: Any) -> dict[str, Any]:
    return {"success": result.success, "action": result.action, **echo}


@router.get("/api/health")
def health(relay: Relay = Depends(get_relay)):
    return {
        "status": "ok",
        "simconnect": relay.source.is_live(),
        "connections": len(relay.registry),
        "timestamp": utc_iso_now(),
    }


@router.get("/api/status")
def status(relay: Relay = Depends(live_relay)):
    return {"connected": True, "state": relay.store.snapshot()}


@router.post("/api/autopilot/toggle")
async def autopilot_toggle(relay: Relay = Depends(live_relay)):
    return _result_payload(await relay.gateway.toggle_autopilot())


@router.post("/api/autopilot/altitude")
async def autopilot_altitude(payload: AltitudeRequest, relay: Relay = Depends(live_relay)):
    result = await relay.gateway.set_altitude_hold(payload.altitude)
    return _result_payload(result, altitude=payload.altitude)


@router.post("/api/autopilot/heading")
async def autopilot_heading(payload: HeadingRequest, relay: Relay = Depends(live_relay)):
    result = await relay.gateway.set_heading_hold(payload.heading)
    return _result_payload(result, heading=payload.heading)


@router.post("/api/autopilot/nav")
async def autopilot_nav(relay: Relay = Depends(live_relay)):
    return _result_payload(await relay.gateway.toggle_nav_mode())


@router.post("/api/autopilot/approach")
async def autopilot_approach(relay: Relay = Depends(live_relay)):
    return _result_payload(await relay.gateway.toggle_approach_mode())


@router.post("/api/lights/all/{state}")
async def lights_all(state: str, relay: Relay = Depends(live_relay)):
    result = await relay.gateway.set_all_lights(state)
    return _result_payload(result, results=result.details.get("results", []))


@router.post("/api/lights/{light_type}")
async def lights_toggle(light_type: str, relay: Relay = Depends(live_relay)):
    return _result_payload(await relay.gateway.toggle_light(light_type))


@router.post("/api/gear/toggle")
async def gear_toggle(relay: Relay = Depends(live_relay)):
    return _result_payload(await relay.gateway.toggle_gear())


@router.post("/api/gear/down")
async def gear_down(relay: Relay = Depends(live_relay)):
    return _result_payload(await relay.gateway.set_gear_down())


@router.post("/api/gear/up")
async def gear_up(relay: Relay = Depends(live_relay)):
    return _result_payload(await relay.gateway.set_gear_up())


@router.post("/api/flaps/set")
async def flaps_set(payload: FlapsRequest, relay: Relay = Depends(live_relay)):
    result = await relay.gateway.set_flaps(payload.position)
    return _result_payload(result, position=payload.position)


@router.post("/api/flaps/increase")
async def flaps_increase(relay: Relay = Depends(live_relay)):
    return _result_payload(await relay.gateway.increase_flaps())


@router.post("/api/flaps/decrease")
async def flaps_decrease(relay: Relay = Depends(live_relay)):
    return _result_payload(await relay.gateway.decrease_flaps())


@router.post("/api/radio/{radio_type}")
async def radio_set(radio_type: str, payload: RadioRequest, relay: Relay = Depends(live_relay)):
    result = await relay.gateway.set_radio_frequency(radio_type, payload.frequency)
    return _result_payload(result, frequency=payload.frequency)


@router.post("/api/voice/command")
async def voice_command(payload: VoiceCommandRequest, relay: Relay = Depends(get_relay)):
    logger.info("Voice command received: %s", payload.command)
    await relay.broadcaster.notify_voice_command(payload.command, True)
    return {
        "success": True,
        "command": payload.command,
        "message": "Command received and will be processed",
    }


async def _serve_socket(websocket: WebSocket) -> None:
    relay: Relay = websocket.app.state.relay
    connection = await relay.broadcaster.attach(websocket)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            # text and binary frames go through the same parser
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue
            await relay.broadcaster.handle_client_message(connection, raw)
    except WebSocketDisconnect:
        pass
    except Exception as exc:
        logger.error("WebSocket error on %s: %s", connection.id, exc)
    finally:
        await relay.registry.unregister(connection)


@router.websocket("/")
async def root_socket(websocket: WebSocket):
    await _serve_socket(websocket)


@router.websocket("/ws")
async def cockpit_socket(websocket: WebSocket):
    await _serve_socket(websocket)


async def _invalid_input(_request: Request, exc: InvalidControlInput) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


async def _invalid_body(_request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    field = ".".join(str(part) for part in errors[0].get("loc", ())[1:]) if errors else ""
    message = f"Invalid {field} value" if field else "Invalid request body"
    return JSONResponse(status_code=400, content={"error": message})


async def _unavailable(_request: Request, exc: TelemetryUnavailableError) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"error": str(exc), "message": "Please ensure MSFS is running"},
    )


async def _server_error(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Server error")
    return JSONResponse(status_code=500, content={"error": "Internal server error", "message": str(exc)})


def create_app(relay: Relay | None = None) -> FastAPI:
    """Build the app; a fresh ``Relay`` is created at startup unless one is given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level)
        app.state.relay = relay if relay is not None else Relay()
        await app.state.relay.start()
        try:
            yield
        finally:
            logger.info("Shutting down gracefully...")
            await app.state.relay.stop()

    app = FastAPI(title="MSFS Copilot", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(InvalidControlInput, _invalid_input)
    app.add_exception_handler(RequestValidationError, _invalid_body)
    app.add_exception_handler(TelemetryUnavailableError, _unavailable)
    app.add_exception_handler(Exception, _server_error)
    app.include_router(router)
    return app


app = create_app()
