"""Runtime configuration loaded from environment variables.

This module centralizes relay settings such as the listen address, the
telemetry source mode, broadcast cadence, and client reconnection policy.
"""

import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Typed settings object used across the backend."""

    env: str = os.getenv("ENV", "dev")
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "3000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()
    cors_origins: list[str] = [x.strip() for x in os.getenv("CORS_ORIGINS", "*").split(",") if x.strip()]
    telemetry_mode: str = os.getenv("TELEMETRY_MODE", "mock").lower()
    telemetry_connect_attempts: int = int(os.getenv("TELEMETRY_CONNECT_ATTEMPTS", "5"))
    telemetry_connect_retry_ms: int = int(os.getenv("TELEMETRY_CONNECT_RETRY_MS", "5000"))
    telemetry_poll_ms: int = int(os.getenv("TELEMETRY_POLL_MS", "1000"))
    broadcast_interval_ms: int = int(os.getenv("BROADCAST_INTERVAL_MS", "1000"))
    broadcast_send_timeout_ms: int = int(os.getenv("BROADCAST_SEND_TIMEOUT_MS", "5000"))
    client_origin: str = os.getenv("CLIENT_ORIGIN", "http://localhost:3000")
    client_reconnect_delay_ms: int = int(os.getenv("CLIENT_RECONNECT_DELAY_MS", "3000"))
    client_max_reconnect_attempts: int = int(os.getenv("CLIENT_MAX_RECONNECT_ATTEMPTS", "5"))
    client_ping_interval_ms: int = int(os.getenv("CLIENT_PING_INTERVAL_MS", "30000"))


settings = Settings()
