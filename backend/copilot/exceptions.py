"""Exception hierarchy for the relay."""


class CopilotError(Exception):
    """Base exception for all relay errors."""


class TelemetryUnavailableError(CopilotError):
    """Raised when an operation needs a live telemetry source and there is none."""


class InvalidControlInput(CopilotError):
    """Raised when a control request carries an out-of-range or unknown value."""


class ProtocolError(CopilotError):
    """Raised when a wire frame cannot be decoded into a typed envelope."""
