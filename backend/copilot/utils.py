"""Small shared utility helpers used across backend modules."""

import logging
import sys
from datetime import datetime, timezone

HANDLER_NAME = "copilot"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def utc_iso_now() -> str:
    """Return current UTC timestamp as ISO-8601 string."""

    return datetime.now(timezone.utc).isoformat()


def setup_logging(level: str = "INFO") -> None:
    """Attach one console handler to the root logger.

    Safe to call more than once; the handler is only installed the first time.
    """

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if any(handler.get_name() == HANDLER_NAME for handler in root.handlers):
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.set_name(HANDLER_NAME)
    root.addHandler(handler)
