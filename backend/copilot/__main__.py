"""Run the relay with uvicorn: ``python -m copilot``."""

import logging

import uvicorn

from .config import settings
from .utils import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    setup_logging(settings.log_level)
    logger.info("MSFS Copilot starting on http://%s:%d (WebSocket on / and /ws)", settings.host, settings.port)
    uvicorn.run("copilot.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
