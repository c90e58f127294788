"""Logging setup and timestamp helpers."""

import logging
from datetime import datetime

from copilot.utils import HANDLER_NAME, setup_logging, utc_iso_now


def test_setup_logging_installs_one_named_handler():
    root = logging.getLogger()
    level = root.level
    try:
        setup_logging("debug")
        setup_logging("warning")
        named = [h for h in root.handlers if h.get_name() == HANDLER_NAME]
        assert len(named) == 1
        assert root.level == logging.WARNING
    finally:
        root.setLevel(level)


def test_utc_iso_now_is_timezone_aware():
    assert datetime.fromisoformat(utc_iso_now()).utcoffset() is not None
