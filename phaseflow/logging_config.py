"""
Logging setup.

Modules log through ``logging.getLogger(__name__)``; nothing is configured
at import time. Applications (the API factory, scripts) call
``setup_logging()`` once.
"""

from __future__ import annotations
from datetime import datetime, timezone
import json
import logging
import sys

logger = logging.getLogger("phaseflow")

_TERMINAL_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def setup_logging(level: str | int = logging.INFO, json_format: bool = False) -> None:
    """
    Configure the package logger.

    Replaces any handlers previously installed by this function so it can be
    called more than once (tests, app reloads).
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TERMINAL_FORMAT))

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
