# logging_utils.py
"""Logging setup for the realtime helper.

Outside development every record is one flat JSON object: the fixed fields
below plus whatever the call site passed through ``extra=`` (``kb_path``,
``hit_count``, ``status_code`` ...). In development the same context is
appended to a single text line as ``key=value`` pairs.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

SERVICE_NAME = "realtime-helper"
ROOT_LOGGER_NAME = "realtime_helper"

# Loggers that only speak at WARNING and above unless LOG_LEVEL is DEBUG
QUIET_LOGGERS = ("uvicorn.access", "urllib3", "requests", "httpx", "httpcore")

# uvicorn attaches color_message to its own records
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "color_message"}


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the ``extra=`` fields attached to a record."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record, context fields at the top level."""

    def __init__(self, service_name: str = SERVICE_NAME):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        # Context never overwrites the fixed fields
        for key, value in record_context(record).items():
            entry.setdefault(key, value)
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class KeyValueFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message key=value ...`` for local runs."""

    def __init__(self):
        super().__init__(fmt="%(asctime)s %(levelname)-7s %(name)s: %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value!r}" for key, value in context.items())
        head, sep, tail = line.partition("\n")
        return f"{head} {pairs}{sep}{tail}"


def setup_logging(level: Optional[str] = None, structured: Optional[bool] = None) -> logging.Logger:
    """Install a single stdout handler on the root logger.

    Runs before the configuration object exists (a missing API key must
    still be logged), so it reads ``LOG_LEVEL`` and ``APP_ENV`` directly.

    Args:
        level: Level name; defaults to LOG_LEVEL, then INFO.
        structured: JSON output; defaults to True unless APP_ENV is 'dev'.

    Returns:
        The package logger.
    """
    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO
    if structured is None:
        structured = os.environ.get("APP_ENV", "dev") != "dev"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonLogFormatter() if structured else KeyValueFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level)

    quiet_level = log_level if log_level <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.debug("Logging configured", extra={"log_level": level_name, "structured": structured})
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``realtime_helper`` namespace."""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
