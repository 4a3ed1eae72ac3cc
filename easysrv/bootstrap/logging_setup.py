"""Logging configuration utilities for the server wrapper."""

import itertools
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from easysrv.domain.errors import ConfigError
from easysrv.domain.logger import EventLogger, EventLoggerAdapter

LOGGER_NAME = "easysrv"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5

_server_logger_ids = itertools.count(1)


class EventFieldsFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Ensure event_id, fields and component exist on every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "event_id"):
            record.event_id = 0
        if not isinstance(getattr(record, "fields", None), dict):
            record.fields = {}
        if not hasattr(record, "component"):
            record.component = record.name
        return True


def _level_label(record: logging.LogRecord) -> str:
    if record.levelno >= logging.CRITICAL:
        return "FATAL"
    return record.levelname


class EventLineFormatter(logging.Formatter):
    """Render ``<time> LEVEL EVENTID MESSAGE key=val ...`` lines."""

    def __init__(self, datefmt: Optional[str] = DATE_FORMAT):
        super().__init__(datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format the record as a single text line."""
        fields = getattr(record, "fields", {}) or {}
        suffix = "".join(f" {key}={value}" for key, value in fields.items())
        line = (
            f"{self.formatTime(record, self.datefmt)} {_level_label(record)} "
            f"{getattr(record, 'event_id', 0):04d} {record.getMessage()}{suffix}"
        )
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class JsonFormatter(logging.Formatter):
    """JSON formatter with stable key ordering for structured logging."""

    def __init__(self, datefmt: Optional[str] = None):
        """Initialize JSON formatter with optional date format."""
        super().__init__(datefmt=datefmt)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON with stable key ordering."""
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": _level_label(record),
            "event_id": getattr(record, "event_id", 0),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }

        fields = getattr(record, "fields", {}) or {}
        for key, value in fields.items():
            if key not in log_data:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, sort_keys=True, default=str)


def _resolve_level(level_name: str) -> int:
    """Translate text level names into logging module numeric levels."""
    level = getattr(logging, level_name.upper(), None)
    if isinstance(level, int):
        return level
    return logging.INFO


def _build_handler(
    destination: Optional[str], level: int, use_json: bool = False
) -> logging.Handler:
    """Create a stdout or rotating file handler for the configured logger."""
    if destination and destination.lower() != "stdout":
        target_path = Path(destination)
        target_path.parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            target_path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT
        )
    else:
        handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)

    if use_json:
        handler.setFormatter(JsonFormatter(DATE_FORMAT))
    else:
        handler.setFormatter(EventLineFormatter(DATE_FORMAT))

    handler.addFilter(EventFieldsFilter())
    return handler


def configure_logging(
    level: str = "INFO",
    destination: Optional[str] = None,
    use_json: bool = False,
    name: str = LOGGER_NAME,
) -> EventLoggerAdapter:
    """Configure and return the named logger with the requested handler."""
    logger = logging.getLogger(name)
    numeric_level = _resolve_level(level)
    logger.setLevel(numeric_level)
    logger.propagate = False

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    try:
        handler = _build_handler(destination, numeric_level, use_json)
    except OSError as exc:
        raise ConfigError(f"error opening log file {destination}: {exc}") from exc
    logger.addHandler(handler)

    adapter = EventLoggerAdapter(logger, {})
    adapter.debug(
        "Logging configured",
        extra={
            "fields": {
                "destination": destination or "stdout",
                "level": logging.getLevelName(numeric_level),
                "use_json": use_json,
            }
        },
    )
    return adapter


def new_event_logger(
    log_file: str = "", debug: bool = False, use_json: bool = False
) -> EventLogger:
    """Build the default EventLogger writing to stdout or ``log_file``.

    Every call configures its own child of the package logger so that
    independent servers in one process keep independent destinations.
    """
    name = f"{LOGGER_NAME}.server-{next(_server_logger_ids)}"
    adapter = configure_logging(
        "DEBUG" if debug else "INFO",
        log_file or None,
        use_json,
        name=name,
    )
    return EventLogger(adapter.logger)
