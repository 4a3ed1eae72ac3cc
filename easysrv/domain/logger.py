"""Pluggable leveled logger with numeric event identifiers."""

import logging
from typing import Any, Mapping, MutableMapping, Optional, Protocol

LoggerFields = dict[str, Any]


class Logger(Protocol):
    """Capability interface every server logger must provide.

    Each method takes a numeric event id, a message and an optional mapping
    of structured fields. Implementations must be safe to call from
    concurrent request threads.
    """

    def debug(
        self, eid: int, msg: str, fields: Optional[Mapping[str, Any]] = None
    ) -> None: ...

    def info(
        self, eid: int, msg: str, fields: Optional[Mapping[str, Any]] = None
    ) -> None: ...

    def warning(
        self, eid: int, msg: str, fields: Optional[Mapping[str, Any]] = None
    ) -> None: ...

    def error(
        self, eid: int, msg: str, fields: Optional[Mapping[str, Any]] = None
    ) -> None: ...

    def fatal(
        self, eid: int, msg: str, fields: Optional[Mapping[str, Any]] = None
    ) -> None: ...


class EventLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects event id, fields and component into records."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        """Normalize the extra dict so formatters can rely on its keys."""
        if "extra" not in kwargs:
            kwargs["extra"] = {}
        else:
            kwargs["extra"] = dict(kwargs["extra"])

        kwargs["extra"].setdefault("event_id", 0)
        kwargs["extra"]["fields"] = dict(kwargs["extra"].get("fields") or {})

        logger_name = self.logger.name
        if logger_name.startswith("easysrv."):
            component = logger_name[len("easysrv.") :]
        else:
            component = logger_name
        kwargs["extra"]["component"] = component

        return msg, kwargs


def component_logger(component: str) -> EventLoggerAdapter:
    """Return an adapter for a package-internal component logger."""
    return EventLoggerAdapter(logging.getLogger(f"easysrv.{component}"), {})


class EventLogger:
    """Default Logger implementation backed by the standard logging module.

    ``FATAL`` events are written at ``CRITICAL`` level and do not terminate
    the process.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._adapter = EventLoggerAdapter(logger, {})

    @property
    def logger(self) -> logging.Logger:
        """Expose the underlying stdlib logger."""
        return self._adapter.logger

    def _write(
        self,
        level: int,
        eid: int,
        msg: str,
        fields: Optional[Mapping[str, Any]],
    ) -> None:
        self._adapter.log(level, msg, extra={"event_id": eid, "fields": fields})

    def debug(
        self, eid: int, msg: str, fields: Optional[Mapping[str, Any]] = None
    ) -> None:
        self._write(logging.DEBUG, eid, msg, fields)

    def info(
        self, eid: int, msg: str, fields: Optional[Mapping[str, Any]] = None
    ) -> None:
        self._write(logging.INFO, eid, msg, fields)

    def warning(
        self, eid: int, msg: str, fields: Optional[Mapping[str, Any]] = None
    ) -> None:
        self._write(logging.WARNING, eid, msg, fields)

    def error(
        self, eid: int, msg: str, fields: Optional[Mapping[str, Any]] = None
    ) -> None:
        self._write(logging.ERROR, eid, msg, fields)

    def fatal(
        self, eid: int, msg: str, fields: Optional[Mapping[str, Any]] = None
    ) -> None:
        self._write(logging.CRITICAL, eid, msg, fields)
