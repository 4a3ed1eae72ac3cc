"""In-memory Logger implementation for asserting on emitted events."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional


@dataclass
class LoggedEvent:
    """One call made against the recording logger."""

    level: str
    eid: int
    msg: str
    fields: Dict[str, Any] = field(default_factory=dict)


class RecordingLogger:
    """Thread-safe Logger that keeps every event in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: List[LoggedEvent] = []

    def _record(
        self, level: str, eid: int, msg: str, fields: Optional[Mapping[str, Any]]
    ) -> None:
        with self._lock:
            self._events.append(LoggedEvent(level, eid, msg, dict(fields or {})))

    def debug(self, eid, msg, fields=None) -> None:
        self._record("debug", eid, msg, fields)

    def info(self, eid, msg, fields=None) -> None:
        self._record("info", eid, msg, fields)

    def warning(self, eid, msg, fields=None) -> None:
        self._record("warning", eid, msg, fields)

    def error(self, eid, msg, fields=None) -> None:
        self._record("error", eid, msg, fields)

    def fatal(self, eid, msg, fields=None) -> None:
        self._record("fatal", eid, msg, fields)

    @property
    def events(self) -> List[LoggedEvent]:
        with self._lock:
            return list(self._events)

    def with_eid(self, eid: int) -> List[LoggedEvent]:
        """Return every event logged under ``eid``."""
        return [event for event in self.events if event.eid == eid]

    def wait_for(
        self,
        eid: int,
        predicate: Optional[Callable[[LoggedEvent], bool]] = None,
        timeout: float = 2.0,
    ) -> List[LoggedEvent]:
        """Poll until an event with ``eid`` matching ``predicate`` is logged."""
        deadline = time.monotonic() + timeout
        while True:
            found = [
                event
                for event in self.with_eid(eid)
                if predicate is None or predicate(event)
            ]
            if found or time.monotonic() >= deadline:
                return found
            time.sleep(0.01)
