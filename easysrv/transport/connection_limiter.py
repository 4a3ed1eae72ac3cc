"""Connection concurrency limiting logic."""

import threading
from typing import Optional


class ConnectionLimiter:
    """Caps the number of concurrently open connections.

    A limit of zero disables the cap. Slots are acquired before a connection
    is accepted and released once it is closed, so connections beyond the
    cap wait in the listen backlog.
    """

    def __init__(self, max_connections: int) -> None:
        self._max_connections = max(0, max_connections)
        self._condition = threading.Condition()
        self._active = 0

    @property
    def max_connections(self) -> int:
        return self._max_connections

    @property
    def active(self) -> int:
        """Return the number of currently held slots."""
        with self._condition:
            return self._active

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """Wait for a free slot; return False if ``timeout`` elapses first."""
        with self._condition:
            if self._max_connections:
                has_slot = self._condition.wait_for(
                    lambda: self._active < self._max_connections, timeout
                )
                if not has_slot:
                    return False
            self._active += 1
            return True

    def release(self) -> None:
        """Release a previously acquired connection slot."""
        with self._condition:
            if self._active > 0:
                self._active -= 1
            self._condition.notify()
