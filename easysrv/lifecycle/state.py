"""Server lifecycle state management."""

import enum
import socket
import threading
import time

from easysrv.domain.errors import ServerStateError
from easysrv.domain.logger import component_logger

LIFECYCLE_LOGGER = component_logger("lifecycle")


class LifecycleState(enum.Enum):
    UNSTARTED = "unstarted"
    RUNNING = "running"
    STOPPED = "stopped"


class ServerLifecycle:
    """Manages server lifecycle state, worker threads and idle connections."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = LifecycleState.UNSTARTED
        self._stop_event = threading.Event()
        self._draining_event = threading.Event()
        self._running = threading.Event()
        self._serving_done = threading.Event()
        self._workers: set[threading.Thread] = set()
        self._idle: set[socket.socket] = set()

    @property
    def state(self) -> LifecycleState:
        with self._lock:
            return self._state

    def mark_running(self) -> None:
        """Move from unstarted to running."""
        with self._lock:
            if self._state is not LifecycleState.UNSTARTED:
                raise ServerStateError(
                    f"server cannot start from state {self._state.value}"
                )
            self._state = LifecycleState.RUNNING
        self._running.set()

    def wait_running(self, timeout: float) -> bool:
        """Wait until the server has bound its listener and is serving."""
        return self._running.wait(timeout)

    def mark_serving_done(self) -> None:
        """Record that the accept loop has exited and the listener is closed."""
        self._serving_done.set()

    def wait_serving_done(self, timeout: float) -> bool:
        """Wait for the accept loop to exit."""
        return self._serving_done.wait(timeout)

    def mark_stopped(self) -> None:
        with self._lock:
            self._state = LifecycleState.STOPPED

    def should_stop(self) -> bool:
        """Check if the server should stop accepting new connections."""
        return self._stop_event.is_set()

    def is_draining(self) -> bool:
        """Check if the server is in draining mode."""
        return self._draining_event.is_set()

    def register_worker(self, thread: threading.Thread) -> None:
        """Register a worker thread for tracking."""
        with self._lock:
            self._workers.add(thread)

    def cleanup_worker(self, thread: threading.Thread) -> None:
        """Remove a worker thread from tracking."""
        with self._lock:
            self._workers.discard(thread)

    def has_worker(self, thread: threading.Thread) -> bool:
        """Return True when the worker is currently tracked."""
        with self._lock:
            return thread in self._workers

    def active_worker_count(self) -> int:
        """Return the number of currently tracked worker threads."""
        with self._lock:
            return len(self._workers)

    def mark_idle(self, connection: socket.socket) -> bool:
        """Record a connection waiting for its next request.

        Returns False once draining has begun; the caller must then close
        the connection instead of waiting.
        """
        with self._lock:
            if self._draining_event.is_set():
                return False
            self._idle.add(connection)
            return True

    def mark_busy(self, connection: socket.socket) -> None:
        """Record a connection that is processing a request."""
        with self._lock:
            self._idle.discard(connection)

    def close_idle_connections(self) -> int:
        """Shut down every idle keep-alive connection; return how many."""
        with self._lock:
            idle = list(self._idle)
            self._idle.clear()
        for connection in idle:
            try:
                connection.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        return len(idle)

    def begin_draining(self) -> None:
        """Signal the server to begin graceful shutdown."""
        with self._lock:
            self._draining_event.set()
            self._stop_event.set()
        LIFECYCLE_LOGGER.info("Beginning graceful shutdown")

    def wait_for_workers(self, timeout: float) -> bool:
        """Wait for all worker threads to complete within the timeout."""
        deadline = time.monotonic() + timeout
        while True:
            with self._lock:
                self._workers = {w for w in self._workers if w.is_alive()}
                active_workers = list(self._workers)
            if not active_workers:
                return True
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                LIFECYCLE_LOGGER.warning(
                    "Shutdown timeout exceeded",
                    extra={"fields": {"remaining_workers": len(active_workers)}},
                )
                return False
            for worker in active_workers:
                worker.join(timeout=min(0.1, remaining))
                if time.monotonic() >= deadline:
                    break
