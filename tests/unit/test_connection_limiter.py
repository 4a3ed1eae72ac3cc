"""Unit tests for the accept-time connection limiter."""

import threading
import time

from easysrv.transport.connection_limiter import ConnectionLimiter


def test_connection_limiter_blocks_at_capacity() -> None:
    """Acquire fails once every slot is held and succeeds after a release."""

    limiter = ConnectionLimiter(max_connections=2)

    assert limiter.acquire(timeout=0) is True
    assert limiter.acquire(timeout=0) is True
    assert limiter.active == 2
    assert limiter.acquire(timeout=0.05) is False

    limiter.release()
    assert limiter.active == 1
    assert limiter.acquire(timeout=0) is True


def test_connection_limiter_zero_is_unlimited() -> None:
    limiter = ConnectionLimiter(max_connections=0)

    for _ in range(50):
        assert limiter.acquire(timeout=0) is True
    assert limiter.active == 50
    assert limiter.max_connections == 0


def test_connection_limiter_wakes_blocked_waiter() -> None:
    """A waiting acquire proceeds as soon as another thread releases a slot."""

    limiter = ConnectionLimiter(max_connections=1)
    limiter.acquire()
    acquired = threading.Event()

    def waiter() -> None:
        if limiter.acquire(timeout=5):
            acquired.set()

    thread = threading.Thread(target=waiter)
    thread.start()
    time.sleep(0.05)
    assert not acquired.is_set()

    limiter.release()
    thread.join(timeout=5)
    assert acquired.is_set()


def test_connection_limiter_release_never_goes_negative() -> None:
    limiter = ConnectionLimiter(max_connections=1)

    limiter.release()

    assert limiter.active == 0
