from __future__ import annotations

import time
from threading import Lock
from typing import Callable, Optional


class RateLimiter:
    """
    Enforces a minimum interval between outgoing requests.

    Each caller reserves the next free slot under the lock, then sleeps
    outside it, so concurrent callers queue up one interval apart.
    """

    def __init__(
        self,
        interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.interval = max(0.0, interval)
        self._clock = clock
        self._sleep = sleep
        self._lock = Lock()
        self._next_allowed: Optional[float] = None

    def wait(self) -> float:
        """Block until a request may be sent; returns the time slept."""
        with self._lock:
            now = self._clock()
            delay = 0.0
            if self._next_allowed is not None and self._next_allowed > now:
                delay = self._next_allowed - now
            self._next_allowed = now + delay + self.interval
        if delay:
            self._sleep(delay)
        return delay
