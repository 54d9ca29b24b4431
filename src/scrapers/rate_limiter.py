# src/scrapers/rate_limiter.py

"""Sliding-window rate limiter shared by every outbound request."""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable

logger = logging.getLogger("price_monitor.rate_limiter")


class RateLimiter:
    """Allow at most ``max_calls`` calls in any trailing ``period``.

    A call proceeds immediately while the window has room; otherwise
    the caller sleeps until the oldest call ages out. The limiter is
    safe to share between worker threads.
    """

    def __init__(
        self,
        max_calls: int,
        period: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        if max_calls < 1:
            raise ValueError("max_calls must be at least 1")
        if period <= 0:
            raise ValueError("period must be positive")
        self.max_calls = max_calls
        self.period = period
        self._clock = clock
        self._sleep = sleep
        self._calls: deque[float] = deque()
        self._lock = threading.Lock()

    def _evict(self, now: float) -> None:
        """Drop call timestamps that left the window."""
        while self._calls and now - self._calls[0] >= self.period:
            self._calls.popleft()

    def _do_sleep(self, seconds: float) -> None:
        # Resolved at call time so tests patching time.sleep apply
        (self._sleep or time.sleep)(seconds)

    def acquire(self) -> float:
        """Block until the window admits a call, then record it.

        Returns the number of seconds spent waiting.
        """
        waited = 0.0
        with self._lock:
            while True:
                now = self._clock()
                self._evict(now)
                if len(self._calls) < self.max_calls:
                    self._calls.append(now)
                    break
                wait = self.period - (now - self._calls[0])
                logger.debug(
                    "Rate limit reached (%d/%.0fs), waiting %.2fs",
                    self.max_calls,
                    self.period,
                    wait,
                )
                self._do_sleep(wait)
                waited += wait
        return waited

    def available(self) -> int:
        """Number of calls the window would admit right now."""
        with self._lock:
            self._evict(self._clock())
            return self.max_calls - len(self._calls)
