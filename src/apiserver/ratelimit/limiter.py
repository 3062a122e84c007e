"""
=============================================================================
SLIDING WINDOW LIMITER
=============================================================================

Approximates a true sliding window from two fixed-window counters:

    rate = previous * (window - elapsed) / window + current

    previous = 80, current = 30, window = 60s, elapsed = 15s
    rate     = 80 * 45/60 + 30 = 90

A request is rejected when rate >= limit. Rejected requests are not
counted, so a client that backs off recovers as the previous window's
weight decays.

Compared to a token bucket this needs only two integers per key, which is
what makes a shared Redis counter cheap.

=============================================================================
"""

import math
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from .counter import LimitCounter, LocalLimitCounter


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    """Unix time (seconds) at which the current window ends."""
    retry_after: int
    """Seconds to wait before retrying; 0 when allowed."""

    def headers(self) -> dict:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class SlidingWindowLimiter:
    """
    Args:
        limit: requests allowed per window.
        window: window length in seconds.
        counter: where counts are stored (in-process by default).
        clock: returns the current unix time; injectable for tests.
    """

    def __init__(
        self,
        limit: int,
        window: float,
        counter: Optional[LimitCounter] = None,
        clock: Callable[[], float] = time.time,
    ):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window <= 0:
            raise ValueError("window must be > 0")
        self.limit = limit
        self.window = window
        self.window_ms = max(1, int(window * 1000))
        self.counter = counter if counter is not None else LocalLimitCounter()
        self.clock = clock
        self._guard = threading.Lock()
        # key -> [lock, number of threads holding or waiting for it]
        self._key_locks: Dict[str, List] = {}

    @contextmanager
    def _locked(self, key: str) -> Iterator[None]:
        """Serialize check-and-increment per key."""
        with self._guard:
            entry = self._key_locks.get(key)
            if entry is None:
                entry = self._key_locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._key_locks[key]

    def hit(self, key: str, now: Optional[float] = None) -> RateLimitDecision:
        """Count one request for `key` unless it is over the limit."""
        now_ms = int((self.clock() if now is None else now) * 1000)
        current_window = now_ms - now_ms % self.window_ms
        previous_window = current_window - self.window_ms
        elapsed_ms = now_ms - current_window
        window_end_ms = current_window + self.window_ms

        with self._locked(key):
            current, previous = self.counter.get(key, current_window, previous_window)
            rate = previous * (self.window_ms - elapsed_ms) / self.window_ms + current

            if rate >= self.limit:
                return RateLimitDecision(
                    allowed=False,
                    limit=self.limit,
                    remaining=0,
                    reset_at=math.ceil(window_end_ms / 1000),
                    retry_after=max(1, math.ceil((window_end_ms - now_ms) / 1000)),
                )

            self.counter.increment(key, current_window)

        return RateLimitDecision(
            allowed=True,
            limit=self.limit,
            remaining=max(0, self.limit - math.ceil(rate) - 1),
            reset_at=math.ceil(window_end_ms / 1000),
            retry_after=0,
        )
