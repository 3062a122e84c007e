"""
=============================================================================
RATE LIMIT COUNTERS
=============================================================================

A counter stores "how many requests did KEY make in the window starting at
T". The sliding window limiter only ever needs two windows per key, the
current one and the one before it:

        previous window        current window
    |──────────────────────|──────────────────────|
    T-w                    T          now         T+w
                           |<-elapsed->|

Counters are pluggable so that several server replicas can share counts
(Redis) or a single process can keep them in memory.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Dict, Tuple
import threading


class LimitCounter(ABC):
    """Storage for per-key, per-window request counts."""

    @abstractmethod
    def increment(self, key: str, window_start: int) -> None:
        """Add one request for `key` in the window beginning at `window_start`."""

    @abstractmethod
    def get(self, key: str, current_window: int, previous_window: int) -> Tuple[int, int]:
        """Return (current window count, previous window count) for `key`."""


class LocalLimitCounter(LimitCounter):
    """
    In-process counter.

    Only the two most recent windows are retained; older ones are dropped
    whenever a newer window is first written.
    """

    def __init__(self):
        self._counts: Dict[Tuple[str, int], int] = {}
        self._latest_window = 0
        self._lock = threading.Lock()

    def increment(self, key: str, window_start: int) -> None:
        with self._lock:
            if window_start > self._latest_window:
                self._evict_stale()
                self._latest_window = window_start
            slot = (key, window_start)
            self._counts[slot] = self._counts.get(slot, 0) + 1

    def get(self, key: str, current_window: int, previous_window: int) -> Tuple[int, int]:
        with self._lock:
            return (
                self._counts.get((key, current_window), 0),
                self._counts.get((key, previous_window), 0),
            )

    def _evict_stale(self) -> None:
        # The outgoing latest window becomes "previous", so keep it.
        stale = [slot for slot in self._counts if slot[1] < self._latest_window]
        for slot in stale:
            del self._counts[slot]

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)
