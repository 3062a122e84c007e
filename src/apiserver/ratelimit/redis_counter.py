"""
Redis-backed rate limit counter.

Counts live under

    <prefix>:<key>:<window start, unix ms>

and are written with INCR + PEXPIRE in one pipeline, so every replica
pointed at the same Redis shares the limit. Each key expires after three
windows; only the current and previous ones are ever read.

If Redis is unreachable the counter degrades to in-process counting (one
warning when that happens, one info line when Redis is back) instead of
failing requests. Pass `fallback=False` to surface the error instead.
"""

import logging
import threading
from typing import Optional, Tuple

import redis

from .counter import LimitCounter, LocalLimitCounter


logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "httprate"


class RedisLimitCounter(LimitCounter):

    def __init__(
        self,
        client: "redis.Redis",
        window_ms: int,
        prefix: str = DEFAULT_PREFIX,
        fallback: bool = True,
    ):
        self.client = client
        self.window_ms = window_ms
        self.prefix = prefix
        self.fallback = fallback
        self._local = LocalLimitCounter()
        self._degraded = False
        self._state_lock = threading.Lock()

    def _key(self, key: str, window_start: int) -> str:
        return f"{self.prefix}:{key}:{window_start}"

    def increment(self, key: str, window_start: int) -> None:
        try:
            pipe = self.client.pipeline(transaction=True)
            redis_key = self._key(key, window_start)
            pipe.incr(redis_key)
            pipe.pexpire(redis_key, self.window_ms * 3)
            pipe.execute()
        except redis.RedisError as e:
            self._on_error(e)
            self._local.increment(key, window_start)
            return
        self._on_success()

    def get(self, key: str, current_window: int, previous_window: int) -> Tuple[int, int]:
        try:
            values = self.client.mget(
                self._key(key, current_window),
                self._key(key, previous_window),
            )
        except redis.RedisError as e:
            self._on_error(e)
            return self._local.get(key, current_window, previous_window)
        self._on_success()
        return _to_int(values[0]), _to_int(values[1])

    @property
    def degraded(self) -> bool:
        return self._degraded

    def _on_error(self, error: redis.RedisError) -> None:
        if not self.fallback:
            raise error
        with self._state_lock:
            if self._degraded:
                return
            self._degraded = True
        logger.warning(f"Redis rate limit counter unavailable, counting locally: {error}")

    def _on_success(self) -> None:
        if not self._degraded:
            return
        with self._state_lock:
            if not self._degraded:
                return
            self._degraded = False
        logger.info("Redis rate limit counter recovered")


def _to_int(value: Optional[bytes]) -> int:
    if value is None:
        return 0
    return int(value)
