"""
Sliding window rate limiting with pluggable counter storage.

    limiter.py         SlidingWindowLimiter, RateLimitDecision
    counter.py         LimitCounter interface, LocalLimitCounter
    redis_counter.py   RedisLimitCounter (redis-py)
    store.py           store URL parsing: memory://, redis://, rediss://
"""

from .counter import LimitCounter, LocalLimitCounter
from .limiter import RateLimitDecision, SlidingWindowLimiter
from .redis_counter import RedisLimitCounter
from .store import StoreURL, counter_from_url, parse_store_url

__all__ = [
    "LimitCounter",
    "LocalLimitCounter",
    "RateLimitDecision",
    "SlidingWindowLimiter",
    "RedisLimitCounter",
    "StoreURL",
    "counter_from_url",
    "parse_store_url",
]
