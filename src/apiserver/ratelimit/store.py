"""
Counter store selection from a connection string.

    memory://                               in-process counters
    redis://[user[:password]@]host:port[/db]
    rediss://...                            same, over TLS

The port is mandatory for Redis URLs; a store URL that cannot be parsed
raises ConfigError, which stops the server before it starts listening.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlsplit

import redis

from ..errors import ConfigError
from .counter import LimitCounter, LocalLimitCounter
from .redis_counter import RedisLimitCounter


REDIS_SCHEMES = ("redis", "rediss")
MEMORY_SCHEME = "memory"


@dataclass
class StoreURL:
    scheme: str
    host: str = ""
    port: int = 0
    db: int = 0
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def is_redis(self) -> bool:
        return self.scheme in REDIS_SCHEMES

    @property
    def ssl(self) -> bool:
        return self.scheme == "rediss"

    def redacted(self) -> str:
        """Printable form without the password."""
        if not self.is_redis:
            return f"{self.scheme}://"
        user = f"{self.username}@" if self.username else ""
        return f"{self.scheme}://{user}{self.host}:{self.port}/{self.db}"


def parse_store_url(url: str) -> StoreURL:
    """
    Raises:
        ConfigError: unknown scheme, missing host, missing or invalid port,
            invalid database number.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError as e:
        raise ConfigError(f"Invalid rate limit store URL: {e}") from None

    scheme = parts.scheme.lower()
    if scheme == MEMORY_SCHEME:
        return StoreURL(scheme=scheme)

    if scheme not in REDIS_SCHEMES:
        raise ConfigError(
            f"Unsupported rate limit store scheme {parts.scheme!r}; "
            f"expected one of: memory, redis, rediss"
        )

    if not parts.hostname:
        raise ConfigError("Rate limit store URL has no host")

    try:
        port = parts.port
    except ValueError:
        raise ConfigError("Rate limit store URL has an invalid port") from None
    if port is None:
        raise ConfigError("Rate limit store URL must include a port")

    db_part = parts.path.strip("/")
    if db_part and not db_part.isdigit():
        raise ConfigError(f"Invalid Redis database number: {db_part!r}")

    return StoreURL(
        scheme=scheme,
        host=parts.hostname,
        port=port,
        db=int(db_part) if db_part else 0,
        username=unquote(parts.username) if parts.username else None,
        password=unquote(parts.password) if parts.password else None,
    )


def counter_from_url(url: str, window: float, socket_timeout: float = 1.0) -> LimitCounter:
    """Build the counter a store URL describes. Redis connects lazily."""
    store = parse_store_url(url)
    if not store.is_redis:
        return LocalLimitCounter()

    client = redis.Redis(
        host=store.host,
        port=store.port,
        db=store.db,
        username=store.username,
        password=store.password,
        ssl=store.ssl,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
    )
    return RedisLimitCounter(client, window_ms=max(1, int(window * 1000)))
