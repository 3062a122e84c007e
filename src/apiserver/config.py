"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Everything the server needs to know is read ONCE at startup into a
ServerConfig, validated, and never changed afterwards.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    Priority (highest to lowest):

    1. Command-line arguments       python -m apiserver --port 3000
    2. Environment variables        HTTP_PORT=3000 python -m apiserver
    3. Defaults in this dataclass

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

    HTTP_HOST                 bind address                  0.0.0.0
    HTTP_PORT                 listen port (0 = ephemeral)   8080
    HTTP_REQUEST_TIMEOUT      per-request deadline, s       60
    HTTP_SHUTDOWN_TIMEOUT     graceful shutdown grace, s    5
    HTTP_RATE_LIMIT           requests per window per IP    100
    HTTP_RATE_LIMIT_WINDOW    window length, s              60
    RATE_LIMIT_STORE_URL      counter store (or REDIS_URL)  "" = disabled
    CORS_ALLOWED_ORIGINS      comma separated               https://*,http://*
    CORS_ALLOWED_METHODS      comma separated               GET,POST,PUT,DELETE,OPTIONS
    CORS_ALLOWED_HEADERS      comma separated               Accept,Authorization,...
    CORS_EXPOSED_HEADERS      comma separated               X-Request-Id
    CORS_ALLOW_CREDENTIALS    1/true/yes/on                 false
    CORS_MAX_AGE              preflight cache, s            300
    BUILD_TAG                 returned by GET /             dev
    LOG_LEVEL / LOG_FORMAT    logging                       INFO / text

=============================================================================
FAIL-FAST
=============================================================================

validate() raises ConfigError for anything the server cannot run with,
including a rate limit store URL that does not parse. __main__ turns that
into a critical log line and exit status 1 before a socket is opened.

=============================================================================
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

from .errors import ConfigError
from .ratelimit.store import parse_store_url


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


# ─────────────────────────────────────────────────────────────────────────────
# Environment helpers
# ─────────────────────────────────────────────────────────────────────────────

def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    value = env.get(name)
    return value if value is not None else default


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = env.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(env: Mapping[str, str], name: str, default: List[str]) -> List[str]:
    value = env.get(name)
    if value is None:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class CORSSettings:
    """
    Cross-origin allow-lists.

    Origins may be "*" or contain a single "*" wildcard, e.g.
    "https://*.example.com".
    """

    allowed_origins: List[str] = field(default_factory=lambda: ["https://*", "http://*"])
    allowed_methods: List[str] = field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    allowed_headers: List[str] = field(
        default_factory=lambda: ["Accept", "Authorization", "Content-Type", "X-CSRF-Token"]
    )
    exposed_headers: List[str] = field(default_factory=lambda: ["X-Request-Id"])
    allow_credentials: bool = False
    max_age: int = 300

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "CORSSettings":
        defaults = cls()
        return cls(
            allowed_origins=_env_list(env, "CORS_ALLOWED_ORIGINS", defaults.allowed_origins),
            allowed_methods=[
                m.upper() for m in _env_list(env, "CORS_ALLOWED_METHODS", defaults.allowed_methods)
            ],
            allowed_headers=_env_list(env, "CORS_ALLOWED_HEADERS", defaults.allowed_headers),
            exposed_headers=_env_list(env, "CORS_EXPOSED_HEADERS", defaults.exposed_headers),
            allow_credentials=_env_bool(env, "CORS_ALLOW_CREDENTIALS", defaults.allow_credentials),
            max_age=_env_int(env, "CORS_MAX_AGE", defaults.max_age),
        )


@dataclass
class ServerConfig:
    """
    Configuration for the API server.

    =========================================================================
    GROUPS
    =========================================================================

    NETWORK     host, port, backlog, buffer_size, timeout
    HTTP        keep_alive, keep_alive_timeout, max_request_size,
                request_timeout
    LIFECYCLE   shutdown_timeout
    CORS        cors (CORSSettings)
    RATE LIMIT  rate_limit, rate_limit_window, rate_limit_store_url
    IDENTITY    build_tag, server_name
    LOGGING     log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    port: int = 8080
    backlog: int = 128
    buffer_size: int = 8192

    timeout: Optional[float] = 30.0
    """Socket read timeout while waiting for the first request."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    keep_alive: bool = True
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    request_timeout: float = 60.0
    """Deadline for one request's trip through the handler chain."""

    # ─────────────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────────────

    shutdown_timeout: float = 5.0
    """Grace period for in-flight connections once shutdown starts."""

    # ─────────────────────────────────────────────────────────────────────
    # CORS / RATE LIMITING
    # ─────────────────────────────────────────────────────────────────────

    cors: CORSSettings = field(default_factory=CORSSettings)

    rate_limit: int = 100
    rate_limit_window: float = 60.0
    rate_limit_store_url: str = ""
    """
    Where rate limit counters live.
    ""                      rate limiting disabled
    memory://               in-process counters
    redis://host:port/db    shared counters in Redis (port is mandatory)
    """

    # ─────────────────────────────────────────────────────────────────────
    # IDENTITY / LOGGING
    # ─────────────────────────────────────────────────────────────────────

    build_tag: str = "dev"
    server_name: str = "apiserver"
    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def rate_limit_enabled(self) -> bool:
        return bool(self.rate_limit_store_url)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Build a configuration from environment variables.

        Args:
            environ: mapping to read instead of os.environ (tests).

        Raises:
            ConfigError: a numeric variable does not parse.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        store_url = env.get("RATE_LIMIT_STORE_URL")
        if store_url is None:
            store_url = env.get("REDIS_URL", defaults.rate_limit_store_url)

        return cls(
            host=_env_str(env, "HTTP_HOST", defaults.host),
            port=_env_int(env, "HTTP_PORT", defaults.port),
            request_timeout=_env_float(env, "HTTP_REQUEST_TIMEOUT", defaults.request_timeout),
            shutdown_timeout=_env_float(env, "HTTP_SHUTDOWN_TIMEOUT", defaults.shutdown_timeout),
            cors=CORSSettings.from_env(env),
            rate_limit=_env_int(env, "HTTP_RATE_LIMIT", defaults.rate_limit),
            rate_limit_window=_env_float(env, "HTTP_RATE_LIMIT_WINDOW", defaults.rate_limit_window),
            rate_limit_store_url=store_url.strip(),
            build_tag=_env_str(env, "BUILD_TAG", defaults.build_tag),
            log_level=_env_str(env, "LOG_LEVEL", defaults.log_level).upper(),
            log_format=_env_str(env, "LOG_FORMAT", defaults.log_format).lower(),
        )

    def validate(self) -> None:
        """
        Reject values the server cannot run with.

        Raises:
            ConfigError: describing the first offending setting.
        """
        if not 0 <= self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.buffer_size < 1024:
            raise ConfigError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError("timeout must be > 0")

        for name in ("keep_alive_timeout", "request_timeout", "rate_limit_window"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0")

        if self.shutdown_timeout < 0:
            raise ConfigError("shutdown_timeout must be >= 0")

        if self.rate_limit < 1:
            raise ConfigError("rate_limit must be >= 1")

        if self.cors.max_age < 0:
            raise ConfigError("cors.max_age must be >= 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"Invalid log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ConfigError(f"Invalid log format: {self.log_format}")

        if self.rate_limit_store_url:
            parse_store_url(self.rate_limit_store_url)
