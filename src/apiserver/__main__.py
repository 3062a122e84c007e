"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    python -m apiserver
    python -m apiserver --port 3000 --build-tag v1.4.2
    python -m apiserver --rate-limit 50 --rate-limit-store redis://cache:6379/0
    HTTP_PORT=9000 LOG_FORMAT=json apiserver

Configuration is read once at startup: environment variables first (see
config.py), then command-line flags on top.

=============================================================================
STARTUP / SHUTDOWN
=============================================================================

    1. build ServerConfig, validate     ConfigError -> log, exit 1
    2. configure logging
    3. build the app (router + middleware)
    4. SIGINT / SIGTERM -> stop event   handlers live here because
                                        signal.signal() is main-thread only
    5. HTTPServer.run(stop_event)       returns after the graceful drain

=============================================================================
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from . import __version__
from .app import create_app
from .config import LOG_FORMATS, LOG_LEVELS, ServerConfig
from .errors import ConfigError, ServerError
from .logs import configure_logging
from .server import HTTPServer


logger = logging.getLogger("apiserver")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apiserver",
        description="Minimal HTTP API server with graceful shutdown",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Flags override the matching environment variables:
  --port               HTTP_PORT
  --request-timeout    HTTP_REQUEST_TIMEOUT
  --shutdown-timeout   HTTP_SHUTDOWN_TIMEOUT
  --rate-limit-store   RATE_LIMIT_STORE_URL (or REDIS_URL)
  --build-tag          BUILD_TAG
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # Network
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--host", "-H", help="Interface to bind (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8080)")
    parser.add_argument(
        "--request-timeout", type=float,
        help="Seconds a request may take before a 504 (default: 60)",
    )
    parser.add_argument(
        "--shutdown-timeout", type=float,
        help="Grace period for in-flight requests on shutdown (default: 5)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # Rate limiting
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--rate-limit", type=int, help="Requests per window per client IP")
    parser.add_argument("--rate-limit-window", type=float, help="Window length in seconds")
    parser.add_argument(
        "--rate-limit-store",
        help="Counter store URL (memory://, redis://host:port/db); enables rate limiting",
    )

    # ─────────────────────────────────────────────────────────────────────
    # Misc
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--build-tag", help="Reported by GET /")
    parser.add_argument("--log-level", "-l", type=str.upper, choices=LOG_LEVELS)
    parser.add_argument("--log-format", type=str.lower, choices=LOG_FORMATS)
    parser.add_argument("--version", "-v", action="version", version=f"apiserver {__version__}")
    return parser


_OVERRIDES = {
    "host": "host",
    "port": "port",
    "request_timeout": "request_timeout",
    "shutdown_timeout": "shutdown_timeout",
    "rate_limit": "rate_limit",
    "rate_limit_window": "rate_limit_window",
    "rate_limit_store": "rate_limit_store_url",
    "build_tag": "build_tag",
    "log_level": "log_level",
    "log_format": "log_format",
}


def load_config(args: argparse.Namespace) -> ServerConfig:
    """Environment first, flags on top, then validate."""
    config = ServerConfig.from_env()
    for arg_name, field_name in _OVERRIDES.items():
        value = getattr(args, arg_name)
        if value is not None:
            setattr(config, field_name, value)
    config.validate()
    return config


def install_signal_handlers(stop_event: threading.Event) -> None:
    def handle(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, handle)
    signal.signal(signal.SIGTERM, handle)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except ConfigError as e:
        configure_logging()
        logger.critical(f"Invalid configuration: {e}")
        return 1

    configure_logging(config.log_level, config.log_format)

    try:
        app = create_app(config)
    except ConfigError as e:
        logger.critical(f"Invalid configuration: {e}")
        return 1

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    try:
        HTTPServer(config, app).run(stop_event)
    except ServerError as e:
        logger.critical(str(e))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
