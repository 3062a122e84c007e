"""
=============================================================================
APISERVER - Minimal HTTP API Server Bootstrap
=============================================================================

A raw-socket HTTP/1.1 server with a fixed, production-minded composition:

    GET /           {"build_tag": ...}
    GET /health     204
    /debug/*        runtime profiling
    anything else   404 / 405 JSON error envelope

wrapped in the standard middleware stack (recovery, real IP, request ids,
access log, content-type guard, path cleanup, HEAD support, no-cache,
timeouts, CORS, the must_err test hook, optional rate limiting), with
graceful shutdown on SIGINT / SIGTERM.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    apiserver/
    ├── __main__.py          CLI entry point (python -m apiserver)
    ├── app.py               router + middleware composition
    ├── config.py            ServerConfig, CORSSettings, env loading
    ├── errors.py            ConfigError, ServerError
    ├── logs.py              logging setup, request id filter
    ├── server.py            HTTPServer: connection loop, shutdown
    ├── core/                listener, connection, connection tracker
    ├── http/                request, response, router, status codes
    ├── middleware/          pipeline + middleware
    ├── ratelimit/           sliding window limiter, local/Redis counters
    └── handlers/            root, health, error fallbacks, profiler

=============================================================================
QUICK START
=============================================================================

    import threading
    from apiserver import HTTPServer, ServerConfig, create_app

    config = ServerConfig.from_env()
    config.validate()

    stop = threading.Event()
    HTTPServer(config, create_app(config)).run(stop)

=============================================================================
"""

__version__ = "1.0.0"

from .app import create_app, init_router
from .config import CORSSettings, ServerConfig
from .errors import ConfigError, ServerError
from .server import HTTPServer

__all__ = [
    "CORSSettings",
    "ConfigError",
    "HTTPServer",
    "ServerConfig",
    "ServerError",
    "create_app",
    "init_router",
    "__version__",
]
