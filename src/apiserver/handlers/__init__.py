"""
Built-in endpoints.

    GET /          root_handler        {"build_tag": ...}
    GET /health    health_check        204
    /debug/*       Profiler            runtime introspection
    fallbacks      not_found_handler, method_not_allowed_handler
"""

from .errors import (
    METHOD_NOT_ALLOWED_MESSAGE,
    NOT_FOUND_MESSAGE,
    method_not_allowed_handler,
    not_found_handler,
)
from .health import health_check
from .profiler import Profiler, profiler_router
from .root import root_handler

__all__ = [
    "METHOD_NOT_ALLOWED_MESSAGE",
    "NOT_FOUND_MESSAGE",
    "method_not_allowed_handler",
    "not_found_handler",
    "health_check",
    "Profiler",
    "profiler_router",
    "root_handler",
]
