"""
=============================================================================
HTTP LAYER
=============================================================================

Protocol-level building blocks: parsing requests, building responses,
routing, and status codes.

    request.py        bytes -> HTTPRequest
    response.py       HTTPResponse / ResponseBuilder -> bytes,
                      plus the JSON error envelope
    router.py         (method, path) -> handler, 404 / 405 fallbacks, mounts
    status_codes.py   HTTPStatus enum and status_text() for any int code

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    JSON_CONTENT_TYPE,
    NO_CACHE_HEADERS,
    json_response,
    error_response,
    no_content,
)
from .router import Router, Route, Handler
from .status_codes import HTTPStatus, status_text

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "HTTPResponse",
    "ResponseBuilder",
    "JSON_CONTENT_TYPE",
    "NO_CACHE_HEADERS",
    "json_response",
    "error_response",
    "no_content",
    "Router",
    "Route",
    "Handler",
    "HTTPStatus",
    "status_text",
]
