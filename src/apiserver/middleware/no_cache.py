"""
No-cache middleware.

Strips conditional request headers so handlers never answer 304 from a
stale validator, and marks every response as uncacheable for browsers and
intermediaries.
"""

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, NO_CACHE_HEADERS


ETAG_REQUEST_HEADERS = (
    "etag",
    "if-modified-since",
    "if-match",
    "if-none-match",
    "if-range",
    "if-unmodified-since",
)


class NoCacheMiddleware(Middleware):

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        for name in ETAG_REQUEST_HEADERS:
            request.headers.pop(name, None)

        response = next(request)
        for name, value in NO_CACHE_HEADERS.items():
            response.remove_header(name)
            response.set_header(name, value)
        return response
