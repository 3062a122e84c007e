"""
Path normalisation ahead of routing.

    CleanPathMiddleware      "//api/./users/../items"  ->  "/api/items"
    StripSlashesMiddleware   "/health/"                ->  "/health"

".." can never climb above "/", so traversal attempts resolve to a path
the router either knows or answers with 404.
"""

import posixpath

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


def clean_path(path: str) -> str:
    """Lexically clean `path` the way a browser would resolve it."""
    if not path:
        return "/"
    cleaned = posixpath.normpath("/" + path.lstrip("/"))
    if path.endswith("/") and cleaned != "/":
        cleaned += "/"
    return cleaned


class CleanPathMiddleware(Middleware):

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request.path = clean_path(request.path)
        return next(request)


class StripSlashesMiddleware(Middleware):

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if len(request.path) > 1 and request.path.endswith("/"):
            request.path = request.path.rstrip("/") or "/"
        return next(request)
