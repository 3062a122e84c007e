"""
HEAD support for GET routes.

A HEAD request for a path that has no explicit HEAD route is dispatched to
the GET route. The response keeps its headers (Content-Length included)
and the body is dropped on the wire.
"""

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..http.router import Router


class GetHeadMiddleware(Middleware):

    def __init__(self, router: Router):
        self.router = router

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if request.method != "HEAD":
            return next(request)

        if not self.router.has_route("HEAD", request.path):
            request.method = "GET"

        response = next(request)
        response.head_only = True
        return response
