"""
Content-Type allow-list.

Requests that carry a body must declare one of the allowed media types,
otherwise they are answered with 415. Bodyless requests pass untouched.
"""

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, error_response
from ..http.status_codes import HTTPStatus


class AllowContentTypeMiddleware(Middleware):

    def __init__(self, *content_types: str):
        self.allowed = frozenset(ct.strip().lower() for ct in content_types)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if request.content_length == 0 and not request.body:
            return next(request)

        if request.content_type in self.allowed:
            return next(request)

        return error_response(
            HTTPStatus.UNSUPPORTED_MEDIA_TYPE,
            HTTPStatus.UNSUPPORTED_MEDIA_TYPE.phrase,
            request.request_id,
        )
