"""
Forced error responses for client testing.

    GET /anything?must_err=503   ->  503 {"code": 503, "error": "Service Unavailable", ...}

The value must be exactly three ASCII digits and 400 <= code < 600.
Anything else (missing, "42", "4040", "200", "abc") is ignored and the
request continues normally. Applies before routing, so it works for every
path and method.
"""

from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, error_response
from ..http.status_codes import status_text


MUST_ERR_PARAM = "must_err"


def forced_status(value: Optional[str]) -> Optional[int]:
    """The status requested by a `must_err` value, or None if it is not valid."""
    if value is None or len(value) != 3:
        return None
    if not (value.isascii() and value.isdigit()):
        return None
    code = int(value)
    if 400 <= code < 600:
        return code
    return None


class ErrorInjectionMiddleware(Middleware):

    def __init__(self, param: str = MUST_ERR_PARAM):
        self.param = param

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        code = forced_status(request.get_query(self.param))
        if code is None:
            return next(request)
        return error_response(code, status_text(code), request.request_id)
