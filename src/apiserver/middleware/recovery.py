"""
Recovery middleware.

Turns any exception escaping the rest of the chain into a 500 error
envelope. The process keeps serving; the traceback goes to the log.
"""

import logging

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, error_response
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class RecoveryMiddleware(Middleware):
    """Outermost middleware: nothing below it can crash a connection."""

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        try:
            return next(request)
        except Exception as e:
            logger.exception(
                f"Unhandled exception in {request.method} {request.path}: "
                f"{type(e).__name__}: {e}"
            )
            response = error_response(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                HTTPStatus.INTERNAL_SERVER_ERROR.phrase,
                request.request_id,
            )
            if request.request_id:
                response.set_header("X-Request-Id", request.request_id)
            return response
