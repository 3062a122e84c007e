"""
=============================================================================
REQUEST TIMEOUT MIDDLEWARE
=============================================================================

Bounds how long one request may spend in the rest of the chain.

    ┌────────────────────┐  run chain in worker   ┌──────────────────┐
    │ connection thread  │ ─────────────────────► │  worker thread   │
    │                    │                        │  next(request)   │
    │  join(timeout)     │ ◄───── result ──────── │                  │
    └────────────────────┘                        └──────────────────┘
             │
             └── deadline passed: answer 504, the late result is dropped

Python threads cannot be cancelled from outside, so a handler that ignores
the deadline keeps running in the background until it returns. Handlers
that loop or sleep should poll `request.deadline` (a time.monotonic()
value) and give up on their own.

The worker runs in a copy of the caller's contextvars context, so the
request id bound for logging is visible inside the handler.

=============================================================================
"""

import contextvars
import logging
import threading
import time
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, error_response
from ..http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


class _Call:
    """Result slot shared between the waiting and the working thread."""

    __slots__ = ("response", "error")

    def __init__(self):
        self.response: Optional[HTTPResponse] = None
        self.error: Optional[BaseException] = None


class TimeoutMiddleware(Middleware):

    def __init__(self, timeout: float):
        if timeout <= 0:
            raise ValueError("timeout must be > 0")
        self.timeout = timeout

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request.deadline = time.monotonic() + self.timeout
        call = _Call()
        context = contextvars.copy_context()

        def run() -> None:
            try:
                call.response = context.run(next, request)
            except BaseException as e:
                call.error = e

        worker = threading.Thread(target=run, name="request-timeout-worker", daemon=True)
        worker.start()
        worker.join(self.timeout)

        if worker.is_alive():
            logger.warning(
                f"Request exceeded {self.timeout:g}s: {request.method} {request.path}"
            )
            return error_response(
                HTTPStatus.GATEWAY_TIMEOUT,
                HTTPStatus.GATEWAY_TIMEOUT.phrase,
                request.request_id,
            )

        if call.error is not None:
            raise call.error
        return call.response
