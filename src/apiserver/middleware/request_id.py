"""
=============================================================================
REQUEST ID MIDDLEWARE
=============================================================================

Gives every request an id that shows up in:

    - request.request_id         (handlers, error envelopes)
    - every log record           (via logs.bind_request_id)
    - the X-Request-Id response header

=============================================================================
ID FORMAT
=============================================================================

    <hostname>/<10 random chars>-<6 digit counter>
    api-7f9c/Xk3pQ9aZt1-000042

The prefix is fixed per process, the counter is process-wide and atomic.
Unique across replicas (hostname + random) and cheap to generate.

An inbound X-Request-Id header is trusted and reused, so an id assigned by
an edge proxy follows the request through this service.

=============================================================================
"""

import itertools
import secrets
import socket
import string
import threading

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..logs import bind_request_id, reset_request_id


REQUEST_ID_HEADER = "X-Request-Id"

_ALPHABET = string.ascii_letters + string.digits


def _make_prefix() -> str:
    hostname = socket.gethostname() or "localhost"
    random_part = "".join(secrets.choice(_ALPHABET) for _ in range(10))
    return f"{hostname}/{random_part}"


class RequestIDGenerator:
    """Thread-safe `<prefix>-<counter>` id source."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix or _make_prefix()
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            number = next(self._counter)
        return f"{self.prefix}-{number:06d}"


class RequestIDMiddleware(Middleware):
    """Assigns (or adopts) a request id and echoes it in the response."""

    def __init__(self, generator: RequestIDGenerator = None, header: str = REQUEST_ID_HEADER):
        self.generator = generator or RequestIDGenerator()
        self.header = header

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = request.get_header(self.header).strip() or self.generator()
        request.request_id = request_id

        token = bind_request_id(request_id)
        try:
            response = next(request)
        finally:
            reset_request_id(token)

        response.set_header(self.header, request_id)
        return response
