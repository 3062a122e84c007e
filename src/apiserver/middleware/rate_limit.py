"""
=============================================================================
RATE LIMITING MIDDLEWARE
=============================================================================

Per-client request limits using the sliding window limiter.

    allowed     request continues; response gets
                    X-RateLimit-Limit / -Remaining / -Reset
    rejected    429 error envelope with the same headers plus Retry-After

Clients are keyed by `request.remote_ip`, i.e. after RealIPMiddleware has
looked at the proxy headers.

The middleware is only installed when a counter store is configured
(RATE_LIMIT_STORE_URL). With redis:// all replicas share one budget per
client; with memory:// each process counts on its own.

=============================================================================
"""

import logging
from typing import Callable, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, error_response
from ..http.status_codes import HTTPStatus
from ..ratelimit.limiter import SlidingWindowLimiter


logger = logging.getLogger(__name__)


def key_by_ip(request: HTTPRequest) -> str:
    return request.remote_ip or request.client_address[0] or "unknown"


class RateLimitMiddleware(Middleware):

    def __init__(
        self,
        limiter: SlidingWindowLimiter,
        key_func: Optional[Callable[[HTTPRequest], str]] = None,
    ):
        self.limiter = limiter
        self.key_func = key_func or key_by_ip

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        key = self.key_func(request)
        decision = self.limiter.hit(key)

        if not decision.allowed:
            logger.info(f"Rate limit exceeded for {key}")
            response = error_response(
                HTTPStatus.TOO_MANY_REQUESTS,
                HTTPStatus.TOO_MANY_REQUESTS.phrase,
                request.request_id,
            )
        else:
            response = next(request)

        for name, value in decision.headers().items():
            response.set_header(name, value)
        return response
