"""
Health check endpoint.

    GET /health  ->  204 No Content

Load balancers and orchestrators only look at the status code, so the
check does no work beyond answering. The no-cache middleware keeps
intermediaries from serving a stale answer.
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, no_content


def health_check(request: HTTPRequest) -> HTTPResponse:
    return no_content()
