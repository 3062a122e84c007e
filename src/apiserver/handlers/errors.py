"""
Router fallbacks.

Both answer with the JSON error envelope carrying the request id:

    404  {"code": 404, "error": "Endpoint Not Found", "request_id": "..."}
    405  {"code": 405, "error": "Method Not Allowed", "request_id": "..."}

The router adds the Allow header to 405 responses.
"""

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, error_response
from ..http.status_codes import HTTPStatus


NOT_FOUND_MESSAGE = "Endpoint Not Found"
METHOD_NOT_ALLOWED_MESSAGE = "Method Not Allowed"


def not_found_handler(request: HTTPRequest) -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, NOT_FOUND_MESSAGE, request.request_id)


def method_not_allowed_handler(request: HTTPRequest) -> HTTPResponse:
    return error_response(
        HTTPStatus.METHOD_NOT_ALLOWED,
        METHOD_NOT_ALLOWED_MESSAGE,
        request.request_id,
    )
