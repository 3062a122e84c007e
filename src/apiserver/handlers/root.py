"""
Root endpoint: reports which build is running.

    GET /  ->  200 {"build_tag": "v1.4.2"}
"""

from ..http.request import HTTPRequest
from ..http.response import json_response
from ..http.router import Handler
from ..http.status_codes import HTTPStatus


def root_handler(build_tag: str) -> Handler:
    """Return a handler that answers with `build_tag`."""

    def root(request: HTTPRequest):
        return json_response(HTTPStatus.OK, {"build_tag": build_tag})

    return root
