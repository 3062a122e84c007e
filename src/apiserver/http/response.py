"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

HTTPResponse is the value every handler and middleware returns.
ResponseBuilder is the fluent way to make one.

=============================================================================
THE TWO JSON SHAPES THIS SERVER SPEAKS
=============================================================================

    Success payloads             json_response(200, {"build_tag": "v1.2.3"})

    Error envelope               error_response(404, "Endpoint Not Found", rid)
                                 {"code": 404,
                                  "error": "Endpoint Not Found",
                                  "request_id": "host/Ab3xYz91Qp-000001"}

Both are written as a single JSON document followed by a newline with
Content-Type "application/json; charset=UTF-8".

=============================================================================
BODYLESS RESPONSES
=============================================================================

1xx, 204 and 304 responses never carry a body or a Content-Length header.
A response to HEAD keeps the Content-Length of the GET it mirrors but the
body bytes are not written (see `head_only`).

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Any, Dict, Optional, Union
import json

from .status_codes import HTTPStatus, status_text


JSON_CONTENT_TYPE = "application/json; charset=UTF-8"


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized.

    `status` is a plain int so codes outside HTTPStatus are representable.
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"
    head_only: bool = False

    @property
    def status_line(self) -> str:
        """e.g. 'HTTP/1.1 404 Not Found'. Unknown codes get an empty phrase."""
        return f"{self.version} {int(self.status)} {status_text(self.status)}"

    @property
    def allows_body(self) -> bool:
        code = int(self.status)
        return not (100 <= code < 200 or code in (204, 304))

    def get_header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive lookup over the response headers."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def remove_header(self, name: str) -> "HTTPResponse":
        lowered = name.lower()
        for key in [k for k in self.headers if k.lower() == lowered]:
            del self.headers[key]
        return self

    def add_vary(self, *names: str) -> "HTTPResponse":
        """Append to the Vary header without duplicating entries."""
        current = [v.strip() for v in (self.get_header("Vary") or "").split(",") if v.strip()]
        for name in names:
            if name not in current:
                current.append(name)
        self.remove_header("Vary")
        self.headers["Vary"] = ", ".join(current)
        return self

    def set_content_type(self, content_type: str) -> "HTTPResponse":
        return self.set_header("Content-Type", content_type)

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def to_bytes(self, server_name: str = "apiserver") -> bytes:
        """
        Serialize status line, headers and body.

        Content-Length, Date and Server are filled in when absent.
        """
        headers = dict(self.headers)
        body = self.body if self.allows_body else b""

        if self.allows_body:
            if self.get_header("Content-Length") is None:
                headers["Content-Length"] = str(len(body))
        else:
            for key in [k for k in headers if k.lower() == "content-length"]:
                del headers[key]

        if self.get_header("Date") is None:
            headers["Date"] = format_http_date(datetime.now(timezone.utc))
        if self.get_header("Server") is None:
            headers["Server"] = server_name

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        head = ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")

        if self.head_only:
            return head
        return head + body


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .header("X-Custom", "value")
            .json({"key": "value"})
            .build())
    """

    def __init__(self):
        self._status: int = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: int) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        self._headers["Content-Type"] = content_type
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """
        Encode `data` as JSON, newline terminated.

        Non-serializable values fall back to str() so diagnostic payloads
        (e.g. profiler output) never fail to render.
        """
        indent = 2 if pretty else None
        encoded = json.dumps(data, indent=indent, ensure_ascii=False, default=str)
        self._body = (encoded + "\n").encode("utf-8")
        self._headers["Content-Type"] = JSON_CONTENT_TYPE
        return self

    def redirect(self, location: str, permanent: bool = False) -> "ResponseBuilder":
        self._status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        self._headers["Location"] = location
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )


# Expires at the epoch; X-Accel-Expires covers nginx proxy caches.
NO_CACHE_HEADERS = {
    "Expires": "Thu, 01 Jan 1970 00:00:00 GMT",
    "Cache-Control": "no-cache, no-store, no-transform, must-revalidate, private, max-age=0",
    "Pragma": "no-cache",
    "X-Accel-Expires": "0",
}


def format_http_date(dt: datetime) -> str:
    """RFC 7231 IMF-fixdate, e.g. 'Thu, 15 Jan 2026 12:30:45 GMT'."""
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def json_response(status: int, data: Any) -> HTTPResponse:
    """JSON body with the given status."""
    return ResponseBuilder().status(status).json(data).build()


def error_response(status: int, message: str, request_id: str = "") -> HTTPResponse:
    """
    The uniform error envelope.

        {"code": status, "error": message, "request_id": request_id}
    """
    return json_response(
        status,
        {"code": int(status), "error": message, "request_id": request_id},
    )


def no_content() -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()
