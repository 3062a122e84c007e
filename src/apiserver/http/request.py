"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the bytes read from a client socket into an HTTPRequest object that
middleware and handlers work with.

=============================================================================
ANATOMY OF A REQUEST
=============================================================================

    POST /api/items?must_err=418 HTTP/1.1\r\n      <- request line
    Host: localhost:8080\r\n                        <- headers
    Content-Type: application/json\r\n
    Content-Length: 13\r\n
    X-Request-Id: edge-42\r\n
    \r\n                                            <- blank line
    {"name": "a"}                                   <- body

=============================================================================
WHAT THE PARSER DOES NOT DO
=============================================================================

The parser is deliberately literal. It does NOT:

- resolve "." / ".." segments or collapse "//"  (CleanPathMiddleware)
- strip trailing slashes                          (StripSlashesMiddleware)
- decide the client IP behind a proxy             (RealIPMiddleware)
- assign a request id                             (RequestIDMiddleware)

Those are routing concerns and live in the middleware chain, so the raw
request that reached the server is still available for logging.

=============================================================================
PARSE ERRORS
=============================================================================

HTTPParseError carries the status the server answers with:

    400 Bad Request                 malformed request line / headers / body
    405 Method Not Allowed          method token we do not know
    413 Payload Too Large           request exceeds max_request_size
    501 Not Implemented             Transfer-Encoding other than identity
    505 HTTP Version Not Supported  anything other than HTTP/1.0 or 1.1

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit
import json
import re


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    `status_code` is the HTTP status the server should answer with.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    =========================================================================
    FIELDS
    =========================================================================

    Set by the parser:
        method, path, version, headers (lower-case names), query_params,
        raw_query, body, client_address, raw

    Set along the middleware chain:
        remote_ip       client IP, possibly rewritten by RealIPMiddleware
        request_id      assigned by RequestIDMiddleware
        deadline        time.monotonic() value set by TimeoutMiddleware

    Set by the router:
        path_params     ":name" and "*name" captures

    =========================================================================
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list] = field(default_factory=dict)
    raw_query: str = ""
    body: bytes = b""

    path_params: Dict[str, str] = field(default_factory=dict)

    client_address: Tuple[str, int] = ("", 0)
    remote_ip: str = ""
    request_id: str = ""
    deadline: Optional[float] = None
    raw: bytes = b""

    _body_json: Optional[Any] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.remote_ip and self.client_address:
            self.remote_ip = self.client_address[0]

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """
        Media type from Content-Type, lower-cased, without parameters.

        "Application/JSON; charset=utf-8" -> "application/json"
        """
        value = self.headers.get("content-type", "")
        media_type = value.split(";")[0].strip().lower()
        return media_type or None

    @property
    def content_length(self) -> int:
        """Content-Length as int, 0 when missing or invalid."""
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def json(self) -> Any:
        """
        The body decoded as JSON (cached after the first access).

        Raises:
            HTTPParseError: the body is not valid UTF-8 JSON.
        """
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise HTTPParseError(f"Invalid JSON body: {e}")
        return self._body_json

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

        HTTP/1.1 defaults to keep-alive, HTTP/1.0 defaults to close.
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw request bytes into HTTPRequest objects.

    One parser is shared by every connection thread; it keeps no per-request
    state, so that is safe.
    """

    VALID_METHODS = frozenset({
        "GET", "HEAD", "POST", "PUT", "DELETE",
        "PATCH", "OPTIONS", "CONNECT", "TRACE",
    })

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse a complete request (headers plus Content-Length body).

        Raises:
            HTTPParseError: malformed, oversized or unsupported request.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # iso-8859-1 maps every byte, so decoding never fails
        header_section = data[:header_end].decode("iso-8859-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request")

        method, path, raw_query, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        # Bodies are framed by Content-Length only.
        transfer_encoding = headers.get("transfer-encoding", "").strip().lower()
        if transfer_encoding and transfer_encoding != "identity":
            raise HTTPParseError(
                f"Unsupported Transfer-Encoding: {transfer_encoding}",
                status_code=501,
            )

        content_length = self._content_length(headers)
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )
        body = body[:content_length]

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=parse_qs(raw_query, keep_blank_values=True),
            raw_query=raw_query,
            body=body,
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str, str]:
        """
        Split "METHOD SP request-target SP HTTP-version".

        Returns:
            (method, decoded path, raw query string, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        if target.startswith("/"):
            # origin-form: a leading "//" is part of the path, not an authority
            raw_path, _, query = target.partition("?")
        else:
            parts = urlsplit(target)
            if not (parts.scheme and parts.netloc):
                raise HTTPParseError(f"Invalid request target: {target!r}")
            raw_path, query = parts.path, parts.query

        path = unquote(raw_path) or "/"
        if not path.startswith("/"):
            raise HTTPParseError(f"Invalid request target: {target!r}")

        return method, path, query, version

    def _parse_headers(self, lines: list) -> Dict[str, str]:
        """
        Parse header lines into a dict keyed by lower-case name.

        Repeated headers are joined with ", " (RFC 7230 section 3.2.2).
        Obsolete line folding is unfolded into the previous value.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise HTTPParseError(f"Invalid header line: {line!r}")

            name = match.group(1).lower()
            value = match.group(2).strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

    @staticmethod
    def _content_length(headers: Dict[str, str]) -> int:
        raw = headers.get("content-length")
        if raw is None:
            return 0
        if not raw.isdigit():
            raise HTTPParseError(f"Invalid Content-Length: {raw!r}")
        return int(raw)

