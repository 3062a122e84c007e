"""
Unit tests for HTTP request parsing.
"""

import pytest

from apiserver.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
)


parse_request = RequestParser().parse


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Request line and client address are carried over."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/api/users"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)
        assert request.remote_ip == "127.0.0.1"

    def test_parse_headers(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)

        assert request.user_agent == "pytest"
        assert request.headers["accept"] == "application/json"
        assert request.is_keep_alive is True

    def test_parse_query_params(self, sample_get_request: bytes):
        request = parse_request(sample_get_request)

        assert request.raw_query == "page=1&limit=10"
        assert request.get_query("page") == "1"
        assert request.get_query("limit") == "10"
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_blank_query_values_are_kept(self):
        request = parse_request(b"GET /?must_err= HTTP/1.1\r\n\r\n")

        assert request.get_query("must_err") == ""

    def test_parse_post_with_body(self, sample_post_request: bytes):
        """JSON bodies decode lazily through .json."""
        request = parse_request(sample_post_request)

        assert request.method == "POST"
        assert request.content_type == "application/json"
        assert request.json == {"name": "Ada", "email": "ada@example.com"}

    def test_invalid_json_body(self):
        raw = b"POST / HTTP/1.1\r\nContent-Length: 3\r\n\r\n{x]"
        request = parse_request(raw)

        with pytest.raises(HTTPParseError):
            request.json

    def test_parse_percent_encoded_path(self):
        raw = b"GET /a%20b?q=hello%20world HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/a b"
        assert request.get_query("q") == "hello world"

    def test_dot_segments_are_left_to_middleware(self):
        """The parser does not reject '..'; CleanPathMiddleware resolves it."""
        request = parse_request(b"GET /a/../health HTTP/1.1\r\n\r\n")

        assert request.path == "/a/../health"

    @pytest.mark.parametrize("target, path", [
        ("//health", "//health"),
        ("//nonexistent/x?a=1", "//nonexistent/x"),
        ("///", "///"),
    ])
    def test_leading_double_slash_stays_in_path(self, target, path):
        request = parse_request(f"GET {target} HTTP/1.1\r\n\r\n".encode())

        assert request.path == path

    def test_absolute_form_target(self):
        request = parse_request(b"GET http://example.com/health?x=1 HTTP/1.1\r\n\r\n")

        assert request.path == "/health"
        assert request.get_query("x") == "1"

    def test_parse_invalid_method(self):
        raw = b"INVALID /path HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 405

    def test_parse_unsupported_version(self):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/2.0\r\n\r\n")

        assert exc_info.value.status_code == 505

    @pytest.mark.parametrize("raw", [
        b"GET\r\nHost: test\r\n\r\n",
        b"GET / HTTP/1.1",
        b"GET / HTTP/1.1\r\nBad Header\r\n\r\n",
        b"GET example.com HTTP/1.1\r\n\r\n",
    ])
    def test_malformed_requests_are_400(self, raw: bytes):
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_parse_missing_headers(self):
        request = parse_request(b"GET / HTTP/1.1\r\n\r\n")

        assert request.method == "GET"
        assert request.path == "/"
        assert request.headers == {}

    def test_parse_request_too_large(self):
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\n" + b"X-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_http_version_keep_alive_defaults(self):
        """HTTP/1.0 closes by default, HTTP/1.1 keeps alive."""
        assert parse_request(b"GET / HTTP/1.0\r\n\r\n").is_keep_alive is False
        assert parse_request(b"GET / HTTP/1.1\r\n\r\n").is_keep_alive is True
        assert parse_request(
            b"GET / HTTP/1.0\r\nConnection: keep-alive\r\n\r\n"
        ).is_keep_alive is True
        assert parse_request(
            b"GET / HTTP/1.1\r\nConnection: close\r\n\r\n"
        ).is_keep_alive is False

    def test_content_length_handling(self):
        body = b"test body"
        raw = b"POST / HTTP/1.1\r\nContent-Length: 9\r\n\r\n" + body

        request = parse_request(raw)
        assert request.content_length == 9
        assert request.body == body

    def test_chunked_body_is_not_implemented(self):
        raw = b"POST /health HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 501

    def test_identity_transfer_encoding_is_accepted(self):
        raw = b"POST / HTTP/1.1\r\nTransfer-Encoding: identity\r\nContent-Length: 2\r\n\r\nok"

        assert parse_request(raw).body == b"ok"

    def test_incomplete_body(self):
        with pytest.raises(HTTPParseError):
            parse_request(b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nshort")

    def test_repeated_headers_are_joined(self):
        raw = b"GET / HTTP/1.1\r\nAccept: a\r\nAccept: b\r\n\r\n"

        assert parse_request(raw).get_header("Accept") == "a, b"

    def test_case_insensitive_headers(self):
        raw = b"GET / HTTP/1.1\r\nCONTENT-TYPE: text/html; charset=utf-8\r\n\r\n"
        request = parse_request(raw)

        assert request.content_type == "text/html"
        assert request.get_header("Content-Type") == "text/html; charset=utf-8"


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_invalid_content_length_reads_as_zero(self):
        request = HTTPRequest(method="GET", path="/", headers={"content-length": "abc"})

        assert request.content_length == 0
