"""
pytest configuration and fixtures.
"""

import http.client
import json
import logging
import threading
from typing import Dict, Generator, Optional, Tuple

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from apiserver import HTTPServer, ServerConfig, create_app
from apiserver.http import HTTPRequest, HTTPResponse, ResponseBuilder


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/users?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"name": "Ada", "email": "ada@example.com"}'
    return (
        b"POST /api/users HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def restore_logging():
    """configure_logging() replaces root handlers; put them back afterwards."""
    root = logging.getLogger()
    package = logging.getLogger("apiserver")
    saved = (list(root.handlers), root.level, package.level)
    yield
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    package.setLevel(saved[2])


@pytest.fixture
def config() -> ServerConfig:
    """Test configuration: loopback, OS-assigned port, short timeouts."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        timeout=5.0,
        keep_alive_timeout=5.0,
        request_timeout=5.0,
        shutdown_timeout=2.0,
        build_tag="test-build",
        log_level="WARNING",
    )


def make_request(method: str = "GET", path: str = "/", headers: Optional[Dict[str, str]] = None,
                 query: Optional[Dict[str, list]] = None, body: bytes = b"",
                 client_address: Tuple[str, int] = ("10.0.0.1", 50000)) -> HTTPRequest:
    """Build a request the way the parser would (lower-case header names)."""
    return HTTPRequest(
        method=method,
        path=path,
        headers={k.lower(): v for k, v in (headers or {}).items()},
        query_params=query or {},
        body=body,
        client_address=client_address,
    )


def ok_handler(request: HTTPRequest) -> HTTPResponse:
    return ResponseBuilder().json({"path": request.path, "method": request.method}).build()


def boom_handler(request: HTTPRequest) -> HTTPResponse:
    raise RuntimeError("boom")


class TestServer:
    """Runs HTTPServer.run(stop_event) in a background thread."""

    __test__ = False

    def __init__(self, server: HTTPServer):
        self.server = server
        self.stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> "TestServer":
        self._thread = threading.Thread(
            target=self.server.run, args=(self.stop_event,), daemon=True
        )
        self._thread.start()
        if not self.server.wait_until_ready(5.0):
            raise RuntimeError("Server failed to start")
        return self

    def stop(self, timeout: float = 10.0) -> bool:
        """Signal cancellation; True if run() returned within `timeout`."""
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            return not self._thread.is_alive()
        return True

    def connection(self, timeout: float = 5.0) -> http.client.HTTPConnection:
        return http.client.HTTPConnection("127.0.0.1", self.port, timeout=timeout)

    def request(self, method: str, path: str, body: Optional[bytes] = None,
                headers: Optional[Dict[str, str]] = None):
        """One request on a fresh connection; returns (response, body bytes)."""
        conn = self.connection()
        try:
            conn.request(method, path, body=body, headers=headers or {})
            response = conn.getresponse()
            return response, response.read()
        finally:
            conn.close()

    def get_json(self, path: str):
        response, body = self.request("GET", path)
        return response, json.loads(body) if body else None


@pytest.fixture
def test_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    """The full application on a loopback port."""
    server = TestServer(HTTPServer(config, create_app(config))).start()
    yield server
    server.stop()
