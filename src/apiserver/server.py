"""
=============================================================================
HTTP SERVER
=============================================================================

Ties the transport layer to an application handler (router + middleware,
see app.py) and owns the server lifecycle.

    ┌──────────────┐  accept   ┌──────────────┐  thread per  ┌─────────────┐
    │ SocketServer │ ────────► │  Connection  │ ───────────► │  handler()  │
    └──────────────┘           └──────┬───────┘  connection  └─────────────┘
                                      │
                               ConnectionTracker
                               (what shutdown drains)

=============================================================================
REQUEST LOOP (one thread per connection)
=============================================================================

    1. read_request()        None -> peer closed / keep-alive expired
    2. RequestParser.parse   HTTPParseError -> error envelope, close
    3. handler(request)      middleware + router
    4. Connection headers    keep-alive unless the client, the config or
                             a shutdown in progress says otherwise
    5. send, then loop or close

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

run(stop_event) starts a watcher thread that waits on `stop_event` (the
cancellation signal; __main__ sets it on SIGINT/SIGTERM) and then calls
shutdown():

    1. stop accepting        listener closed, new clients are refused
    2. close idle            connections waiting for a request go at once
    3. drain                 in-flight requests get `shutdown_timeout`
                             seconds; their responses carry
                             Connection: close
    4. force close           whatever is left is aborted

run() returns once shutdown() has finished.

=============================================================================
"""

import logging
import threading
from typing import Optional, Tuple

from .config import ServerConfig
from .core import Connection, ConnectionState, ConnectionTracker, RequestTooLarge, SocketServer
from .http import (
    Handler,
    HTTPParseError,
    HTTPRequest,
    HTTPResponse,
    HTTPStatus,
    RequestParser,
    error_response,
)
from .middleware.request_id import RequestIDGenerator


logger = logging.getLogger(__name__)


class HTTPServer:
    """
    Usage:
        server = HTTPServer(config, create_app(config))
        stop = threading.Event()
        server.run(stop)        # blocks until stop.set() and the drain ends
    """

    def __init__(self, config: ServerConfig, handler: Handler):
        self.config = config
        self.handler = handler

        self._parser = RequestParser(max_request_size=config.max_request_size)
        self._socket_server = SocketServer(config)
        self._tracker = ConnectionTracker()
        self._request_ids = RequestIDGenerator()

        self._ready = threading.Event()
        self._lock = threading.Lock()
        self._shutting_down = False
        self._shutdown_done = threading.Event()

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def active_connections(self) -> int:
        return len(self._tracker)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listener is bound. False on timeout."""
        return self._ready.wait(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """
        Serve until shutdown() runs, either directly or via `stop_event`.

        Raises:
            ServerError: the listener could not be bound.
        """
        host, port = self._socket_server.bind()
        logger.info(f"Starting HTTP server on {host}:{port}", extra={"port": port})
        self._ready.set()

        if stop_event is not None:
            watcher = threading.Thread(
                target=self._watch, args=(stop_event,), name="shutdown-watcher", daemon=True
            )
            watcher.start()

        try:
            self._socket_server.serve(self._handle_connection)
        finally:
            self.shutdown()
            logger.info("HTTP server stopped", extra={"port": port})

    def _watch(self, stop_event: threading.Event) -> None:
        while not stop_event.wait(0.1):
            if self._shutdown_done.is_set():
                return
        self.shutdown()

    def shutdown(self) -> None:
        """Stop accepting and drain. Later callers wait for the first one."""
        with self._lock:
            first = not self._shutting_down
            self._shutting_down = True
        if not first:
            self._shutdown_done.wait()
            return

        try:
            self._socket_server.stop_accepting()
            logger.info("Waiting for all connections to be closed")

            self._tracker.close_idle()
            grace = self.config.shutdown_timeout
            if not self._tracker.wait_idle(grace):
                logger.warning(f"Connections still open after {grace:g}s, closing them")
                self._tracker.abort_all()

            logger.info("All connections are closed")
        finally:
            self._shutdown_done.set()

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        self._tracker.register(conn)
        if self._shutting_down:
            conn.abort()
        thread = threading.Thread(
            target=self._serve_connection, args=(conn,), name=conn.id, daemon=True
        )
        thread.start()

    def _serve_connection(self, conn: Connection) -> None:
        try:
            with conn:
                self._process_connection(conn)
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")
        finally:
            self._tracker.unregister(conn)

    def _process_connection(self, conn: Connection) -> None:
        while not conn.aborted:
            try:
                raw_request = conn.read_request()
            except TimeoutError:
                self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request Timeout")
                return
            except RequestTooLarge as e:
                self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE, str(e))
                return
            except OSError as e:
                logger.debug(f"[{conn.id}] Read failed: {e}")
                return

            if raw_request is None:
                return

            conn.state = ConnectionState.PROCESSING
            try:
                request = self._parser.parse(raw_request, conn.address)
            except HTTPParseError as e:
                self._send_error(conn, e.status_code, str(e))
                return

            response = self._dispatch(request)

            keep_alive = (
                self.config.keep_alive
                and request.is_keep_alive
                and not self._shutting_down
            )
            if keep_alive:
                response.set_header("Connection", "keep-alive")
                response.set_header("Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}")
            else:
                response.set_header("Connection", "close")
            if request.method == "HEAD":
                response.head_only = True

            if not conn.send_response(response.to_bytes(self.config.server_name)):
                return
            if not keep_alive or self._shutting_down:
                return
            conn.set_keep_alive()

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        # RecoveryMiddleware normally handles this; a bare handler may not.
        try:
            return self.handler(request)
        except Exception as e:
            logger.exception(f"Unhandled error for {request.method} {request.path}: {e}")
            return error_response(
                HTTPStatus.INTERNAL_SERVER_ERROR,
                HTTPStatus.INTERNAL_SERVER_ERROR.phrase,
                request.request_id or self._request_ids(),
            )

    def _send_error(self, conn: Connection, status: int, message: str) -> None:
        """Error envelope for failures before a request reached the handler."""
        response = error_response(status, message, self._request_ids())
        response.set_header("Connection", "close")
        conn.send_response(response.to_bytes(self.config.server_name))
