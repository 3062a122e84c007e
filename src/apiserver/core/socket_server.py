"""
=============================================================================
LISTENING SOCKET
=============================================================================

Owns the listening socket and the accept loop. Nothing HTTP happens here:
each accepted client socket is wrapped in a Connection and handed to a
callback.

    bind()            socket(), setsockopt(), bind(), listen()
                      port 0 picks a free port; `address` reports it
    serve(callback)   accept loop, blocks until stop_accepting()
    stop_accepting()  close the listener right away; callable from any
                      thread, idempotent

=============================================================================
SOCKET OPTIONS
=============================================================================

    SO_REUSEADDR   rebind immediately after a restart (TIME_WAIT)
    SO_REUSEPORT   several processes on one port, where supported
    TCP_NODELAY    no Nagle buffering on accepted sockets

The listener has a short timeout so the accept loop notices
stop_accepting() even on platforms where close() does not interrupt a
blocked accept().

Signal handling lives in __main__: signal.signal() only works in the
main thread and the server is often run from a worker thread in tests.

=============================================================================
"""

import logging
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from ..errors import ServerError
from .connection import Connection


logger = logging.getLogger(__name__)

ACCEPT_POLL_INTERVAL = 0.5


class SocketServer:
    """
    Usage:
        server = SocketServer(config)
        server.bind()
        server.serve(handle_connection)   # blocks
        ...
        server.stop_accepting()           # from another thread
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._lock = threading.Lock()
        self._accepting = False
        self._stopped = threading.Event()
        self._address: Tuple[str, int] = (config.host, config.port)

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port once bind() ran."""
        return self._address

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if hasattr(socket, "SO_REUSEPORT"):
            try:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            except OSError:
                pass
        sock.settimeout(ACCEPT_POLL_INTERVAL)
        return sock

    def bind(self) -> Tuple[str, int]:
        """
        Create, bind and listen.

        Raises:
            ServerError: the address could not be bound.
        """
        sock = self._create_socket()
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            raise ServerError(
                f"Failed to bind to {self.config.host}:{self.config.port}: {e}"
            ) from e

        bound = sock.getsockname()
        with self._lock:
            self._socket = sock
            self._address = (bound[0], bound[1])
            self._accepting = True
            self._stopped.clear()
        logger.debug(f"Listening on {self._address[0]}:{self._address[1]}")
        return self._address

    def serve(self, on_connection: Callable[[Connection], None]) -> None:
        """Accept until stop_accepting(); each client goes to `on_connection`."""
        if self._socket is None:
            self.bind()
        try:
            while self._accepting:
                sock = self._socket
                if sock is None:
                    break
                try:
                    client_socket, client_address = sock.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._accepting:
                        logger.error(f"Accept error: {e}")
                    break

                if not self._accepting:
                    client_socket.close()
                    break

                try:
                    client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                except OSError:
                    pass

                conn = Connection(
                    socket=client_socket,
                    address=client_address[:2],
                    buffer_size=self.config.buffer_size,
                    timeout=self.config.timeout,
                    keep_alive_timeout=self.config.keep_alive_timeout,
                    max_request_size=self.config.max_request_size,
                )
                logger.debug(f"[{conn.id}] Accepted {client_address[0]}:{client_address[1]}")
                on_connection(conn)
        finally:
            self.stop_accepting()
            self._stopped.set()

    def stop_accepting(self) -> None:
        """Close the listener. New connections are refused from here on."""
        with self._lock:
            self._accepting = False
            sock, self._socket = self._socket, None
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Wait for serve() to return."""
        return self._stopped.wait(timeout)
