"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted socket: buffered request reading, response writing,
and the two ways a connection can end.

    close()   orderly: FIN, drain what the client still sends, release fd.
              Called by the thread that owns the connection.

    abort()   forced: shutdown(SHUT_RDWR) from ANY thread. A recv() blocked
              in the owning thread returns b"" right away, and a later
              send() fails, so the owning thread unwinds and calls close().

=============================================================================
STATES
=============================================================================

    NEW ──► READING ──► PROCESSING ──► WRITING ──► KEEP_ALIVE ─┐
              ▲                                                 │
              └─────────────────────────────────────────────────┘
                         any state ──► CLOSING ──► CLOSED

A connection in NEW or KEEP_ALIVE has not received a single byte of its
next request. Graceful shutdown treats exactly those as idle and closes
them at once; everything else is in flight and gets the grace period.

=============================================================================
"""

import itertools
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


IDLE_STATES = frozenset({ConnectionState.NEW, ConnectionState.KEEP_ALIVE})


class RequestTooLarge(Exception):
    """The buffered request exceeded max_request_size."""


@dataclass(eq=False)
class Connection:
    """
    Attributes:
        socket: the accepted client socket.
        address: (ip, port) of the peer.
        id: short id used in log lines.
        requests_handled: complete requests read on this connection.
    """

    socket: socket.socket
    address: Tuple[str, int]
    id: str = field(default_factory=lambda: f"conn-{next(_connection_ids)}")
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.monotonic)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _aborted: bool = field(default=False, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def is_idle(self) -> bool:
        """Waiting for the first byte of a request."""
        return self.state in IDLE_STATES and not self._buffer

    @property
    def aborted(self) -> bool:
        return self._aborted

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request (headers + Content-Length body).

        Returns:
            The request bytes, or None when the peer closed the connection,
            the keep-alive timeout expired, or the connection was aborted.

        Raises:
            TimeoutError: the first request did not arrive in time.
            RequestTooLarge: more than max_request_size bytes buffered.
        """
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                if self.state in IDLE_STATES:
                    self.state = ConnectionState.READING
                self._append(chunk)

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])
            if body_start + content_length > self.max_request_size:
                raise RequestTooLarge(f"Request too large: {body_start + content_length} bytes")

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    return None
                self._append(chunk)

            request_end = body_start + content_length
            data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]
            self.requests_handled += 1
            return data

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")
        finally:
            if not self._aborted:
                try:
                    self.socket.settimeout(self.timeout)
                except OSError:
                    pass

    def _append(self, chunk: bytes) -> None:
        self._buffer += chunk
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""
        except OSError:
            if self._aborted:
                return b""
            raise

    @staticmethod
    def _parse_content_length(headers: bytes) -> int:
        # Only needed to know how much to read; RequestParser validates.
        for line in headers.split(b"\r\n")[1:]:
            name, _, value = line.partition(b":")
            if name.strip().lower() == b"content-length":
                value = value.strip()
                return int(value) if value.isdigit() else 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """sendall() the bytes. Returns False if the connection is gone."""
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            if not self._aborted:
                logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    def set_keep_alive(self) -> None:
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def abort(self) -> None:
        """Force the connection down. Safe to call from another thread."""
        with self._lock:
            if self._aborted or self.state == ConnectionState.CLOSED:
                return
            self._aborted = True
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def close(self) -> None:
        """Orderly close; idempotent."""
        with self._lock:
            if self.state == ConnectionState.CLOSED:
                return
            self.state = ConnectionState.CLOSING

        if not self._aborted:
            try:
                self.socket.shutdown(socket.SHUT_WR)
                self.socket.settimeout(0.5)
                while self.socket.recv(1024):
                    pass
            except OSError:
                pass

        try:
            self.socket.close()
        except OSError:
            pass

        with self._lock:
            self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
