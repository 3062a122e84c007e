"""
Transport layer: listening socket, per-client connections, and the
registry graceful shutdown drains.
"""

from .connection import Connection, ConnectionState, RequestTooLarge
from .socket_server import SocketServer
from .tracker import ConnectionTracker

__all__ = [
    "Connection",
    "ConnectionState",
    "ConnectionTracker",
    "RequestTooLarge",
    "SocketServer",
]
