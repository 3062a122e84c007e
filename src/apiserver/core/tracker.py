"""
Live connection registry used for graceful shutdown.

    register / unregister   called by each connection thread
    close_idle()            abort connections waiting for a request
    wait_idle(timeout)      block until no connections remain
    abort_all()             force-close whatever is left
"""

import logging
import threading
import time
from typing import List, Set

from .connection import Connection


logger = logging.getLogger(__name__)


class ConnectionTracker:

    def __init__(self):
        self._connections: Set[Connection] = set()
        self._cond = threading.Condition()

    def register(self, conn: Connection) -> None:
        with self._cond:
            self._connections.add(conn)

    def unregister(self, conn: Connection) -> None:
        with self._cond:
            self._connections.discard(conn)
            if not self._connections:
                self._cond.notify_all()

    def __len__(self) -> int:
        with self._cond:
            return len(self._connections)

    def snapshot(self) -> List[Connection]:
        with self._cond:
            return list(self._connections)

    def close_idle(self) -> int:
        """Abort every idle connection. Returns how many were closed."""
        idle = [conn for conn in self.snapshot() if conn.is_idle]
        for conn in idle:
            conn.abort()
        return len(idle)

    def wait_idle(self, timeout: float) -> bool:
        """
        Wait until every connection has unregistered.

        Connections that become idle while we wait (response written,
        waiting on keep-alive) are closed as soon as they are seen.

        Returns:
            True if all connections finished before `timeout`.
        """
        deadline = time.monotonic() + timeout
        with self._cond:
            while self._connections:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(min(0.05, remaining))
                for conn in list(self._connections):
                    if conn.is_idle:
                        conn.abort()
        return True

    def abort_all(self) -> int:
        remaining = self.snapshot()
        for conn in remaining:
            conn.abort()
        if remaining:
            logger.warning(f"Force-closed {len(remaining)} connection(s)")
        return len(remaining)
