"""
=============================================================================
PROFILER ENDPOINTS
=============================================================================

Runtime introspection mounted under /debug.

    GET /debug                        301 -> /debug/pprof/
    GET /debug/pprof                  JSON index of the endpoints below
    GET /debug/pprof/cmdline          process command line, NUL separated
    GET /debug/pprof/profile?seconds=N
                                      statistical CPU profile of all threads
    GET /debug/pprof/threads          stack of every live thread
    GET /debug/pprof/heap?limit=N     top allocation sites (tracemalloc)
    GET /debug/vars                   process variables as JSON

=============================================================================
CPU PROFILE FORMAT
=============================================================================

The profile samples every thread's stack at 100 Hz and returns "collapsed
stacks", one line per distinct stack, outermost frame first:

    MainThread;serve_forever;_accept_loop;accept 412
    conn-7;_serve;handle;slow_query 97

That is the input format of flamegraph.pl and speedscope. The sampling
request's own thread is excluded.

=============================================================================
HEAP PROFILE
=============================================================================

tracemalloc has a real cost, so it is only switched on by the first call
to /debug/pprof/heap; that call reports that tracing has started and later
calls report allocations made since.

These endpoints expose process internals. Keep /debug behind a private
listener or an authenticating proxy in production.

=============================================================================
"""

import collections
import gc
import os
import platform
import sys
import threading
import time
import traceback
import tracemalloc
from typing import Dict, Optional

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, json_response
from ..http.router import Router
from ..http.status_codes import HTTPStatus


SAMPLE_HZ = 100
DEFAULT_PROFILE_SECONDS = 5
MAX_PROFILE_SECONDS = 60
DEFAULT_HEAP_LIMIT = 25


def _int_query(request: HTTPRequest, name: str, default: int, maximum: int) -> int:
    raw = request.get_query(name)
    if raw is None or not raw.isdigit():
        return default
    return max(1, min(int(raw), maximum))


class Profiler:
    """Handlers behind /debug. `router()` returns them ready to mount."""

    def __init__(self, mount_prefix: str = "/debug"):
        self.mount_prefix = mount_prefix.rstrip("/")
        self._started = time.time()

    def router(self) -> Router:
        router = Router()
        router.get("/")(self.redirect_to_index)
        router.get("/pprof")(self.index)
        router.get("/pprof/cmdline")(self.cmdline)
        router.get("/pprof/profile")(self.profile)
        router.get("/pprof/threads")(self.threads)
        router.get("/pprof/heap")(self.heap)
        router.get("/vars")(self.vars)
        return router

    # ─────────────────────────────────────────────────────────────────────
    # Index and process info
    # ─────────────────────────────────────────────────────────────────────

    def redirect_to_index(self, request: HTTPRequest) -> HTTPResponse:
        return ResponseBuilder().redirect(f"{self.mount_prefix}/pprof/", permanent=True).build()

    def index(self, request: HTTPRequest) -> HTTPResponse:
        base = f"{self.mount_prefix}/pprof"
        return json_response(HTTPStatus.OK, {
            "profiles": [
                {"name": "cmdline", "href": f"{base}/cmdline",
                 "description": "The command line invocation of the current program"},
                {"name": "profile", "href": f"{base}/profile?seconds={DEFAULT_PROFILE_SECONDS}",
                 "description": "Sampled CPU profile of all threads, collapsed stack format"},
                {"name": "threads", "href": f"{base}/threads",
                 "description": "Stack traces of all current threads"},
                {"name": "heap", "href": f"{base}/heap",
                 "description": "Top memory allocation sites (starts tracemalloc on first use)"},
                {"name": "vars", "href": f"{self.mount_prefix}/vars",
                 "description": "Process variables"},
            ],
        })

    def cmdline(self, request: HTTPRequest) -> HTTPResponse:
        return ResponseBuilder().text("\x00".join(sys.argv)).build()

    def vars(self, request: HTTPRequest) -> HTTPResponse:
        traced: Optional[Dict[str, int]] = None
        if tracemalloc.is_tracing():
            current, peak = tracemalloc.get_traced_memory()
            traced = {"current_bytes": current, "peak_bytes": peak}

        return json_response(HTTPStatus.OK, {
            "pid": os.getpid(),
            "cmdline": sys.argv,
            "python": platform.python_version(),
            "implementation": platform.python_implementation(),
            "uptime_seconds": round(time.time() - self._started, 3),
            "threads": threading.active_count(),
            "gc": {
                "counts": gc.get_count(),
                "thresholds": gc.get_threshold(),
                "stats": gc.get_stats(),
            },
            "tracemalloc": traced,
        })

    # ─────────────────────────────────────────────────────────────────────
    # Stacks
    # ─────────────────────────────────────────────────────────────────────

    def threads(self, request: HTTPRequest) -> HTTPResponse:
        names = {t.ident: t.name for t in threading.enumerate()}
        sections = []
        for ident, frame in sys._current_frames().items():
            name = names.get(ident, "unknown")
            stack = "".join(traceback.format_stack(frame))
            sections.append(f"Thread {name} (id {ident}):\n{stack}")
        return ResponseBuilder().text("\n".join(sections)).build()

    def profile(self, request: HTTPRequest) -> HTTPResponse:
        seconds: float = _int_query(request, "seconds", DEFAULT_PROFILE_SECONDS, MAX_PROFILE_SECONDS)
        if request.deadline is not None:
            # Leave room to write the response before the request timeout.
            seconds = min(seconds, max(0.1, request.deadline - time.monotonic() - 1.0))

        samples = self._sample(seconds, exclude=threading.get_ident())
        lines = [f"{stack} {count}" for stack, count in samples.most_common()]
        return (ResponseBuilder()
            .text("\n".join(lines) + ("\n" if lines else ""))
            .header("Content-Disposition", 'attachment; filename="profile.folded"')
            .build())

    @staticmethod
    def _sample(seconds: float, exclude: int) -> collections.Counter:
        interval = 1.0 / SAMPLE_HZ
        end = time.monotonic() + seconds
        counts: collections.Counter = collections.Counter()

        while time.monotonic() < end:
            names = {t.ident: t.name for t in threading.enumerate()}
            for ident, frame in sys._current_frames().items():
                if ident == exclude:
                    continue
                frames = []
                while frame is not None:
                    frames.append(frame.f_code.co_name)
                    frame = frame.f_back
                frames.append(names.get(ident, str(ident)))
                counts[";".join(reversed(frames))] += 1
            time.sleep(interval)

        return counts

    # ─────────────────────────────────────────────────────────────────────
    # Memory
    # ─────────────────────────────────────────────────────────────────────

    def heap(self, request: HTTPRequest) -> HTTPResponse:
        if not tracemalloc.is_tracing():
            tracemalloc.start()
            return json_response(HTTPStatus.OK, {
                "tracing": True,
                "message": "tracemalloc started; request again to see allocations",
                "top": [],
            })

        limit = _int_query(request, "limit", DEFAULT_HEAP_LIMIT, 500)
        snapshot = tracemalloc.take_snapshot().filter_traces((
            tracemalloc.Filter(False, tracemalloc.__file__),
            tracemalloc.Filter(False, "<frozen importlib._bootstrap>"),
        ))
        current, peak = tracemalloc.get_traced_memory()
        top = [
            {
                "location": str(stat.traceback),
                "size_bytes": stat.size,
                "count": stat.count,
            }
            for stat in snapshot.statistics("lineno")[:limit]
        ]
        return json_response(HTTPStatus.OK, {
            "tracing": True,
            "current_bytes": current,
            "peak_bytes": peak,
            "top": top,
        })


def profiler_router(mount_prefix: str = "/debug") -> Router:
    """Profiler routes, ready for `router.mount(mount_prefix, ...)`."""
    return Profiler(mount_prefix).router()
