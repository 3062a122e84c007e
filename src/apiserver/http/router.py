"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a handler function.

=============================================================================
PATTERNS
=============================================================================

    /health                 static, exact match
    /users/:id              ":name" captures one segment
    /files/*path            "*name" captures the rest, slashes included

Paths are matched as they arrive at the router. Cleaning ("//", "..") and
trailing slash removal happen earlier in the middleware chain, so the
router never has to guess.

=============================================================================
MOUNTING
=============================================================================

A router can be mounted under a prefix. The mounted router registers its
routes relative to that prefix:

    debug = Router()
    debug.get("/pprof")(index)
    root.mount("/debug", debug)      # GET /debug/pprof -> index

=============================================================================
WHEN NOTHING MATCHES
=============================================================================

    path unknown for every method       -> not_found handler        (404)
    path known, method not registered   -> method_not_allowed       (405)
                                           plus an Allow header

Both handlers can be replaced with `router.not_found(handler)` and
`router.method_not_allowed(handler)`. The defaults already answer with the
JSON error envelope.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple
import re

from .request import HTTPRequest
from .response import HTTPResponse, error_response
from .status_codes import HTTPStatus


Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    """A registered route. `method` None means any method."""

    path: str
    method: Optional[str]
    handler: Handler
    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]


def _default_not_found(request: HTTPRequest) -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, HTTPStatus.NOT_FOUND.phrase, request.request_id)


def _default_method_not_allowed(request: HTTPRequest) -> HTTPResponse:
    return error_response(
        HTTPStatus.METHOD_NOT_ALLOWED,
        HTTPStatus.METHOD_NOT_ALLOWED.phrase,
        request.request_id,
    )


class Router:
    """
    Regex-based router.

        router = Router()

        @router.get("/users/:id")
        def get_user(request):
            return json_response(200, {"id": request.path_params["id"]})

        response = router.handle(request)
    """

    def __init__(self):
        self._routes: List[Route] = []
        self._mounts: List[Tuple[str, "Router"]] = []
        self._not_found: Handler = _default_not_found
        self._method_not_allowed: Handler = _default_method_not_allowed

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_route(self, path: str, handler: Handler, method: Optional[str] = None) -> Route:
        """Register `handler` for `path` (and `method`, if given)."""
        if not path.startswith("/"):
            raise ValueError(f"Route path must start with '/': {path!r}")

        pattern, param_names = self._compile_pattern(path)
        route = Route(
            path=path,
            method=method.upper() if method else None,
            handler=handler,
            _pattern=pattern,
            _param_names=param_names,
        )
        self._routes.append(route)
        return route

    def _compile_pattern(self, path: str) -> Tuple[re.Pattern, List[str]]:
        """
        "/users/:id/files/*rest" -> ^/users/(?P<id>[^/]+)/files/(?P<rest>.*)$
        """
        param_names: List[str] = []
        parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue
            parts.append("/")
            if segment.startswith(":"):
                name = segment[1:]
                param_names.append(name)
                parts.append(f"(?P<{name}>[^/]+)")
            elif segment.startswith("*"):
                name = segment[1:] or "wildcard"
                param_names.append(name)
                parts.append(f"(?P<{name}>.*)")
                break
            else:
                parts.append(re.escape(segment))

        if len(parts) == 1:
            parts.append("/")
        parts.append("$")
        return re.compile("".join(parts)), param_names

    def mount(self, prefix: str, router: "Router") -> "Router":
        """Attach `router` so that its routes answer under `prefix`."""
        prefix = "/" + prefix.strip("/")
        if prefix == "/":
            raise ValueError("Cannot mount a router at '/'")
        self._mounts.append((prefix, router))
        return router

    def not_found(self, handler: Handler) -> Handler:
        """Replace the 404 handler. Usable as a decorator."""
        self._not_found = handler
        return handler

    def method_not_allowed(self, handler: Handler) -> Handler:
        """Replace the 405 handler. Usable as a decorator."""
        self._method_not_allowed = handler
        return handler

    # =========================================================================
    # MATCHING
    # =========================================================================

    def _mounted(self, path: str):
        """Yield (router, sub_path) for every mount that owns `path`."""
        for prefix, router in self._mounts:
            if path == prefix:
                yield router, "/"
            elif path.startswith(prefix + "/"):
                yield router, path[len(prefix):]

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """First route matching both method and path, mounts last."""
        method = method.upper()

        for route in self._routes:
            if route.method and route.method != method:
                continue
            found = route._pattern.match(path)
            if found:
                return RouteMatch(route=route, params=found.groupdict())

        for router, sub_path in self._mounted(path):
            result = router.match(method, sub_path)
            if result:
                return result

        return None

    def has_route(self, method: str, path: str) -> bool:
        return self.match(method, path) is not None

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods registered for `path`, including mounted routers."""
        methods = set()
        for route in self._routes:
            if route._pattern.match(path):
                if route.method is None:
                    return ["DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT"]
                methods.add(route.method)

        for router, sub_path in self._mounted(path):
            methods.update(router.get_allowed_methods(sub_path))

        return sorted(methods)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Dispatch `request`; fall back to the 405 or 404 handler."""
        found = self.match(request.method, request.path)
        if found:
            request.path_params = found.params
            return found.route.handler(request)

        allowed = self.get_allowed_methods(request.path)
        if allowed:
            response = self._method_not_allowed(request)
            if response.get_header("Allow") is None:
                response.set_header("Allow", ", ".join(allowed))
            return response

        return self._not_found(request)

    __call__ = handle

    # =========================================================================
    # DECORATORS
    # =========================================================================

    def route(self, path: str, method: Optional[str] = None) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method)
            return handler
        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "GET")
