"""
=============================================================================
CORS MIDDLEWARE
=============================================================================

Cross-Origin Resource Sharing, configured from CORSSettings.

=============================================================================
TWO KINDS OF CROSS-ORIGIN REQUESTS
=============================================================================

    PREFLIGHT  OPTIONS + Origin + Access-Control-Request-Method
               Answered here with 204; never reaches the router.

                 Access-Control-Allow-Origin:   <origin or *>
                 Access-Control-Allow-Methods:  <requested method>
                 Access-Control-Allow-Headers:  <requested headers>
                 Access-Control-Max-Age:        <max_age>

    ACTUAL     any request with an Origin header
               Passed on; the response gets Allow-Origin, Expose-Headers
               and Allow-Credentials.

An OPTIONS request WITHOUT Access-Control-Request-Method is not a
preflight and is routed like any other request.

A disallowed origin, method or header is not an error: the response simply
carries no CORS headers and the browser blocks the read.

=============================================================================
ORIGIN PATTERNS
=============================================================================

    "*"                       any origin
    "https://app.example.com" exact (case-insensitive)
    "https://*.example.com"   one wildcard: prefix + anything + suffix
    "https://*"               any https origin

=============================================================================
"""

from typing import List, Optional, Tuple

from .base import Middleware, NextHandler
from ..config import CORSSettings
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.status_codes import HTTPStatus


class CORSMiddleware(Middleware):

    def __init__(self, settings: Optional[CORSSettings] = None):
        self.settings = settings or CORSSettings()

        self._allow_all_origins = False
        self._exact_origins: List[str] = []
        self._wildcard_origins: List[Tuple[str, str]] = []
        for origin in self.settings.allowed_origins:
            origin = origin.lower()
            if origin == "*":
                self._allow_all_origins = True
            elif "*" in origin:
                prefix, _, suffix = origin.partition("*")
                self._wildcard_origins.append((prefix, suffix))
            else:
                self._exact_origins.append(origin)

        self._allowed_methods = {m.upper() for m in self.settings.allowed_methods}
        self._allow_all_headers = "*" in self.settings.allowed_headers
        # Origin is always allowed as a request header.
        self._allowed_headers = {h.lower() for h in self.settings.allowed_headers} | {"origin"}

    # =========================================================================
    # POLICY CHECKS
    # =========================================================================

    def is_origin_allowed(self, origin: str) -> bool:
        if self._allow_all_origins:
            return True
        origin = origin.lower()
        if origin in self._exact_origins:
            return True
        return any(
            len(origin) >= len(prefix) + len(suffix)
            and origin.startswith(prefix)
            and origin.endswith(suffix)
            for prefix, suffix in self._wildcard_origins
        )

    def is_method_allowed(self, method: str) -> bool:
        method = method.upper()
        return method == "OPTIONS" or method in self._allowed_methods

    def are_headers_allowed(self, requested: List[str]) -> bool:
        if self._allow_all_headers:
            return True
        return all(h.lower() in self._allowed_headers for h in requested)

    def _allow_origin_value(self, origin: str) -> str:
        # "*" is rejected by browsers on credentialed requests, echo instead.
        if self._allow_all_origins and not self.settings.allow_credentials:
            return "*"
        return origin

    # =========================================================================
    # MIDDLEWARE
    # =========================================================================

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if request.method == "OPTIONS" and request.get_header("Access-Control-Request-Method"):
            return self._handle_preflight(request)

        response = next(request)
        self._add_actual_headers(request, response)
        return response

    def _handle_preflight(self, request: HTTPRequest) -> HTTPResponse:
        response = ResponseBuilder().status(HTTPStatus.NO_CONTENT).build()
        response.add_vary(
            "Origin",
            "Access-Control-Request-Method",
            "Access-Control-Request-Headers",
        )

        origin = request.get_header("Origin")
        if not origin or not self.is_origin_allowed(origin):
            return response

        requested_method = request.get_header("Access-Control-Request-Method").upper()
        if not self.is_method_allowed(requested_method):
            return response

        requested_headers = [
            h.strip() for h in request.get_header("Access-Control-Request-Headers").split(",")
            if h.strip()
        ]
        if not self.are_headers_allowed(requested_headers):
            return response

        response.set_header("Access-Control-Allow-Origin", self._allow_origin_value(origin))
        response.set_header("Access-Control-Allow-Methods", requested_method)
        if requested_headers:
            response.set_header("Access-Control-Allow-Headers", ", ".join(requested_headers))
        if self.settings.allow_credentials:
            response.set_header("Access-Control-Allow-Credentials", "true")
        if self.settings.max_age > 0:
            response.set_header("Access-Control-Max-Age", str(self.settings.max_age))
        return response

    def _add_actual_headers(self, request: HTTPRequest, response: HTTPResponse) -> None:
        response.add_vary("Origin")

        origin = request.get_header("Origin")
        if not origin or not self.is_origin_allowed(origin):
            return
        if not self.is_method_allowed(request.method):
            return

        response.set_header("Access-Control-Allow-Origin", self._allow_origin_value(origin))
        if self.settings.exposed_headers:
            response.set_header(
                "Access-Control-Expose-Headers",
                ", ".join(self.settings.exposed_headers),
            )
        if self.settings.allow_credentials:
            response.set_header("Access-Control-Allow-Credentials", "true")
