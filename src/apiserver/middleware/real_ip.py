"""
Real client IP behind proxies.

Checked in order, first non-empty wins:

    True-Client-IP      (Cloudflare, Akamai)
    X-Real-IP           (nginx)
    X-Forwarded-For     left-most entry, the original client

Only deploy this behind a proxy that overwrites these headers; otherwise
clients can pick their own IP (and with it their rate limit bucket).
"""

import ipaddress

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


def real_ip(request: HTTPRequest) -> str:
    """The client IP according to proxy headers, or "" if none is usable."""
    for header in ("true-client-ip", "x-real-ip"):
        candidate = request.headers.get(header, "").strip()
        if candidate:
            break
    else:
        forwarded = request.headers.get("x-forwarded-for", "")
        candidate = forwarded.split(",")[0].strip()

    if not candidate:
        return ""
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return ""


class RealIPMiddleware(Middleware):
    """Rewrites `request.remote_ip` from proxy headers."""

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        ip = real_ip(request)
        if ip:
            request.remote_ip = ip
        return next(request)
