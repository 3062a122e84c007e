"""
=============================================================================
MIDDLEWARE
=============================================================================

Cross-cutting request processing, in the order app.build_middleware installs it:

    RecoveryMiddleware            exceptions -> 500 envelope
    RealIPMiddleware              client IP from proxy headers
    RequestIDMiddleware           X-Request-Id, log correlation
    AccessLogMiddleware           one access log line per request
    AllowContentTypeMiddleware    415 for unexpected body media types
    CleanPathMiddleware           "//a/./b/../c" -> "/a/c"
    StripSlashesMiddleware        "/health/" -> "/health"
    GetHeadMiddleware             HEAD served by GET routes
    NoCacheMiddleware             no-cache response headers
    TimeoutMiddleware             504 when the chain overruns
    CORSMiddleware                preflight + CORS response headers
    ErrorInjectionMiddleware      ?must_err=<status>
    RateLimitMiddleware           429 above the per-IP budget (optional)

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .content_type import AllowContentTypeMiddleware
from .cors import CORSMiddleware
from .error_injection import ErrorInjectionMiddleware, forced_status
from .get_head import GetHeadMiddleware
from .logging import AccessLogMiddleware, RequestLog
from .no_cache import NoCacheMiddleware
from .paths import CleanPathMiddleware, StripSlashesMiddleware, clean_path
from .rate_limit import RateLimitMiddleware
from .real_ip import RealIPMiddleware, real_ip
from .recovery import RecoveryMiddleware
from .request_id import RequestIDGenerator, RequestIDMiddleware
from .timeout import TimeoutMiddleware

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "AllowContentTypeMiddleware",
    "CORSMiddleware",
    "ErrorInjectionMiddleware",
    "forced_status",
    "GetHeadMiddleware",
    "AccessLogMiddleware",
    "RequestLog",
    "NoCacheMiddleware",
    "CleanPathMiddleware",
    "StripSlashesMiddleware",
    "clean_path",
    "RateLimitMiddleware",
    "RealIPMiddleware",
    "real_ip",
    "RecoveryMiddleware",
    "RequestIDGenerator",
    "RequestIDMiddleware",
    "TimeoutMiddleware",
]
