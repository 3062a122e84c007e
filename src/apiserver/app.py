"""
=============================================================================
APPLICATION ASSEMBLY
=============================================================================

Builds the request handler HTTPServer runs: the router with its built-in
endpoints, wrapped in the middleware stack.

    RecoveryMiddleware                 outermost: sees every exception
      RealIPMiddleware
        RequestIDMiddleware
          AccessLogMiddleware
            AllowContentTypeMiddleware
              CleanPathMiddleware
                StripSlashesMiddleware
                  GetHeadMiddleware
                    NoCacheMiddleware
                      TimeoutMiddleware
                        CORSMiddleware
                          ErrorInjectionMiddleware
                            RateLimitMiddleware   only with a store URL
                              Router

Usage:
    config = ServerConfig.from_env()
    config.validate()
    server = HTTPServer(config, create_app(config))

=============================================================================
"""

import logging
from typing import Optional

from .config import ServerConfig
from .handlers import (
    health_check,
    method_not_allowed_handler,
    not_found_handler,
    profiler_router,
    root_handler,
)
from .http import Handler, Router
from .middleware import (
    AccessLogMiddleware,
    AllowContentTypeMiddleware,
    CleanPathMiddleware,
    CORSMiddleware,
    ErrorInjectionMiddleware,
    GetHeadMiddleware,
    MiddlewarePipeline,
    NoCacheMiddleware,
    RateLimitMiddleware,
    RealIPMiddleware,
    RecoveryMiddleware,
    RequestIDMiddleware,
    StripSlashesMiddleware,
    TimeoutMiddleware,
)
from .ratelimit import LimitCounter, SlidingWindowLimiter, counter_from_url


logger = logging.getLogger(__name__)

PROFILER_PREFIX = "/debug"
ALLOWED_CONTENT_TYPES = ("application/json", "application/x-www-form-urlencoded")


def init_router(config: ServerConfig) -> Router:
    """Router with the built-in endpoints and envelope fallbacks."""
    router = Router()
    router.get("/")(root_handler(config.build_tag))
    router.get("/health")(health_check)
    router.mount(PROFILER_PREFIX, profiler_router(PROFILER_PREFIX))
    router.not_found(not_found_handler)
    router.method_not_allowed(method_not_allowed_handler)
    return router


def build_middleware(
    config: ServerConfig,
    router: Router,
    counter: Optional[LimitCounter] = None,
) -> MiddlewarePipeline:
    """
    The middleware stack, outermost first.

    Args:
        counter: rate-limit counter to use instead of the one the store
            URL describes. Rate limiting is installed when either is set.
    """
    pipeline = MiddlewarePipeline()
    pipeline.use(
        RecoveryMiddleware(),
        RealIPMiddleware(),
        RequestIDMiddleware(),
        AccessLogMiddleware(log_format=config.log_format),
        AllowContentTypeMiddleware(*ALLOWED_CONTENT_TYPES),
        CleanPathMiddleware(),
        StripSlashesMiddleware(),
        GetHeadMiddleware(router),
        NoCacheMiddleware(),
        TimeoutMiddleware(config.request_timeout),
        CORSMiddleware(config.cors),
        ErrorInjectionMiddleware(),
    )

    if counter is None and config.rate_limit_enabled:
        counter = counter_from_url(config.rate_limit_store_url, config.rate_limit_window)
    if counter is not None:
        limiter = SlidingWindowLimiter(
            limit=config.rate_limit,
            window=config.rate_limit_window,
            counter=counter,
        )
        pipeline.add(RateLimitMiddleware(limiter))
        logger.info(
            f"Rate limiting enabled: {config.rate_limit} requests "
            f"per {config.rate_limit_window:g}s per client IP"
        )

    return pipeline


def create_app(config: ServerConfig, counter: Optional[LimitCounter] = None) -> Handler:
    """Router wrapped in the full middleware stack."""
    router = init_router(config)
    return build_middleware(config, router, counter).wrap(router.handle)
