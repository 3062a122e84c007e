"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Middleware follows the Chain of Responsibility pattern: each link receives
the request plus the rest of the chain (`next`), and either answers on its
own (short-circuit) or calls `next(request)` and post-processes the result.

    Request ─────────────────────────────────────────────────►

    ┌──────────┐   ┌──────────┐   ┌──────────┐        ┌──────────┐
    │ Recovery │──►│  RealIP  │──►│ RequestID│─ ... ─►│  Router  │
    └──────────┘   └──────────┘   └──────────┘        └──────────┘

    ◄───────────────────────────────────────────────── Response

The first middleware added is the outermost. Recovery therefore goes first
so that an exception raised anywhere further in still becomes a response.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterator, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The next middleware, or the router at the end of the chain.
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class AddHeader(Middleware):
            def __call__(self, request, next):
                response = next(request)
                response.set_header("X-Processed-By", "AddHeader")
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """Handle `request`, usually by delegating to `next`."""

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    An ordered list of middleware that wraps a final handler.

        pipeline = MiddlewarePipeline()
        pipeline.use(RecoveryMiddleware(), RequestIDMiddleware())
        handler = pipeline.wrap(router.handle)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain around `handler`.

        Given [A, B, C] the result behaves like A(B(C(handler))), which is
        why the list is walked in reverse.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._bind(middleware, current)
        return current

    @staticmethod
    def _bind(middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    @property
    def names(self) -> List[str]:
        return [mw.name for mw in self._middleware]

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)
