"""
=============================================================================
BASE MIDDLEWARE INTERFACE
=============================================================================

Defines the middleware protocol and the pipeline that chains middleware
around the file server. Chain of Responsibility pattern.

=============================================================================
THE STATIC SERVER PIPELINE
=============================================================================

Stages are added outermost first. The order is fixed; optional stages
are simply left out when disabled, the others keep their relative order.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  RecoveryMiddleware          always    fault → 500, logged          │
    │  ┌───────────────────────────────────────────────────────────────┐  │
    │  │  LoggingMiddleware        always    method/path/status/time   │  │
    │  │  ┌─────────────────────────────────────────────────────────┐  │  │
    │  │  │  ForceHTTPSMiddleware  optional  plaintext → 301 https  │  │  │
    │  │  │  ┌───────────────────────────────────────────────────┐  │  │  │
    │  │  │  │  CompressionMiddleware  optional  gzip body       │  │  │  │
    │  │  │  │  ┌─────────────────────────────────────────────┐  │  │  │  │
    │  │  │  │  │  writer_handler(                            │  │  │  │  │
    │  │  │  │  │    Html5Mode(            optional           │  │  │  │  │
    │  │  │  │  │      StripPrefix(        optional           │  │  │  │  │
    │  │  │  │  │        FileServer)))                        │  │  │  │  │
    │  │  │  │  └─────────────────────────────────────────────┘  │  │  │  │
    │  │  │  └───────────────────────────────────────────────────┘  │  │  │
    │  │  └─────────────────────────────────────────────────────────┘  │  │
    │  └───────────────────────────────────────────────────────────────┘  │
    └─────────────────────────────────────────────────────────────────────┘

Request flows INWARD, response flows OUTWARD:

    - The redirect short-circuits before any file is touched.
    - Compression sees the final body the inner stages produced.
    - Recovery sits OUTSIDE logging: on a fault, logging records the
      failed request and re-raises, then recovery answers with a 500.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger(__name__)

# The next stage in the chain: takes a request, returns a response.
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    Abstract base class for middleware.

    =========================================================================
    THE MIDDLEWARE CONTRACT
    =========================================================================

        def __call__(self, request, next) -> HTTPResponse

    A middleware may:

        - short-circuit: return a response without calling next(request)
          (ForceHTTPSMiddleware does this for plaintext requests)
        - post-process: call next(request) and rewrite the response
          (CompressionMiddleware does this)
        - guard: wrap next(request) in try/except
          (RecoveryMiddleware does this)

    =========================================================================
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """
        Process the request.

        Args:
            request: The incoming HTTP request
            next: The next handler in the chain

        Returns:
            HTTP response (either from next() or short-circuited)
        """
        pass

    @property
    def name(self) -> str:
        """Get the middleware name for logging."""
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware together around a final handler.

    Middleware is executed in the order added: first added = outermost.

        pipeline = MiddlewarePipeline()
        pipeline.add(RecoveryMiddleware()).add(LoggingMiddleware())
        handler = pipeline.wrap(writer_handler(file_server))
        response = handler(request)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        """Add several middleware at once, in order."""
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Wrap a handler with all middleware in the pipeline.

        =====================================================================
        HOW WRAPPING WORKS
        =====================================================================

        Given: [MW1, MW2, MW3] and handler

            current = handler
            current = MW3 around current
            current = MW2 around current
            current = MW1 around current

        Final: MW1 → MW2 → MW3 → handler

        Wrapping in REVERSE order makes the first-added middleware the
        outermost one.
        =====================================================================
        """
        current = handler

        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)

        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        # Closure over middleware and next_handler.
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)

        return wrapped

    @property
    def names(self) -> List[str]:
        """Middleware names, outermost first."""
        return [mw.name for mw in self._middleware]

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
