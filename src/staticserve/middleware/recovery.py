"""
=============================================================================
RECOVERY MIDDLEWARE
=============================================================================

Outermost stage of the pipeline. Any exception raised by a later stage
(a bug, an unexpected OSError, ...) is logged with its traceback and
turned into a plain 500 response. The connection worker and the listener
keep running; only the failing request is affected.

    ┌──────────┐   raises   ┌──────────┐
    │ Recovery │ ◄───────── │  inner   │
    └────┬─────┘            └──────────┘
         │
         ▼
    logger.exception(...)     → error log
    500 Internal Server Error → client

The exception text is never sent to the client.

=============================================================================
"""

import logging

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, internal_error

# Shares the error log with connection-level failures.
logger = logging.getLogger("staticserve.errors")


class RecoveryMiddleware(Middleware):
    """Converts unhandled exceptions from inner stages into 500 responses."""

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        try:
            return next(request)
        except Exception:
            logger.exception(
                f"Recovered from unhandled error: {request.method} {request.path} "
                f"from {request.client_address[0]}"
            )
            return internal_error()
