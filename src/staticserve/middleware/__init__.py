"""
=============================================================================
MIDDLEWARE PACKAGE
=============================================================================

Request/response stages wrapped around the file server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  RecoveryMiddleware     unhandled fault → logged 500                 │
    │  LoggingMiddleware      request log line per request                 │
    │  ForceHTTPSMiddleware   plaintext → 301 to the HTTPS listener        │
    │  CompressionMiddleware  gzip text responses                          │
    │  Html5Mode              404 on extensionless path → index.html       │
    └─────────────────────────────────────────────────────────────────────┘

Html5Mode is not a Middleware subclass: it wraps the file server's
ResponseWriter, so it can intervene before a 404 body is written.

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .recovery import RecoveryMiddleware
from .logging import LoggingMiddleware, RequestLog
from .force_https import ForceHTTPSMiddleware
from .compression import CompressionMiddleware
from .html5mode import Html5Mode, Html5ModeWriter, FALLBACK_WRITTEN, HARD_NOT_FOUND

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "RecoveryMiddleware",
    "LoggingMiddleware",
    "RequestLog",
    "ForceHTTPSMiddleware",
    "CompressionMiddleware",
    "Html5Mode",
    "Html5ModeWriter",
    "FALLBACK_WRITTEN",
    "HARD_NOT_FOUND",
]
