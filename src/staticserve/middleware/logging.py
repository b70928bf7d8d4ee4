"""
=============================================================================
LOGGING MIDDLEWARE
=============================================================================

Request log: one line per request with method, path, status, size and
latency. Always present in the pipeline, directly inside recovery.

=============================================================================
LOG FORMATS
=============================================================================

    TEXT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 10.0.0.7 - - [10/Jun/2024:10:55:36 +0000] "GET /a.js" 200 1234 1ms │
    │ ───────────────────────────────────────────────────────────────────│
    │ IP          Timestamp          Method/Path   Status Size Duration  │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"request_id": "a1b2c3d4", "method": "GET", "path": "/dashboard",   │
    │  "status_code": 200, "html5_fallback": true, "duration_ms": 0.8}    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHERE THE LINES GO
=============================================================================

Everything is emitted on the "staticserve.access" logger. By default it
propagates to the root handler (stdout); with --request-log FILE the
server attaches a FileHandler to this logger and stops propagation, so
request lines land in the file only.

=============================================================================
"""

import time
import json
import uuid
import logging
from dataclasses import dataclass

from .base import Middleware, NextHandler
from .html5mode import FALLBACK_WRITTEN
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger("staticserve.access")


@dataclass
class RequestLog:
    """
    Structured log entry for a request.

        request_id:     Short random ID, also sent as X-Request-ID
        method:         HTTP method
        path:           Decoded request path
        query:          Raw query string
        scheme:         "http" or "https"
        client_ip:      Client's IP address
        user_agent:     Browser/client identifier
        status_code:    Status sent to the client
        content_length: Response body size in bytes (after compression)
        html5_fallback: Whether the fallback document was served
        duration_ms:    Processing time
        timestamp:      When the request was processed
    """

    request_id: str
    method: str
    path: str
    query: str
    scheme: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    html5_fallback: bool
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "query": self.query,
            "scheme": self.scheme,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "html5_fallback": self.html5_fallback,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        """Apache-style line, readable by GoAccess and friends."""
        path = f"{self.path}?{self.query}" if self.query else self.path
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Request logging middleware.

    Args:
        log_format: "text" (Apache style) or "json".
        include_request_id: Add an X-Request-ID header to responses.
        log_level: Level the request lines are logged at.
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = uuid.uuid4().hex[:8]
        start_time = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            # Still log the failed request; recovery answers it.
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        log_entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            query=request.query,
            scheme=request.scheme,
            client_ip=request.client_address[0],
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=len(response.body),
            html5_fallback=bool(request.context.get(FALLBACK_WRITTEN)),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(log_entry.to_dict()))
        else:
            logger.log(self.log_level, log_entry.to_text())

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id

        return response
