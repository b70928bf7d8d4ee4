"""
=============================================================================
HTTP PROTOCOL PACKAGE
=============================================================================

Turns TCP bytes into HTTP messages and back.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST (request.py)                                                │
    │   b"GET /app/x?y=1 HTTP/1.1\r\n..." → HTTPRequest(path="/app/x",   │
    │                                          target="/app/x?y=1", ...)  │
    │   Lowercase header names, ".." segments rejected, per-request       │
    │   context dict, TLS flag.                                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │ RESPONSE (response.py)                                              │
    │   HTTPResponse / ResponseBuilder    finished responses              │
    │   ResponseWriter / ResponseRecorder incremental writer protocol     │
    │   writer_handler()                  writer-style → pipeline handler │
    ├─────────────────────────────────────────────────────────────────────┤
    │ STATUS CODES (status_codes.py)   HTTPStatus.NOT_FOUND.phrase        │
    │ MIME TYPES (mime_types.py)       ".js" → text/javascript            │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    ResponseWriter,
    ResponseRecorder,
    ServeFunc,
    writer_handler,
    write_error,
    write_redirect,
    format_http_date,
    redirect,
    error_response,
    internal_error,
)
from .status_codes import HTTPStatus, status_text
from .mime_types import get_mime_type, get_content_type, sniff_content_type

__all__ = [
    # Requests
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Responses
    "HTTPResponse",
    "ResponseBuilder",
    "ResponseWriter",
    "ResponseRecorder",
    "ServeFunc",
    "writer_handler",
    "write_error",
    "write_redirect",
    "format_http_date",
    "redirect",
    "error_response",
    "internal_error",

    # Status codes
    "HTTPStatus",
    "status_text",

    # Content types
    "get_mime_type",
    "get_content_type",
    "sniff_content_type",
]
