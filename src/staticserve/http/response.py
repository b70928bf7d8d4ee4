"""
=============================================================================
HTTP RESPONSES AND RESPONSE WRITERS
=============================================================================

Two ways of producing a response live side by side in this module:

1. HTTPResponse + ResponseBuilder
   A finished response as a value. Middleware receives one from the next
   stage, may inspect or rewrite it (compression, redirects, logging), and
   the server serializes it with to_bytes().

2. ResponseWriter
   An incremental sink: set headers, call write_header(status) once, then
   write(data) any number of times. The file server speaks this protocol,
   which is what lets a wrapping writer (the html5 fallback) observe the
   status the file server INTENDS to send before any body goes out.

ResponseRecorder bridges the two: it implements ResponseWriter and
accumulates everything into an HTTPResponse.

    ┌──────────────┐   write_header/write   ┌──────────────────┐  finish()
    │  FileServer  │ ─────────────────────► │ ResponseRecorder │ ────────►  HTTPResponse
    └──────────────┘                        └──────────────────┘

=============================================================================
RESPONSE ANATOMY
=============================================================================

    HTTP/1.1 200 OK\r\n                           <- Status line
    Content-Type: text/html; charset=utf-8\r\n    <- Headers
    Content-Length: 1270\r\n
    Last-Modified: Wed, 01 Jan 2026 12:00:00 GMT\r\n
    Date: Wed, 01 Jan 2026 12:00:05 GMT\r\n
    Server: staticserve/1.0\r\n
    \r\n                                          <- Empty line
    <!doctype html>...                            <- Body

=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Union, Callable, List

from .request import HTTPRequest
from .status_codes import HTTPStatus, status_text

logger = logging.getLogger(__name__)


@dataclass
class HTTPResponse:
    """
    Represents an HTTP response to be sent to the client.

    Headers are kept in a plain dict using canonical names
    ("Content-Type", "Content-Length"). Use get_header()/del_header() for
    case-insensitive access when the spelling is not under your control.
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """
        Format: HTTP-VERSION SP STATUS-CODE SP REASON-PHRASE
        Example: "HTTP/1.1 200 OK"
        """
        return f"{self.version} {int(self.status)} {status_text(self.status)}"

    def get_header(self, name: str, default: str = "") -> str:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return default

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def del_header(self, name: str) -> "HTTPResponse":
        """Remove a header regardless of how its name was capitalized."""
        lowered = name.lower()
        for key in [k for k in self.headers if k.lower() == lowered]:
            del self.headers[key]
        return self

    def set_content_type(self, content_type: str) -> "HTTPResponse":
        return self.set_header("Content-Type", content_type)

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        """Set the response body, encoding strings as UTF-8."""
        if isinstance(body, str):
            self.body = body.encode("utf-8")
        else:
            self.body = body
        return self

    def to_bytes(self, server_name: str = "staticserve/1.0", include_body: bool = True) -> bytes:
        """
        Serialize the response for socket.sendall().

        =====================================================================
        AUTO-ADDED HEADERS
        =====================================================================

            Content-Length   unless already set, or the status forbids a body
            Date             RFC 7231 asks origin servers to send it
            Server           identifies the server software

        `include_body=False` is used for HEAD requests: the headers
        (including Content-Length) describe the body a GET would have
        returned, but no body bytes follow.
        =====================================================================
        """
        response_headers = dict(self.headers)
        body_allowed = _body_allowed(self.status)

        if body_allowed and not self.get_header("Content-Length"):
            response_headers["Content-Length"] = str(len(self.body))

        if not self.get_header("Date"):
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        if not self.get_header("Server"):
            response_headers["Server"] = server_name

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("latin-1") + b"\r\n"

        if not include_body or not body_allowed:
            return header_bytes
        return header_bytes + self.body


def _body_allowed(status: int) -> bool:
    return not (status < 200 or status in (HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED))


# =============================================================================
# RESPONSE WRITERS
# =============================================================================

class ResponseWriter(ABC):
    """
    Incremental response sink.

    =========================================================================
    CONTRACT
    =========================================================================

        headers          mutable header dict; changes must be made BEFORE
                         write_header() to take effect
        write_header(s)  commits the status code; only the first call counts
        write(data)      appends body bytes, implying write_header(200) when
                         no status was committed yet; returns bytes accepted

    =========================================================================
    """

    @property
    @abstractmethod
    def headers(self) -> Dict[str, str]:
        ...

    @abstractmethod
    def write_header(self, status: int) -> None:
        ...

    @abstractmethod
    def write(self, data: bytes) -> int:
        ...


class ResponseRecorder(ResponseWriter):
    """
    ResponseWriter that records into an HTTPResponse.

    Headers written after the status is committed are ignored, the same
    way they would be on a real socket writer: finish() returns the header
    snapshot taken at write_header() time.
    """

    def __init__(self, version: str = "HTTP/1.1"):
        self._response = HTTPResponse(version=version)
        self._chunks: List[bytes] = []
        self._committed_headers: Optional[Dict[str, str]] = None

    @property
    def headers(self) -> Dict[str, str]:
        return self._response.headers

    @property
    def wrote_header(self) -> bool:
        return self._committed_headers is not None

    @property
    def status(self) -> int:
        return self._response.status

    def write_header(self, status: int) -> None:
        if self.wrote_header:
            logger.warning(f"Superfluous write_header call (status {status} ignored)")
            return

        if not 100 <= status <= 999:
            raise ValueError(f"Invalid status code: {status}")

        try:
            self._response.status = HTTPStatus(status)
        except ValueError:
            self._response.status = status
        self._committed_headers = dict(self._response.headers)

    def write(self, data: bytes) -> int:
        if not self.wrote_header:
            self.write_header(HTTPStatus.OK)
        if not data:
            return 0
        self._chunks.append(bytes(data))
        return len(data)

    def finish(self) -> HTTPResponse:
        """Close the recording and return the accumulated response."""
        if not self.wrote_header:
            self.write_header(HTTPStatus.OK)
        return HTTPResponse(
            status=self._response.status,
            headers=dict(self._committed_headers),
            body=b"".join(self._chunks),
            version=self._response.version,
        )


# Serve functions take a writer and a request, like the file server's serve().
ServeFunc = Callable[[ResponseWriter, HTTPRequest], None]


def writer_handler(serve: ServeFunc) -> Callable[[HTTPRequest], HTTPResponse]:
    """
    Adapt a writer-style serve function into a request -> response handler
    that the middleware pipeline can wrap.
    """
    def handler(request: HTTPRequest) -> HTTPResponse:
        recorder = ResponseRecorder(version=request.version)
        serve(recorder, request)
        return recorder.finish()

    return handler


def write_error(writer: ResponseWriter, message: str, status: int) -> None:
    """
    Reply with a plain-text error message.

    Any Content-Length set earlier (for a file that then failed) is
    dropped, since the body is now the message.
    """
    for key in [k for k in writer.headers if k.lower() == "content-length"]:
        del writer.headers[key]
    writer.headers["Content-Type"] = "text/plain; charset=utf-8"
    writer.headers["X-Content-Type-Options"] = "nosniff"
    writer.write_header(status)
    writer.write(f"{message}\n".encode("utf-8"))


def write_redirect(writer: ResponseWriter, location: str, status: int = HTTPStatus.MOVED_PERMANENTLY) -> None:
    writer.headers["Location"] = location
    writer.write_header(status)


# =============================================================================
# RESPONSE BUILDER
# =============================================================================

class ResponseBuilder:
    """
    Fluent builder for the responses middleware and the server create
    themselves (redirects, error pages).

        response = (ResponseBuilder()
            .status(HTTPStatus.NOT_FOUND)
            .text("404 page not found\\n")
            .build())

    Each method returns `self`, except build().
    """

    def __init__(self):
        self._status: int = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: int) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        self._headers["Content-Type"] = content_type
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain; charset=utf-8") -> "ResponseBuilder":
        self._headers["Content-Type"] = content_type
        self._body = text.encode("utf-8")
        return self

    def redirect(self, location: str, permanent: bool = False) -> "ResponseBuilder":
        """
        301 Moved Permanently when `permanent`, else 302 Found.

        Browsers cache 301s, so only use it for redirects that will not
        change (like plaintext -> HTTPS).
        """
        self._status = HTTPStatus.MOVED_PERMANENTLY if permanent else HTTPStatus.FOUND
        self._headers["Location"] = location
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Format: Day, DD Mon YYYY HH:MM:SS GMT
    Example: Wed, 01 Jan 2026 12:00:00 GMT

    HTTP dates are ALWAYS GMT, never local time.
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    dt = dt.astimezone(timezone.utc)
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def redirect(location: str, permanent: bool = False) -> HTTPResponse:
    return ResponseBuilder().redirect(location, permanent).build()


def error_response(status: int, message: Optional[str] = None) -> HTTPResponse:
    """
    Plain-text error response: "<code> <phrase>" unless a message is given.
    """
    text = message if message is not None else f"{int(status)} {status_text(status)}"
    return (ResponseBuilder()
        .status(status)
        .header("X-Content-Type-Options", "nosniff")
        .text(f"{text}\n")
        .build())


def internal_error() -> HTTPResponse:
    """500 response. Never exposes the underlying exception to the client."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR)
