"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes read from a client socket into an HTTPRequest object
that the middleware pipeline and the file server can work with.

=============================================================================
ANATOMY OF A STATIC-ASSET REQUEST
=============================================================================

    GET /app/dashboard?tab=2 HTTP/1.1\r\n        <- Request line
    Host: example.com:8080\r\n                  <- Headers
    Accept-Encoding: gzip, deflate\r\n
    \r\n                                        <- End of headers

    ┌────────────────────────────────────────────────────────────────────┐
    │  REQUEST LINE                                                       │
    │                                                                     │
    │    GET  /app/dashboard?tab=2  HTTP/1.1                              │
    │    ─┬─  ───────────┬────────  ───┬────                              │
    │     │              │             │                                  │
    │   method    request target    version                               │
    │                    │                                                │
    │          ┌─────────┴─────────┐                                      │
    │          │                   │                                      │
    │    path (decoded)      query (raw)                                  │
    │    "/app/dashboard"    "tab=2"                                      │
    └────────────────────────────────────────────────────────────────────┘

We keep BOTH the decoded path and the raw request target:

- path:   used to resolve files under the web root and to decide whether
          a request "looks like a file" (has an extension).
- target: used verbatim when redirecting plaintext requests to HTTPS, so
          the client lands on exactly the URL it asked for.

=============================================================================
PER-REQUEST CONTEXT
=============================================================================

Each HTTPRequest carries a `context` dict. Pipeline stages use it to pass
request-scoped state to each other (for example the html5 fallback marker).
A fresh dict is created for every parsed request, so concurrent requests
never share it.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any
from urllib.parse import parse_qs, urlsplit, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code that should be returned to the client:

        400 Bad Request                - Malformed request syntax
        405 Method Not Allowed         - Unknown method
        413 Payload Too Large          - Request exceeds size limit
        505 HTTP Version Not Supported - Unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    Represents a parsed HTTP request.

    =========================================================================
    ATTRIBUTES
    =========================================================================

        method:         HTTP method (GET, HEAD, ...)
        path:           URL-decoded path WITHOUT query string
        target:         Raw request target exactly as sent ("/a%20b?x=1")
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        Dictionary of headers with LOWERCASE keys
        query:          Raw query string ("x=1"), empty if absent
        body:           Raw request body (ignored by the file server, but
                        consumed so keep-alive framing stays correct)
        client_address: (ip, port) of the client
        is_secure:      True when the request arrived over TLS
        context:        Request-scoped scratch space shared by the
                        pipeline stages handling THIS request only

    =========================================================================
    """

    method: str
    path: str
    target: str = ""
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query: str = ""
    body: bytes = b""

    client_address: tuple[str, int] = ("", 0)
    is_secure: bool = False
    context: Dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        if not self.target:
            self.target = self.path + (f"?{self.query}" if self.query else "")

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def scheme(self) -> str:
        return "https" if self.is_secure else "http"

    @property
    def host(self) -> str:
        """
        Get the Host header value.

        Required in HTTP/1.1 requests. Used to build the HTTPS redirect
        target when plaintext requests are upgraded.
        """
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def query_params(self) -> Dict[str, list[str]]:
        """Parsed query string: "?a=1&a=2" -> {"a": ["1", "2"]}."""
        return parse_qs(self.query, keep_blank_values=True)

    @property
    def is_head(self) -> bool:
        return self.method == "HEAD"

    @property
    def is_keep_alive(self) -> bool:
        """
        Check if this connection should be kept alive.

        HTTP/1.1 keeps alive unless "Connection: close" is sent.
        HTTP/1.0 closes unless "Connection: keep-alive" is sent.
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        """
        Get a header value (case-insensitive lookup).

        Example:
            request.get_header("Accept-Encoding")  # stored as "accept-encoding"
        """
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER PIPELINE
    ==========================================================================

        Raw Request Bytes
              │
              ▼
        1. Size check ............... too large?  → HTTPParseError(413)
        2. Find \\r\\n\\r\\n ............ missing?    → HTTPParseError(400)
        3. Parse request line ....... bad syntax? → HTTPParseError(400/405/505)
        4. Parse headers ............ "Name: Value", lowercased names
        5. Extract body ............. exactly Content-Length bytes
        6. Build HTTPRequest
              │
              ▼
        HTTPRequest dataclass

    ==========================================================================
    SECURITY CONSIDERATIONS
    ==========================================================================

    1. SIZE LIMITS: max_request_size caps what we buffer per request.

    2. PATH TRAVERSAL: any ".." path SEGMENT is rejected with 400.
       "/../../etc/passwd" never reaches the file server. The file server
       additionally confines resolved paths to the web root.

    ==========================================================================
    """

    VALID_METHODS = {
        "GET",
        "HEAD",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "OPTIONS",
        "TRACE",
        "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        """
        Args:
            max_request_size: Maximum allowed request size in bytes.
                              Larger requests are rejected with 413.
        """
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: tuple[str, int] = ("", 0),
        is_secure: bool = False,
    ) -> HTTPRequest:
        """
        Parse raw HTTP request data into an HTTPRequest object.

        Args:
            data: Raw HTTP request bytes from socket.
            client_address: Client's (ip, port) tuple for logging.
            is_secure: Whether the bytes were read from a TLS connection.

        Returns:
            Parsed HTTPRequest object.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # Request lines and header names are ASCII; values may carry
        # arbitrary bytes, latin-1 maps them one-to-one.
        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request")

        method, target, path, query, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        # ─────────────────────────────────────────────────────────────────
        # BODY
        # ─────────────────────────────────────────────────────────────────
        # Only Content-Length framing is supported. Extra bytes beyond it
        # belong to the next pipelined request and are dropped here.
        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )
        body = body[:content_length]

        return HTTPRequest(
            method=method,
            path=path,
            target=target,
            version=version,
            headers=headers,
            query=query,
            body=body,
            client_address=client_address,
            is_secure=is_secure,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> tuple[str, str, str, str, str]:
        """
        Parse "METHOD SP REQUEST-TARGET SP HTTP-VERSION".

        Returns:
            Tuple of (method, target, path, query, version)
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(
                f"Invalid method: {method}",
                status_code=405
            )

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505
            )

        # Absolute-form targets ("http://host/path") are accepted too;
        # only the path and query matter for file lookup.
        parts = urlsplit(target)
        path = unquote(parts.path) or "/"
        if not path.startswith("/"):
            path = "/" + path

        if "\x00" in path or ".." in path.split("/"):
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return method, target, path, parts.query, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a dictionary with lowercase names.

        - Continuation lines (leading space/tab) extend the previous header.
        - Repeated headers are joined with ", " per RFC 7230.
        - A line without a colon is rejected with 400.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise HTTPParseError(f"Invalid header line: {line[:100]}")

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024
) -> HTTPRequest:
    """
    Convenience function to parse an HTTP request in one call.

    Use RequestParser directly to parse many requests with the same limits.
    """
    parser = RequestParser(max_request_size=max_size)
    return parser.parse(data, client_address)
