"""
=============================================================================
FORCE-HTTPS MIDDLEWARE
=============================================================================

Redirects every plaintext request to the same URL on the HTTPS listener.

    GET /docs/?page=2 HTTP/1.1            (plaintext, port 8080)
    Host: example.com:8080

    HTTP/1.1 301 Moved Permanently
    Location: https://example.com:8081/docs/?page=2

Requests that already arrived over TLS pass straight through.

=============================================================================
BUILDING THE TARGET
=============================================================================

    scheme   always "https"
    host     Host header without its port; the server's configured host
             when the client sent no Host header
    port     the HTTPS listener's port, omitted when it is 443
    target   the raw request target, so path and query survive untouched

The redirect is issued before any later stage runs, so no content is ever
served over plaintext when this stage is enabled.

=============================================================================
"""

import logging
from urllib.parse import urlsplit

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, redirect

logger = logging.getLogger(__name__)


def split_host_port(host: str) -> tuple[str, str]:
    """
    Split a Host header value into (host, port). Port is "" if absent.

        >>> split_host_port("example.com:8080")
        ('example.com', '8080')
        >>> split_host_port("[::1]:8080")
        ('[::1]', '8080')
        >>> split_host_port("[::1]")
        ('[::1]', '')
    """
    if host.startswith("["):
        end = host.find("]")
        if end != -1:
            rest = host[end + 1:]
            return host[:end + 1], rest[1:] if rest.startswith(":") else ""
        return host, ""

    name, sep, port = host.rpartition(":")
    if sep and port.isdigit():
        return name, port
    return host, ""


class ForceHTTPSMiddleware(Middleware):
    """
    Answers plaintext requests with a 301 to their HTTPS equivalent.

    Args:
        https_port: Port of the TLS listener.
        default_host: Host to use when the request has no Host header.
    """

    def __init__(self, https_port: int = 443, default_host: str = "localhost"):
        self.https_port = https_port
        self.default_host = default_host

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        if request.is_secure:
            return next(request)

        location = self.https_url(request)
        logger.debug(f"Redirecting plaintext request to {location}")
        return redirect(location, permanent=True)

    def https_url(self, request: HTTPRequest) -> str:
        host, _ = split_host_port(request.host or self.default_host)
        if self.https_port != 443:
            host = f"{host}:{self.https_port}"

        target = request.target
        if not target.startswith("/"):
            # Absolute-form target: keep only path and query.
            parts = urlsplit(target)
            target = (parts.path or "/") + (f"?{parts.query}" if parts.query else "")

        return f"https://{host}{target}"
