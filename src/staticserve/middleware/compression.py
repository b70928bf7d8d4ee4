"""
=============================================================================
COMPRESSION MIDDLEWARE
=============================================================================

gzip-compresses response bodies for clients that accept it. Enabled by
default (--gzip / --no-gzip).

=============================================================================
WHY COMPRESS STATIC ASSETS?
=============================================================================

    ┌────────────────────────────────────────────────────────────────────┐
    │   Content Type        │ Original │ Compressed │ Savings            │
    │   ────────────────────┼──────────┼────────────┼─────────           │
    │   JavaScript bundle   │  500 KB  │   80 KB    │  84%               │
    │   HTML page           │   50 KB  │   10 KB    │  80%               │
    │   CSS styles          │   30 KB  │    6 KB    │  80%               │
    │   PNG / JPEG / WOFF2  │  already compressed, skipped             │
    └────────────────────────────────────────────────────────────────────┘

=============================================================================
CONTENT NEGOTIATION
=============================================================================

    Request:   Accept-Encoding: gzip, deflate, br
    Response:  Content-Encoding: gzip
               Content-Length: <compressed size>
               Vary: Accept-Encoding

"Accept-Encoding: gzip;q=0" explicitly refuses gzip and is honored.

=============================================================================
POSITION IN THE PIPELINE
=============================================================================

Compression runs inside the HTTPS redirect and outside the file server
(and the html5 fallback), so it compresses exactly the bytes the client
will receive, including a substituted fallback document.

=============================================================================
"""

import gzip
import logging
from typing import Optional, Set

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)


def accepts_gzip(accept_encoding: str) -> bool:
    """
    Check an Accept-Encoding header for gzip (or "*") with non-zero q.

        >>> accepts_gzip("gzip, deflate")
        True
        >>> accepts_gzip("gzip;q=0, br")
        False
    """
    for part in accept_encoding.lower().split(","):
        coding, _, params = part.strip().partition(";")
        if coding.strip() not in ("gzip", "x-gzip", "*"):
            continue
        q = 1.0
        for param in params.split(";"):
            name, _, value = param.strip().partition("=")
            if name == "q":
                try:
                    q = float(value)
                except ValueError:
                    q = 0.0
        return q > 0
    return False


class CompressionMiddleware(Middleware):
    """
    Response compression middleware.

    =========================================================================
    HOW IT WORKS
    =========================================================================

    1. Check if client accepts gzip (Accept-Encoding header)
    2. Call the next handler to get the response
    3. Check if response should be compressed:
       - Status allows a body, and the request is not HEAD
       - Large enough (exceeds min_size)
       - Compressible content type (text, JSON, SVG, wasm...)
       - Not already encoded
    4. Compress with gzip, keep only if smaller
    5. Update headers (Content-Encoding, Content-Length, Vary)

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # COMPRESSIBLE CONTENT TYPES
    # ─────────────────────────────────────────────────────────────────────
    # Text-based formats. Images, fonts and video are already compressed.
    # ─────────────────────────────────────────────────────────────────────
    COMPRESSIBLE_TYPES: Set[str] = {
        "text/html",
        "text/css",
        "text/plain",
        "text/xml",
        "text/javascript",
        "text/markdown",
        "text/csv",

        "application/json",
        "application/manifest+json",
        "application/javascript",
        "application/xml",
        "application/xhtml+xml",
        "application/wasm",

        "image/svg+xml",
    }

    def __init__(
        self,
        min_size: int = 1024,
        level: int = 6,
        compressible_types: Optional[Set[str]] = None,
    ):
        """
        Args:
            min_size: Minimum body size to compress (bytes). gzip has about
                      18 bytes of overhead, tiny bodies rarely shrink.
            level: Compression level, 1 (fastest) to 9 (smallest).
            compressible_types: Content types to compress.
        """
        if not 1 <= level <= 9:
            raise ValueError(f"gzip level must be 1-9, got {level}")
        self.min_size = min_size
        self.level = level
        self.compressible_types = compressible_types or self.COMPRESSIBLE_TYPES

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        client_accepts = accepts_gzip(request.get_header("accept-encoding"))

        response = next(request)

        if not self._should_compress(request, response):
            return response

        # Caches must key on Accept-Encoding for every compressible
        # response, including the uncompressed variant.
        self._add_vary(response)

        if not client_accepts:
            return response

        original_size = len(response.body)
        compressed_body = gzip.compress(response.body, compresslevel=self.level)
        compressed_size = len(compressed_body)

        if compressed_size >= original_size:
            return response

        response.body = compressed_body
        response.headers["Content-Encoding"] = "gzip"
        response.del_header("Content-Length")
        response.headers["Content-Length"] = str(compressed_size)

        # The validator described the identity encoding.
        etag = response.get_header("ETag")
        if etag and not etag.startswith("W/"):
            response.del_header("ETag")
            response.headers["ETag"] = f"W/{etag}"

        logger.debug(f"gzip {request.path}: {original_size} -> {compressed_size} bytes")
        return response

    def _should_compress(self, request: HTTPRequest, response: HTTPResponse) -> bool:
        if request.is_head:
            return False

        if response.status < 200 or response.status in (HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED):
            return False

        if response.get_header("Content-Encoding"):
            return False

        if len(response.body) < self.min_size:
            return False

        # "text/html; charset=utf-8" → "text/html"
        content_type = response.get_header("Content-Type")
        base_type = content_type.split(";")[0].strip().lower()

        return base_type in self.compressible_types

    def _add_vary(self, response: HTTPResponse) -> None:
        vary = response.get_header("Vary")
        if "accept-encoding" not in vary.lower():
            response.del_header("Vary")
            response.headers["Vary"] = f"{vary}, Accept-Encoding".lstrip(", ")
