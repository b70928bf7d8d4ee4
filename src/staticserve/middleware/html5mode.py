"""
=============================================================================
HTML5 MODE (SINGLE-PAGE APPLICATION FALLBACK)
=============================================================================

Client-side routers (Angular html5mode, React Router, Vue Router, ...)
use real-looking URLs such as /dashboard/settings that exist only in the
browser. When a user reloads such a page, the server is asked for a file
that does not exist. html5 mode answers those requests with the app's
index.html instead of a 404, and lets the JavaScript router take over.

=============================================================================
HOW THE INTERCEPTION WORKS
=============================================================================

The file server writes into an Html5ModeWriter instead of the real writer.
The interceptor sees the status BEFORE any body is sent:

    FileServer                 Html5ModeWriter                   real writer
    ──────────                 ───────────────                   ───────────
    write_header(404) ───────► extensionless path?
                                 yes: drop Content-Type
                                      serve_file(index.html) ──► 200 + index body
                                      mark "fallback written"
    write(b"404 page...") ───► fallback written? discard, return 0

    write_header(404) ───────► "/app.js" has an extension
                                 pass through ─────────────────► 404
    write(b"404 page...") ───────────────────────────────────► body

=============================================================================
PER-REQUEST STATE
=============================================================================

    ┌──────────┐ 404 + no extension  ┌────────────────┐
    │  Normal  │ ──────────────────► │ FallbackServed │  terminal: writes
    └──────────┘                     └────────────────┘  are no-ops
         │
         │ trigger path + 200/404    ┌────────────────┐
         └─────────────────────────► │  HardNotFound  │  terminal: 404,
                                     └────────────────┘  empty body

A new Html5ModeWriter is created for every request, and the markers live
in that request's `context` dict. Nothing is shared between requests.

=============================================================================
TRIGGER PATH (OPTIONAL)
=============================================================================

With a trigger path configured (default "/404"), a request for exactly
that path always gets a bare 404 with an empty body, whether or not a
file exists there. Useful for apps that route unknown URLs to "/404" and
need crawlers to see a real 404 status.

=============================================================================
"""

import logging
from pathlib import Path
from typing import Dict, Optional

from ..http.request import HTTPRequest
from ..http.response import ResponseWriter, ServeFunc
from ..http.status_codes import HTTPStatus
from ..handlers.static import serve_file, path_extension, INDEX_FILE

logger = logging.getLogger(__name__)

# Keys in HTTPRequest.context
FALLBACK_WRITTEN = "html5mode.fallback_written"
HARD_NOT_FOUND = "html5mode.hard_not_found"


class Html5ModeWriter(ResponseWriter):
    """
    ResponseWriter wrapper that turns file-server 404s for extensionless
    paths into the fallback document.

    Args:
        writer: The real response writer.
        request: The request being served (its original, unstripped path
                 is what the extension and trigger checks look at).
        fallback_path: Filesystem path of the fallback document.
        not_found_path: Trigger path for the hard-404 sub-mode, or None
                        to disable it.
    """

    def __init__(
        self,
        writer: ResponseWriter,
        request: HTTPRequest,
        fallback_path: Path,
        not_found_path: Optional[str] = None,
    ):
        self._writer = writer
        self._request = request
        self._fallback_path = fallback_path
        self._not_found_path = not_found_path

    @property
    def headers(self) -> Dict[str, str]:
        return self._writer.headers

    @property
    def fallback_written(self) -> bool:
        return bool(self._request.context.get(FALLBACK_WRITTEN))

    @property
    def suppressed(self) -> bool:
        """True once no more body bytes may reach the real writer."""
        context = self._request.context
        return bool(context.get(FALLBACK_WRITTEN) or context.get(HARD_NOT_FOUND))

    def write_header(self, status: int) -> None:
        if self.suppressed:
            return

        path = self._request.path

        # ─────────────────────────────────────────────────────────────────
        # TRIGGER PATH: hard 404, no body
        # ─────────────────────────────────────────────────────────────────
        if self._not_found_path is not None and path == self._not_found_path:
            if status in (HTTPStatus.OK, HTTPStatus.NOT_FOUND):
                self._drop_header("Content-Length")
                self._request.context[HARD_NOT_FOUND] = True
                self._writer.write_header(HTTPStatus.NOT_FOUND)
                return

        # ─────────────────────────────────────────────────────────────────
        # CLIENT-SIDE ROUTE: serve the fallback document
        # ─────────────────────────────────────────────────────────────────
        elif status == HTTPStatus.NOT_FOUND and path_extension(path) == "":
            logger.debug(f"html5 fallback for {path}")
            self._drop_header("Content-Type")
            serve_file(self._writer, self._request, self._fallback_path)
            self._request.context[FALLBACK_WRITTEN] = True
            return

        self._writer.write_header(status)

    def write(self, data: bytes) -> int:
        if self.suppressed:
            return 0
        return self._writer.write(data)

    def _drop_header(self, name: str) -> None:
        headers = self._writer.headers
        for key in [k for k in headers if k.lower() == name.lower()]:
            del headers[key]


class Html5Mode:
    """
    Serve function wrapper that runs `serve` against an Html5ModeWriter.

    Sits directly outside the file server (or the strip-prefix router) so
    it observes the file server's genuine status codes.

        serve = Html5Mode(FileServer("public"), "public", not_found_path="/404")
        serve(writer, request)
    """

    def __init__(
        self,
        serve: ServeFunc,
        web_root: str,
        not_found_path: Optional[str] = None,
        fallback_document: str = INDEX_FILE,
    ):
        self.serve = serve
        self.fallback_path = Path(web_root) / fallback_document
        self.not_found_path = not_found_path

    def __call__(self, writer: ResponseWriter, request: HTTPRequest) -> None:
        # The fallback document is read from disk per request, never cached.
        intercepted = Html5ModeWriter(
            writer,
            request,
            fallback_path=self.fallback_path,
            not_found_path=self.not_found_path,
        )
        self.serve(intercepted, request)
