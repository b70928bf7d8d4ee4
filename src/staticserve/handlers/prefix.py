"""
=============================================================================
STRIP-PREFIX ROUTER
=============================================================================

Mounts a serve function under a URL prefix, removing the prefix before
the request reaches it.

    --strip-prefix /assets

    GET /assets/css/site.css   →  FileServer sees /css/site.css
    GET /assets                →  301 Location: /assets/
    GET /other/page            →  404 (outside the mount, never served)

A trailing slash on the configured prefix is ignored: "/assets" and
"/assets/" mount the same thing.

=============================================================================
"""

import logging
from dataclasses import replace
from urllib.parse import quote

from ..http.request import HTTPRequest
from ..http.response import ResponseWriter, ServeFunc, write_error, write_redirect
from ..http.status_codes import HTTPStatus
from .static import NOT_FOUND_MESSAGE

logger = logging.getLogger(__name__)


class StripPrefix:
    """
    Serve function that strips `prefix` from the request path and hands
    the rewritten request to `serve`.

    The rewritten request is a copy: the original (seen by outer stages,
    such as the html5 fallback) keeps its full path. Both share the same
    per-request `context` dict.
    """

    def __init__(self, prefix: str, serve: ServeFunc):
        self.prefix = prefix.rstrip("/")
        self.serve = serve

    @property
    def mount(self) -> str:
        return self.prefix + "/"

    def __call__(self, writer: ResponseWriter, request: HTTPRequest) -> None:
        path = request.path

        if self.prefix and path == self.prefix:
            location = quote(self.mount, safe="/") + (f"?{request.query}" if request.query else "")
            write_redirect(writer, location, HTTPStatus.MOVED_PERMANENTLY)
            return

        if not path.startswith(self.mount):
            logger.debug(f"Outside of {self.mount}: {path}")
            write_error(writer, NOT_FOUND_MESSAGE, HTTPStatus.NOT_FOUND)
            return

        stripped = "/" + path[len(self.mount):]
        self.serve(writer, replace(request, path=stripped))
