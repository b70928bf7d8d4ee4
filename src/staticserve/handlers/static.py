"""
=============================================================================
FILE SERVER
=============================================================================

Serves files from a web root directory. This is the innermost stage of
the pipeline; everything else wraps it.

=============================================================================
WRITER-STYLE SERVING
=============================================================================

Unlike the middleware, the file server does not RETURN a response. It
writes one into a ResponseWriter:

    writer.headers["Content-Type"] = "text/html; charset=utf-8"
    writer.write_header(200)
    writer.write(content)

That is what lets the html5 fallback wrap the writer and see the status
(for example a 404) before the file server's body reaches the client.

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    GET /../../../etc/passwd HTTP/1.1

    1. The parser already rejects ".." segments with 400.
    2. Here we resolve the full path (following symlinks) and check it
       is still inside the web root. If not: 403 Forbidden.

        full_path = (root / user_input).resolve()
        full_path.relative_to(root)   # raises if outside root

=============================================================================
CONDITIONAL REQUESTS
=============================================================================

    ETag: "<mtime>-<size>"          If-None-Match      → 304 Not Modified
    Last-Modified: <http-date>      If-Modified-Since  → 304 Not Modified

No Cache-Control policy is added; caching is left to the client's
heuristics and to these validators.

=============================================================================
"""

import html
import logging
from email.utils import parsedate_to_datetime
from pathlib import Path
from datetime import datetime, timezone
from urllib.parse import quote

from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse, ResponseWriter, writer_handler, write_error, write_redirect,
    format_http_date,
)
from ..http.status_codes import HTTPStatus
from ..http.mime_types import get_content_type, SNIFF_LENGTH

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "404 page not found"

INDEX_FILE = "index.html"


class FileServer:
    """
    Serves a directory tree over HTTP.

    =========================================================================
    FLOW
    =========================================================================

        Request: GET /css/site.css

        1. Only GET and HEAD are served (405 otherwise)
        2. ".../index.html" is redirected to its directory ("./")
        3. Resolve to filesystem path, confine to web root (403)
        4. Directory:  no trailing slash → 301 to "name/"
                       index.html present → serve it
                       otherwise → listing (or 403 when disabled)
        5. Missing → 404 "404 page not found"
        6. File → serve_file()

    =========================================================================
    """

    ALLOWED_METHODS = ("GET", "HEAD")

    def __init__(self, root_dir: str, directory_listing: bool = True):
        """
        Args:
            root_dir: Root directory to serve files from.
                      All files MUST be inside this directory.
            directory_listing: List directories that have no index.html.
        """
        self.root_dir = Path(root_dir).resolve()
        self.directory_listing = directory_listing

        if not self.root_dir.is_dir():
            raise ValueError(f"Web root is not a directory: {root_dir}")

    def __call__(self, writer: ResponseWriter, request: HTTPRequest) -> None:
        self.serve(writer, request)

    def serve(self, writer: ResponseWriter, request: HTTPRequest) -> None:
        """Write the response for `request` into `writer`."""
        if request.method not in self.ALLOWED_METHODS:
            writer.headers["Allow"] = ", ".join(self.ALLOWED_METHODS)
            write_error(writer, "405 method not allowed", HTTPStatus.METHOD_NOT_ALLOWED)
            return

        url_path = request.path

        # ─────────────────────────────────────────────────────────────────
        # CANONICAL URLS: /dir/index.html → /dir/
        # ─────────────────────────────────────────────────────────────────
        if url_path.endswith("/" + INDEX_FILE):
            _local_redirect(writer, request, "./")
            return

        relative = url_path.lstrip("/")
        full_path = (self.root_dir / relative).resolve()

        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {url_path}")
            write_error(writer, "403 Forbidden", HTTPStatus.FORBIDDEN)
            return

        # ─────────────────────────────────────────────────────────────────
        # DIRECTORIES
        # ─────────────────────────────────────────────────────────────────
        if full_path.is_dir():
            if not url_path.endswith("/"):
                _local_redirect(writer, request, url_path.rsplit("/", 1)[-1] + "/")
                return

            index_path = full_path / INDEX_FILE
            if index_path.is_file():
                serve_file(writer, request, index_path)
            elif self.directory_listing:
                self._directory_listing(writer, request, full_path)
            else:
                write_error(writer, "403 Forbidden", HTTPStatus.FORBIDDEN)
            return

        if url_path.endswith("/") and full_path.is_file():
            # "/app.js/" names a directory that does not exist
            write_error(writer, NOT_FOUND_MESSAGE, HTTPStatus.NOT_FOUND)
            return

        serve_file(writer, request, full_path)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Serve `request` and return the recorded response."""
        return writer_handler(self.serve)(request)

    def _directory_listing(self, writer: ResponseWriter, request: HTTPRequest, path: Path) -> None:
        """
        Write a minimal HTML listing of `path`.

        Names are HTML-escaped and hrefs are percent-encoded, so file names
        cannot inject markup.
        """
        try:
            entries = sorted(path.iterdir(), key=lambda p: p.name)
        except PermissionError:
            write_error(writer, "403 Forbidden", HTTPStatus.FORBIDDEN)
            return
        except OSError as e:
            logger.error(f"Error reading directory {path}: {e}")
            write_error(writer, "500 Internal Server Error", HTTPStatus.INTERNAL_SERVER_ERROR)
            return

        lines = []
        for entry in entries:
            name = entry.name + ("/" if entry.is_dir() else "")
            lines.append(f'<a href="{quote(name)}">{html.escape(name)}</a>')

        title = html.escape(request.path)
        body = (
            "<!doctype html>\n"
            f"<title>Index of {title}</title>\n"
            "<meta name=\"viewport\" content=\"width=device-width\">\n"
            "<pre>\n" + "\n".join(lines) + "\n</pre>\n"
        ).encode("utf-8")

        writer.headers["Content-Type"] = "text/html; charset=utf-8"
        writer.headers["Content-Length"] = str(len(body))
        writer.write_header(HTTPStatus.OK)
        if not request.is_head:
            writer.write(body)


def serve_file(writer: ResponseWriter, request: HTTPRequest, path: Path) -> None:
    """
    Write the contents of the file at `path` as the response to `request`.

    Used by the FileServer for regular files and by the html5 fallback to
    send the fallback document. A Content-Type already present in
    writer.headers is kept; otherwise it is detected from the extension,
    then from the content.

    Failures are written as plain-text errors:

        missing file      → 404 "404 page not found"
        unreadable file   → 403
        other I/O errors  → 500
    """
    try:
        stat = path.stat()
        if path.is_dir():
            raise IsADirectoryError(str(path))

        mtime = datetime.fromtimestamp(int(stat.st_mtime), tz=timezone.utc)
        etag = f'"{int(stat.st_mtime)}-{stat.st_size}"'

        # ─────────────────────────────────────────────────────────────────
        # CONDITIONAL REQUEST
        # ─────────────────────────────────────────────────────────────────
        if _not_modified(request, etag, mtime):
            for key in [k for k in writer.headers if k.lower() in ("content-type", "content-length")]:
                del writer.headers[key]
            writer.headers["ETag"] = etag
            writer.headers["Last-Modified"] = format_http_date(mtime)
            writer.write_header(HTTPStatus.NOT_MODIFIED)
            return

        # TODO: stream large files instead of reading them whole once the
        # connection layer can send a body in chunks.
        content = path.read_bytes()
    except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
        write_error(writer, NOT_FOUND_MESSAGE, HTTPStatus.NOT_FOUND)
        return
    except PermissionError:
        write_error(writer, "403 Forbidden", HTTPStatus.FORBIDDEN)
        return
    except OSError as e:
        logger.error(f"Error serving file {path}: {e}")
        write_error(writer, "500 Internal Server Error", HTTPStatus.INTERNAL_SERVER_ERROR)
        return

    if not any(k.lower() == "content-type" for k in writer.headers):
        writer.headers["Content-Type"] = get_content_type(path, content[:SNIFF_LENGTH])

    writer.headers["Content-Length"] = str(len(content))
    writer.headers["ETag"] = etag
    writer.headers["Last-Modified"] = format_http_date(mtime)
    writer.write_header(HTTPStatus.OK)

    if not request.is_head:
        writer.write(content)


def _not_modified(request: HTTPRequest, etag: str, mtime: datetime) -> bool:
    """
    If-None-Match takes precedence over If-Modified-Since (RFC 7232 §6).
    """
    if_none_match = request.get_header("if-none-match")
    if if_none_match:
        candidates = [tag.strip() for tag in if_none_match.split(",")]
        return etag in candidates or "*" in candidates

    if_modified_since = request.get_header("if-modified-since")
    if if_modified_since:
        try:
            since = parsedate_to_datetime(if_modified_since)
        except (TypeError, ValueError):
            return False
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        return mtime <= since

    return False


def _local_redirect(writer: ResponseWriter, request: HTTPRequest, new_path: str) -> None:
    """Relative redirect that keeps the query string. `new_path` is a decoded path."""
    new_path = quote(new_path, safe="/")
    if request.query:
        new_path += "?" + request.query
    write_redirect(writer, new_path, HTTPStatus.MOVED_PERMANENTLY)


def path_extension(url_path: str) -> str:
    """
    Extension of the last path element, including the dot.

        >>> path_extension("/assets/app.js")
        '.js'
        >>> path_extension("/dashboard")
        ''
        >>> path_extension("/v1.2/settings")
        ''
    """
    name = url_path.rsplit("/", 1)[-1]
    dot = name.rfind(".")
    return name[dot:] if dot != -1 else ""
