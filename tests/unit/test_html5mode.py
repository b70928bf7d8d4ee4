"""
Unit tests for html5 mode (single-page application fallback).
"""

from pathlib import Path

import pytest

from staticserve.handlers import FileServer, StripPrefix
from staticserve.http.response import ResponseRecorder
from staticserve.middleware.html5mode import (
    Html5Mode,
    Html5ModeWriter,
    FALLBACK_WRITTEN,
    HARD_NOT_FOUND,
)

from conftest import make_request, record, INDEX_HTML, APP_JS


@pytest.fixture
def spa(web_root: Path) -> Html5Mode:
    """File server in html5 mode with the /404 trigger enabled."""
    return Html5Mode(FileServer(str(web_root)), str(web_root), not_found_path="/404")


class TestHtml5Mode:
    """End-to-end behavior of Html5Mode around a FileServer."""

    def test_missing_asset_is_plain_404(self, web_root: Path, spa: Html5Mode):
        """Test that a missing file with an extension is not substituted."""
        (web_root / "app.js").unlink()

        response = record(spa, make_request("/app.js"))

        assert response.status == 404
        assert response.body == b"404 page not found\n"

    def test_client_route_serves_index(self, spa: Html5Mode):
        """Test that an extensionless missing path gets index.html with 200."""
        request = make_request("/dashboard")
        response = record(spa, request)

        assert response.status == 200
        assert response.body == INDEX_HTML
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.headers["Content-Length"] == str(len(INDEX_HTML))
        assert request.context[FALLBACK_WRITTEN] is True

    def test_nested_client_route(self, spa: Html5Mode):
        """Test deep routes with dotted parent segments."""
        response = record(spa, make_request("/v1.2/settings/profile"))

        assert response.status == 200
        assert response.body == INDEX_HTML

    def test_trigger_path_missing_file(self, spa: Html5Mode):
        """Test that the trigger path yields a hard 404 with no body."""
        request = make_request("/404")
        response = record(spa, request)

        assert response.status == 404
        assert response.body == b""
        assert request.context[HARD_NOT_FOUND] is True
        assert FALLBACK_WRITTEN not in request.context

    def test_trigger_path_existing_file(self, web_root: Path, spa: Html5Mode):
        """Test that a 200 on the trigger path is rewritten to a bare 404."""
        (web_root / "404").write_bytes(b"custom not found page\n")

        response = record(spa, make_request("/404"))

        assert response.status == 404
        assert response.body == b""
        assert "Content-Length" not in response.headers

    def test_trigger_disabled(self, web_root: Path):
        """Test that /404 is an ordinary client route without the trigger."""
        spa = Html5Mode(FileServer(str(web_root)), str(web_root))
        response = record(spa, make_request("/404"))

        assert response.status == 200
        assert response.body == INDEX_HTML

    def test_existing_file_passes_through(self, spa: Html5Mode):
        """Test that found files are served unchanged."""
        response = record(spa, make_request("/app.js"))

        assert response.status == 200
        assert response.body == APP_JS

    def test_redirect_passes_through(self, spa: Html5Mode):
        """Test that non-404 statuses are forwarded unchanged."""
        response = record(spa, make_request("/blog"))

        assert response.status == 301
        assert response.headers["Location"] == "blog/"

    def test_other_methods_not_substituted(self, spa: Html5Mode):
        """Test that a 405 is never turned into the fallback."""
        response = record(spa, make_request("/dashboard", method="POST"))
        assert response.status == 405

    def test_head_fallback_has_no_body(self, spa: Html5Mode):
        """Test that HEAD on a client route gets the fallback headers only."""
        response = record(spa, make_request("/dashboard", method="HEAD"))

        assert response.status == 200
        assert response.body == b""
        assert response.headers["Content-Length"] == str(len(INDEX_HTML))

    def test_missing_fallback_document(self, web_root: Path, spa: Html5Mode):
        """Test that a missing index.html surfaces as the file server's 404."""
        (web_root / "index.html").unlink()

        response = record(spa, make_request("/dashboard"))

        assert response.status == 404
        assert response.body == b"404 page not found\n"

    def test_fallback_read_per_request(self, web_root: Path, spa: Html5Mode):
        """Test that index.html changes are picked up without a restart."""
        record(spa, make_request("/dashboard"))
        (web_root / "index.html").write_bytes(b"<html>v2</html>\n")

        response = record(spa, make_request("/dashboard"))
        assert response.body == b"<html>v2</html>\n"

    def test_requests_do_not_share_state(self, web_root: Path, spa: Html5Mode):
        """Test that a fallback on one request does not affect the next."""
        (web_root / "app.js").unlink()

        first = make_request("/dashboard")
        second = make_request("/app.js")
        record(spa, first)
        response = record(spa, second)

        assert first.context[FALLBACK_WRITTEN] is True
        assert FALLBACK_WRITTEN not in second.context
        assert response.body == b"404 page not found\n"

    def test_with_strip_prefix(self, web_root: Path):
        """Test the extension check against the full, unstripped path."""
        serve = Html5Mode(
            StripPrefix("/app", FileServer(str(web_root))),
            str(web_root),
        )

        assert record(serve, make_request("/app/app.js")).body == APP_JS
        assert record(serve, make_request("/app/settings")).body == INDEX_HTML
        assert record(serve, make_request("/elsewhere/page")).body == INDEX_HTML
        assert record(serve, make_request("/app/missing.css")).status == 404


class TestHtml5ModeWriter:
    """Tests for the interceptor writer itself."""

    def _writer(self, web_root: Path, target: str, not_found_path=None):
        recorder = ResponseRecorder()
        request = make_request(target)
        writer = Html5ModeWriter(
            recorder,
            request,
            fallback_path=web_root / "index.html",
            not_found_path=not_found_path,
        )
        return recorder, request, writer

    def test_headers_are_shared(self, web_root: Path):
        """Test that the underlying header collection is exposed unchanged."""
        recorder, _, writer = self._writer(web_root, "/dashboard")

        writer.headers["X-Test"] = "1"
        assert recorder.headers["X-Test"] == "1"

    def test_writes_after_fallback_are_noops(self, web_root: Path):
        """Test that the file server's own 404 body is discarded."""
        recorder, _, writer = self._writer(web_root, "/dashboard")
        writer.headers["Content-Type"] = "text/plain; charset=utf-8"

        writer.write_header(404)
        assert writer.fallback_written
        assert writer.write(b"404 page not found\n") == 0
        writer.write_header(500)

        response = recorder.finish()
        assert response.status == 200
        assert response.body == INDEX_HTML
        assert response.headers["Content-Type"] == "text/html; charset=utf-8"

    def test_passthrough_write(self, web_root: Path):
        """Test that writes reach the real writer in the normal state."""
        recorder, _, writer = self._writer(web_root, "/style.css")

        writer.write_header(404)
        assert writer.write(b"gone") == 4
        assert not writer.suppressed

        response = recorder.finish()
        assert response.status == 404
        assert response.body == b"gone"

    def test_trigger_ignores_other_statuses(self, web_root: Path):
        """Test that a redirect on the trigger path is forwarded."""
        recorder, _, writer = self._writer(web_root, "/404", not_found_path="/404")

        writer.write_header(301)
        assert not writer.suppressed
        assert recorder.finish().status == 301
