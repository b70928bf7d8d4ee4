"""
Unit tests for the pipeline middleware.
"""

import gzip
import json
import logging

import pytest

from staticserve.http.request import HTTPRequest
from staticserve.http.response import HTTPResponse
from staticserve.middleware import (
    RecoveryMiddleware,
    LoggingMiddleware,
    ForceHTTPSMiddleware,
    CompressionMiddleware,
    FALLBACK_WRITTEN,
)
from staticserve.middleware.compression import accepts_gzip
from staticserve.middleware.force_https import split_host_port

from conftest import make_request


TEXT_BODY = b"body { color: #333; }\n" * 100


def respond(body: bytes = TEXT_BODY, content_type: str = "text/css; charset=utf-8", **headers):
    """A next() that returns a fixed 200 response."""
    def handler(request):
        response = HTTPResponse(body=body, headers={"Content-Type": content_type, **headers})
        response.headers["Content-Length"] = str(len(body))
        return response
    return handler


class TestForceHTTPS:
    """Tests for ForceHTTPSMiddleware."""

    @pytest.mark.parametrize("host, expected", [
        ("example.com:8080", ("example.com", "8080")),
        ("example.com", ("example.com", "")),
        ("[::1]:8080", ("[::1]", "8080")),
        ("[::1]", ("[::1]", "")),
    ])
    def test_split_host_port(self, host, expected):
        """Test Host header splitting."""
        assert split_host_port(host) == expected

    def test_plaintext_redirected(self):
        """Test a 301 to the same target on the HTTPS port."""
        middleware = ForceHTTPSMiddleware(https_port=8081)
        request = make_request("/docs/?page=2", headers={"Host": "example.com:8080"})

        response = middleware(request, respond())

        assert response.status == 301
        assert response.headers["Location"] == "https://example.com:8081/docs/?page=2"

    def test_default_port_omitted(self):
        """Test that :443 is left out of the Location."""
        middleware = ForceHTTPSMiddleware(https_port=443)
        request = make_request("/", headers={"Host": "example.com"})

        assert middleware(request, respond()).headers["Location"] == "https://example.com/"

    def test_secure_passes_through(self):
        """Test that TLS requests reach the next stage."""
        middleware = ForceHTTPSMiddleware(https_port=8081)
        response = middleware(make_request("/", is_secure=True), respond())

        assert response.status == 200
        assert response.body == TEXT_BODY

    def test_next_not_called_for_plaintext(self):
        """Test that nothing is served over plaintext."""
        def fail(request):
            raise AssertionError("next() must not run")

        response = ForceHTTPSMiddleware(https_port=8081)(make_request("/"), fail)
        assert response.status == 301

    def test_missing_host_uses_default(self):
        """Test the configured host for requests without Host."""
        middleware = ForceHTTPSMiddleware(https_port=8443, default_host="static.local")
        request = HTTPRequest(method="GET", path="/a", query="b=1")

        assert middleware(request, respond()).headers["Location"] == "https://static.local:8443/a?b=1"

    def test_absolute_form_target(self):
        """Test that an absolute-form target keeps only path and query."""
        middleware = ForceHTTPSMiddleware(https_port=443)
        request = HTTPRequest(
            method="GET",
            path="/x",
            target="http://example.com/x?y=1",
            headers={"host": "example.com"},
        )

        assert middleware(request, respond()).headers["Location"] == "https://example.com/x?y=1"


class TestCompression:
    """Tests for CompressionMiddleware."""

    @pytest.mark.parametrize("header, expected", [
        ("gzip", True),
        ("gzip, deflate, br", True),
        ("br, GZIP", True),
        ("*", True),
        ("gzip;q=0", False),
        ("gzip;q=0.5", True),
        ("deflate", False),
        ("", False),
    ])
    def test_accepts_gzip(self, header, expected):
        """Test Accept-Encoding negotiation."""
        assert accepts_gzip(header) is expected

    def test_compresses(self):
        """Test that large text bodies are gzipped."""
        request = make_request("/site.css", headers={"Accept-Encoding": "gzip"})
        response = CompressionMiddleware()(request, respond(ETag='"1-2"'))

        assert response.headers["Content-Encoding"] == "gzip"
        assert response.headers["Content-Length"] == str(len(response.body))
        assert response.headers["Vary"] == "Accept-Encoding"
        assert response.headers["ETag"] == 'W/"1-2"'
        assert gzip.decompress(response.body) == TEXT_BODY

    def test_client_without_gzip(self):
        """Test identity responses still carry Vary."""
        response = CompressionMiddleware()(make_request("/site.css"), respond())

        assert "Content-Encoding" not in response.headers
        assert response.headers["Vary"] == "Accept-Encoding"
        assert response.body == TEXT_BODY

    def test_small_body_skipped(self):
        """Test that bodies below min_size are left alone."""
        request = make_request("/a.css", headers={"Accept-Encoding": "gzip"})
        response = CompressionMiddleware()(request, respond(b"a{}"))

        assert "Content-Encoding" not in response.headers

    def test_binary_type_skipped(self):
        """Test that images are not recompressed."""
        request = make_request("/a.png", headers={"Accept-Encoding": "gzip"})
        response = CompressionMiddleware()(request, respond(b"\x89PNG" * 1000, "image/png"))

        assert "Content-Encoding" not in response.headers
        assert "Vary" not in response.headers

    def test_head_skipped(self):
        """Test that HEAD responses are not compressed."""
        request = make_request("/site.css", method="HEAD", headers={"Accept-Encoding": "gzip"})
        response = CompressionMiddleware()(request, respond())

        assert "Content-Encoding" not in response.headers

    def test_existing_vary_extended(self):
        """Test that an existing Vary value is kept."""
        request = make_request("/site.css", headers={"Accept-Encoding": "gzip"})
        response = CompressionMiddleware()(request, respond(Vary="Origin"))

        assert response.headers["Vary"] == "Origin, Accept-Encoding"

    def test_invalid_level(self):
        """Test that gzip levels outside 1-9 are rejected."""
        with pytest.raises(ValueError):
            CompressionMiddleware(level=10)


class TestLogging:
    """Tests for LoggingMiddleware."""

    def test_text_line(self, caplog):
        """Test the Apache-style request line."""
        with caplog.at_level(logging.INFO, logger="staticserve.access"):
            response = LoggingMiddleware()(make_request("/site.css?v=2"), respond())

        line = caplog.records[-1].getMessage()
        assert '"GET /site.css?v=2" 200' in line
        assert line.startswith("127.0.0.1 - - [")
        assert len(response.headers["X-Request-ID"]) == 8

    def test_json_line(self, caplog):
        """Test the JSON request line, including the html5 fallback flag."""
        def fallback(request):
            request.context[FALLBACK_WRITTEN] = True
            return HTTPResponse(body=b"<html></html>")

        with caplog.at_level(logging.INFO, logger="staticserve.access"):
            response = LoggingMiddleware(log_format="json")(make_request("/dashboard"), fallback)

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["path"] == "/dashboard"
        assert entry["status_code"] == 200
        assert entry["html5_fallback"] is True
        assert entry["content_length"] == 13
        assert entry["request_id"] == response.headers["X-Request-ID"]

    def test_request_id_optional(self):
        """Test that X-Request-ID can be turned off."""
        response = LoggingMiddleware(include_request_id=False)(make_request("/"), respond())
        assert "X-Request-ID" not in response.headers

    def test_failure_logged_and_reraised(self, caplog):
        """Test that exceptions are logged and propagate to recovery."""
        def boom(request):
            raise RuntimeError("disk on fire")

        with caplog.at_level(logging.ERROR, logger="staticserve.access"):
            with pytest.raises(RuntimeError):
                LoggingMiddleware()(make_request("/x"), boom)

        assert "RuntimeError: disk on fire" in caplog.text


class TestRecovery:
    """Tests for RecoveryMiddleware."""

    def test_exception_becomes_500(self, caplog):
        """Test that a fault is logged and answered with a plain 500."""
        def boom(request):
            raise RuntimeError("secret detail")

        with caplog.at_level(logging.ERROR, logger="staticserve.errors"):
            response = RecoveryMiddleware()(make_request("/x"), boom)

        assert response.status == 500
        assert b"secret detail" not in response.body
        assert "Recovered from unhandled error: GET /x" in caplog.text

    def test_success_untouched(self):
        """Test that normal responses pass through."""
        response = RecoveryMiddleware()(make_request("/"), respond())
        assert response.status == 200
