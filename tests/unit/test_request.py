"""
Unit tests for HTTP request parsing.
"""

import pytest

from staticserve.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /assets/app.js?v=3&debug HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept-Encoding: gzip\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/assets/app.js"
        assert request.target == "/assets/app.js?v=3&debug"
        assert request.query == "v=3&debug"
        assert request.version == "HTTP/1.1"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_parse_headers(self, sample_get_request: bytes):
        """Test that headers are parsed correctly."""
        request = parse_request(sample_get_request)

        assert request.host == "localhost:8080"
        assert request.user_agent == "pytest"
        assert request.headers["accept-encoding"] == "gzip"
        assert request.is_keep_alive is True

    def test_parse_query_params(self, sample_get_request: bytes):
        """Test query parameter parsing."""
        request = parse_request(sample_get_request)

        assert request.get_query("v") == "3"
        assert request.get_query("debug") == ""
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_percent_encoded_path_is_decoded(self):
        """Test that the path is decoded but the target stays raw."""
        raw = b"GET /my%20file.txt?q=a%20b HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/my file.txt"
        assert request.target == "/my%20file.txt?q=a%20b"
        assert request.get_query("q") == "a b"

    def test_absolute_form_target(self):
        """Test that absolute-form targets yield the path."""
        raw = b"GET http://example.com/dashboard?x=1 HTTP/1.1\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/dashboard"
        assert request.query == "x=1"

    def test_parse_invalid_method(self):
        """Test that unknown methods are rejected."""
        raw = b"INVALID /path HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 405

    def test_parse_invalid_request_line(self):
        """Test handling of malformed request line."""
        raw = b"GET\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_unsupported_version(self):
        """Test that HTTP/2.0 in a request line is rejected with 505."""
        raw = b"GET / HTTP/2.0\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 505

    def test_parse_missing_headers(self):
        """Test parsing request with no headers."""
        raw = b"GET / HTTP/1.1\r\n\r\n"
        request = parse_request(raw)

        assert request.method == "GET"
        assert request.path == "/"
        assert len(request.headers) == 0

    def test_header_line_without_colon_rejected(self):
        """Test that a header line without a colon is a 400."""
        raw = b"GET / HTTP/1.1\r\nNoColonHere\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_parse_path_traversal_blocked(self):
        """Test that path traversal attempts are blocked."""
        raw = b"GET /../../../etc/passwd HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert "path" in str(exc_info.value).lower()
        assert exc_info.value.status_code == 400

    def test_encoded_path_traversal_blocked(self):
        """Test that percent-encoded .. segments are blocked too."""
        raw = b"GET /%2e%2e/secret HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError):
            parse_request(raw)

    def test_dots_inside_names_allowed(self):
        """Test that '..' inside a file name is not a traversal."""
        request = parse_request(b"GET /release..notes.txt HTTP/1.1\r\n\r\n")
        assert request.path == "/release..notes.txt"

    def test_parse_request_too_large(self):
        """Test that oversized requests are rejected."""
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\n" + b"X-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_http_version_parsing(self):
        """Test HTTP/1.0 and HTTP/1.1 version handling."""
        # HTTP/1.0 (Connection: close by default)
        request_10 = parse_request(b"GET / HTTP/1.0\r\nHost: test\r\n\r\n")
        assert request_10.version == "HTTP/1.0"
        assert request_10.is_keep_alive is False

        # HTTP/1.1 (keep-alive by default)
        request_11 = parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n\r\n")
        assert request_11.version == "HTTP/1.1"
        assert request_11.is_keep_alive is True

        request_close = parse_request(b"GET / HTTP/1.1\r\nConnection: close\r\n\r\n")
        assert request_close.is_keep_alive is False

    def test_content_length_handling(self):
        """Test that the body is cut at Content-Length."""
        raw = (
            b"POST / HTTP/1.1\r\n"
            b"Content-Length: 4\r\n"
            b"\r\n"
            b"bodyEXTRA"
        )

        request = parse_request(raw)
        assert request.body == b"body"

    @pytest.mark.parametrize("value", [b"abc", b"-1"])
    def test_invalid_content_length(self, value: bytes):
        """Test that unusable Content-Length values are rejected."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_case_insensitive_headers(self):
        """Test that header names are case-insensitive."""
        raw = b"GET / HTTP/1.1\r\nACCEPT-ENCODING: gzip\r\n\r\n"
        request = parse_request(raw)

        assert request.get_header("Accept-Encoding") == "gzip"
        assert request.get_header("accept-encoding") == "gzip"

    def test_repeated_headers_joined(self):
        """Test that repeated headers are combined."""
        raw = b"GET / HTTP/1.1\r\nAccept: text/html\r\nAccept: */*\r\n\r\n"
        request = parse_request(raw)

        assert request.get_header("accept") == "text/html, */*"

    def test_is_secure_flag(self):
        """Test that the TLS flag is carried onto the request."""
        parser = RequestParser()
        raw = b"GET / HTTP/1.1\r\n\r\n"

        assert parser.parse(raw).scheme == "http"
        assert parser.parse(raw, is_secure=True).scheme == "https"


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        """Test get_header with default value."""
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_target_defaults_from_path_and_query(self):
        """Test that target is rebuilt when not given."""
        request = HTTPRequest(method="GET", path="/a", query="b=1")
        assert request.target == "/a?b=1"

    def test_context_is_per_request(self):
        """Test that each request gets its own context dict."""
        first = HTTPRequest(method="GET", path="/")
        second = HTTPRequest(method="GET", path="/")

        first.context["seen"] = True
        assert "seen" not in second.context

    def test_query_list(self):
        """Test getting multiple values for same query param."""
        request = HTTPRequest(method="GET", path="/", query="tags=a&tags=b")

        assert request.query_params["tags"] == ["a", "b"]
        assert request.get_query("tags") == "a"  # First value
