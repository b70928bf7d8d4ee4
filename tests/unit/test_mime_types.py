"""
Unit tests for content type detection.
"""

import pytest

from staticserve.http.mime_types import (
    get_mime_type,
    get_content_type,
    sniff_content_type,
    is_text_type,
)


class TestGetMimeType:
    """Tests for extension lookup."""

    @pytest.mark.parametrize("path, expected", [
        ("index.html", "text/html"),
        ("app.js", "text/javascript"),
        ("site.CSS", "text/css"),
        ("logo.svg", "image/svg+xml"),
        ("module.wasm", "application/wasm"),
        ("font.woff2", "font/woff2"),
    ])
    def test_known(self, path, expected):
        """Test the built-in table (case-insensitive)."""
        assert get_mime_type(path) == expected

    def test_no_extension(self):
        """Test that paths without extension return the default."""
        assert get_mime_type("LICENSE") is None
        assert get_mime_type("LICENSE", "text/plain") == "text/plain"


class TestSniffContentType:
    """Tests for content sniffing."""

    @pytest.mark.parametrize("data, expected", [
        (b"<!DOCTYPE html><html>", "text/html"),
        (b"  \n<html>", "text/html"),
        (b"plain words", "text/plain"),
        (b"", "text/plain"),
        (b"\x00\x01\x02binary", "application/octet-stream"),
        (b"\xff\xfe\xfd" + b"x" * 100, "application/octet-stream"),
    ])
    def test_sniff(self, data, expected):
        """Test HTML markers, text and binary detection."""
        assert sniff_content_type(data) == expected

    def test_truncated_utf8_is_text(self):
        """Test that a multi-byte character cut at the sniff limit is still text."""
        data = b"a" * 511 + "é".encode("utf-8")
        assert sniff_content_type(data) == "text/plain"


class TestContentType:
    """Tests for the full header value."""

    def test_text_gets_charset(self):
        """Test charset on text types."""
        assert get_content_type("page.html") == "text/html; charset=utf-8"
        assert is_text_type("application/json")

    def test_binary_has_no_charset(self):
        """Test that binary types are returned bare."""
        assert get_content_type("photo.png") == "image/png"

    def test_sniffed(self):
        """Test sniffing for unknown extensions."""
        assert get_content_type("README", b"hello") == "text/plain; charset=utf-8"
