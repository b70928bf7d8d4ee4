"""
=============================================================================
CONTENT-TYPE DETECTION
=============================================================================

Picks the Content-Type header for a file served from the web root.

=============================================================================
LOOKUP ORDER
=============================================================================

    ┌────────────────────────────────────────────────────────────────────┐
    │  1. Our table (MIME_TYPES)         ".js"   → text/javascript        │
    │         │ miss                                                      │
    │         ▼                                                           │
    │  2. The platform registry          ".epub" → application/epub+zip  │
    │     (mimetypes module)                                              │
    │         │ miss                                                      │
    │         ▼                                                           │
    │  3. Content sniffing               b"<!DOCTYPE html" → text/html    │
    │     (first 512 bytes)              utf-8 text → text/plain          │
    │                                    anything else → octet-stream     │
    └────────────────────────────────────────────────────────────────────┘

The table comes first so a static bundle gets the same answers on every
host, regardless of what /etc/mime.types happens to contain.

Text types get "; charset=utf-8" appended.

=============================================================================
"""

import mimetypes
from pathlib import Path
from typing import Optional


MIME_TYPES = {
    # -------------------------------------------------------------------------
    # DOCUMENTS AND CODE
    # -------------------------------------------------------------------------
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "text/javascript",
    ".mjs": "text/javascript",
    ".json": "application/json",
    ".map": "application/json",    # Source maps
    ".webmanifest": "application/manifest+json",
    ".xml": "application/xml",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".wasm": "application/wasm",

    # -------------------------------------------------------------------------
    # IMAGES
    # -------------------------------------------------------------------------
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",

    # -------------------------------------------------------------------------
    # FONTS
    # -------------------------------------------------------------------------
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",
    ".eot": "application/vnd.ms-fontobject",

    # -------------------------------------------------------------------------
    # MEDIA AND ARCHIVES
    # -------------------------------------------------------------------------
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".wav": "audio/wav",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
}

DEFAULT_MIME_TYPE = "application/octet-stream"

# How much of a file content sniffing looks at.
SNIFF_LENGTH = 512

_HTML_SIGNATURES = (
    b"<!doctype html",
    b"<html",
    b"<head",
    b"<body",
    b"<script",
    b"<title",
)


def get_mime_type(path: str | Path, default: Optional[str] = None) -> Optional[str]:
    """
    Get the MIME type for a file based on its extension.

    Returns `default` (None unless given) when the extension is unknown
    to both our table and the platform registry.

    Examples:
        >>> get_mime_type("style.css")
        'text/css'
        >>> get_mime_type("noext") is None
        True
    """
    if isinstance(path, str):
        path = Path(path)

    extension = path.suffix.lower()
    if not extension:
        return default

    if extension in MIME_TYPES:
        return MIME_TYPES[extension]

    guessed, _ = mimetypes.guess_type(path.name, strict=False)
    return guessed or default


def sniff_content_type(data: bytes) -> str:
    """
    Guess a MIME type from the first bytes of a file.

    Deliberately small: HTML markers, then "does it decode as UTF-8".
    """
    head = data[:SNIFF_LENGTH]
    stripped = head.lstrip(b" \t\r\n\x0c").lower()

    if stripped.startswith(_HTML_SIGNATURES):
        return "text/html"

    if b"\x00" in head:
        return DEFAULT_MIME_TYPE

    try:
        head.decode("utf-8")
    except UnicodeDecodeError as e:
        # A multi-byte sequence cut off by SNIFF_LENGTH is still text.
        if e.start < len(head) - 3:
            return DEFAULT_MIME_TYPE
    return "text/plain"


def is_text_type(mime_type: str) -> bool:
    """
    Check if a MIME type represents text content (and so gets a charset).

    Examples:
        >>> is_text_type("text/html")
        True
        >>> is_text_type("image/png")
        False
    """
    if mime_type.startswith("text/"):
        return True

    return mime_type in {
        "application/json",
        "application/manifest+json",
        "application/xml",
        "application/javascript",
        "image/svg+xml",
    }


def get_content_type(path: str | Path, head: bytes = b"", charset: str = "utf-8") -> str:
    """
    Full Content-Type header value for a file.

    Args:
        path: File path or name with extension
        head: Leading bytes of the file, used when the extension is unknown
        charset: Character encoding for text files

    Examples:
        >>> get_content_type("page.html")
        'text/html; charset=utf-8'
        >>> get_content_type("image.png")
        'image/png'
        >>> get_content_type("LICENSE", b"MIT License")
        'text/plain; charset=utf-8'
    """
    mime_type = get_mime_type(path) or sniff_content_type(head)

    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"

    return mime_type
