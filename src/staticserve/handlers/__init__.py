"""
=============================================================================
HANDLERS PACKAGE
=============================================================================

Writer-style serve functions: they take (writer, request) and write the
response into the writer instead of returning it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  FileServer      serve files and directory indexes from a web root  │
    │  serve_file()    send one specific file (used by html5 fallback)    │
    │  StripPrefix     mount a serve function under a URL prefix          │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .static import FileServer, serve_file, path_extension, NOT_FOUND_MESSAGE
from .prefix import StripPrefix

__all__ = [
    "FileServer",
    "serve_file",
    "path_extension",
    "NOT_FOUND_MESSAGE",
    "StripPrefix",
]
