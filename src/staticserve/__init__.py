"""
=============================================================================
STATICSERVE - Static File Server for Single-Page Apps
=============================================================================

Serves a directory over HTTP and, given a certificate and key, HTTPS.
Built on raw sockets and a thread pool, with a fixed middleware pipeline.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    STATICSERVE FEATURES                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   1. FILE SERVING                                                   │
    │      - Content types, ETag / Last-Modified, 304 responses           │
    │      - index.html for directories, optional directory listing       │
    │      - Prefix stripping (--strip-prefix /assets)                    │
    │                                                                     │
    │   2. HTML5 MODE                                                     │
    │      - 404 on an extensionless path → <web_root>/index.html         │
    │      - Optional trigger path that always answers 404                │
    │                                                                     │
    │   3. TWO LISTENERS                                                  │
    │      - HTTP always, HTTPS when certificate and key are given        │
    │      - Optional redirect of all HTTP traffic to HTTPS               │
    │                                                                     │
    │   4. MIDDLEWARE                                                     │
    │      - Recovery, request logging, HTTPS redirect, gzip              │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    staticserve/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m staticserve)
    ├── server.py            # StaticServer: listeners, workers, logging setup
    ├── pipeline.py          # Builds the request handler from a config
    ├── config.py            # ServerConfig dataclass
    ├── core/                # Sockets and threads
    │   ├── socket_server.py # One listening socket
    │   ├── connection.py    # Client connection (TLS, buffering)
    │   ├── thread_pool.py   # Worker threads
    │   └── tls.py           # SSLContext for the HTTPS listener
    ├── http/                # HTTP protocol
    │   ├── request.py       # Request parsing
    │   ├── response.py      # Responses and the ResponseWriter protocol
    │   ├── status_codes.py  # Status enum and reason phrases
    │   └── mime_types.py    # Content-Type detection
    ├── middleware/          # Pipeline stages
    │   ├── base.py          # Middleware ABC and pipeline
    │   ├── recovery.py      # Unhandled error → 500
    │   ├── logging.py       # Request log
    │   ├── force_https.py   # HTTP → HTTPS redirect
    │   ├── compression.py   # gzip
    │   └── html5mode.py     # index.html fallback
    └── handlers/
        ├── static.py        # File server
        └── prefix.py        # Prefix stripping

=============================================================================
QUICK START
=============================================================================

    from staticserve import StaticServer, ServerConfig, setup_logging

    config = ServerConfig(web_root="dist", html5_mode=True, port=8080)
    setup_logging(config)
    StaticServer(config).run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .pipeline import build_handler
from .server import StaticServer, setup_logging

__all__ = ["StaticServer", "ServerConfig", "build_handler", "setup_logging", "__version__"]
