"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Everything the server needs to know, in one immutable value that is built
once at startup and handed to the pipeline and the listeners.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Priority (highest to lowest):                                     │
    │                                                                     │
    │   1. Command-line arguments                                         │
    │      └── python -m staticserve -d dist --html5-mode                 │
    │                                                                     │
    │   2. Environment variables                                          │
    │      └── STATICSERVE_WEB_ROOT=dist python -m staticserve            │
    │                                                                     │
    │   3. Default values (in this dataclass)                             │
    └─────────────────────────────────────────────────────────────────────┘

The dataclass is frozen: no stage can change the configuration while
requests are being served, so every worker thread can read it without
locking.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the static server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    CONTENT
    - web_root, strip_prefix, directory_listing

    FEATURES
    - gzip, html5_mode, not_found_trigger, not_found_path

    LISTENERS
    - host, port, https_port, cert_file, key_file, force_https

    CONNECTIONS AND THREADS
    - backlog, buffer_size, timeout, keep_alive, keep_alive_timeout,
      max_request_size, min_workers, max_workers

    LOGGING
    - log_level, log_format, request_log_file, error_log_file

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    web_root: str = "public"
    """
    Directory files are served from. Must exist at startup.
    The html5 fallback document is <web_root>/index.html.
    """

    strip_prefix: str = ""
    """
    URL prefix removed before file lookup ("/assets" serves
    /assets/app.js from <web_root>/app.js). Requests outside the prefix
    get 404. Empty = no stripping.
    """

    directory_listing: bool = True
    """List directories that have no index.html (otherwise 403)."""

    # ─────────────────────────────────────────────────────────────────────
    # FEATURES
    # ─────────────────────────────────────────────────────────────────────

    gzip: bool = True
    """Compress text responses for clients sending Accept-Encoding: gzip."""

    html5_mode: bool = False
    """
    Serve <web_root>/index.html instead of a 404 for extensionless paths.
    Used by single-page apps with client-side routing.
    """

    not_found_trigger: bool = False
    """
    Enable the trigger-path sub-mode of html5 mode: requests for exactly
    `not_found_path` get a bare 404 with an empty body.
    """

    not_found_path: str = "/404"
    """Trigger path for `not_found_trigger`."""

    # ─────────────────────────────────────────────────────────────────────
    # LISTENERS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address both listeners bind to.
    - "0.0.0.0" - All network interfaces
    - "127.0.0.1" - Localhost only
    """

    port: int = 8080
    """Plaintext HTTP port."""

    https_port: int = 8081
    """HTTPS port. Only used when both cert_file and key_file are set."""

    cert_file: Optional[str] = None
    """PEM certificate (chain) for the HTTPS listener."""

    key_file: Optional[str] = None
    """PEM private key for the HTTPS listener."""

    force_https: bool = False
    """
    Redirect plaintext requests to the HTTPS listener (301).
    Ignored unless TLS is enabled.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTIONS AND THREADS
    # ─────────────────────────────────────────────────────────────────────

    backlog: int = 128
    """Maximum number of queued connections per listener."""

    buffer_size: int = 8192
    """Size of each socket recv() in bytes."""

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds. None = blocking (never in production)."""

    keep_alive: bool = True
    """Allow several requests per TCP connection."""

    keep_alive_timeout: float = 5.0
    """Idle seconds before a keep-alive connection is closed."""

    max_request_size: int = 1024 * 1024  # 1 MB
    """
    Maximum request size (headers + body). A static server never needs
    large bodies, so this is far below what an API server would allow.
    """

    min_workers: int = 4
    """Worker threads created at startup."""

    max_workers: int = 32
    """Upper bound the pool may grow to under load."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Request log format: 'text' (Apache style) or 'json'."""

    request_log_file: Optional[str] = None
    """Append request log lines to this file. None = standard output."""

    error_log_file: Optional[str] = None
    """Append server errors to this file. None = standard output."""

    server_name: str = "staticserve/1.0"
    """Value of the Server response header."""

    # ─────────────────────────────────────────────────────────────────────
    # DERIVED SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    @property
    def tls_enabled(self) -> bool:
        """HTTPS is served only when BOTH certificate and key are given."""
        return bool(self.cert_file and self.key_file)

    @property
    def redirect_to_https(self) -> bool:
        return self.force_https and self.tls_enabled

    @property
    def trigger_path(self) -> Optional[str]:
        """The html5 trigger path, or None when the sub-mode is off."""
        return self.not_found_path if self.not_found_trigger else None

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        STATICSERVE_WEB_ROOT      Web root (default: public)
        STATICSERVE_HOST          Bind address (default: 0.0.0.0)
        STATICSERVE_PORT          HTTP port (default: 8080)
        STATICSERVE_HTTPS_PORT    HTTPS port (default: 8081)
        STATICSERVE_CERT_FILE     TLS certificate
        STATICSERVE_KEY_FILE      TLS private key
        STATICSERVE_HTML5_MODE    "1"/"true" enables html5 mode
        STATICSERVE_GZIP          "0"/"false" disables gzip
        STATICSERVE_STRIP_PREFIX  URL prefix to strip
        STATICSERVE_LOG_LEVEL     Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            web_root=os.getenv("STATICSERVE_WEB_ROOT", "public"),
            host=os.getenv("STATICSERVE_HOST", "0.0.0.0"),
            port=int(os.getenv("STATICSERVE_PORT", "8080")),
            https_port=int(os.getenv("STATICSERVE_HTTPS_PORT", "8081")),
            cert_file=os.getenv("STATICSERVE_CERT_FILE") or None,
            key_file=os.getenv("STATICSERVE_KEY_FILE") or None,
            html5_mode=_env_flag("STATICSERVE_HTML5_MODE", False),
            gzip=_env_flag("STATICSERVE_GZIP", True),
            strip_prefix=os.getenv("STATICSERVE_STRIP_PREFIX", ""),
            log_level=os.getenv("STATICSERVE_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once at startup, before any socket is opened: a bad
        configuration must stop the process, not fail the first request.

        Raises:
            ValueError: Describing the first invalid setting found.
        """
        if not os.path.isdir(self.web_root):
            raise ValueError(f"error opening webroot: {self.web_root!r} is not a directory")

        for name in ("port", "https_port"):
            value = getattr(self, name)
            if not 0 <= value < 65536:
                raise ValueError(f"Invalid {name}: {value}. Must be 0-65535.")

        if self.tls_enabled and self.port == self.https_port and self.port != 0:
            raise ValueError(f"HTTP and HTTPS listeners cannot share port {self.port}")

        if self.strip_prefix and not self.strip_prefix.startswith("/"):
            raise ValueError(f"strip_prefix must start with '/': {self.strip_prefix!r}")

        if not self.not_found_path.startswith("/"):
            raise ValueError(f"not_found_path must start with '/': {self.not_found_path!r}")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format!r}")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")
