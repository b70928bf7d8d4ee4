"""
=============================================================================
STATICSERVE CLI ENTRY POINT
=============================================================================

    # Serve ./public on :8080
    python -m staticserve

    # Single-page app from ./dist, mounted under /app
    python -m staticserve -d dist --html5-mode --strip-prefix /app

    # HTTP and HTTPS, plaintext redirected to HTTPS
    python -m staticserve --cert-file cert.pem --key-file key.pem --force-https

    # Request log and error log in files
    python -m staticserve -l access.log -e error.log

=============================================================================
CONFIGURATION PRECEDENCE
=============================================================================

Options left off the command line fall back to STATICSERVE_* environment
variables (see ServerConfig.from_env), then to the ServerConfig defaults.
The camelCase spellings (--certFile, --html5mode, --404Path, ...) are
accepted as aliases.

=============================================================================
EXIT STATUS
=============================================================================

    0   stopped by SIGINT/SIGTERM
    1   startup failure (webroot, log file, certificate, port in use)
        or a listener failed while running

=============================================================================
"""

import argparse
import dataclasses
import logging
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig
from .server import StaticServer, setup_logging


logger = logging.getLogger("staticserve")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="staticserve",
        description="Static file server with HTML5 mode, gzip and HTTPS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  staticserve -d dist                        # Serve ./dist on :8080
  staticserve -d dist --html5-mode           # Single-page app fallback
  staticserve --strip-prefix /assets         # /assets/app.js -> <root>/app.js
  staticserve --cert-file c.pem --key-file k.pem --force-https
        """,
    )

    # Options default to None so that unset ones fall through to the
    # environment/defaults instead of overriding them.

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "-d", "--web-root",
        dest="web_root",
        help="Root directory of the website (default: public)",
    )
    parser.add_argument(
        "--strip-prefix", "--stripPrefix",
        dest="strip_prefix",
        help="Path prefix to strip from incoming requests",
    )
    parser.add_argument(
        "--no-directory-listing",
        dest="directory_listing",
        action="store_false",
        default=None,
        help="Answer 403 for directories without index.html",
    )

    # ─────────────────────────────────────────────────────────────────────
    # FEATURES
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--gzip",
        dest="gzip",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Gzip-compress responses (default: on)",
    )
    parser.add_argument(
        "--html5-mode", "--html5mode",
        dest="html5_mode",
        action="store_true",
        default=None,
        help="On 404 for a path without extension, serve index.html",
    )
    parser.add_argument(
        "--not-found-trigger",
        dest="not_found_trigger",
        action="store_true",
        default=None,
        help="In HTML5 mode, always answer 404 for the --404-path",
    )
    parser.add_argument(
        "--404-path", "--404Path", "--not-found-path",
        dest="not_found_path",
        help="Trigger path for --not-found-trigger (default: /404)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LISTENERS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host",
        help="Address to bind both listeners to (default: 0.0.0.0)",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        help="HTTP port (default: 8080)",
    )
    parser.add_argument(
        "-s", "--https-port",
        dest="https_port",
        type=int,
        help="HTTPS port (default: 8081)",
    )
    parser.add_argument(
        "--cert-file", "--certFile",
        dest="cert_file",
        help="TLS certificate (PEM)",
    )
    parser.add_argument(
        "--key-file", "--keyFile",
        dest="key_file",
        help="TLS private key (PEM)",
    )
    parser.add_argument(
        "--force-https", "--forceTLS",
        dest="force_https",
        action="store_true",
        default=None,
        help="Redirect HTTP requests to HTTPS (needs certificate and key)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING AND PERFORMANCE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "-l", "--request-log",
        dest="request_log_file",
        help="Append request log lines to this file (default: stdout)",
    )
    parser.add_argument(
        "-e", "--error-log",
        dest="error_log_file",
        help="Append errors to this file (default: stdout)",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        dest="log_format",
        choices=["text", "json"],
        help="Request log format (default: text)",
    )
    parser.add_argument(
        "-w", "--workers",
        type=int,
        help="Worker threads at startup (max is 8x this)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"staticserve {__version__}",
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment/defaults first, then every option given on the command line."""
    overrides = {
        name: value
        for name, value in vars(args).items()
        if value is not None and name != "workers"
    }

    if args.workers is not None:
        overrides["min_workers"] = args.workers
        overrides["max_workers"] = args.workers * 8

    return dataclasses.replace(ServerConfig.from_env(), **overrides)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        setup_logging(config)
        server = StaticServer(config)
        return server.run()
    except (ValueError, OSError) as e:
        # OSError covers unreadable certificates (ssl.SSLError) and bind failures
        logger.critical(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
