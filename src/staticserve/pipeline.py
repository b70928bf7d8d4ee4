"""
=============================================================================
PIPELINE COMPOSITION
=============================================================================

Builds the request handler shared by both listeners from a ServerConfig.

=============================================================================
FIXED ORDER (outer to inner)
=============================================================================

    1. RecoveryMiddleware        always
    2. LoggingMiddleware         always
    3. ForceHTTPSMiddleware      force_https AND cert_file AND key_file
    4. CompressionMiddleware     gzip
    5. Html5Mode                 html5_mode
    6. StripPrefix               strip_prefix
       └── FileServer            always

Stages 1-4 are Middleware on a MiddlewarePipeline. Stages 5-6 are
writer-style serve functions, joined to the pipeline by writer_handler().
Disabling a stage removes it without changing the order of the others.

=============================================================================
"""

import logging

from .config import ServerConfig
from .handlers import FileServer, StripPrefix
from .http.response import ServeFunc, writer_handler
from .middleware import (
    MiddlewarePipeline,
    NextHandler,
    RecoveryMiddleware,
    LoggingMiddleware,
    ForceHTTPSMiddleware,
    CompressionMiddleware,
    Html5Mode,
)

logger = logging.getLogger(__name__)


def build_serve_func(config: ServerConfig) -> ServeFunc:
    """Stages 5 and 6: file server, optional prefix stripping, optional html5 mode."""
    serve: ServeFunc = FileServer(config.web_root, directory_listing=config.directory_listing)

    if config.strip_prefix:
        logger.info(f"stripPrefix '{config.strip_prefix}'")
        serve = StripPrefix(config.strip_prefix, serve)

    if config.html5_mode:
        logger.info("HTML5 mode enabled")
        if config.trigger_path is not None:
            logger.info(f"HTML5 mode: '{config.trigger_path}' always answers 404")
        serve = Html5Mode(serve, config.web_root, not_found_path=config.trigger_path)

    return serve


def build_pipeline(config: ServerConfig) -> MiddlewarePipeline:
    """Stages 1 to 4."""
    pipeline = MiddlewarePipeline()
    pipeline.add(RecoveryMiddleware())
    pipeline.add(LoggingMiddleware(log_format=config.log_format))

    if config.redirect_to_https:
        logger.info("Force HTTPS enabled")
        default_host = config.host if config.host not in ("", "0.0.0.0", "::") else "localhost"
        pipeline.add(ForceHTTPSMiddleware(https_port=config.https_port, default_host=default_host))
    elif config.force_https:
        logger.warning("Force HTTPS ignored: certificate and key are both required")

    if config.gzip:
        logger.info("Gzip enabled")
        pipeline.add(CompressionMiddleware())

    return pipeline


def build_handler(config: ServerConfig) -> NextHandler:
    """The complete request -> response handler for `config`."""
    return build_pipeline(config).wrap(writer_handler(build_serve_func(config)))
