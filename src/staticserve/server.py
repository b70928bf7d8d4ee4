"""
=============================================================================
STATIC SERVER
=============================================================================

Ties configuration, the request pipeline and the listeners together.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    STATIC SERVER ARCHITECTURE                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │                        ┌─────────────────┐                          │
    │                        │  StaticServer   │                          │
    │                        │ (Orchestrator)  │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                   │
    │         ┌───────────────────────┼───────────────────────┐           │
    │         ▼                       ▼                       ▼           │
    │  ┌──────────────┐       ┌──────────────┐        ┌──────────────┐    │
    │  │ SocketServer │       │ SocketServer │        │  ThreadPool  │    │
    │  │  HTTP :8080  │       │ HTTPS :8081  │        │  (workers)   │    │
    │  │ main thread  │       │ own thread   │        └──────┬───────┘    │
    │  └──────┬───────┘       └──────┬───────┘               │            │
    │         └──────── Connection ──┴───────────────────────┘            │
    │                                 │                                   │
    │           ┌─────────────────────▼───────────────────┐               │
    │           │   Pipeline (one handler, both ports)    │               │
    │           │ Recovery → Logging → ForceHTTPS → Gzip  │               │
    │           │    → Html5Mode → StripPrefix → Files    │               │
    │           └─────────────────────────────────────────┘               │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
STARTUP
=============================================================================

    1. Validate config            bad webroot/ports → ValueError
    2. Build the pipeline         logs each enabled feature
    3. Load certificate and key   failure → OSError / ssl.SSLError
    4. Bind HTTP, then HTTPS      port in use → OSError
    5. Start workers and the HTTPS accept thread
    6. Accept HTTP connections in the calling thread

Steps 1-4 raise; the CLI turns any of them into exit status 1. Nothing
is served until every listener is bound.

=============================================================================
LISTENER FAILURE
=============================================================================

The listeners are not independent: if the HTTPS accept loop dies while
running, the HTTP listener is shut down too and run() returns 1.

=============================================================================
"""

import functools
import logging
import signal
import ssl
import threading
from typing import Optional

from .config import ServerConfig
from .core import SocketServer, Connection, ConnectionState, ThreadPool, create_tls_context
from .http import HTTPRequest, RequestParser, HTTPParseError, HTTPStatus, error_response, internal_error
from .middleware import NextHandler
from .pipeline import build_handler


logger = logging.getLogger(__name__)
error_logger = logging.getLogger("staticserve.errors")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(config: ServerConfig):
    """
    Configure logging from config.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  logger               destination                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │  staticserve.*        stdout                                        │
    │  staticserve.access   request_log_file if set, else stdout          │
    │  staticserve.errors   error_log_file if set, else stdout            │
    └─────────────────────────────────────────────────────────────────────┘

    Raises:
        OSError: If a log file cannot be opened for appending.
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger("staticserve").setLevel(level)

    if config.request_log_file:
        _log_to_file("staticserve.access", config.request_log_file, "%(asctime)s %(message)s")
        logger.info(f"writing to logfile '{config.request_log_file}'")

    if config.error_log_file:
        _log_to_file("staticserve.errors", config.error_log_file, LOG_FORMAT)
        logger.info(f"writing errors to logfile '{config.error_log_file}'")


def _log_to_file(name: str, filename: str, fmt: str):
    try:
        handler = logging.FileHandler(filename, mode="a", encoding="utf-8")
    except OSError as e:
        raise OSError(f"error opening logfile '{filename}': {e}") from e

    handler.setFormatter(logging.Formatter(fmt, datefmt=LOG_DATE_FORMAT))
    target = logging.getLogger(name)
    target.addHandler(handler)
    target.propagate = False


class StaticServer:
    """
    Static file server with an HTTP and an optional HTTPS listener.

    =========================================================================
    USAGE
    =========================================================================

        config = ServerConfig(web_root="dist", html5_mode=True)
        setup_logging(config)
        exit_code = StaticServer(config).run()   # Blocks until stopped

    Embedding (tests):

        server = StaticServer(ServerConfig(web_root=root, port=0))
        server.start()
        threading.Thread(target=server.serve_forever, daemon=True).start()
        ...  # talk to server.http_port
        server.shutdown()

    =========================================================================
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration. Defaults to ServerConfig().

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()
        logger.info(f"using webroot '{self.config.web_root}'")

        self._handler: NextHandler = build_handler(self.config)
        self._parser = RequestParser(max_request_size=self.config.max_request_size)

        self._http = SocketServer(self.config, port=self.config.port, name="HTTP")
        self._https: Optional[SocketServer] = None
        if self.config.tls_enabled:
            self._https = SocketServer(self.config, port=self.config.https_port, name="HTTPS")

        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )

        self._tls_context: Optional[ssl.SSLContext] = None
        self._tls_thread: Optional[threading.Thread] = None
        self._tls_error: Optional[BaseException] = None

        self._running = False
        self._original_handlers: dict = {}

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def http_port(self) -> int:
        return self._http.port

    @property
    def https_port(self) -> Optional[int]:
        """Bound HTTPS port, None when HTTPS is not configured."""
        return self._https.port if self._https else None

    @property
    def tls_error(self) -> Optional[BaseException]:
        """Why the HTTPS listener stopped, if it failed."""
        return self._tls_error

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self) -> int:
        """
        Start both listeners and serve until stopped.

        Returns:
            0 after a normal shutdown (signal), 1 if a listener failed.

        Raises:
            OSError: If a certificate, key or port cannot be used at startup.
        """
        self._setup_signals()
        try:
            self.start()
            self.serve_forever()
        finally:
            self.shutdown()
            self._restore_signals()

        return 1 if self._tls_error is not None else 0

    def start(self):
        """
        Load TLS material, bind every listener, start the workers and the
        HTTPS accept thread. Does not accept plaintext connections yet.
        """
        if self._https is not None:
            self._tls_context = create_tls_context(self.config.cert_file, self.config.key_file)

        self._http.bind()
        if self._https is not None:
            self._https.bind()

        self._thread_pool.start()
        self._running = True

        if self._https is not None:
            logger.info(f"HTTPS listening on port {self._https.port}")
            self._tls_thread = threading.Thread(
                target=self._serve_tls,
                name="HTTPS-listener",
                daemon=True,
            )
            self._tls_thread.start()
        else:
            logger.info("HTTPS not started. Please supply SSL certificate and key")

        logger.info(f"HTTP listening on port {self._http.port}")

    def serve_forever(self):
        """Accept plaintext connections in the calling thread until stopped."""
        self._http.serve_forever(functools.partial(self._handle_connection, tls=False))

    def _serve_tls(self):
        try:
            self._https.serve_forever(functools.partial(self._handle_connection, tls=True))
        except Exception as e:
            self._tls_error = e
            error_logger.critical(f"HTTPS listener failed: {e}")
            self._http.shutdown()

    def stop(self):
        """Ask both accept loops to stop. Safe from signal handlers."""
        self._running = False
        self._http.shutdown()
        if self._https is not None:
            self._https.shutdown()

    def shutdown(self):
        """
        Graceful shutdown.

        1. Stop accepting on both listeners
        2. Let in-flight connections finish (bounded wait)
        3. Stop the workers and release the sockets
        """
        if self._running:
            logger.info("Shutting down server...")

        self.stop()

        if self._tls_thread is not None:
            self._tls_thread.join(timeout=5.0)
            self._tls_thread = None

        logger.debug(f"Thread pool stats: {self._thread_pool.stats()}")
        self._thread_pool.shutdown(wait=True, timeout=self.config.keep_alive_timeout + 1.0)

        self._http.close()
        if self._https is not None:
            self._https.close()

    def _setup_signals(self):
        # signal.signal() only works in the main thread
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
            self.stop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection, tls: bool):
        """Called by the accept loops: queue the connection for a worker."""
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn, tls),
            timeout=self.config.timeout,
            on_drop=self._reject_connection,
        )

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting connection")
            self._reject_connection(conn, tls)

    def _reject_connection(self, conn: Connection, tls: bool):
        """503 for plaintext clients the workers cannot take; TLS ones are just closed."""
        if not tls:
            self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
        conn.close()

    def _process_connection(self, conn: Connection, tls: bool):
        """
        Serve one connection (runs in a worker thread).

        =====================================================================
        CONNECTION PROCESSING LOOP
        =====================================================================

            [HTTPS] TLS handshake, drop the connection if it fails
            loop:
                read request bytes       closed/idle → stop
                parse                    malformed → 4xx, stop
                handler(request)         raised → 500
                send                     failed → stop
                keep-alive?              no → stop

        =====================================================================
        """
        with conn:
            if tls and not conn.start_tls(self._tls_context):
                return

            try:
                self._serve_requests(conn)
            except Exception as e:
                error_logger.exception(f"[{conn.id}] Connection error: {e}")

    def _serve_requests(self, conn: Connection):
        while self._running:
            try:
                raw_request = conn.read_request()
            except TimeoutError:
                self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                return
            except ValueError:
                self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                return

            if raw_request is None:
                return

            try:
                request = self._parser.parse(raw_request, conn.address, is_secure=conn.is_secure)
            except HTTPParseError as e:
                logger.debug(f"[{conn.id}] Bad request from {conn.client_ip}: {e}")
                self._send_error(conn, e.status_code, str(e))
                return

            conn.state = ConnectionState.PROCESSING
            keep_alive = request.is_keep_alive and self.config.keep_alive and self._running
            try:
                data = self._render(request, keep_alive)
            except Exception as e:
                # Handler faults and responses that cannot be serialized
                error_logger.exception(f"[{conn.id}] Handler error: {e}")
                keep_alive = False
                response = internal_error()
                response.headers["Connection"] = "close"
                data = response.to_bytes(self.config.server_name, include_body=not request.is_head)

            if not conn.send_response(data):
                return

            if not keep_alive:
                return

            conn.set_keep_alive()

    def _render(self, request: HTTPRequest, keep_alive: bool) -> bytes:
        """Run the pipeline for `request` and serialize its response."""
        response = self._handler(request)

        if keep_alive:
            response.headers.setdefault("Connection", "keep-alive")
            response.headers.setdefault(
                "Keep-Alive",
                f"timeout={int(self.config.keep_alive_timeout)}",
            )
        else:
            response.headers["Connection"] = "close"

        return response.to_bytes(self.config.server_name, include_body=not request.is_head)

    def _send_error(self, conn: Connection, status: int, message: Optional[str] = None):
        """Error for failures before the pipeline runs (parse errors, timeouts)."""
        response = error_response(status, message)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))
