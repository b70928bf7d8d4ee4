"""
=============================================================================
LISTENING SOCKET
=============================================================================

One SocketServer per listener: the plaintext HTTP port always, plus the
HTTPS port when a certificate and key are configured.

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create the socket
    2. bind()      Reserve host:port           ┐
    3. listen()    Start queueing connections  ┘ SocketServer.bind()
    4. accept()    One new socket per client     SocketServer.serve_forever()
    5. close()     Release the listening socket  SocketServer.close()

Binding is split from serving so that BOTH listeners can be bound in the
main thread before either starts accepting. A port that is already in
use is then reported at startup, before any request is answered.

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── bind() at startup
                    │   0.0.0.0:8080        │
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │Connection │         │Connection │         │Connection │
    └───────────┘         └───────────┘         └───────────┘
        handed to the connection handler (the thread pool)

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR   rebind immediately after a restart (no TIME_WAIT wait)
TCP_NODELAY    disable Nagle: responses go out without batching delay
timeout 1.0    accept() wakes once a second to check for shutdown

=============================================================================
"""

import socket
import logging
from typing import Optional, Callable

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    A single listening TCP socket and its accept loop.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │    bind()            Create, configure, bind, listen                │
    │        │             (raises OSError: port in use, no permission)   │
    │        ▼                                                            │
    │    serve_forever()   Accept loop (blocks until shutdown())          │
    │        │                                                            │
    │        └──► while running:                                          │
    │                accept()        Wait up to 1s for a client           │
    │                Connection()    Wrap client socket                   │
    │                handler(conn)   Hand off to the thread pool          │
    │                                                                     │
    │    shutdown()        Ask the loop to stop (any thread)              │
    │    close()           Release the socket                             │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        listener = SocketServer(config, port=8080, name="HTTP")
        listener.bind()
        listener.serve_forever(handle_connection)  # Blocks
    """

    def __init__(self, config: ServerConfig, port: Optional[int] = None, name: str = "HTTP"):
        """
        Args:
            config: Server configuration (host, backlog, connection limits).
            port: Port to bind. Defaults to config.port.
            name: Listener name used in log messages ("HTTP" or "HTTPS").
        """
        self.config = config
        self.name = name
        self._port = config.port if port is None else port

        self._socket: Optional[socket.socket] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def port(self) -> int:
        """The bound port (the real one when port 0 was requested)."""
        if self._socket is not None:
            return self._socket.getsockname()[1]
        return self._port

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() times out so the loop can notice shutdown()
        sock.settimeout(1.0)

        return sock

    def bind(self):
        """
        Create the socket, bind it and start listening.

        Raises:
            OSError: If the address cannot be bound (already in use,
                     privileged port, unknown host).
        """
        sock = self._create_socket()

        try:
            sock.bind((self.config.host, self._port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind {self.name} listener to {self.config.host}:{self._port}: {e}")
            raise

        self._socket = sock
        self._running = True

    def serve_forever(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown() is called.

        Args:
            connection_handler: Receives each accepted Connection. The
                                listener manager submits it to the thread pool.

        Raises:
            RuntimeError: If bind() was not called first.
            OSError: If accept() fails while the listener is still running.
        """
        if self._socket is None:
            raise RuntimeError(f"{self.name} listener is not bound")

        try:
            self._accept_loop(connection_handler)
        finally:
            self.close()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError:
                if not self._running:
                    break  # Socket closed by shutdown()
                raise

            logger.debug(f"{self.name}: accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )

            connection_handler(conn)

    def shutdown(self):
        """Stop the accept loop. Safe to call more than once, from any thread."""
        if self._running:
            logger.info(f"Shutting down {self.name} listener...")
        self._running = False

    def close(self):
        self._running = False
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
            logger.debug(f"{self.name} listener closed")
