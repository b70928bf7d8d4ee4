"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket: buffered request reading, keep-alive
timeouts, the optional TLS handshake, and a clean TCP close.

Both listeners produce Connection objects. The HTTPS listener hands its
connections over still in plaintext; the worker thread that picks one up
calls start_tls() first, so a slow handshake never blocks the accept loop.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      Connection Lifecycle                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   NEW ──► HANDSHAKE ──► READING ──► PROCESSING ──► WRITING          │
    │   │      (HTTPS only)     ▲                           │             │
    │   │                       └──────── KEEP_ALIVE ◄──────┘             │
    │   │                                                   │             │
    │   └───────────────────────────────────────► CLOSING ──► CLOSED      │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import socket
import ssl
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, used in debug logging."""

    NEW = "new"
    HANDSHAKE = "handshake"    # TLS handshake in progress
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"  # Response sent, waiting for the next request
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │  1. TLS                                                             │
    │     └── start_tls() wraps the socket for the HTTPS listener         │
    │     └── is_secure is copied onto every parsed request               │
    │                                                                     │
    │  2. BUFFERED READING                                                │
    │     └── TCP delivers bytes in arbitrary chunks                      │
    │     └── _buffer holds partial data between recv() calls             │
    │                                                                     │
    │  3. TIMEOUT MANAGEMENT                                              │
    │     └── First request: `timeout` (30s by default)                   │
    │     └── Keep-alive: `keep_alive_timeout` (5s by default)            │
    │                                                                     │
    │  4. GRACEFUL CLOSE                                                  │
    │     └── shutdown, drain, close                                      │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket (an SSLSocket after start_tls()).
        address: Client's (ip, port) tuple.
        is_secure: True once the TLS handshake has completed.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        requests_handled: Number of requests read on this connection.
    """

    socket: socket.socket
    address: tuple
    is_secure: bool = False

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    # =========================================================================
    # TLS
    # =========================================================================

    def start_tls(self, context: ssl.SSLContext) -> bool:
        """
        Perform the server side of the TLS handshake.

        Runs in the worker thread, under the connection timeout. A client
        that fails the handshake (plain HTTP sent to the HTTPS port, an
        unsupported protocol version, a dropped connection) only loses its
        own connection.

        Returns:
            True if the handshake completed, False if the connection
            should be dropped.
        """
        self.state = ConnectionState.HANDSHAKE
        try:
            self.socket = context.wrap_socket(self.socket, server_side=True)
        except (ssl.SSLError, socket.timeout, OSError) as e:
            logger.debug(f"[{self.id}] TLS handshake failed from {self.client_ip}: {e}")
            return False

        self.is_secure = True
        self.last_activity = time.time()
        return True

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    read_request() Flow                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                 │
        │   1. Keep-alive? use the shorter timeout                        │
        │   2. recv() until the buffer holds \\r\\n\\r\\n                     │
        │   3. Read Content-Length more bytes of body                     │
        │   4. Cut one request off the buffer, keep the rest              │
        │      (pipelined requests stay buffered for the next call)       │
        │                                                                 │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            Complete HTTP request bytes, or None if the connection closed
            (or went idle between keep-alive requests).

        Raises:
            TimeoutError: If the first request never completes.
            ValueError: If the request exceeds max_request_size.
        """
        self.state = ConnectionState.READING
        self.last_activity = time.time()

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                if len(self._buffer) > self.max_request_size:
                    raise ValueError(f"Request too large: {len(self._buffer)} bytes")

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise ValueError(f"Request too large: {body_start + content_length} bytes")

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # Closed mid-body; the parser sees the short body
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            self.last_activity = time.time()
            return request_data

        except socket.timeout:
            if self.requests_handled > 0 and not self._buffer:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            if self.timeout:
                self.socket.settimeout(self.timeout)

    def _recv(self) -> bytes:
        try:
            data = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError, ssl.SSLError):
            return b""
        self.last_activity = time.time()
        return data

    def _parse_content_length(self, headers: bytes) -> int:
        """
        Content-Length from raw header bytes, 0 if absent or unreadable.

        The request parser validates the header properly later; this only
        decides how many body bytes to wait for.
        """
        header_str = headers.decode("latin-1").lower()
        for line in header_str.split("\r\n"):
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send response bytes with sendall().

        Returns:
            True if sent, False if the client went away.
        """
        self.state = ConnectionState.WRITING
        self.last_activity = time.time()

        try:
            self.socket.sendall(data)
        except (ConnectionResetError, BrokenPipeError, socket.timeout, OSError) as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

        self.last_activity = time.time()
        return True

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection.

            1. shutdown(SHUT_WR)   send FIN, the client sees end of response
            2. drain               discard anything the client still sends
            3. close()             release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except (socket.timeout, ssl.SSLError, OSError):
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(
            f"[{self.id}] Connection closed after {self.requests_handled} requests "
            f"in {time.time() - self.created_at:.2f}s"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
