"""
=============================================================================
CORE NETWORKING PACKAGE
=============================================================================

Sockets, connections and threads. Nothing in here knows about files or
the request pipeline.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   SocketServer   one listening socket + accept loop                 │
    │   Connection     one client socket: TLS, reading, writing, close    │
    │   ThreadPool     workers shared by both listeners                   │
    │   create_tls_context()  SSLContext for the HTTPS listener           │
    └─────────────────────────────────────────────────────────────────────┘

THREAD-PER-CONNECTION MODEL
    Each accepted connection is processed start to finish by one worker
    thread: TLS handshake, every keep-alive request, close.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool
from .tls import create_tls_context, TLS_CIPHERS

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
    "create_tls_context",
    "TLS_CIPHERS",
]
