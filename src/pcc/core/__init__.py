"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The low-level networking pieces of the PCC server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Creates the TCP listening socket, binds, listens                 │
    │  • Runs the accept() loop, ONE connection at a time                 │
    │  • Stops when the shutdown coordinator says so                      │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ hands each connection to the handler
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • Wraps a client socket                                            │
    │  • Reads one frame, writes one 4-byte answer, closes                │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ built on
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          FRAMING                                     │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • read_exact / write_exact despite short reads and writes          │
    │  • ConnectionTerminated vs fatal OSError                            │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     SHUTDOWN COORDINATOR                             │
    │  ─────────────────────────────────────────────────────────────────  │
    │  • IDLE / BUSY state + one-shot "shutdown requested" flag           │
    │  • SIGINT handler that never interrupts a connection                │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .framing import (
    ConnectionTerminated,
    FramingError,
    PayloadTooLarge,
    read_exact,
    write_exact,
    encode_length,
    decode_length,
)
from .connection import Connection, ConnectionState
from .shutdown import ShutdownCoordinator, ServerState
from .socket_server import SocketServer

__all__ = [
    "ConnectionTerminated",
    "FramingError",
    "PayloadTooLarge",
    "read_exact",
    "write_exact",
    "encode_length",
    "decode_length",
    "Connection",
    "ConnectionState",
    "ShutdownCoordinator",
    "ServerState",
    "SocketServer",
]
