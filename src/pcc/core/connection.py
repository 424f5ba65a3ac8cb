"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with the PCC exchange:
read one frame, send one 4-byte answer, close.

=============================================================================
ONE REQUEST PER CONNECTION
=============================================================================

    Client                                         Server
      │                                              │
      │  [00 00 00 04]                 ─────────►    │  READING_SIZE
      │  [A A A \\x01]                  ─────────►    │  READING_PAYLOAD
      │                                              │  COUNTING
      │                ◄─────────  [00 00 00 03]     │  WRITING
      │                ◄─────────  FIN               │  CLOSING → CLOSED
      │                                              │

There is no keep-alive: after the answer the server closes.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING_SIZE ──► READING_PAYLOAD ──► COUNTING ──► WRITING ──┐
     │           │                  │                            │       │
     │           │                  │                            │       │
     └───────────┴──────────────────┴────────────────────────────┴──► CLOSING
                                                                          │
                                                                          ▼
                                                                       CLOSED

Any step may jump to CLOSING when the peer goes away.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from .framing import (
    read_exact,
    write_length,
    read_length,
    PayloadTooLarge,
    DEFAULT_CHUNK_SIZE,
)


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, used for logging and debugging."""
    NEW = "new"                          # Just accepted
    READING_SIZE = "reading_size"        # Waiting for the 4-byte prefix
    READING_PAYLOAD = "reading_payload"  # Waiting for the file content
    COUNTING = "counting"                # Payload in hand, counting
    WRITING = "writing"                  # Sending the 4-byte answer
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    Represents an accepted client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. FRAMED READING                                                   │
    │     └── 4-byte size, then exactly that many payload bytes            │
    │     └── Payload size capped by max_payload_size                      │
    │                                                                      │
    │  2. FRAMED WRITING                                                   │
    │     └── The 4-byte answer, written in full or not at all             │
    │                                                                      │
    │  3. STATE TRACKING                                                   │
    │     └── Which step we were in when something went wrong              │
    │                                                                      │
    │  4. CLOSE                                                            │
    │     └── Always, whatever happened (context manager)                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when connection was accepted.
        bytes_received: Payload bytes read so far.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    bytes_received: int = 0

    # Configuration (passed from ServerConfig)
    buffer_size: int = DEFAULT_CHUNK_SIZE
    timeout: Optional[float] = None
    max_payload_size: Optional[int] = None

    def __post_init__(self):
        # The listener is non-blocking; the client socket must not inherit that.
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_size(self) -> int:
        """
        Read the 4-byte big-endian payload size.

        Raises:
            ConnectionTerminated: Peer closed or connection broke.
        """
        self.state = ConnectionState.READING_SIZE
        return read_length(self.socket)

    def read_payload(self, size: int) -> bytes:
        """
        Read exactly `size` payload bytes.

        The size comes from the client, so it is checked against
        max_payload_size BEFORE any buffer is allocated.

        Raises:
            PayloadTooLarge: Size above max_payload_size.
            ConnectionTerminated: Peer closed or connection broke.
        """
        if self.max_payload_size is not None and size > self.max_payload_size:
            raise PayloadTooLarge(size, self.max_payload_size)

        self.state = ConnectionState.READING_PAYLOAD
        payload = read_exact(self.socket, size, chunk_size=self.buffer_size)
        self.bytes_received = len(payload)
        return payload

    def read_frame(self) -> bytes:
        """Read one complete frame (size prefix + payload) and return the payload."""
        return self.read_payload(self.read_size())

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_count(self, count: int) -> None:
        """
        Send the printable character count as 4 big-endian bytes.

        Raises:
            ConnectionTerminated: Peer closed or connection broke.
        """
        self.state = ConnectionState.WRITING
        write_length(self.socket, count)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection.

        shutdown(SHUT_WR) sends FIN first so the client's pending read of
        the answer completes normally, then the descriptor is released.
        Errors here mean the peer is already gone, which is fine.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Already disconnected

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False  # Don't suppress exceptions
