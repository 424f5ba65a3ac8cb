"""
=============================================================================
FRAMED I/O PRIMITIVES
=============================================================================

This module implements the two primitives every PCC exchange is built on:
reading EXACTLY n bytes and writing EXACTLY n bytes over a TCP socket.

=============================================================================
WHY "EXACTLY"?
=============================================================================

TCP is a byte stream. A single recv() or send() call may move FEWER bytes
than asked for:

    Client sends 4 + 10 bytes:
        [00 00 00 0A][H e l l o W o r l d]

    Server might see:
        recv(4)  → 00 00        (short read!)
        recv(2)  → 00 0A
        recv(10) → H e l l o    (short read again)
        recv(5)  → W o r l d

A correct reader keeps asking for the remainder until the count is met.
A correct writer keeps pushing the remainder until the kernel took it all.

=============================================================================
WIRE FORMAT
=============================================================================

    ┌──────────────────────────┬──────────────────────────────────────┐
    │  LENGTH (4 bytes)        │  PAYLOAD (LENGTH bytes)              │
    │  big-endian unsigned     │  raw file content                    │
    └──────────────────────────┴──────────────────────────────────────┘

The answer from the server is a bare 4-byte big-endian unsigned integer.

=============================================================================
ERROR TAXONOMY
=============================================================================

    Outcome of a recv()/send()            Classification
    ─────────────────────────────────     ──────────────────────────────
    0 bytes (peer closed)                 ConnectionTerminated
    timeout (socket.timeout, ETIMEDOUT)   ConnectionTerminated
    ECONNRESET                            ConnectionTerminated
    EPIPE                                 ConnectionTerminated
    anything else                         OSError propagates (fatal)

ConnectionTerminated means "drop THIS connection, keep serving".
Any other OSError is a local failure and the server process stops.

=============================================================================
"""

import errno
import socket
import struct


# 4-byte big-endian unsigned ("network order")
LENGTH_PREFIX = struct.Struct("!I")

MAX_FRAME_LENGTH = 2 ** 32 - 1

DEFAULT_CHUNK_SIZE = 8192

TERMINATION_ERRNOS = frozenset({errno.ETIMEDOUT, errno.ECONNRESET, errno.EPIPE})


class FramingError(ValueError):
    """A length prefix or frame that cannot be represented on the wire."""


class PayloadTooLarge(FramingError):
    """
    The peer announced a payload bigger than the server agrees to buffer.

    Attributes:
        size: The announced payload size.
        limit: The configured maximum.
    """

    def __init__(self, size: int, limit: int):
        super().__init__(f"Payload of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


class ConnectionTerminated(ConnectionError):
    """
    The connection ended before a transfer completed.

    Raised for a zero-byte transfer (peer closed) and for the transient
    failures in TERMINATION_ERRNOS. It concerns one connection only.

    Attributes:
        transferred: Bytes moved before the connection ended.
        expected: Bytes the caller asked for.
    """

    def __init__(self, message: str, transferred: int = 0, expected: int = 0):
        super().__init__(message)
        self.transferred = transferred
        self.expected = expected


def is_termination(exc: OSError) -> bool:
    """
    Check whether an OSError means "the connection ended".

    socket.timeout is an alias of TimeoutError on current interpreters,
    whose errno may be None, so it is matched by type first.
    """
    if isinstance(exc, (socket.timeout, ConnectionResetError, BrokenPipeError)):
        return True
    return exc.errno in TERMINATION_ERRNOS


# =============================================================================
# LENGTH PREFIX CODEC
# =============================================================================

def encode_length(value: int) -> bytes:
    """
    Encode an unsigned 32-bit integer as 4 big-endian bytes.

    Raises:
        FramingError: If the value does not fit in 32 unsigned bits.
    """
    if not 0 <= value <= MAX_FRAME_LENGTH:
        raise FramingError(f"Value out of range for a 32-bit prefix: {value}")
    return LENGTH_PREFIX.pack(value)


def decode_length(data: bytes) -> int:
    """
    Decode 4 big-endian bytes into an unsigned integer.

    Raises:
        FramingError: If data is not exactly 4 bytes long.
    """
    if len(data) != LENGTH_PREFIX.size:
        raise FramingError(
            f"Length prefix must be {LENGTH_PREFIX.size} bytes, got {len(data)}"
        )
    (value,) = LENGTH_PREFIX.unpack(data)
    return value


# =============================================================================
# EXACT READ / WRITE
# =============================================================================

def read_exact(sock: socket.socket, size: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> bytes:
    """
    Read exactly `size` bytes from a socket.

    ┌─────────────────────────────────────────────────────────────────┐
    │                      read_exact() Flow                           │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   buffer = bytearray(size)                                       │
    │   while received < size:                                         │
    │       n = recv_into(buffer[received:], min(left, chunk))         │
    │       n == 0         → ConnectionTerminated (peer closed)        │
    │       transient err  → ConnectionTerminated                      │
    │       other err      → OSError propagates                        │
    │       received += n                                              │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

    The buffer is allocated once and filled in place, so a large payload
    is never rebuilt by repeated concatenation.

    Args:
        sock: A connected socket.
        size: Number of bytes to read. Zero returns b"" immediately.
        chunk_size: Upper bound for a single recv_into() call.

    Returns:
        Exactly `size` bytes.

    Raises:
        ConnectionTerminated: The peer closed or the connection broke.
        OSError: Any other socket failure.
    """
    if size < 0:
        raise ValueError(f"size must be >= 0, got {size}")

    buffer = bytearray(size)
    view = memoryview(buffer)
    received = 0

    while received < size:
        want = min(size - received, chunk_size)
        try:
            n = sock.recv_into(view[received:], want)
        except OSError as e:
            if is_termination(e):
                raise ConnectionTerminated(
                    f"Connection terminated during read: {e}",
                    transferred=received,
                    expected=size,
                ) from e
            raise

        if n == 0:
            raise ConnectionTerminated(
                f"Peer closed connection after {received} of {size} bytes",
                transferred=received,
                expected=size,
            )
        received += n

    return bytes(buffer)


def write_exact(sock: socket.socket, data: bytes) -> int:
    """
    Write every byte of `data` to a socket.

    socket.sendall() would also loop, but it hides how far it got and
    cannot tell a zero-byte send apart. Here each send() result is
    checked so a stalled peer is reported as ConnectionTerminated.

    Args:
        sock: A connected socket.
        data: Bytes to write.

    Returns:
        Number of bytes written (always len(data)).

    Raises:
        ConnectionTerminated: The peer closed or the connection broke.
        OSError: Any other socket failure.
    """
    view = memoryview(data)
    total = len(view)
    sent = 0

    while sent < total:
        try:
            n = sock.send(view[sent:])
        except OSError as e:
            if is_termination(e):
                raise ConnectionTerminated(
                    f"Connection terminated during write: {e}",
                    transferred=sent,
                    expected=total,
                ) from e
            raise

        if n == 0:
            raise ConnectionTerminated(
                f"Peer stopped accepting data after {sent} of {total} bytes",
                transferred=sent,
                expected=total,
            )
        sent += n

    return sent


def read_length(sock: socket.socket) -> int:
    """Read and decode one 4-byte length prefix."""
    return decode_length(read_exact(sock, LENGTH_PREFIX.size))


def write_length(sock: socket.socket, value: int) -> int:
    """Encode and write one 4-byte length prefix."""
    return write_exact(sock, encode_length(value))
