"""
=============================================================================
PCC CLIENT
=============================================================================

Sends one file to a PCC server and prints how many of its bytes are
printable ASCII characters.

=============================================================================
USAGE
=============================================================================

    pcc-client 127.0.0.1 5000 ./notes.txt
    # of printable characters: 1234

=============================================================================
ERROR HANDLING
=============================================================================

The client has no retry logic. Anything that goes wrong (missing file,
refused connection, server dropping the connection before answering) is
printed to stderr and the process exits with status 1.

=============================================================================
"""

import os
import sys
import socket
import argparse
import ipaddress
import logging
from typing import Optional

from . import __version__
from .core.framing import (
    ConnectionTerminated,
    FramingError,
    MAX_FRAME_LENGTH,
    DEFAULT_CHUNK_SIZE,
    read_length,
    write_exact,
    write_length,
)


logger = logging.getLogger(__name__)


class ClientError(Exception):
    """A local failure of the client (file too large, file changed while sending)."""


def send_file(
    host: str,
    port: int,
    path: str,
    timeout: Optional[float] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> int:
    """
    Send a file to a PCC server and return the printable character count.

    The file is opened before connecting, so a bad path never reaches
    the server. The content is streamed in chunks rather than loaded
    into memory at once.

    Args:
        host: Server IPv4 address.
        port: Server port.
        path: File to send.
        timeout: Socket timeout in seconds. None = block.
        chunk_size: Read/send chunk size.

    Returns:
        The count the server answered with.

    Raises:
        OSError: The file cannot be opened or the socket failed.
        ConnectionTerminated: The server closed before answering.
        ClientError: The file is too large or shrank while being sent.
    """
    with open(path, "rb") as f:
        size = os.fstat(f.fileno()).st_size
        if size > MAX_FRAME_LENGTH:
            raise ClientError(f"{path} is {size} bytes, the protocol allows at most {MAX_FRAME_LENGTH}")

        with socket.create_connection((host, port), timeout=timeout) as sock:
            logger.debug(f"Connected to {host}:{port}, sending {size} bytes")

            write_length(sock, size)

            remaining = size
            while remaining > 0:
                chunk = f.read(min(chunk_size, remaining))
                if not chunk:
                    raise ClientError(f"{path} shrank while sending ({remaining} bytes missing)")
                write_exact(sock, chunk)
                remaining -= len(chunk)

            return read_length(sock)


def _ipv4_address(value: str) -> str:
    try:
        return str(ipaddress.IPv4Address(value))
    except ipaddress.AddressValueError as e:
        raise argparse.ArgumentTypeError(f"invalid IPv4 address: {value!r}") from e


def _port(value: str) -> int:
    port = int(value)
    if not 0 < port < 65536:
        raise argparse.ArgumentTypeError(f"invalid port: {value}")
    return port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pcc-client",
        description="Send a file to a PCC server and print its printable character count",
    )
    parser.add_argument("server_ip", type=_ipv4_address, help="Server IPv4 address")
    parser.add_argument("server_port", type=_port, help="Server port")
    parser.add_argument("path", help="File to send")
    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=None,
        help="Socket timeout in seconds (default: none)",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"pcc-client {__version__}",
    )
    return parser


def main(argv=None) -> int:
    """CLI entry point. Returns the process exit status."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        count = send_file(args.server_ip, args.server_port, args.path, timeout=args.timeout)
    except ConnectionTerminated as e:
        print(f"Error: server closed the connection: {e}", file=sys.stderr)
        return 1
    except (OSError, ClientError, FramingError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"# of printable characters: {count}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
