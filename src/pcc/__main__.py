"""
=============================================================================
PCC SERVER CLI ENTRY POINT
=============================================================================

    # Listen on 0.0.0.0:5000
    pcc-server 5000
    python -m pcc 5000

    # Verbose, and refuse payloads above 1 MiB
    pcc-server 5000 --log-level DEBUG --max-payload 1048576

Press Ctrl+C to stop. If a connection is being served, it is finished
first. The per-character histogram is then printed to stdout.

Exit status: 0 after a graceful shutdown, 1 on any fatal error,
2 on bad arguments.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import ServerConfig
from .server import PCCServer


def _port(value: str) -> int:
    # Port 0 (OS picks one) is for tests only and never valid here
    port = int(value)
    if not 0 < port < 65536:
        raise argparse.ArgumentTypeError(f"invalid port: {value}")
    return port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pcc-server",
        description="Printable character counting server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pcc-server 5000                        # Listen on 0.0.0.0:5000
  pcc-server 5000 --log-level DEBUG      # Verbose logging
  pcc-server 5000 --timeout 30           # Drop clients idle for 30s
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("port", type=_port, help="Port to listen on (1-65535)")

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 0.0.0.0)",
    )

    parser.add_argument(
        "--timeout", "-t",
        type=float,
        default=None,
        help="Per-connection socket timeout in seconds (default: none)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--max-payload",
        type=int,
        default=None,
        dest="max_payload_size",
        help="Largest accepted payload in bytes (default: 64 MiB)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"pcc-server {__version__}",
    )

    return parser


def main(argv=None) -> int:
    """CLI entry point. Returns the process exit status."""
    args = build_parser().parse_args(argv)

    try:
        config = ServerConfig.from_env(
            host=args.host,
            port=args.port,
            timeout=args.timeout,
            max_payload_size=args.max_payload_size,
            log_level=args.log_level,
        )
        server = PCCServer(config)
        server.run()
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
