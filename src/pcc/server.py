"""
=============================================================================
PCC SERVER
=============================================================================

The orchestrator that ties the core components into the PCC service.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        PCC SERVER ARCHITECTURE                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │    PCCServer    │                          │
    │                        │ (Orchestrator)  │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            │                    │                    │              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │ SocketServer │    │  Shutdown    │    │  Histogram   │        │
    │    │ (accept loop)│    │ Coordinator  │    │ (95 slots)   │        │
    │    └──────┬───────┘    └──────────────┘    └──────────────┘        │
    │           │                                                         │
    │           ▼                                                         │
    │    ┌──────────────┐                                                 │
    │    │  Connection  │                                                 │
    │    └──────────────┘                                                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION LIFECYCLE
=============================================================================

    1. read 4 bytes         → payload size (big-endian u32)
    2. read size bytes      → payload
    3. count                → printable total, histogram updated
    4. encode total         → 4 bytes big-endian
    5. write the 4 bytes
    6. close

    Peer gone at 1, 2 or 5, or payload too large:
        log a warning, close, keep accepting.
    Any other OSError:
        propagate, the process stops without a report.

=============================================================================
"""

import logging
from typing import Optional, TextIO

from .config import ServerConfig
from .counter import Histogram
from .core import (
    SocketServer,
    Connection,
    ConnectionState,
    ShutdownCoordinator,
    ConnectionTerminated,
    PayloadTooLarge,
)


logger = logging.getLogger(__name__)


class PCCServer:
    """
    Printable character counting server.

    Usage:
        server = PCCServer(ServerConfig(port=5000))
        server.run()   # Blocks until Ctrl+C, then prints the histogram

    Attributes:
        config: Server configuration.
        histogram: Counters accumulated over every served connection.
        coordinator: Shutdown flags and SIGINT handler.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        histogram: Optional[Histogram] = None,
        coordinator: Optional[ShutdownCoordinator] = None,
        install_signals: bool = True,
        report_stream: Optional[TextIO] = None,
    ):
        """
        Args:
            config: Server configuration. Defaults are used if not provided.
            histogram: Shared counters. A fresh one if not provided.
            coordinator: Shutdown coordinator. A fresh one if not provided.
            install_signals: Install the SIGINT handler (main thread only).
            report_stream: Where the shutdown report goes. Default stdout.
        """
        self.config = config or ServerConfig()
        self.config.validate()  # Fail-fast on invalid config

        self.histogram = histogram if histogram is not None else Histogram()
        self.coordinator = coordinator or ShutdownCoordinator()
        self.report_stream = report_stream

        self._socket_server = SocketServer(
            self.config,
            self.coordinator,
            install_signals=install_signals,
        )

        self.connections_served = 0
        self.connections_abandoned = 0

    @property
    def address(self):
        return self._socket_server.address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def shutdown(self) -> bool:
        """Request a graceful shutdown. See ShutdownCoordinator.request_shutdown()."""
        return self.coordinator.request_shutdown()

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Start the server (blocking).

        Returns after a graceful shutdown, once the histogram report has
        been printed. Fatal errors propagate without a report.
        """
        self._setup_logging()

        try:
            self._socket_server.start(self.handle_connection, on_shutdown=self._report)
        finally:
            self.coordinator.close()

        logger.info(
            f"Server stopped after {self.connections_served} connections "
            f"({self.connections_abandoned} abandoned)"
        )

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("pcc").setLevel(level)

    def _report(self):
        """Print the histogram. Only ever called with the accept loop stopped."""
        logger.info("Printing printable character statistics")
        self.histogram.write_report(self.report_stream)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def handle_connection(self, conn: Connection):
        """
        Serve one PCC exchange and close the connection.

        Per-connection failures are logged and swallowed here so the
        accept loop keeps running. Other OSErrors propagate.

        Args:
            conn: The accepted client connection.
        """
        with conn:  # Context manager ensures connection is closed
            try:
                payload = conn.read_frame()

                conn.state = ConnectionState.COUNTING
                total = self.histogram.observe(payload)

                conn.send_count(total)

            except ConnectionTerminated as e:
                self.connections_abandoned += 1
                logger.warning(f"[{conn.id}] Client connection terminated ({conn.state.value}): {e}")
                return

            except PayloadTooLarge as e:
                self.connections_abandoned += 1
                logger.warning(f"[{conn.id}] Rejected connection from {conn.client_ip}: {e}")
                return

        self.connections_served += 1
        logger.info(
            f"[{conn.id}] {conn.client_ip}:{conn.client_port} sent {conn.bytes_received} bytes, "
            f"{total} printable"
        )


def create_server(config: Optional[ServerConfig] = None, **kwargs) -> PCCServer:
    """
    Factory function for creating server instances.

    Example:
        server = create_server(ServerConfig(port=5000))
        server.run()
    """
    return PCCServer(config, **kwargs)
