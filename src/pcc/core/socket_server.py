"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

This module owns the listening socket and the accept loop. It knows
nothing about printable characters: every accepted connection is handed
to a callback, one at a time.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create a TCP socket
    2. setsockopt  SO_REUSEADDR, so a restart does not hit
                   "Address already in use" while old sockets sit in TIME_WAIT
    3. bind()      Associate the socket with HOST:PORT
    4. listen()    Queue up to `backlog` pending connections
    5. accept()    One connection at a time (see below)
    6. close()     Release the listening socket

=============================================================================
ITERATIVE ACCEPT LOOP
=============================================================================

    ┌─────────────────────────────────────────────────────────────────┐
    │                     Accept Loop Flow                             │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   while not shutdown_requested:                                  │
    │       │                                                          │
    │       ├──► wait_for_connection()   select() on listener + wake   │
    │       │       └── woken / EINTR → continue (re-check the flag)   │
    │       │                                                          │
    │       ├──► accept()                                              │
    │       │       └── EAGAIN / EINTR → continue                      │
    │       │       └── other error    → raise (fatal)                 │
    │       │                                                          │
    │       ├──► enter_connection()      IDLE → BUSY                   │
    │       │       └── shutdown already requested → close, stop       │
    │       ├──► handler(conn)           runs to completion            │
    │       └──► leave_connection()      BUSY → IDLE                   │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

Connections are never handled concurrently. The next accept() only
happens after the previous connection was closed.

=============================================================================
"""

import socket
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection
from .shutdown import ShutdownCoordinator


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level iterative TCP server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    open()            socket, SO_REUSEADDR, bind, listen,             │
    │                      install SIGINT handler                          │
    │                                                                      │
    │    serve(handler)    accept loop, returns when shutdown requested    │
    │                                                                      │
    │    close()           restore signal handlers, close listener         │
    │                                                                      │
    │    start(handler)    open() + serve() + close() in one call          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        def handle_connection(conn: Connection):
            ...

        server = SocketServer(config, ShutdownCoordinator())
        server.start(handle_connection)  # Blocks until shutdown
    """

    def __init__(
        self,
        config: ServerConfig,
        coordinator: ShutdownCoordinator,
        install_signals: bool = True,
    ):
        """
        Args:
            config: Host, port, backlog and per-connection settings.
            coordinator: Shutdown flags shared with the signal handler.
            install_signals: Install the SIGINT handler in open(). Must be
                             False when the server runs outside the main
                             thread.
        """
        self.config = config
        self.coordinator = coordinator
        self.install_signals = install_signals

        self._socket: Optional[socket.socket] = None

        # Set once the socket is listening (tests wait on this)
        self._ready = threading.Event()

    @property
    def address(self) -> Tuple[str, int]:
        """The bound address. After open(), the real port even if config.port was 0."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is listening. False on timeout."""
        return self._ready.wait(timeout)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # accept() only runs once select() reported a pending connection.
        # Non-blocking protects against the client vanishing in between.
        sock.setblocking(False)
        return sock

    def open(self):
        """
        Create, bind and listen.

        Raises:
            OSError: On any setup failure. These are fatal.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to listen on {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        if self.install_signals:
            self.coordinator.install()

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        self._ready.set()

    def _accept(self) -> Optional[Connection]:
        """
        Wait for and accept one connection.

        Returns:
            The connection, or None if the wait was interrupted (shutdown
            wake-up, signal, spurious readiness). The caller retries.

        Raises:
            OSError: An accept failure unrelated to interruption (fatal).
        """
        if not self.coordinator.wait_for_connection(self._socket):
            return None

        try:
            client_socket, client_address = self._socket.accept()
        except (BlockingIOError, InterruptedError):
            return None

        return Connection(
            socket=client_socket,
            address=client_address,
            buffer_size=self.config.buffer_size,
            timeout=self.config.timeout,
            max_payload_size=self.config.max_payload_size,
        )

    def serve(self, connection_handler: Callable[[Connection], None]) -> bool:
        """
        Run the accept loop until a shutdown is requested.

        Args:
            connection_handler: Called once per connection, in this thread.
                                It must close the connection.

        Returns:
            True once the loop stopped because shutdown was requested.

        Raises:
            OSError: Fatal accept or I/O failures propagate.
        """
        if self._socket is None:
            raise RuntimeError("serve() called before open()")

        while not self.coordinator.shutdown_requested:
            conn = self._accept()
            if conn is None:
                continue

            if not self.coordinator.enter_connection():
                # Shutdown requested between select() and accept()
                logger.debug(f"[{conn.id}] Closing {conn.client_ip}:{conn.client_port} unserved, shutting down")
                conn.close()
                break

            try:
                logger.debug(f"[{conn.id}] Accepted connection from {conn.client_ip}:{conn.client_port}")
                connection_handler(conn)
            finally:
                self.coordinator.leave_connection()

            if self.coordinator.shutdown_requested:
                logger.info(f"[{conn.id}] Shutdown requested during connection, finished it first")

        logger.info("Shutdown requested, accept loop stopped")
        return True

    def close(self):
        """Restore signal handlers and close the listening socket."""
        if self.install_signals:
            self.coordinator.restore()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        self._ready.clear()
        logger.info("Socket server stopped")

    def start(
        self,
        connection_handler: Callable[[Connection], None],
        on_shutdown: Optional[Callable[[], None]] = None,
    ) -> None:
        """
        Open, serve until shutdown, close.

        Args:
            connection_handler: Called for each connection.
            on_shutdown: Called after a graceful stop, before the listening
                         socket is released. Not called on fatal errors.
        """
        self.open()
        try:
            if self.serve(connection_handler) and on_shutdown is not None:
                on_shutdown()
        finally:
            self.close()
