"""
=============================================================================
GRACEFUL SHUTDOWN COORDINATION
=============================================================================

The server must never stop halfway through a connection, and must never
print the histogram while it is being updated. Ctrl+C (SIGINT) can arrive
at ANY moment, so the decision "stop now or stop later?" depends on what
the accept loop is doing at that instant.

=============================================================================
STATE MACHINE
=============================================================================

                    accept() returned a connection
          ┌──────────┐  ─────────────────────────►  ┌──────────┐
          │   IDLE   │                               │   BUSY   │
          └──────────┘  ◄─────────────────────────  └──────────┘
               │          connection handled            │
               │          (success or abandoned)        │
               │                                        │
          SIGINT                                   SIGINT
               │                                        │
               ▼                                        ▼
      flag set + wake accept                    flag set only
      → loop reports & exits                    → connection finishes
        immediately                             → loop sees flag on its
                                                  way back to IDLE,
                                                  reports & exits

The "shutdown requested" flag is ONE-SHOT: set once, never cleared.

=============================================================================
COOPERATIVE CANCELLATION
=============================================================================

The signal handler does not print or exit on its own. It only:

    1. sets the flag (threading.Event gives cross-thread visibility)
    2. writes one byte to a wake-up socket pair

The accept loop waits with select() on BOTH the listening socket and the
wake-up socket. A byte on the wake-up socket makes an idle loop return at
once, see the flag and run the shutdown report itself. A busy loop is not
waiting in select(), so it only notices the flag once its connection is
done.

    ┌──────────────┐   send(b"\\0")   ┌──────────────┐
    │ SIGINT / any │ ───────────────► │  wake socket │ ──┐
    │   thread     │                  └──────────────┘   │  select()
    └──────────────┘                  ┌──────────────┐   ├──────────► accept loop
                                      │  listener    │ ──┘
                                      └──────────────┘

Only SIGINT is handled. Python runs signal handlers in the main thread, so
install() must be called from there; servers running in a background thread
(tests) call request_shutdown() directly instead.

=============================================================================
"""

import enum
import select
import signal
import socket
import logging
import threading
from typing import Dict, Iterable, Optional


logger = logging.getLogger(__name__)


class ServerState(enum.Enum):
    """What the accept loop is doing."""
    IDLE = "idle"    # Waiting for (or about to wait for) a connection
    BUSY = "busy"    # Between accept and close of a connection


class ShutdownCoordinator:
    """
    Owns the two process-wide shutdown flags and the SIGINT handler.

    Attributes:
        signals: Signals that trigger a graceful shutdown.

    Usage:
        coordinator = ShutdownCoordinator()
        coordinator.install()                  # main thread only

        while not coordinator.shutdown_requested:
            if not coordinator.wait_for_connection(listener):
                continue
            conn = accept()
            if not coordinator.enter_connection():
                conn.close()
                break
            try:
                handle(conn)
            finally:
                coordinator.leave_connection()
    """

    def __init__(self, signals: Iterable[int] = (signal.SIGINT,)):
        self.signals = tuple(signals)

        # handling_client / shutdown_requested
        self._busy = threading.Event()
        self._shutdown = threading.Event()

        self._wake_reader, self._wake_writer = socket.socketpair()
        self._wake_reader.setblocking(False)
        self._wake_writer.setblocking(False)

        self._original_handlers: Dict[int, object] = {}
        self._original_wakeup_fd: Optional[int] = None

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def state(self) -> ServerState:
        return ServerState.BUSY if self._busy.is_set() else ServerState.IDLE

    @property
    def is_busy(self) -> bool:
        """True exactly while a connection is between accept and close."""
        return self._busy.is_set()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    def enter_connection(self) -> bool:
        """
        IDLE → BUSY, right after accept() returned a connection.

        The busy flag is raised before the shutdown flag is read. A request
        that lands after that read sees BUSY and is reported as deferred;
        one that lands before it makes this return False.

        Returns:
            False if a shutdown was already requested. The state stays IDLE
            and the connection must be closed without being served.
        """
        self._busy.set()
        if self._shutdown.is_set():
            self._busy.clear()
            return False
        return True

    def leave_connection(self):
        """BUSY → IDLE, after the connection is handled and before the next accept."""
        self._busy.clear()

    # =========================================================================
    # SHUTDOWN REQUESTS
    # =========================================================================

    def request_shutdown(self) -> bool:
        """
        Ask the accept loop to stop.

        Safe to call from a signal handler or from another thread, and
        safe to call more than once.

        Returns:
            True if the shutdown is deferred until the current connection
            finishes, False if the loop is idle and will stop right away.
        """
        self._shutdown.set()
        self._wake()
        return self._busy.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until a shutdown has been requested. False on timeout."""
        return self._shutdown.wait(timeout)

    def _wake(self):
        if self._wake_writer.fileno() == -1:
            return  # Already closed, nobody is waiting
        try:
            self._wake_writer.send(b"\0")
        except BlockingIOError:
            pass  # Buffer full: a wake-up is already pending

    def _drain_wakeups(self):
        try:
            while self._wake_reader.recv(64):
                pass
        except BlockingIOError:
            pass

    def wait_for_connection(self, listener: socket.socket, timeout: Optional[float] = None) -> bool:
        """
        Block until the listener has a pending connection.

        Returns False when woken by a shutdown request or when the timeout
        expires; the caller re-checks shutdown_requested and retries. Once
        a shutdown is requested this never returns True, so an idle loop
        accepts nothing more.

        Args:
            listener: The listening socket.
            timeout: Seconds to wait. None = until something happens.

        Returns:
            True if accept() can be called without blocking.
        """
        if self._shutdown.is_set():
            return False

        readable, _, _ = select.select([listener, self._wake_reader], [], [], timeout)

        if self._wake_reader in readable:
            self._drain_wakeups()
            return False
        return listener in readable and not self._shutdown.is_set()

    # =========================================================================
    # SIGNAL HANDLING
    # =========================================================================

    def _handle_signal(self, signum, frame):
        """
        SIGINT handler.

        Only flips the flag and wakes the loop. It does not log: the main
        thread may be halfway through writing a record to stderr. The
        accept loop reports the shutdown instead.

        Args:
            signum: The signal number.
            frame: The interrupted stack frame (unused).
        """
        self.request_shutdown()

    def install(self):
        """
        Install the shutdown handler, remembering the previous ones.

        The wake-up socket is also registered with signal.set_wakeup_fd(),
        so a signal wakes select() even if the OS delivered it to another
        thread and the Python-level handler has not run yet.
        """
        for sig in self.signals:
            self._original_handlers[sig] = signal.signal(sig, self._handle_signal)
        self._original_wakeup_fd = signal.set_wakeup_fd(
            self._wake_writer.fileno(), warn_on_full_buffer=False
        )
        names = ", ".join(signal.Signals(sig).name for sig in self.signals)
        logger.debug(f"Installed graceful shutdown handler for {names}")

    def restore(self):
        """Restore the handlers that were active before install()."""
        if self._original_wakeup_fd is not None:
            signal.set_wakeup_fd(self._original_wakeup_fd)
            self._original_wakeup_fd = None

        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def close(self):
        """Restore signal handlers and release the wake-up sockets."""
        self.restore()
        self._wake_reader.close()
        self._wake_writer.close()
