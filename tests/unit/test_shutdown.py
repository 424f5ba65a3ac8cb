"""
Unit tests for the shutdown coordinator.
"""

import logging
import signal
import socket
import threading
import time

import pytest

from pcc.core.shutdown import ShutdownCoordinator, ServerState


@pytest.fixture
def coordinator():
    coord = ShutdownCoordinator()
    yield coord
    coord.close()


@pytest.fixture
def listener():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    sock.setblocking(False)
    yield sock
    sock.close()


class TestStateMachine:
    """Tests for the IDLE/BUSY transitions and the shutdown flag."""

    def test_initial_state(self, coordinator):
        assert coordinator.state is ServerState.IDLE
        assert not coordinator.is_busy
        assert not coordinator.shutdown_requested

    def test_enter_and_leave(self, coordinator):
        coordinator.enter_connection()
        assert coordinator.state is ServerState.BUSY
        assert coordinator.is_busy

        coordinator.leave_connection()
        assert coordinator.state is ServerState.IDLE

    def test_request_while_idle_is_immediate(self, coordinator):
        deferred = coordinator.request_shutdown()

        assert deferred is False
        assert coordinator.shutdown_requested

    def test_request_while_busy_is_deferred(self, coordinator):
        coordinator.enter_connection()

        deferred = coordinator.request_shutdown()

        assert deferred is True
        assert coordinator.shutdown_requested
        assert coordinator.is_busy  # The connection is not interrupted

    def test_enter_after_shutdown_is_refused(self, coordinator):
        assert coordinator.request_shutdown() is False

        assert coordinator.enter_connection() is False
        assert coordinator.state is ServerState.IDLE

    def test_enter_accepted_while_running(self, coordinator):
        assert coordinator.enter_connection() is True
        assert coordinator.is_busy

    def test_request_after_enter_is_deferred(self, coordinator):
        """Once enter_connection() succeeded, a request can only be deferred."""
        assert coordinator.enter_connection() is True

        assert coordinator.request_shutdown() is True
        assert coordinator.is_busy

    def test_flag_is_one_shot(self, coordinator):
        coordinator.request_shutdown()
        coordinator.enter_connection()
        coordinator.leave_connection()
        coordinator.request_shutdown()

        assert coordinator.shutdown_requested

    def test_wait(self, coordinator):
        assert coordinator.wait(timeout=0.01) is False
        coordinator.request_shutdown()
        assert coordinator.wait(timeout=0.01) is True

    def test_request_after_close_is_harmless(self):
        coord = ShutdownCoordinator()
        coord.close()

        assert coord.request_shutdown() is False
        assert coord.shutdown_requested


class TestWaitForConnection:
    """Tests for the interruptible wait on the listening socket."""

    def test_times_out(self, coordinator, listener):
        assert coordinator.wait_for_connection(listener, timeout=0.05) is False

    def test_pending_connection(self, coordinator, listener):
        client = socket.create_connection(listener.getsockname())
        try:
            assert coordinator.wait_for_connection(listener, timeout=2.0) is True
        finally:
            client.close()

    def test_woken_by_shutdown_request(self, coordinator, listener):
        """A blocked wait returns as soon as shutdown is requested from elsewhere."""
        timer = threading.Timer(0.1, coordinator.request_shutdown)
        timer.start()
        try:
            started = time.monotonic()
            result = coordinator.wait_for_connection(listener, timeout=5.0)
            elapsed = time.monotonic() - started
        finally:
            timer.cancel()

        assert result is False
        assert elapsed < 4.0

    def test_never_ready_after_shutdown(self, coordinator, listener):
        """Once shutdown is requested, even a pending connection is not accepted."""
        client = socket.create_connection(listener.getsockname())
        try:
            coordinator.request_shutdown()
            assert coordinator.wait_for_connection(listener, timeout=0.5) is False
            assert coordinator.wait_for_connection(listener, timeout=0.5) is False
        finally:
            client.close()


class TestSignalHandling:
    """Tests for the SIGINT handler (pytest runs tests in the main thread)."""

    def test_install_and_restore(self, coordinator):
        original = signal.getsignal(signal.SIGINT)

        coordinator.install()
        assert signal.getsignal(signal.SIGINT) == coordinator._handle_signal

        coordinator.restore()
        assert signal.getsignal(signal.SIGINT) == original

    def test_handler_while_idle(self, coordinator):
        coordinator._handle_signal(signal.SIGINT, None)

        assert coordinator.shutdown_requested
        assert not coordinator.is_busy

    def test_handler_does_not_log(self, coordinator, caplog):
        coordinator.enter_connection()

        with caplog.at_level(logging.DEBUG, logger="pcc"):
            coordinator._handle_signal(signal.SIGINT, None)

        assert caplog.records == []

    def test_handler_while_busy(self, coordinator):
        coordinator.enter_connection()

        coordinator._handle_signal(signal.SIGINT, None)

        assert coordinator.shutdown_requested
        assert coordinator.is_busy

    def test_delivered_sigint(self, coordinator):
        coordinator.install()
        try:
            signal.raise_signal(signal.SIGINT)
        finally:
            coordinator.restore()

        assert coordinator.shutdown_requested
