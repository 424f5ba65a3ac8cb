"""
pytest configuration and fixtures.
"""

import io
import socket
import threading
from typing import Generator, List, Optional, Union
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pcc import PCCServer, ServerConfig
from pcc.core.framing import encode_length, read_exact, decode_length


class ScriptedSocket:
    """
    Stand-in for a connected socket with a scripted sequence of outcomes.

    Each recv_into()/send() call consumes the next step of its script:
    - bytes: data delivered by recv_into(), split if larger than asked for
    - int: number of bytes accepted by send()
    - an exception instance: raised
    Once the recv script runs out, recv_into() reports EOF.
    """

    def __init__(self, reads: Optional[List[Union[bytes, Exception]]] = None,
                 sends: Optional[List[Union[int, Exception]]] = None):
        self.reads = list(reads or [])
        self.sends = list(sends or [])
        self.sent = bytearray()
        self.recv_calls = 0
        self.send_calls = 0
        self.timeout = None
        self.closed = False

    def recv_into(self, buffer, nbytes=0):
        self.recv_calls += 1
        if not self.reads:
            return 0
        step = self.reads.pop(0)
        if isinstance(step, Exception):
            raise step
        nbytes = nbytes or len(buffer)
        data, rest = step[:nbytes], step[nbytes:]
        if rest:
            self.reads.insert(0, rest)
        buffer[:len(data)] = data
        return len(data)

    def send(self, data):
        self.send_calls += 1
        step = self.sends.pop(0) if self.sends else len(data)
        if isinstance(step, Exception):
            raise step
        accepted = bytes(data[:step])
        self.sent.extend(accepted)
        return len(accepted)

    # Lifecycle calls made by Connection

    def setblocking(self, flag):
        pass

    def settimeout(self, value):
        self.timeout = value

    def shutdown(self, how):
        pass

    def close(self):
        self.closed = True


@pytest.fixture
def scripted_socket():
    """Factory for ScriptedSocket instances."""
    return ScriptedSocket


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


def exchange(port: int, payload: bytes, announced: Optional[int] = None) -> int:
    """Send one frame to the server and return the decoded answer."""
    size = len(payload) if announced is None else announced
    with socket.create_connection(('127.0.0.1', port), timeout=5.0) as s:
        s.sendall(encode_length(size) + payload)
        return decode_length(read_exact(s, 4))


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False  # not a test class

    def __init__(self, server: PCCServer, port: int):
        self.server = server
        self.port = port
        self.report = server.report_stream
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    def _run(self):
        try:
            self.server.run()
        except BaseException as e:  # surfaced to the test via self.error
            self.error = e

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def exchange(self, payload: bytes, announced: Optional[int] = None) -> int:
        return exchange(self.port, payload, announced)

    def join(self, timeout: float = 5.0) -> bool:
        """Wait for the server thread to finish. True if it did."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def stop(self):
        """Stop the server."""
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def make_server(free_port: int):
    """Factory for background test servers; all are stopped at teardown."""
    started = []

    def factory(handler=None, coordinator=None, **config_overrides) -> TestServer:
        config = ServerConfig(host="127.0.0.1", port=free_port, log_level="WARNING")
        for name, value in config_overrides.items():
            setattr(config, name, value)
        server = PCCServer(
            config,
            coordinator=coordinator,
            install_signals=False,
            report_stream=io.StringIO(),
        )
        if handler is not None:
            server.handle_connection = handler
        test_srv = TestServer(server, free_port)
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def test_server(make_server) -> Generator[TestServer, None, None]:
    """A running test server with default configuration."""
    yield make_server()
