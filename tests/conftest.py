"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Generator, List, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from linerelay import RelayServer, RelayConfig
from linerelay.config import WELCOME_MESSAGE
from linerelay.core.connection import Connection


@pytest.fixture
def config() -> RelayConfig:
    """Default test relay configuration."""
    return RelayConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        log_level="WARNING",
    )


@pytest.fixture
def socket_pair() -> Generator[Tuple[socket.socket, socket.socket], None, None]:
    """A connected (local, remote) socket pair."""
    local, remote = socket.socketpair()
    yield local, remote
    local.close()
    remote.close()


@pytest.fixture
def make_connection():
    """
    Factory for Connections backed by socketpairs.

    Returns (connection, remote_end); everything is closed after the test.
    """
    sockets: List[socket.socket] = []

    def factory(host: str = "10.0.0.1", port: int = 5000) -> Tuple[Connection, socket.socket]:
        local, remote = socket.socketpair()
        local.setblocking(False)
        remote.settimeout(1.0)
        sockets.extend([local, remote])
        return Connection(socket=local, address=(host, port)), remote

    yield factory

    for s in sockets:
        s.close()


class RunningRelay:
    """Relay server helper that runs in a background thread."""

    def __init__(self, server: RelayServer):
        self.server = server
        self._thread: threading.Thread = None
        self._clients: List[socket.socket] = []

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        """Start server in background thread."""
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Relay failed to start")

    def connect(self) -> socket.socket:
        """Open a client connection and consume the welcome message."""
        sock = socket.create_connection(("127.0.0.1", self.port), timeout=2.0)
        self._clients.append(sock)
        assert recv_exactly(sock, len(WELCOME_MESSAGE)) == WELCOME_MESSAGE.encode()
        return sock

    def wait_for_connections(self, count: int, timeout: float = 2.0):
        """Wait until the relay has registered ``count`` peers."""
        deadline = time.time() + timeout
        while time.time() < deadline:
            if self.server.connection_count == count:
                return
            time.sleep(0.01)
        raise AssertionError(
            f"Expected {count} connections, relay has {self.server.connection_count}"
        )

    def stop(self):
        """Stop the server."""
        for sock in self._clients:
            sock.close()

        self.server.shutdown()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


def recv_exactly(sock: socket.socket, size: int) -> bytes:
    """Read exactly ``size`` bytes (or whatever arrives before EOF)."""
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def recv_line(sock: socket.socket) -> bytes:
    """Read up to and including the next b"\\n"."""
    data = b""
    while not data.endswith(b"\n"):
        chunk = sock.recv(1)
        if not chunk:
            break
        data += chunk
    return data


def assert_closed_by_server(sock: socket.socket):
    """Assert that the relay closed ``sock`` (FIN or RST)."""
    try:
        data = sock.recv(1024)
    except ConnectionResetError:
        return
    assert data == b"", f"Expected close, got {data!r}"


def assert_nothing_received(sock: socket.socket, wait: float = 0.2):
    """Assert that no bytes arrive on ``sock`` within ``wait`` seconds."""
    sock.settimeout(wait)
    try:
        data = sock.recv(1024)
    except socket.timeout:
        return
    finally:
        sock.settimeout(2.0)
    raise AssertionError(f"Unexpected data: {data!r}")


@pytest.fixture
def relay(config: RelayConfig) -> Generator[RunningRelay, None, None]:
    """A relay listening on a free localhost port."""
    running = RunningRelay(RelayServer(config))
    running.start()

    yield running

    running.stop()
