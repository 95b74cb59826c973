"""
Unit tests for payload formatting and fanout.
"""

import pytest

from linerelay.core.broadcast import Broadcaster, format_payload
from linerelay.core.registry import ConnectionRegistry


class ShortWriteSocket:
    """Socket stand-in whose send() only ever accepts one byte."""

    def __init__(self, fd: int):
        self._fd = fd

    def fileno(self) -> int:
        return self._fd

    def send(self, data: bytes) -> int:
        return 1

    def close(self):
        pass


class TestFormatPayload:
    """Tests for format_payload()."""

    def test_basic_format(self):
        """Test the "<host>:<port>: text\\n" layout."""
        assert format_payload("10.0.0.7:51812", b"hello") == b"10.0.0.7:51812: hello\n"

    def test_short_payload_untouched(self):
        payload = format_payload("1.2.3.4:5", b"x" * 10, max_size=64)
        assert payload == b"1.2.3.4:5: " + b"x" * 10 + b"\n"

    def test_truncates_to_exact_size(self):
        """Test that long text is cut so the payload is exactly max_size."""
        payload = format_payload("1.2.3.4:5", b"x" * 500, max_size=64)

        assert len(payload) == 64
        assert payload.startswith(b"1.2.3.4:5: xxx")
        assert payload.endswith(b"x\n")
        assert payload.count(b"\n") == 1

    def test_payload_exactly_at_limit_not_truncated(self):
        prefix_len = len(b"1.2.3.4:5: ")
        text = b"y" * (64 - prefix_len - 1)

        payload = format_payload("1.2.3.4:5", text, max_size=64)

        assert payload == b"1.2.3.4:5: " + text + b"\n"

    def test_truncation_is_deterministic(self):
        text = b"abcdefghij" * 20
        assert format_payload("h:1", text, 64) == format_payload("h:1", text, 64)

    def test_prefix_longer_than_limit(self):
        """Even an oversized prefix ends in exactly one newline."""
        payload = format_payload("a" * 100 + ":1", b"text", max_size=10)

        assert len(payload) == 10
        assert payload.endswith(b"\n")
        assert payload.count(b"\n") == 1

    def test_truncation_keeps_utf8_characters_whole(self):
        """Test that a cut inside a multi-byte character backs off before it."""
        text = b"a" + "é".encode("utf-8") * 40

        payload = format_payload("1.2.3.4:5", text, max_size=64)

        assert len(payload) == 63
        assert payload.endswith("é\n".encode("utf-8"))
        payload.decode("utf-8")

    def test_truncation_of_four_byte_characters(self):
        text = "😀".encode("utf-8") * 30

        payload = format_payload("1.2.3.4:5", text, max_size=64)

        assert len(payload) <= 64
        assert payload.decode("utf-8") == "1.2.3.4:5: " + "😀" * 13 + "\n"

    def test_non_utf8_text_still_cut_to_size(self):
        payload = format_payload("1.2.3.4:5", b"\x80" * 200, max_size=64)

        assert len(payload) == 64
        assert payload.endswith(b"\x80\n")


class TestBroadcaster:
    """Tests for Broadcaster.broadcast()."""

    @pytest.fixture
    def dropped(self):
        return []

    @pytest.fixture
    def registry(self):
        return ConnectionRegistry()

    @pytest.fixture
    def broadcaster(self, registry, dropped):
        def disconnect(conn, reason):
            registry.unregister(conn.fd)
            dropped.append((conn, reason))

        return Broadcaster(registry, disconnect=disconnect, max_message_size=1024)

    def _register(self, registry, make_connection, port):
        conn, remote = make_connection(host="10.0.0.1", port=port)
        return registry.register(conn.socket, conn.address), remote

    def test_everyone_but_origin_receives(self, registry, broadcaster, make_connection):
        """Test that the origin never gets its own message echoed back."""
        origin, origin_remote = self._register(registry, make_connection, 1)
        peer_b, remote_b = self._register(registry, make_connection, 2)
        peer_c, remote_c = self._register(registry, make_connection, 3)

        delivered = broadcaster.broadcast(origin, b"hello")

        assert delivered == 2
        assert remote_b.recv(1024) == b"10.0.0.1:1: hello\n"
        assert remote_c.recv(1024) == b"10.0.0.1:1: hello\n"

        origin_remote.setblocking(False)
        with pytest.raises(BlockingIOError):
            origin_remote.recv(1024)

    def test_alone_delivers_nothing(self, registry, broadcaster, make_connection):
        origin, _ = self._register(registry, make_connection, 1)
        assert broadcaster.broadcast(origin, b"anyone?") == 0

    def test_failed_peer_dropped_others_still_served(
        self, registry, broadcaster, dropped, make_connection
    ):
        """Test that a broken peer mid-fanout does not stop the fanout."""
        origin, _ = self._register(registry, make_connection, 1)
        broken, _ = self._register(registry, make_connection, 2)
        healthy, remote_healthy = self._register(registry, make_connection, 3)

        broken.socket.close()

        delivered = broadcaster.broadcast(origin, b"ping")

        assert delivered == 1
        assert remote_healthy.recv(1024) == b"10.0.0.1:1: ping\n"
        assert [conn for conn, _ in dropped] == [broken]
        assert registry.lookup(broken.fd) is None

    def test_partial_write_counts_as_failure(self, registry, broadcaster, dropped, make_connection):
        """Test that a short send drops the peer instead of blocking."""
        origin, _ = self._register(registry, make_connection, 1)
        short = registry.register(ShortWriteSocket(fd=9999), ("10.0.0.2", 2))

        delivered = broadcaster.broadcast(origin, b"long enough")

        assert delivered == 0
        assert dropped == [(short, "write failed")]

    def test_payload_truncated_on_the_wire(self, registry, make_connection):
        broadcaster = Broadcaster(registry, disconnect=lambda c, r: None, max_message_size=64)
        origin, _ = self._register(registry, make_connection, 1)
        _, remote = self._register(registry, make_connection, 2)

        broadcaster.broadcast(origin, b"z" * 1000)

        data = remote.recv(1024)
        assert len(data) == 64
        assert data.endswith(b"\n")
