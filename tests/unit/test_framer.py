"""
Unit tests for line framing.
"""

import pytest

from linerelay.core.framer import LineFramer
from linerelay.errors import FramingError


class TestLineFramer:
    """Tests for LineFramer.feed()."""

    def test_single_complete_line(self, make_connection):
        """Test that a terminated line is yielded without its terminator."""
        conn, _ = make_connection()
        framer = LineFramer()

        assert list(framer.feed(conn, b"hello\n")) == [b"hello"]
        assert conn.buffer == b""
        assert conn.lines_received == 1

    def test_partial_line_stays_buffered(self, make_connection):
        """Test that an unterminated line is never yielded."""
        conn, _ = make_connection()
        framer = LineFramer()

        assert list(framer.feed(conn, b"hel")) == []
        assert conn.buffer == b"hel"

    def test_line_split_across_reads(self, make_connection):
        """Test that two reads of one logical line yield one line."""
        conn, _ = make_connection()
        framer = LineFramer()

        assert list(framer.feed(conn, b"hel")) == []
        assert list(framer.feed(conn, b"lo\n")) == [b"hello"]

    def test_two_lines_in_one_read(self, make_connection):
        """Test that "a\\nb\\n" yields a then b."""
        conn, _ = make_connection()
        framer = LineFramer()

        assert list(framer.feed(conn, b"a\nb\n")) == [b"a", b"b"]

    def test_remainder_kept_after_complete_lines(self, make_connection):
        conn, _ = make_connection()
        framer = LineFramer()

        assert list(framer.feed(conn, b"one\ntw")) == [b"one"]
        assert conn.buffer == b"tw"
        assert list(framer.feed(conn, b"o\n")) == [b"two"]

    def test_carriage_return_stripped(self, make_connection):
        """Test telnet-style CRLF endings."""
        conn, _ = make_connection()
        framer = LineFramer()

        assert list(framer.feed(conn, b"hello\r\n")) == [b"hello"]

    def test_only_one_carriage_return_stripped(self, make_connection):
        conn, _ = make_connection()
        framer = LineFramer()

        assert list(framer.feed(conn, b"x\r\r\n")) == [b"x\r"]

    def test_crlf_split_between_reads(self, make_connection):
        conn, _ = make_connection()
        framer = LineFramer()

        assert list(framer.feed(conn, b"hi\r")) == []
        assert list(framer.feed(conn, b"\n")) == [b"hi"]

    def test_empty_lines_discarded(self, make_connection):
        """Test that blank lines are consumed but not yielded."""
        conn, _ = make_connection()
        framer = LineFramer()

        assert list(framer.feed(conn, b"\n\r\na\n\n")) == [b"a"]
        assert conn.buffer == b""
        assert conn.lines_received == 1

    def test_line_at_limit_accepted(self, make_connection):
        conn, _ = make_connection()
        framer = LineFramer(max_line_length=5)

        assert list(framer.feed(conn, b"12345\r\n")) == [b"12345"]

    def test_oversized_complete_line_rejected(self, make_connection):
        """Test that a terminated line over the limit raises FramingError."""
        conn, _ = make_connection()
        framer = LineFramer(max_line_length=5)

        with pytest.raises(FramingError) as exc_info:
            list(framer.feed(conn, b"123456\n"))

        assert exc_info.value.length == 6
        assert exc_info.value.limit == 5

    def test_oversized_partial_line_rejected(self, make_connection):
        """Test that an unterminated tail cannot grow past the limit."""
        conn, _ = make_connection()
        framer = LineFramer(max_line_length=5)

        assert list(framer.feed(conn, b"123")) == []
        with pytest.raises(FramingError):
            list(framer.feed(conn, b"456"))

    def test_tail_carriage_return_not_counted(self, make_connection):
        """A pending "\\r" may be half of "\\r\\n", so it does not count."""
        conn, _ = make_connection()
        framer = LineFramer(max_line_length=5)

        assert list(framer.feed(conn, b"12345\r")) == []
        assert list(framer.feed(conn, b"\n")) == [b"12345"]

    def test_lines_before_oversized_line_are_yielded(self, make_connection):
        """Test that earlier lines in the same chunk still go out."""
        conn, _ = make_connection()
        framer = LineFramer(max_line_length=5)

        received = []
        with pytest.raises(FramingError):
            for line in framer.feed(conn, b"ok\nfine\ntoolong\nlater\n"):
                received.append(line)

        assert received == [b"ok", b"fine"]

    def test_buffers_are_per_connection(self, make_connection):
        conn_a, _ = make_connection(port=1)
        conn_b, _ = make_connection(port=2)
        framer = LineFramer()

        assert list(framer.feed(conn_a, b"from-a")) == []
        assert list(framer.feed(conn_b, b"from-b\n")) == [b"from-b"]
        assert conn_a.buffer == b"from-a"
