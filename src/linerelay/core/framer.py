"""
=============================================================================
LINE FRAMING
=============================================================================

Turns the raw bytes received from one peer into complete text lines.

    buffer (before)  chunk              lines yielded     buffer (after)
    ───────────────  ─────────────────  ────────────────  ──────────────
    b""              b"hel"             -                 b"hel"
    b"hel"           b"lo\r\nwor"       b"hello"          b"wor"
    b"wor"           b"ld\n\na\n"       b"world", b"a"    b""
                                        (b"" discarded)

RULES
─────
1. A line ends at "\n". One "\r" right before it is stripped.
2. Data after the last "\n" stays buffered for the next read.
3. Empty lines are extracted and thrown away.
4. A line longer than max_line_length raises FramingError. This covers
   both a complete line and an unterminated tail that has grown too big.
   The connection is then closed by the server.

The framer is a generator so the caller broadcasts each line as soon as
it is found. If the third line of a chunk is oversized, the first two
have already gone out before FramingError is raised.

=============================================================================
"""

from typing import Iterator

from ..errors import FramingError
from .connection import Connection


READ_CHUNK_SIZE = 4096

LINE_TERMINATOR = b"\n"


class LineFramer:
    """
    Extracts newline-terminated lines from a Connection's receive buffer.

    Holds no per-peer state of its own; the buffer lives on the Connection.
    """

    def __init__(self, max_line_length: int = 4096):
        self.max_line_length = max_line_length

    def feed(self, conn: Connection, chunk: bytes) -> Iterator[bytes]:
        """
        Append ``chunk`` to the peer's buffer and yield every complete line.

        Yields:
            Line payloads without terminator, never empty.

        Raises:
            FramingError: A line (or the unterminated tail) is too long.
        """
        buffer = conn.buffer
        buffer += chunk

        while True:
            end = buffer.find(LINE_TERMINATOR)
            if end < 0:
                break

            line = bytes(buffer[:end])
            del buffer[:end + 1]

            if line.endswith(b"\r"):
                line = line[:-1]

            if len(line) > self.max_line_length:
                raise FramingError(len(line), self.max_line_length)

            if not line:
                continue

            conn.lines_received += 1
            yield line

        # A trailing "\r" may still be the first half of "\r\n".
        pending = len(buffer) - buffer.endswith(b"\r")
        if pending > self.max_line_length:
            raise FramingError(pending, self.max_line_length)
