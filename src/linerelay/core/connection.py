"""
=============================================================================
CONNECTION STATE
=============================================================================

This module wraps one accepted peer socket with the little bit of state the
relay needs to keep for it between readiness events.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

    Client sends:
        send("hello\n")
        send("world\n")

    Server might receive ANY of these:
        recv() → "hello\nworld\n"     (both combined)
        recv() → "hel"                (partial)
        recv() → "lo\nworld\n"        (rest of first + second)

So every peer gets its own receive buffer. Bytes that do not yet form a
complete line wait there until the next read on that peer. The framer
(framer.py) decides where the lines are; this module only owns the bytes.

=============================================================================
NON-BLOCKING I/O
=============================================================================

The relay is single-threaded. One stuck peer must never stall the others,
so every peer socket is put in non-blocking mode as soon as it is accepted:

    ┌─────────────────────────────────────────────────────────────────┐
    │  recv() on a readable socket     → returns data (or b"" = FIN)  │
    │  recv() with nothing available   → BlockingIOError              │
    │  send() with a full kernel buffer→ BlockingIOError / partial    │
    └─────────────────────────────────────────────────────────────────┘

A send that cannot complete immediately is treated as a failed delivery.
There are no per-connection outbound queues.

=============================================================================
"""

import socket
import time
import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Tuple


logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """
    Represents one registered peer.

    Attributes:
        socket: The peer socket (non-blocking once accepted).
        address: Peer (host, port), cached at accept time.
        id: Short identifier for log correlation.
        buffer: Bytes received but not yet forming a complete line.
        connected_at: Timestamp when the peer was accepted.
        lines_received: Number of complete lines framed from this peer.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    buffer: bytearray = field(default_factory=bytearray, repr=False)
    connected_at: float = field(default_factory=time.time)
    lines_received: int = 0

    def __post_init__(self):
        # The file descriptor is read once: after close() fileno() is -1,
        # but the registry still needs the original key to find us.
        self.fd = self.socket.fileno()
        self._closed = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def host(self) -> str:
        """Get the peer host."""
        return self.address[0]

    @property
    def port(self) -> int:
        """Get the peer port."""
        return self.address[1]

    @property
    def label(self) -> str:
        """The "host:port" form used in broadcast prefixes and logs."""
        return f"{self.host}:{self.port}"

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.connected_at

    # =========================================================================
    # READING
    # =========================================================================

    def receive(self, size: int) -> Optional[bytes]:
        """
        Perform ONE read of up to ``size`` bytes.

        ┌─────────────────────────────────────────────────────────────────┐
        │  Outcome                    Return     What the caller does     │
        ├─────────────────────────────────────────────────────────────────┤
        │  data arrived               bytes      feed it to the framer    │
        │  orderly shutdown (FIN)     b""        drop the connection      │
        │  read error (RST, ...)      b""        drop the connection      │
        │  interrupted by a signal    (retried)  -                        │
        │  nothing there after all    None       ignore, wait again       │
        └─────────────────────────────────────────────────────────────────┘

        A read error and an orderly shutdown are handled the same way; only
        the log line differs.
        """
        while True:
            try:
                data = self.socket.recv(size)
            except InterruptedError:
                continue
            except BlockingIOError:
                return None
            except OSError as e:
                logger.warning(f"[{self.id}] Read error from {self.label}: {e}")
                return b""

            if not data:
                logger.info(f"[{self.id}] {self.label} hung up")
            return data

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Send ``data`` without blocking.

        The whole payload must be accepted by the kernel in one call. A
        partial write is reported as a failure, because there is nowhere to
        keep the unsent tail.

        Returns:
            True if every byte was handed to the kernel, False otherwise.
        """
        while True:
            try:
                sent = self.socket.send(data)
            except InterruptedError:
                continue
            except BlockingIOError:
                logger.warning(f"[{self.id}] Send to {self.label} would block")
                return False
            except OSError as e:
                logger.warning(f"[{self.id}] Send to {self.label} failed: {e}")
                return False
            break

        if sent < len(data):
            logger.warning(
                f"[{self.id}] Partial send to {self.label}: {sent}/{len(data)} bytes"
            )
            return False
        return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the socket and drop any buffered partial line.

        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        self.buffer.clear()

        try:
            self.socket.close()
        except OSError:
            pass  # Already gone, nothing left to release

        logger.debug(
            f"[{self.id}] Connection {self.label} closed after "
            f"{self.lines_received} lines ({self.age:.1f}s)"
        )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
