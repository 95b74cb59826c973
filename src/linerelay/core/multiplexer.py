"""
=============================================================================
READINESS MULTIPLEXER
=============================================================================

One thread, many sockets. Instead of a thread per client blocked in recv(),
the relay asks the OS a single question per loop iteration:

    "Which of these sockets have something for me to read?"

=============================================================================
SELECT / POLL / EPOLL / KQUEUE
=============================================================================

The `selectors` module picks the best primitive for the platform:

    Linux   → epoll        macOS/BSD → kqueue        fallback → poll/select

    ┌─────────────────────────────────────────────────────────────────┐
    │                     One loop iteration                           │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   watch set: { listener, fd 5, fd 7, fd 6, wakeup }              │
    │                       │                                          │
    │                       ▼                                          │
    │   selector.select()   BLOCKS (no timeout) until ≥ 1 is readable  │
    │                       │                                          │
    │                       ▼                                          │
    │   ready:  { fd 6, listener, fd 5 }     (OS order, arbitrary)     │
    │                       │                                          │
    │                       ▼                                          │
    │   sorted: [ listener, fd 5, fd 6 ]     (listener first, then     │
    │                                         the order peers were     │
    │                                         watched in)              │
    └─────────────────────────────────────────────────────────────────┘

=============================================================================
SIGNALS AND THE WAKEUP CHANNEL
=============================================================================

Since PEP 475 Python retries system calls interrupted by a signal, so a
SIGTERM handler alone would run and then select() would go straight back to
sleep. To make shutdown prompt, the multiplexer also watches one end of a
socketpair. wakeup() writes a byte to the other end: select() returns, the
byte is drained, and wait() hands back an empty list so the caller can
re-check its running flag.

=============================================================================
"""

import errno
import socket
import selectors
import logging
from typing import Dict, List, Optional

from ..errors import MultiplexerError


logger = logging.getLogger(__name__)


class Multiplexer:
    """
    Readiness wait over the listener and every registered peer.

    Usage:
        mux = Multiplexer()
        mux.watch(listener, listener=True)
        while running:
            for fd in mux.wait():
                ...
        mux.close()
    """

    def __init__(self):
        self._selector = selectors.DefaultSelector()
        self._listener_fd: Optional[int] = None

        # fd -> sequence number, so ready handles come back in watch order
        self._order: Dict[int, int] = {}
        self._next_seq = 0

        self._wakeup_r, self._wakeup_w = socket.socketpair()
        self._wakeup_r.setblocking(False)
        self._wakeup_w.setblocking(False)
        self._selector.register(self._wakeup_r, selectors.EVENT_READ)

    def __len__(self) -> int:
        """Number of watched handles, listener included, wakeup excluded."""
        return len(self._order)

    def __contains__(self, fd: int) -> bool:
        return fd in self._order

    # =========================================================================
    # WATCH SET
    # =========================================================================

    def watch(self, sock: socket.socket, listener: bool = False):
        """
        Start reporting read readiness for ``sock``.

        Args:
            sock: Listener or peer socket.
            listener: Mark this as the listening socket; it is always
                      returned first by wait().
        """
        fd = sock.fileno()
        self._selector.register(sock, selectors.EVENT_READ)
        self._order[fd] = self._next_seq
        self._next_seq += 1
        if listener:
            self._listener_fd = fd

    def unwatch(self, fd: int):
        """Stop watching ``fd``. Unknown descriptors are ignored."""
        if fd not in self._order:
            return
        del self._order[fd]
        if fd == self._listener_fd:
            self._listener_fd = None
        try:
            self._selector.unregister(fd)
        except (KeyError, ValueError):
            pass

    # =========================================================================
    # WAITING
    # =========================================================================

    def wait(self) -> List[int]:
        """
        Block until at least one watched handle is readable.

        Returns:
            Ready file descriptors, listener first, then peers in watch
            order. Empty if only the wakeup channel fired.

        Raises:
            MultiplexerError: The OS readiness call failed for a reason
                              other than interruption.
        """
        while True:
            try:
                events = self._selector.select(timeout=None)
            except InterruptedError:
                continue
            except OSError as e:
                if e.errno == errno.EINTR:
                    continue
                raise MultiplexerError(f"Readiness wait failed: {e}") from e
            break

        ready = []
        for key, _mask in events:
            if key.fileobj is self._wakeup_r:
                self._drain_wakeup()
                continue
            if key.fd in self._order:
                ready.append(key.fd)

        ready.sort(key=self._sort_key)
        return ready

    def _sort_key(self, fd: int):
        return (fd != self._listener_fd, self._order[fd])

    def wakeup(self):
        """
        Make a blocked (or the next) wait() return.

        Safe to call from a signal handler or another thread.
        """
        try:
            self._wakeup_w.send(b"\0")
        except OSError:
            pass  # Buffer full means a wakeup is already pending

    def _drain_wakeup(self):
        try:
            while self._wakeup_r.recv(4096):
                pass
        except OSError:
            pass

    def close(self):
        """Release the selector and the wakeup channel."""
        self._selector.close()
        self._wakeup_r.close()
        self._wakeup_w.close()
        self._order.clear()
        self._listener_fd = None
