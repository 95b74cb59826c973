"""
=============================================================================
BROADCAST ENGINE
=============================================================================

Given one framed line and the peer it came from, deliver it to everybody
else.

=============================================================================
PAYLOAD FORMAT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────┐
    │  10.0.0.7:51812: hello there\n                                   │
    │  └────────────┘  └─────────┘└┘                                   │
    │   origin label     text      single newline                      │
    └─────────────────────────────────────────────────────────────────┘

The whole payload is capped at max_message_size bytes. When the text does
not fit, it is TRUNCATED (never rejected) so that the payload is at most
max_message_size bytes long, never splits a UTF-8 character and still
ends with exactly one "\n".

=============================================================================
FAILURE ISOLATION
=============================================================================

    for peer in registry (except origin):
        send(payload)
           │
           ├── ok      → next peer
           │
           └── failed  → disconnect(peer)   ◄── that peer only
                         next peer             the loop keeps going

A broken pipe on peer #2 must not cost peers #3..#N their copy.

=============================================================================
"""

import logging
from typing import Callable

from .connection import Connection
from .registry import ConnectionRegistry


logger = logging.getLogger(__name__)


def format_payload(label: str, text: bytes, max_size: int = 1024) -> bytes:
    """
    Build ``b"<label>: " + text + b"\\n"``, truncated to ``max_size`` bytes.

    Truncation never splits a UTF-8 sequence: a cut that lands inside one
    backs off to the start of that character. If even the prefix does not
    fit, the prefix itself is cut; the result always ends with one newline.
    """
    prefix = f"{label}: ".encode("utf-8")
    room = max_size - len(prefix) - 1

    if room < 0:
        return prefix[:_char_boundary(prefix, max_size - 1)] + b"\n"

    if len(text) > room:
        text = text[:_char_boundary(text, room)]
    return prefix + text + b"\n"


def _char_boundary(data: bytes, cut: int) -> int:
    """Largest index <= ``cut`` that does not fall inside a UTF-8 sequence."""
    if cut >= len(data):
        return cut
    pos = cut
    # A lead byte is followed by at most three continuation bytes
    while pos > 0 and cut - pos < 3 and data[pos] & 0xC0 == 0x80:
        pos -= 1
    if data[pos] & 0xC0 == 0x80:
        # Not UTF-8 at all; keep the plain byte cut
        return cut
    return pos


class Broadcaster:
    """
    Fans a line out to every registered peer except its origin.

    Args:
        registry: Source of delivery targets.
        disconnect: Called with a Connection whose delivery failed. The
                    server uses it to unregister, unwatch and close.
        max_message_size: Outbound payload cap, in bytes.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        disconnect: Callable[[Connection, str], None],
        max_message_size: int = 1024,
    ):
        self.registry = registry
        self.disconnect = disconnect
        self.max_message_size = max_message_size

    def broadcast(self, origin: Connection, text: bytes) -> int:
        """
        Deliver ``text`` from ``origin`` to every other peer.

        Returns:
            Number of peers the payload was delivered to.
        """
        payload = format_payload(origin.label, text, self.max_message_size)

        # Console side effect, for the operator only.
        logger.info(payload.rstrip(b"\n").decode("utf-8", errors="replace"))

        delivered = 0
        for peer in self.registry.all():
            if peer is origin:
                continue
            if peer.send(payload):
                delivered += 1
            else:
                self.disconnect(peer, "write failed")

        return delivered
