"""
=============================================================================
RELAY CONFIGURATION
=============================================================================

Centralized configuration for the broadcast relay.

=============================================================================
WHY A CONFIG CLASS?
=============================================================================

The relay has only a handful of knobs, but they are read by several
components (acceptor, framer, broadcaster, listener). Keeping them in one
dataclass means:

1. Centralized - One place to see all options
2. Typed - IDE autocomplete and error detection
3. Validated - Bad values are caught at startup, not mid-broadcast

There is deliberately no environment-variable layer: the relay is
configured from the command line (or from code) only.

=============================================================================
SIZES AND HOW THEY RELATE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          BYTE LIMITS                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   buffer_size        How much ONE recv() may return.                │
    │                      A line can span many reads.                    │
    │                                                                      │
    │   max_line_length    Longest INBOUND line we are willing to buffer. │
    │                      Longer → FramingError → peer is disconnected.  │
    │                                                                      │
    │   max_message_size   Longest OUTBOUND payload, including the        │
    │                      "host:port: " prefix and the trailing "\n".    │
    │                      Longer → text is truncated, never rejected.    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from dataclasses import dataclass
from typing import Optional


WELCOME_MESSAGE = "Welcome to the chat server! Type your message and press Enter.\r\n"


@dataclass
class RelayConfig:
    """
    Configuration for the relay server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog

    FRAMING / BROADCAST
    - buffer_size, max_line_length, max_message_size

    CAPACITY
    - max_connections

    PROTOCOL
    - welcome_message

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to.
    - "0.0.0.0" - All network interfaces (default, like INADDR_ANY)
    - "127.0.0.1" - Localhost only (tests, development)
    """

    port: int = 33333
    """
    The port number to listen on. 0 asks the OS for a free port.
    """

    backlog: int = 128
    """
    Maximum number of connections the kernel queues before refusing.
    """

    # ─────────────────────────────────────────────────────────────────────
    # FRAMING / BROADCAST
    # ─────────────────────────────────────────────────────────────────────

    buffer_size: int = 4096
    """Bytes requested per recv() call."""

    max_line_length: int = 4096
    """
    Longest inbound line, in bytes, excluding the terminator.
    A peer that exceeds it is disconnected.
    """

    max_message_size: int = 1024
    """
    Longest outbound payload in bytes, prefix and newline included.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CAPACITY
    # ─────────────────────────────────────────────────────────────────────

    max_connections: Optional[int] = 1024
    """
    Maximum number of simultaneously registered peers.
    None = unbounded. When full, new peers are accepted and closed at once.
    """

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL
    # ─────────────────────────────────────────────────────────────────────

    welcome_message: str = WELCOME_MESSAGE
    """Sent once to every peer right after it is accepted."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by RelayServer before the listener is created, so a typo on
        the command line never gets as far as bind().
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if self.max_line_length < 1:
            raise ValueError("max_line_length must be >= 1")

        # Room for "255.255.255.255:65535: " plus at least some text.
        if self.max_message_size < 64:
            raise ValueError("max_message_size must be >= 64")

        if self.max_connections is not None and self.max_connections < 1:
            raise ValueError("max_connections must be >= 1 or None")
