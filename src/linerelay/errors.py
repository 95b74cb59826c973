"""
=============================================================================
RELAY EXCEPTIONS
=============================================================================

Every error the relay raises on purpose derives from RelayError, so callers
can tell "the relay refused this" apart from a plain OSError coming out of
the socket layer.

    RelayError
    ├── FramingError        One peer sent a line that is too long.
    │                       └── Recoverable: close THAT peer only.
    ├── RegistryFullError   The connection limit has been reached.
    │                       └── Recoverable: reject the new peer.
    └── MultiplexerError    The readiness wait itself failed.
                            └── Fatal: the loop cannot continue.

=============================================================================
"""


class RelayError(Exception):
    """Base class for relay errors."""


class FramingError(RelayError):
    """
    A peer exceeded the maximum buffered line length.

    Attributes:
        length: Number of bytes seen without a line terminator.
        limit: The configured maximum line length.
    """

    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(f"Line too long: {length} bytes (limit {limit})")


class RegistryFullError(RelayError):
    """The registry already holds max_connections connections."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Connection limit reached ({limit})")


class MultiplexerError(RelayError):
    """The readiness wait failed for a reason other than interruption."""
