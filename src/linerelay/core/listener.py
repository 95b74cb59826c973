"""
=============================================================================
LISTENING SOCKET
=============================================================================

Creates the one socket that never carries chat data: it only hands out new
peer sockets.

    1. socket()    Create a TCP socket
    2. setsockopt  SO_REUSEADDR, so a restart does not hit TIME_WAIT
    3. bind()      Reserve host:port
    4. listen()    Let the kernel queue incoming connections
    5. non-block   accept() must never stall the event loop

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Created once at startup
                    └───────────┬───────────┘     Bound to 0.0.0.0:33333
                                │
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │  Peer 1   │         │  Peer 2   │         │  Peer 3   │
    └───────────┘         └───────────┘         └───────────┘

=============================================================================
PORTS AND SERVICE NAMES
=============================================================================

The command line accepts either a number ("33333") or a service name from
the system services database ("telnet" → 23). resolve_port() turns both into
an integer before anything is bound.

=============================================================================
"""

import socket
import logging
from typing import Union


logger = logging.getLogger(__name__)


def resolve_port(value: Union[str, int]) -> int:
    """
    Turn a port number or a TCP service name into a port number.

    Raises:
        ValueError: Unknown service name or out-of-range number.
    """
    if isinstance(value, int):
        port = value
    elif value.strip().isdigit():
        port = int(value)
    else:
        try:
            port = socket.getservbyname(value.strip(), "tcp")
        except OSError:
            raise ValueError(f"Unknown service: {value!r}") from None

    if not 0 <= port < 65536:
        raise ValueError(f"Invalid port: {port}. Must be 0-65535.")
    return port


def create_listener(host: str, port: int, backlog: int = 128) -> socket.socket:
    """
    Create, bind and start a non-blocking listening socket.

    Raises:
        OSError: bind() or listen() failed. This is a fatal startup error;
                 the socket is closed before the error propagates.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

    # SO_REUSEADDR: restart immediately instead of waiting out TIME_WAIT
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

    try:
        # Common errors:
        # - Address already in use: another process owns this port
        # - Permission denied: ports < 1024 require root
        sock.bind((host, port))
        sock.listen(backlog)
    except OSError as e:
        logger.error(f"Failed to bind to {host}:{port}: {e}")
        sock.close()
        raise

    sock.setblocking(False)
    return sock
