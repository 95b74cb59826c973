"""
=============================================================================
CONNECTION REGISTRY
=============================================================================

The authoritative set of currently open peers.

    ┌─────────────────────────────────────────────────────────────────┐
    │                        ConnectionRegistry                        │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   fd 5  ──►  Connection(10.0.0.7:51812)                          │
    │   fd 7  ──►  Connection(10.0.0.9:40022)                          │
    │   fd 6  ──►  Connection(10.0.0.3:38100)                          │
    │                                                                  │
    │   (dict keeps insertion order: 5, 7, 6)                          │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

Two invariants are kept by the server, not by this class alone:

1. A peer is in the multiplexer's watch set IF AND ONLY IF it is here.
2. The listening socket is never registered as a Connection.

Iteration is in insertion order, so the fanout order for a broadcast is
the order peers connected in. That keeps tests deterministic.

=============================================================================
"""

import socket
import logging
from typing import Dict, List, Optional, Tuple

from ..errors import RegistryFullError
from .connection import Connection


logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Mapping from file descriptor to Connection.

    Usage:
        registry = ConnectionRegistry(max_connections=100)
        conn = registry.register(client_socket, ("10.0.0.7", 51812))
        ...
        registry.unregister(conn.fd)
    """

    def __init__(self, max_connections: Optional[int] = None):
        """
        Args:
            max_connections: Capacity limit. None means unbounded.
        """
        self.max_connections = max_connections
        self._connections: Dict[int, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, fd: int) -> bool:
        return fd in self._connections

    @property
    def is_full(self) -> bool:
        """True when another register() would raise RegistryFullError."""
        return (
            self.max_connections is not None
            and len(self._connections) >= self.max_connections
        )

    def register(self, sock: socket.socket, address: Tuple[str, int]) -> Connection:
        """
        Create and store the Connection for a freshly accepted socket.

        Raises:
            RegistryFullError: If max_connections peers are already registered.
                The socket is left untouched; closing it is up to the caller.
        """
        if self.is_full:
            raise RegistryFullError(self.max_connections)

        conn = Connection(socket=sock, address=address)
        self._connections[conn.fd] = conn
        logger.debug(f"[{conn.id}] Registered fd {conn.fd} ({len(self)} total)")
        return conn

    def unregister(self, fd: int) -> Optional[Connection]:
        """
        Remove a Connection and release its buffered partial line.

        Idempotent: unknown descriptors are ignored.

        Returns:
            The removed Connection, or None if it was not registered.
        """
        conn = self._connections.pop(fd, None)
        if conn is not None:
            conn.buffer.clear()
        return conn

    def lookup(self, fd: int) -> Optional[Connection]:
        return self._connections.get(fd)

    def all(self) -> List[Connection]:
        """
        Snapshot of every registered Connection, in insertion order.

        A list copy, so the caller may unregister while iterating.
        """
        return list(self._connections.values())
