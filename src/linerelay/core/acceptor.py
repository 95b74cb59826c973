"""
=============================================================================
ACCEPTOR
=============================================================================

Runs when the listener is readable. Accepts ONE pending peer per readiness
event; if more are queued, the listener is still readable on the next
iteration and they are picked up then.

    accept() ──► failed? ──► log, carry on (never fatal)
        │
        ▼
    registry full? ──► close the new socket, log (rejected)
        │
        ▼
    non-blocking ──► register ──► watch ──► send welcome
                                               │
                                               └── failed? log only;
                                                   the peer stays registered

=============================================================================
"""

import socket
import logging
from typing import Optional

from ..errors import RegistryFullError
from .connection import Connection
from .registry import ConnectionRegistry
from .multiplexer import Multiplexer


logger = logging.getLogger(__name__)


class Acceptor:
    """
    Turns listener readiness into registered, watched, welcomed peers.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        multiplexer: Multiplexer,
        welcome_message: str,
    ):
        self.registry = registry
        self.multiplexer = multiplexer
        self.welcome = welcome_message.encode("utf-8")

    def accept_one(self, listener: socket.socket) -> Optional[Connection]:
        """
        Accept a single pending connection.

        Returns:
            The new Connection, or None if accept() failed or the peer was
            rejected because the registry is full.
        """
        try:
            client_socket, client_address = listener.accept()
        except OSError as e:
            # Includes BlockingIOError: the peer gave up before we got to it
            logger.warning(f"Accept failed: {e}")
            return None

        # IPv4 gives (host, port); keep just those two either way
        address = (client_address[0], client_address[1])

        try:
            conn = self.registry.register(client_socket, address)
        except RegistryFullError as e:
            logger.warning(f"Rejected {address[0]}:{address[1]}: {e}")
            client_socket.close()
            return None

        client_socket.setblocking(False)
        self.multiplexer.watch(client_socket)

        logger.info(
            f"[{conn.id}] New connection from {conn.host} on port {conn.port} "
            f"(fd {conn.fd}, {len(self.registry)} connected)"
        )

        if not conn.send(self.welcome):
            logger.warning(f"[{conn.id}] Could not send welcome to {conn.label}")

        return conn
