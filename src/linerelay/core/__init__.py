"""
Core relay components.

    connection.py    Per-peer socket, cached address and receive buffer
    registry.py      fd → Connection mapping
    multiplexer.py   Readiness wait over listener + peers
    framer.py        Bytes → newline-delimited lines
    broadcast.py     Payload formatting and fanout
    acceptor.py      Accept, register, watch, welcome
    listener.py      Listening socket creation
"""

from .connection import Connection
from .registry import ConnectionRegistry
from .multiplexer import Multiplexer
from .framer import LineFramer, READ_CHUNK_SIZE
from .broadcast import Broadcaster, format_payload
from .acceptor import Acceptor
from .listener import create_listener, resolve_port

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "Multiplexer",
    "LineFramer",
    "READ_CHUNK_SIZE",
    "Broadcaster",
    "format_payload",
    "Acceptor",
    "create_listener",
    "resolve_port",
]
