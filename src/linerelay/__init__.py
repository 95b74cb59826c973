"""
=============================================================================
LINERELAY - Single-Threaded Text-Line Broadcast Relay
=============================================================================

Clients connect over TCP and send newline-terminated text. The relay fans
every line out to every OTHER connected client, prefixed with the sender's
address:

    alice ──► "hello\\n" ──► relay ──► bob:   "10.0.0.7:51812: hello\\n"
                                  └──► carol: "10.0.0.7:51812: hello\\n"

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      LINERELAY ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. READINESS MULTIPLEXING                                         │
    │      - One thread, one blocking call per iteration (selectors)      │
    │      - Listener processed first, then peers in connect order        │
    │                                                                      │
    │   2. FRAMING                                                        │
    │      - Per-peer receive buffer                                      │
    │      - "\\n" terminated lines, optional "\\r" stripped                │
    │      - Oversized lines close the offending peer                     │
    │                                                                      │
    │   3. FANOUT                                                          │
    │      - Everyone except the sender                                   │
    │      - A failed delivery drops that peer only                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    linerelay/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # Server CLI (python -m linerelay PORT)
    ├── client.py            # Terminal client (python -m linerelay.client)
    ├── server.py            # RelayServer event loop
    ├── config.py            # RelayConfig dataclass
    ├── errors.py            # Exception hierarchy
    └── core/
        ├── connection.py    # Per-peer state
        ├── registry.py      # fd → Connection
        ├── multiplexer.py   # Readiness wait
        ├── framer.py        # Line framing
        ├── broadcast.py     # Fanout
        ├── acceptor.py      # New connections
        └── listener.py      # Listening socket

=============================================================================
QUICK START
=============================================================================

    from linerelay import RelayServer, RelayConfig

    server = RelayServer(RelayConfig(port=33333))
    server.run()

    # In two other terminals:
    #   python -m linerelay.client 127.0.0.1 33333

=============================================================================
"""

__version__ = "1.0.0"

from .server import RelayServer
from .config import RelayConfig

__all__ = ["RelayServer", "RelayConfig", "__version__"]
