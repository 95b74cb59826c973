"""
=============================================================================
RELAY SERVER
=============================================================================

Ties the core components together into one single-threaded event loop.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          RelayServer.run()                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   create_listener()  ──► watch(listener)  ──► install signals       │
    │        │                                                             │
    │        ▼                                                             │
    │   while not stopping:                                                │
    │        │                                                             │
    │        ├──► multiplexer.wait()          (the ONLY blocking call)    │
    │        │                                                             │
    │        ├──► listener ready?  ──► acceptor.accept_one()              │
    │        │                                                             │
    │        └──► peer ready?      ──► conn.receive()                     │
    │                                      │                               │
    │                                      ├── b""  ──► disconnect(conn)  │
    │                                      │                               │
    │                                      └── data ──► framer.feed()     │
    │                                                      │               │
    │                                                      └──► broadcast │
    │                                                                      │
    │   cleanup: close peers, close listener, restore signals              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
FAILURE HANDLING
=============================================================================

    Fatal startup    bind/listen fails          → OSError out of run()
    Fatal loop       readiness wait fails       → MultiplexerError out of run()
    Per-connection   read/write error, EOF,     → disconnect() that peer,
                     oversized line               everyone else carries on
    Transient        EINTR                      → retried inside the call

One misbehaving peer must never take the listener or any other peer down.

=============================================================================
SIGNAL HANDLING FOR GRACEFUL SHUTDOWN
=============================================================================

SIGINT (Ctrl+C) and SIGTERM (kill, docker stop) call shutdown(), which sets
a flag and wakes the multiplexer. The loop notices the flag at the top of
the next iteration, closes the listener and every remaining peer, and run()
returns normally.

Signal handlers can only be installed from the main thread. When the
server runs in a background thread (tests), shutdown() is called directly.

=============================================================================
"""

import signal
import logging
import threading
from typing import Optional, Tuple

from .config import RelayConfig
from .errors import FramingError, MultiplexerError
from .core.connection import Connection
from .core.registry import ConnectionRegistry
from .core.multiplexer import Multiplexer
from .core.framer import LineFramer
from .core.broadcast import Broadcaster
from .core.acceptor import Acceptor
from .core.listener import create_listener


logger = logging.getLogger(__name__)


class RelayServer:
    """
    Text-line broadcast relay.

    Usage:
        server = RelayServer(RelayConfig(port=33333))
        server.run()  # Blocks until SIGINT/SIGTERM or shutdown()
    """

    def __init__(self, config: Optional[RelayConfig] = None):
        self.config = config or RelayConfig()
        self.config.validate()

        self.registry = ConnectionRegistry(self.config.max_connections)
        self.multiplexer = Multiplexer()
        self.framer = LineFramer(self.config.max_line_length)
        self.broadcaster = Broadcaster(
            self.registry,
            disconnect=self.disconnect,
            max_message_size=self.config.max_message_size,
        )
        self.acceptor = Acceptor(
            self.registry,
            self.multiplexer,
            welcome_message=self.config.welcome_message,
        )

        self._listener = None
        self._listener_fd: Optional[int] = None
        self._running = False

        # Set by shutdown(); checked once per loop iteration
        self._stop_requested = threading.Event()
        # Set once run() has a bound listener / once it has cleaned up
        self._ready_event = threading.Event()
        self._stopped_event = threading.Event()

        self._original_handlers: dict = {}

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (host, port). With port 0 in the config this is the port
        the OS actually picked, once run() has started.
        """
        if self._listener is not None:
            host, port = self._listener.getsockname()[:2]
            return (host, port)
        return (self.config.host, self.config.port)

    @property
    def connection_count(self) -> int:
        return len(self.registry)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Bind, then serve until shutdown.

        Raises:
            OSError: The listener could not be created.
            MultiplexerError: The readiness wait failed.
        """
        self._setup_logging()

        try:
            self._listener = create_listener(
                self.config.host, self.config.port, self.config.backlog
            )
            self._listener_fd = self._listener.fileno()
            self.multiplexer.watch(self._listener, listener=True)

            if threading.current_thread() is threading.main_thread():
                self._setup_signals()

            self._running = True
            self._stopped_event.clear()
            host, port = self.address
            logger.info(f"Relay listening on {host}:{port}")
            self._ready_event.set()

            self._serve()
        except MultiplexerError as e:
            logger.critical(f"Event loop failed: {e}")
            raise
        finally:
            self._cleanup()

    def _serve(self):
        while not self._stop_requested.is_set():
            for fd in self.multiplexer.wait():
                if fd == self._listener_fd:
                    self.acceptor.accept_one(self._listener)
                    continue

                conn = self.registry.lookup(fd)
                if conn is None:
                    # Dropped earlier in this iteration (failed delivery)
                    continue
                self._handle_readable(conn)

    def _handle_readable(self, conn: Connection):
        """Read once from ``conn`` and broadcast every line it completes."""
        data = conn.receive(self.config.buffer_size)
        if data is None:
            return
        if not data:
            self.disconnect(conn, "closed by peer")
            return

        try:
            for line in self.framer.feed(conn, data):
                self.broadcaster.broadcast(conn, line)
        except FramingError as e:
            logger.warning(f"[{conn.id}] Framing error from {conn.label}: {e}")
            self.disconnect(conn, "framing error")

    def disconnect(self, conn: Connection, reason: str):
        """
        Unregister, unwatch and close ``conn``.

        Idempotent, so a peer that fails twice in one iteration is only
        torn down once.
        """
        if self.registry.unregister(conn.fd) is None:
            return
        self.multiplexer.unwatch(conn.fd)
        conn.close()
        logger.info(
            f"[{conn.id}] Disconnected {conn.label} ({reason}), "
            f"{len(self.registry)} connected"
        )

    def shutdown(self):
        """
        Ask the loop to stop.

        Safe to call from a signal handler, from another thread, or more
        than once.
        """
        if not self._stop_requested.is_set():
            logger.info("Shutting down relay...")
        self._stop_requested.set()
        self.multiplexer.wakeup()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait until run() has bound the listener. Useful for tests."""
        return self._ready_event.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Wait until run() has finished cleaning up."""
        return self._stopped_event.wait(timeout)

    # =========================================================================
    # SETUP / TEARDOWN
    # =========================================================================

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("linerelay").setLevel(level)

    def _setup_signals(self):
        """Route SIGINT and SIGTERM to shutdown()."""

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def _cleanup(self):
        """Close every peer and the listener, then release the selector."""
        self._restore_signals()

        for conn in self.registry.all():
            self.disconnect(conn, "server shutdown")

        if self._listener is not None:
            self.multiplexer.unwatch(self._listener_fd)
            try:
                self._listener.close()
            except OSError:
                pass
            self._listener = None
            self._listener_fd = None

        self.multiplexer.close()
        self._running = False
        self._stopped_event.set()
        logger.info("Relay stopped")
