"""
=============================================================================
TERMINAL CLIENT
=============================================================================

A thin wrapper around the relay's wire protocol:

    keyboard ──► "hello\\n" ──────────────────► relay
    screen   ◄── "10.0.0.9:40022: hi\\n" ◄───── relay

It watches two handles with the same Multiplexer the server uses: standard
input and the server socket. Whichever is readable gets handled.

LOCAL COMMANDS
──────────────
    /quit       End the session without sending anything.
    EOF         (Ctrl+D, or the end of a piped file) same as /quit.

SIGNALS
───────
    SIGINT/SIGTERM send a best-effort "left the chat" line, close the socket
    and exit with status 0.

=============================================================================
"""

import argparse
import codecs
import os
import signal
import socket
import stat
import sys
import logging
import threading
from typing import Optional, TextIO

from .core.listener import resolve_port
from .core.multiplexer import Multiplexer


logger = logging.getLogger(__name__)

QUIT_COMMAND = "/quit"
DISCONNECT_NOTICE = "left the chat"
READ_SIZE = 4096


def is_quit_command(line: str) -> bool:
    """True for "/quit", with or without a trailing "\\r" and/or "\\n"."""
    line = line.rstrip("\n")
    if line.endswith("\r"):
        line = line[:-1]
    return line == QUIT_COMMAND


def format_outgoing(line: str, name: Optional[str] = None) -> bytes:
    """
    Encode one input line for the wire.

    The local line ending is normalised to a single "\\n". With a display
    name the line is sent as "<name>: <text>".
    """
    text = line.rstrip("\r\n")
    if name:
        text = f"{name}: {text}"
    return (text + "\n").encode("utf-8")


class ChatClient:
    """
    Interactive relay client.

    Usage:
        client = ChatClient("127.0.0.1", 33333)
        client.connect()
        client.run()   # Returns when the session ends
    """

    def __init__(
        self,
        host: str,
        port: int,
        name: Optional[str] = None,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
    ):
        self.host = host
        self.port = port
        self.name = name
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout

        self._socket: Optional[socket.socket] = None
        self._multiplexer: Optional[Multiplexer] = None
        self._input_buffer = b""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._running = False
        self._notify_on_exit = False
        self._original_handlers: dict = {}

    def connect(self):
        """
        Open the connection to the relay.

        Raises:
            OSError: The host cannot be resolved or the connection failed.
        """
        self._socket = socket.create_connection((self.host, self.port))
        logger.debug(f"Connected to {self.host}:{self.port}")

    def run(self):
        """Relay between the terminal and the server until the session ends."""
        if self._socket is None:
            self.connect()

        # Regular files are always readable and epoll refuses them
        stdin_is_file = stat.S_ISREG(os.fstat(self.stdin.fileno()).st_mode)

        self._multiplexer = Multiplexer()
        self._multiplexer.watch(self._socket)
        if not stdin_is_file:
            self._multiplexer.watch(self.stdin)
        sock_fd = self._socket.fileno()

        if threading.current_thread() is threading.main_thread():
            self._setup_signals()

        self._write(f"Connected to chat server. Type '{QUIT_COMMAND}' to exit.\n")
        self._running = True

        try:
            if stdin_is_file:
                while self._running:
                    self._handle_input()

            while self._running:
                for fd in self._multiplexer.wait():
                    if fd == sock_fd:
                        self._handle_server()
                    else:
                        self._handle_input()
                    if not self._running:
                        break
            if self._notify_on_exit:
                self._send_disconnect_notice()
        finally:
            self._restore_signals()
            self._close()

    def stop(self, notify: bool = False):
        """
        End the session.

        Args:
            notify: Send the disconnect notice line before closing.
        """
        self._running = False
        self._notify_on_exit = notify
        if self._multiplexer is not None:
            self._multiplexer.wakeup()

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def _handle_server(self):
        try:
            data = self._socket.recv(READ_SIZE)
        except OSError as e:
            logger.debug(f"Receive failed: {e}")
            data = b""

        if not data:
            tail = self._decoder.decode(b"", final=True)
            if tail:
                self._write(tail)
            self._write("Connection closed by server.\n")
            self._running = False
            return

        # Multi-byte characters may straddle two reads
        text = self._decoder.decode(data)
        if text:
            self._write(text)

    def _handle_input(self):
        chunk = os.read(self.stdin.fileno(), READ_SIZE)
        if not chunk:
            # End of input; a final unterminated line is still sent
            if self._input_buffer:
                self._send_line(self._input_buffer.decode("utf-8", errors="replace"))
                self._input_buffer = b""
            self._running = False
            return

        self._input_buffer += chunk
        while b"\n" in self._input_buffer and self._running:
            raw, self._input_buffer = self._input_buffer.split(b"\n", 1)
            line = raw.decode("utf-8", errors="replace")
            if is_quit_command(line):
                self._running = False
                return
            self._send_line(line)

    def _send_line(self, line: str):
        try:
            self._socket.sendall(format_outgoing(line, self.name))
        except OSError as e:
            self._write(f"Connection lost: {e}\n")
            self._running = False

    def _send_disconnect_notice(self):
        try:
            self._socket.sendall(format_outgoing(DISCONNECT_NOTICE, self.name))
        except OSError:
            pass  # Best effort; the server may already be gone

    def _write(self, text: str):
        self.stdout.write(text)
        self.stdout.flush()

    # =========================================================================
    # SETUP / TEARDOWN
    # =========================================================================

    def _setup_signals(self):
        def shutdown_handler(signum, frame):
            logger.debug(f"Received {signal.Signals(signum).name}")
            self.stop(notify=True)

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def _close(self):
        if self._multiplexer is not None:
            self._multiplexer.close()
            self._multiplexer = None
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="linerelay-client",
        description="Terminal client for the linerelay broadcast relay",
    )
    parser.add_argument("host", help="Relay host name or address")
    parser.add_argument("port", help="Relay port number or service name")
    parser.add_argument(
        "--name", "-n",
        default=None,
        help="Display name prefixed to every outgoing line"
    )
    args = parser.parse_args(argv)

    try:
        port = resolve_port(args.port)
    except ValueError as e:
        parser.error(str(e))

    client = ChatClient(args.host, port, name=args.name)

    try:
        client.connect()
    except OSError as e:
        print(f"Error: cannot connect to {args.host}:{port}: {e}", file=sys.stderr)
        sys.exit(1)

    client.run()
    sys.exit(0)


if __name__ == "__main__":
    main()
