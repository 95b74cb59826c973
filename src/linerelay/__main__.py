"""
=============================================================================
RELAY SERVER CLI ENTRY POINT
=============================================================================

    # Listen on port 33333, all interfaces
    python -m linerelay 33333

    # Service names work too
    python -m linerelay telnet

    # Localhost only, verbose
    python -m linerelay 33333 --host 127.0.0.1 --log-level DEBUG

Exit status:
    0   shut down by SIGINT/SIGTERM
    1   fatal error (cannot bind, event loop failure)
    2   bad command line (argparse prints the usage)

=============================================================================
"""

import argparse
import sys

from . import __version__
from .server import RelayServer
from .config import RelayConfig
from .core.listener import resolve_port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="linerelay",
        description="Single-threaded text-line broadcast relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m linerelay 33333                     # All interfaces
  python -m linerelay 33333 --host 127.0.0.1    # Localhost only
  python -m linerelay telnet                    # Port by service name
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "port",
        help="Port number or service name to listen on"
    )

    parser.add_argument(
        "--host", "-H",
        default="0.0.0.0",
        help="Host to bind to (default: 0.0.0.0)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LIMITS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--max-connections",
        type=int,
        default=1024,
        help="Maximum simultaneous peers; 0 for unbounded (default: 1024)"
    )

    parser.add_argument(
        "--max-line-length",
        type=int,
        default=4096,
        help="Longest accepted line in bytes (default: 4096)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"linerelay {__version__}"
    )

    return parser


def main(argv=None):
    """Parse arguments, build the server and run it until shutdown."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        port = resolve_port(args.port)
    except ValueError as e:
        parser.error(str(e))

    config = RelayConfig(
        host=args.host,
        port=port,
        max_connections=args.max_connections or None,
        max_line_length=args.max_line_length,
        log_level=args.log_level,
    )

    try:
        server = RelayServer(config)
    except ValueError as e:
        parser.error(str(e))

    try:
        server.run()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
