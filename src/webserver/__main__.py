"""
=============================================================================
WEBSERVER CLI ENTRY POINT
=============================================================================

    python -m webserver PORT [options]
    webserver PORT [options]            # console script

=============================================================================
USAGE
=============================================================================

    # Serve ./www on port 8080
    python -m webserver 8080

    # Another document root, more workers
    python -m webserver 8080 --root /srv/www --workers 100

    # 404/405/505 instead of 500 for every failure
    python -m webserver 8080 --strict-status

The port is required and must be a number >= 5000; anything else prints
the usage message and exits with status 2. A port that cannot be bound
exits with status 1. SIGINT or SIGTERM stops the server with status 0.

Settings not given on the command line come from WEBSERVER_* environment
variables (see ServerConfig.from_env), then from the defaults.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .server import HTTPServer
from .config import ServerConfig, MIN_PORT, LOG_FORMATS
from .errors import BindError


def port_number(value: str) -> int:
    """argparse type for the port argument."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}")

    if not MIN_PORT <= port < 65536:
        raise argparse.ArgumentTypeError(f"port must be between {MIN_PORT} and 65535, got {port}")
    return port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webserver",
        description="Serve static files over HTTP/1.0 and HTTP/1.1",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  webserver 8080                          # Serve ./www on port 8080
  webserver 8080 --root ./public          # Another document root
  webserver 8080 --keep-alive-timeout 5   # Shorter idle timeout
        """
    )

    parser.add_argument(
        "port",
        type=port_number,
        help=f"Port to listen on (>= {MIN_PORT})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK / FILES
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Address to bind to (default: 0.0.0.0)"
    )

    parser.add_argument(
        "--root", "-r",
        default=None,
        help="Document root (default: ./www)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTIONS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum worker threads (default: 50)"
    )

    parser.add_argument(
        "--keep-alive-timeout",
        type=float,
        default=None,
        help="Idle timeout for keep-alive connections in seconds (default: 10)"
    )

    parser.add_argument(
        "--strict-status",
        action="store_true",
        help="Answer 404/405/505 instead of 500 for failed requests"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING / META
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"webserver {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then whatever was given on the command line."""
    config = ServerConfig.from_env()
    config.port = args.port

    if args.host is not None:
        config.host = args.host
    if args.root is not None:
        config.document_root = args.root
    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)
    if args.keep_alive_timeout is not None:
        config.keep_alive_timeout = args.keep_alive_timeout
    if args.strict_status:
        config.strict_status_codes = True
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format

    return config


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        server = HTTPServer(build_config(args))
    except ValueError as e:
        parser.error(str(e))

    try:
        server.run()
    except BindError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
