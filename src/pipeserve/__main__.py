"""
=============================================================================
COMMAND LINE
=============================================================================

    python -m pipeserve                          # http://127.0.0.1:3000
    python -m pipeserve --port 8000 --workers 8
    python -m pipeserve --static frontend/dist   # serve the SPA build too
    python -m pipeserve --database-url sqlite:///users.db

Flags override PIPESERVE_* environment variables, which override the
defaults in ServerConfig.

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import LOG_FORMATS, LOG_LEVELS, ServerConfig
from .server import HTTPServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pipeserve",
        description="Users/products demo API on a threaded HTTP/1.1 server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--host", "-H", help="Address to bind (use 0.0.0.0 in containers)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 3000)")
    parser.add_argument(
        "--workers", "-w",
        type=int,
        help="Worker threads at startup; the pool may grow to twice this",
    )

    # ─────────────────────────────────────────────────────────────────────
    # APPLICATION
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--static", "-s", help="SPA build directory served for unmatched GETs")
    parser.add_argument("--database-url", help="SQLAlchemy URL for users, e.g. sqlite:///users.db")
    parser.add_argument("--api-prefix", help="Path prefix that never falls back to the SPA")
    parser.add_argument(
        "--rate-limit-max-clients",
        type=int,
        help="Most client identifiers the rate limiter remembers (default: unbounded)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument("--log-level", "-l", type=str.upper, choices=LOG_LEVELS)
    parser.add_argument("--log-format", choices=LOG_FORMATS, help="Access log format")

    parser.add_argument("--version", "-v", action="version", version=f"pipeserve {__version__}")
    return parser


def config_from_args(args: argparse.Namespace, base: Optional[ServerConfig] = None) -> ServerConfig:
    """Apply the flags that were given on top of ``base`` (environment config)."""
    config = base or ServerConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "static_dir": args.static,
        "database_url": args.database_url,
        "api_prefix": args.api_prefix,
        "rate_limit_max_identifiers": args.rate_limit_max_clients,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    if args.workers is not None:
        config.min_workers = args.workers
        config.max_workers = args.workers * 2

    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        server = HTTPServer(config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
