"""Module entrypoint for Auto Trader CLI commands.

Usage: python -m autotrader <command> [options]
"""

from __future__ import annotations

import sys
from typing import Optional

from tools.cli.quote import main as quote_main
from tools.cli.serve import main as serve_main


def print_usage() -> None:
    """Print CLI usage information."""
    print("Auto Trader - paper trading demo with a live price stream")
    print("")
    print("Usage: autotrader <command> [options]")
    print("       python -m autotrader <command> [options]")
    print("")
    print("Commands:")
    print("  serve             Run the HTTP + WebSocket service (uvicorn)")
    print("  quote             Fetch one quote and print it as JSON")
    print("")
    print("Options:")
    print("  -h, --help        Show this help message")
    print("  --version         Show version information")
    print("")
    print("Examples:")
    print("  autotrader serve --port 8080")
    print("  autotrader quote --venue crypto --symbol bitcoin")
    print("  autotrader quote --venue stock --symbol RELIANCE.BSE")


def print_version() -> None:
    """Print version information."""
    from autotrader import __version__
    print(f"autotrader {__version__}")


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entrypoint."""
    if argv is None:
        argv = sys.argv[1:]

    if len(argv) < 1:
        print_usage()
        return 1

    command = argv[0]

    if command in ("-h", "--help"):
        print_usage()
        return 0

    if command in ("-v", "--version"):
        print_version()
        return 0

    if command == "serve":
        return serve_main(argv[1:])
    if command == "quote":
        return quote_main(argv[1:])

    print(f"Unknown command: {command}")
    print_usage()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
