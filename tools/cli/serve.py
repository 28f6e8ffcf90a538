#!/usr/bin/env python3
"""Run the Auto Trader API (REST + /ws price stream) under uvicorn."""

from __future__ import annotations

import argparse
import sys
from typing import Optional

from packages.papertrade.config import AppConfig, ConfigError


def build_parser(config: AppConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Auto Trader service.")
    parser.add_argument("--host", default=config.host, help=f"Bind address (default: {config.host}).")
    parser.add_argument("--port", type=int, default=config.port, help=f"Port (default: {config.port}).")
    parser.add_argument(
        "--log-level",
        default=config.log_level.lower(),
        choices=["critical", "error", "warning", "info", "debug"],
        help="uvicorn log level.",
    )
    parser.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev only).")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    try:
        config = AppConfig.from_env()
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    args = build_parser(config).parse_args(argv)
    if args.port <= 0:
        print("Error: --port must be positive.", file=sys.stderr)
        return 1

    import uvicorn

    print(f"Server http://localhost:{args.port}", file=sys.stderr)
    uvicorn.run(
        "services.api.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level,
        reload=args.reload,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
