#!/usr/bin/env python3
"""Fetch a single quote from the configured price source and print it."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Optional

from packages.papertrade.config import AppConfig, ConfigError
from packages.papertrade.quotes import QuoteUnavailable, build_price_source


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fetch one quote and print it as JSON.")
    parser.add_argument("--venue", default="crypto", help="Venue: crypto or stock (default: crypto).")
    parser.add_argument("--symbol", default="bitcoin", help="CoinGecko id or stock ticker (default: bitcoin).")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = AppConfig.from_env()
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    source = build_price_source(
        alphavantage_key=config.alphavantage_key,
        coingecko_base=config.coingecko_api_base,
        alphavantage_base=config.alphavantage_api_base,
        timeout=config.http_timeout_seconds,
    )
    try:
        quote = source.get_price(args.venue, args.symbol)
    except QuoteUnavailable as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(quote.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
