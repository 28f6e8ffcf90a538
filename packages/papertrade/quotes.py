"""Price sources: one quote per (venue, symbol), in USD.

Venues
------
``crypto``
    CoinGecko ``/coins/markets``; the symbol is a CoinGecko coin id
    (``bitcoin``, ``ethereum``, ``solana``).
``stock``
    AlphaVantage ``GLOBAL_QUOTE``; needs an API key (``ALPHAVANTAGE_KEY``).

Every quote carries a synthetic bid/ask around the last price: 0.06% wide for
crypto, 0.08% for stocks.  The spread belongs to the quote; the paper engine
charges its own fee on top.

Any upstream problem (non-2xx status, malformed body, transport failure,
missing credential, zero or negative price, unknown venue) surfaces as
:class:`QuoteUnavailable`.  Nothing here defaults a price to zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Protocol

import requests

from .http_client import HttpClient

logger = logging.getLogger(__name__)

DEFAULT_COINGECKO_API_BASE = "https://api.coingecko.com/api/v3"
DEFAULT_ALPHAVANTAGE_API_BASE = "https://www.alphavantage.co"

VENUE_CRYPTO = "crypto"
VENUE_STOCK = "stock"

CRYPTO_SPREAD_RATE = Decimal("0.0006")
STOCK_SPREAD_RATE = Decimal("0.0008")

_CENT = Decimal("0.01")
_TWO = Decimal("2")


class QuoteUnavailable(Exception):
    """Raised when no usable quote could be fetched for an instrument."""


@dataclass(frozen=True)
class Quote:
    """Ephemeral quote snapshot.  Never persisted."""

    venue: str
    symbol: str
    price: Decimal
    bid: Decimal
    ask: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "venue": self.venue,
            "symbol": self.symbol,
            "price": str(self.price),
            "bid": str(self.bid),
            "ask": str(self.ask),
        }


class PriceSource(Protocol):
    def get_price(self, venue: str, symbol: str) -> Quote:
        ...


class QuoteProvider(Protocol):
    spread_rate: Decimal

    def fetch_price(self, symbol: str) -> Decimal:
        ...


def _cents(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def _positive_price(raw: Any, what: str) -> Decimal:
    try:
        price = Decimal(str(raw))
    except (InvalidOperation, TypeError):
        raise QuoteUnavailable(f"No {what} price") from None
    if not price.is_finite() or price <= 0:
        raise QuoteUnavailable(f"No {what} price")
    return price


def quote_with_spread(venue: str, symbol: str, raw_price: Decimal, spread_rate: Decimal) -> Quote:
    """Build a :class:`Quote` with bid/ask straddling *raw_price*."""
    half_spread = raw_price * spread_rate / _TWO
    return Quote(
        venue=venue,
        symbol=symbol,
        price=_cents(raw_price),
        bid=_cents(raw_price - half_spread),
        ask=_cents(raw_price + half_spread),
    )


def _fetch_json(client: HttpClient, path: str, params: dict) -> Any:
    try:
        return client.get_json(path, params=params)
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else "?"
        raise QuoteUnavailable(f"HTTP {status} for {client.url_for(path)}") from exc
    except requests.RequestException as exc:
        raise QuoteUnavailable(f"Upstream request failed: {exc}") from exc
    except ValueError as exc:
        raise QuoteUnavailable(f"Malformed upstream response from {client.url_for(path)}") from exc


class CoinGeckoQuoteProvider:
    """Crypto prices from CoinGecko (no credential needed)."""

    spread_rate = CRYPTO_SPREAD_RATE

    def __init__(
        self,
        base_url: str = DEFAULT_COINGECKO_API_BASE,
        timeout: float = 10.0,
    ):
        self.client = HttpClient(base_url=base_url, timeout=timeout)

    def fetch_price(self, symbol: str) -> Decimal:
        rows = _fetch_json(
            self.client,
            "/coins/markets",
            {"vs_currency": "usd", "ids": symbol},
        )
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            raise QuoteUnavailable("No crypto price")
        return _positive_price(rows[0].get("current_price"), "crypto")


class AlphaVantageQuoteProvider:
    """Equity prices from AlphaVantage ``GLOBAL_QUOTE``."""

    spread_rate = STOCK_SPREAD_RATE

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_ALPHAVANTAGE_API_BASE,
        timeout: float = 10.0,
    ):
        self.api_key = (api_key or "").strip()
        self.client = HttpClient(base_url=base_url, timeout=timeout)

    def fetch_price(self, symbol: str) -> Decimal:
        if not self.api_key:
            raise QuoteUnavailable("ALPHAVANTAGE_KEY missing")
        payload = _fetch_json(
            self.client,
            "/query",
            {"function": "GLOBAL_QUOTE", "symbol": symbol, "apikey": self.api_key},
        )
        quote = payload.get("Global Quote") if isinstance(payload, dict) else None
        if not isinstance(quote, dict):
            raise QuoteUnavailable("No stock price")
        return _positive_price(quote.get("05. price"), "stock")


class VenuePriceSource:
    """Route ``get_price(venue, symbol)`` to the provider for *venue*."""

    def __init__(self, providers: Mapping[str, QuoteProvider]):
        self._providers = dict(providers)

    @property
    def venues(self) -> list[str]:
        return sorted(self._providers)

    def get_price(self, venue: str, symbol: str) -> Quote:
        provider = self._providers.get(venue)
        if provider is None:
            raise QuoteUnavailable("Unknown venue")
        raw_price = provider.fetch_price(symbol)
        return quote_with_spread(venue, symbol, raw_price, provider.spread_rate)


def build_price_source(
    alphavantage_key: Optional[str] = None,
    coingecko_base: str = DEFAULT_COINGECKO_API_BASE,
    alphavantage_base: str = DEFAULT_ALPHAVANTAGE_API_BASE,
    timeout: float = 10.0,
) -> VenuePriceSource:
    """Default two-venue price source (crypto + stock)."""
    return VenuePriceSource(
        {
            VENUE_CRYPTO: CoinGeckoQuoteProvider(base_url=coingecko_base, timeout=timeout),
            VENUE_STOCK: AlphaVantageQuoteProvider(
                api_key=alphavantage_key,
                base_url=alphavantage_base,
                timeout=timeout,
            ),
        }
    )
