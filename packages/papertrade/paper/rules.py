"""Order and fill data types for the paper-fill engine.

Quantities and prices are Decimal; fee and realized P/L are integer minor
units.  ``to_dict`` helpers produce JSON-safe dicts with string-encoded
Decimals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ..money import from_minor

# Largest accepted order quantity. Keeps minor-unit arithmetic well inside
# Decimal's default 28-digit context.
MAX_QUANTITY = Decimal("1e12")


class ValidationError(ValueError):
    """Raised when an order intent or query parameter is missing or invalid."""


class Side:
    """Order sides.  BUY/COVER open lots; SELL/SHORT close them FIFO."""

    BUY = "BUY"
    SELL = "SELL"
    SHORT = "SHORT"
    COVER = "COVER"

    OPENING = frozenset({BUY, COVER})
    CLOSING = frozenset({SELL, SHORT})
    ALL = OPENING | CLOSING

    @classmethod
    def is_opening(cls, side: str) -> bool:
        return side in cls.OPENING


class Mode:
    PAPER = "paper"
    LIVE = "live"

    ALL = frozenset({PAPER, LIVE})


def instrument_key(venue: str, symbol: str) -> str:
    """Ledger / subscription key for an instrument: ``"venue:symbol"``."""
    return f"{venue}:{symbol}"


@dataclass(frozen=True)
class Order:
    """A priced order intent.  Immutable once created."""

    order_id: int
    ts: int                 # epoch millis
    venue: str
    symbol: str
    side: str
    qty: Decimal
    price: Decimal
    mode: str = Mode.PAPER

    @property
    def key(self) -> str:
        return instrument_key(self.venue, self.symbol)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.order_id,
            "ts": self.ts,
            "venue": self.venue,
            "symbol": self.symbol,
            "side": self.side,
            "qty": str(self.qty),
            "price": str(self.price),
            "mode": self.mode,
        }


@dataclass(frozen=True)
class Fill:
    """A materialised order plus its fee and the realized P/L it booked.

    ``realized_minor`` is zero for opening fills.
    """

    order: Order
    fee_minor: int
    realized_minor: int

    @property
    def ts(self) -> int:
        return self.order.ts

    @property
    def fee(self) -> str:
        return from_minor(self.fee_minor)

    @property
    def realized(self) -> str:
        return from_minor(self.realized_minor)

    def to_dict(self) -> dict[str, Any]:
        row = self.order.to_dict()
        row["fee"] = self.fee
        row["realized"] = self.realized
        return row


def _require_text(name: str, value: Any) -> str:
    text = "" if value is None else str(value).strip()
    if not text:
        raise ValidationError(f"missing field: {name}")
    return text


def parse_quantity(value: Any) -> Decimal:
    """Parse a strictly positive, finite quantity."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("missing field: qty")
    if isinstance(value, bool):
        raise ValidationError(f"qty must be a number, got {value!r}")
    try:
        qty = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"qty must be a number, got {value!r}") from None
    if not qty.is_finite() or qty <= 0:
        raise ValidationError(f"qty must be positive, got {value!r}")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"qty must not exceed {MAX_QUANTITY}, got {value!r}")
    return qty


def validate_order_intent(
    venue: Any,
    symbol: Any,
    side: Any,
    qty: Any,
) -> tuple[str, str, str, Decimal]:
    """Normalise an order intent or raise :class:`ValidationError`.

    Returns ``(venue, symbol, side, qty)`` with *side* upper-cased and *qty*
    as a Decimal.
    """
    venue_s = _require_text("venue", venue)
    symbol_s = _require_text("symbol", symbol)
    side_s = _require_text("side", side).upper()
    if side_s not in Side.ALL:
        known = ", ".join(sorted(Side.ALL))
        raise ValidationError(f"side must be one of: {known}; got {side!r}")
    return venue_s, symbol_s, side_s, parse_quantity(qty)


def validate_mode(name: str, value: Optional[str]) -> Optional[str]:
    """Normalise a mode flag.  None or blank means leave it unchanged."""
    mode = "" if value is None else str(value).strip().lower()
    if not mode:
        return None
    if mode not in Mode.ALL:
        raise ValidationError(f"{name} mode must be 'paper' or 'live'; got {value!r}")
    return mode
