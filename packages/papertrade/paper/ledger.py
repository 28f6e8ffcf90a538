"""Ledger: per-instrument FIFO lot book with realized P/L.

Design invariants
-----------------
1. **Minor-unit money**: lot prices, fees and realized P/L are integers in
   minor units (see :mod:`..money`).  Quantities are Decimal so fractional
   crypto sizes stay exact.
2. **FIFO**: lots are appended on opening fills and consumed oldest-first
   on closing fills.  A lot is removed once fully consumed.
3. **Realized P/L only moves on closing fills**: gross P/L is
   ``sum((close_price - lot_price) * closed_qty)`` over the consumed lots,
   rounded to a whole minor unit once per close, then the fee is subtracted
   once per close (never prorated per lot).
4. **Never raises**: any key, well-formed or not, simply gets a fresh entry.

Over-close
----------
Closing more than is open consumes every lot and ignores the remainder: the
missing quantity contributes nothing to realized P/L and no short inventory
is recorded.  A warning is logged.  Rejecting the order or modelling short
positions are the two correct alternatives; neither is implemented here.

Thread-safety: not thread-safe.  :class:`..state.TradingState` serialises
mutations under its lock.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal

from ..money import from_minor, round_minor

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass
class Lot:
    """A batch of acquired quantity at a fixed price."""

    qty: Decimal
    price_minor: int
    fee_minor: int


@dataclass
class LedgerEntry:
    """Open lots (oldest first) and cumulative realized P/L for one key."""

    lots: deque = field(default_factory=deque)
    realized_minor: int = 0

    @property
    def qty(self) -> Decimal:
        return sum((lot.qty for lot in self.lots), _ZERO)

    def avg_price_minor(self) -> int:
        qty = self.qty
        if qty == _ZERO:
            return 0
        cost = sum((lot.price_minor * lot.qty for lot in self.lots), _ZERO)
        return round_minor(cost / qty)


class Ledger:
    """FIFO lot books keyed by ``"venue:symbol"``."""

    def __init__(self) -> None:
        self._entries: dict[str, LedgerEntry] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        return list(self._entries)

    def ensure(self, key: str) -> LedgerEntry:
        """Return the entry for *key*, creating an empty one if needed."""
        entry = self._entries.get(key)
        if entry is None:
            entry = LedgerEntry()
            self._entries[key] = entry
        return entry

    def apply_open(
        self,
        key: str,
        qty: Decimal,
        price_minor: int,
        fee_minor: int,
    ) -> None:
        """Append a new lot.  No position limit is enforced."""
        self.ensure(key).lots.append(
            Lot(qty=Decimal(qty), price_minor=int(price_minor), fee_minor=int(fee_minor))
        )

    def apply_close(
        self,
        key: str,
        qty: Decimal,
        price_minor: int,
        fee_minor: int,
    ) -> int:
        """Consume lots FIFO and return the realized P/L delta in minor units."""
        entry = self.ensure(key)
        remaining = Decimal(qty)
        gross = _ZERO

        while remaining > _ZERO and entry.lots:
            lot = entry.lots[0]
            closed = min(remaining, lot.qty)
            gross += (price_minor - lot.price_minor) * closed
            lot.qty -= closed
            remaining -= closed
            if lot.qty == _ZERO:
                entry.lots.popleft()

        if remaining > _ZERO:
            logger.warning(
                "Close of %s %s exceeded open lots by %s; remainder closed against zero lots",
                qty, key, remaining,
            )

        delta = round_minor(gross) - int(fee_minor)
        entry.realized_minor += delta
        return delta

    def total_realized_minor(self) -> int:
        return sum(entry.realized_minor for entry in self._entries.values())

    def summary(self) -> dict[str, dict[str, str]]:
        """Open quantity and average lot price for every entry.

        Entries whose lots are fully closed are still listed with zero
        quantity and a ``"0.00"`` average price.
        """
        out: dict[str, dict[str, str]] = {}
        for key, entry in self._entries.items():
            out[key] = {
                "qty": str(entry.qty),
                "avg_price": from_minor(entry.avg_price_minor()),
            }
        return out

