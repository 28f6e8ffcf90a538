"""TradingState: the explicitly owned, injectable trading state.

One instance owns the ledger, the append-only order and fill logs, the
advisory mode flags and the order-id sequence.  Pass it to
:class:`.fill_engine.FillEngine` and :class:`.report.ReportQuery`; tests
build a fresh one per case.

``lock`` guards every in-memory mutation.  It is never held across network
I/O: the fill engine fetches its quote first and takes the lock only to
book the fill.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from .ledger import Ledger
from .rules import Fill, Mode, Order, validate_mode


def now_ms() -> int:
    return int(time.time() * 1000)


class TradingState:
    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.ledger = Ledger()
        self.orders: list[Order] = []
        self.fills: list[Fill] = []
        self._mode: dict[str, str] = {"crypto": Mode.PAPER, "stocks": Mode.PAPER}
        self._next_order_id = 1

    def next_order_id(self) -> int:
        """Allocate the next monotonic order id.  Caller holds ``lock``."""
        order_id = self._next_order_id
        self._next_order_id += 1
        return order_id

    def get_mode(self) -> dict[str, str]:
        with self.lock:
            return dict(self._mode)

    def set_mode(self, crypto: Optional[str] = None, stocks: Optional[str] = None) -> dict[str, str]:
        """Update the advisory mode flags.  Fills are paper regardless."""
        crypto_mode = validate_mode("crypto", crypto)
        stocks_mode = validate_mode("stocks", stocks)
        with self.lock:
            if crypto_mode is not None:
                self._mode["crypto"] = crypto_mode
            if stocks_mode is not None:
                self._mode["stocks"] = stocks_mode
            return dict(self._mode)

    def orders_between(self, from_ts: int, to_ts: int) -> list[Order]:
        with self.lock:
            return [o for o in self.orders if from_ts <= o.ts <= to_ts]

    def fills_between(self, from_ts: int, to_ts: int) -> list[Fill]:
        with self.lock:
            return [f for f in self.fills if from_ts <= f.ts <= to_ts]
