"""Read-only, time-windowed report over orders, fills and positions.

The window ``[from_ts, to_ts]`` (epoch millis) is inclusive on both ends and
applies to orders and fills.  Positions are always the current snapshot.

``total_realized_minor`` is the sum of realized P/L across *every* ledger
entry and ignores the window.  This matches how the dashboard has always
shown the running total; windowed realized P/L is the ``realized`` column of
the returned fills.
"""

from __future__ import annotations

from typing import Any, Callable, Optional

from ..money import from_minor
from .rules import ValidationError
from .state import TradingState, now_ms

REPORT_KINDS = ("orders", "fills", "positions", "all")


class ReportQuery:
    def __init__(self, state: TradingState, clock: Callable[[], int] = now_ms) -> None:
        self._state = state
        self._clock = clock

    def query(
        self,
        from_ts: Optional[int] = None,
        to_ts: Optional[int] = None,
        kind: str = "all",
    ) -> dict[str, Any]:
        kind = (kind or "all").strip().lower()
        if kind not in REPORT_KINDS:
            raise ValidationError(f"type must be one of: {', '.join(REPORT_KINDS)}; got {kind!r}")

        lo = 0 if from_ts is None else int(from_ts)
        hi = self._clock() if to_ts is None else int(to_ts)

        payload: dict[str, Any] = {}
        if kind in ("orders", "all"):
            payload["orders"] = [o.to_dict() for o in self._state.orders_between(lo, hi)]
        if kind in ("fills", "all"):
            payload["fills"] = [f.to_dict() for f in self._state.fills_between(lo, hi)]

        with self._state.lock:
            if kind in ("positions", "all"):
                payload["positions"] = self._state.ledger.summary()
            total = self._state.ledger.total_realized_minor()

        payload["total_realized_minor"] = total
        payload["total_realized"] = from_minor(total)
        return payload
