"""SMA(8) trend recommendation over recent tick prices.

BUY when the last price is above the simple moving average, SELL/SHORT when
it is below, HOLD when equal or when there is not enough history.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

DEFAULT_WINDOW = 8


def sma(values: Sequence[Decimal], n: int) -> Optional[Decimal]:
    if n <= 0 or len(values) < n:
        return None
    window = [Decimal(str(v)) for v in values[-n:]]
    return sum(window, Decimal("0")) / n


def simple_reco(prices: Sequence[Decimal], window: int = DEFAULT_WINDOW) -> dict[str, str]:
    avg = sma(prices, window)
    if avg is None:
        return {"action": "HOLD", "reason": "Not enough data"}
    last = Decimal(str(prices[-1]))
    if last > avg:
        return {"action": "BUY", "reason": f"Price > SMA({window})"}
    if last < avg:
        return {"action": "SELL/SHORT", "reason": f"Price < SMA({window})"}
    return {"action": "HOLD", "reason": f"Near SMA({window})"}
