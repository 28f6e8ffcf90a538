"""BroadcastScheduler: periodic price fan-out to subscribed connections.

One tick:

  1. Snapshot ``registry.wanted_keys()``.  Empty -> the tick does nothing
     (no upstream fetch, no frames).
  2. For every wanted key, fetch one quote in a worker thread.  Keys are
     fetched in parallel and each one is isolated: a failure becomes an
     ``error`` frame for that key only.
  3. Deliver the key's frame to every subscriber whose transport is open.
     A send that fails on a closed or broken transport is dropped; cleaning
     up the connection is the disconnect handler's job, not ours.

Frame shapes::

    {"type": "tick",  "venue", "symbol", "fx", "price", "bid", "ask", "ts"}
    {"type": "error", "venue", "symbol", "message", "ts"}

Prices and the FX rate are decimal strings; ``ts`` is epoch millis.

:meth:`BroadcastScheduler.run_forever` runs ticks back to back with a sleep
of ``period_seconds`` in between, so ticks never overlap.  There is no retry
inside a tick; the next tick retries naturally.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from concurrent.futures import Executor
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Optional

from ..fx import FxRateCache
from ..paper.state import now_ms
from ..quotes import PriceSource, Quote
from .registry import SubscriptionRegistry, split_key

logger = logging.getLogger(__name__)

DEFAULT_PERIOD_SECONDS = 3.0
DEFAULT_HISTORY_SIZE = 64


@dataclass
class TickReport:
    """What one tick did.  Mostly for logs and tests."""

    keys: list[str] = field(default_factory=list)
    ticks: int = 0
    errors: int = 0
    delivered: int = 0
    dropped: int = 0

    @property
    def fetched(self) -> int:
        return len(self.keys)


def tick_frame(quote: Quote, fx_rate: Optional[Decimal], ts: int) -> dict[str, Any]:
    return {
        "type": "tick",
        "venue": quote.venue,
        "symbol": quote.symbol,
        "fx": str(fx_rate) if fx_rate is not None else None,
        "price": str(quote.price),
        "bid": str(quote.bid),
        "ask": str(quote.ask),
        "ts": ts,
    }


def error_frame(venue: str, symbol: str, message: str, ts: int) -> dict[str, Any]:
    return {
        "type": "error",
        "venue": venue,
        "symbol": symbol,
        "message": message,
        "ts": ts,
    }


class BroadcastScheduler:
    def __init__(
        self,
        registry: SubscriptionRegistry,
        price_source: PriceSource,
        fx_source: Optional[FxRateCache] = None,
        period_seconds: float = DEFAULT_PERIOD_SECONDS,
        clock: Callable[[], int] = now_ms,
        history_size: int = DEFAULT_HISTORY_SIZE,
        executor: Optional[Executor] = None,
    ) -> None:
        self._registry = registry
        self._price_source = price_source
        self._fx_source = fx_source
        self._period = float(period_seconds)
        self._clock = clock
        self._history_size = int(history_size)
        self._executor = executor
        self._history: dict[str, deque] = {}

    @property
    def period_seconds(self) -> float:
        return self._period

    def recent_prices(self, key: str) -> list[Decimal]:
        """Last prices seen for *key*, oldest first."""
        return list(self._history.get(key, ()))

    async def run_tick(self) -> TickReport:
        keys = sorted(self._registry.wanted_keys())
        report = TickReport(keys=keys)
        if not keys:
            return report

        outcomes = await asyncio.gather(*(self._process_key(key) for key in keys))
        for ok, delivered, dropped in outcomes:
            if ok:
                report.ticks += 1
            else:
                report.errors += 1
            report.delivered += delivered
            report.dropped += dropped

        logger.debug(
            "Broadcast tick: keys=%d ticks=%d errors=%d delivered=%d dropped=%d",
            report.fetched, report.ticks, report.errors, report.delivered, report.dropped,
        )
        return report

    async def run_forever(self) -> None:
        """Run ticks until cancelled."""
        logger.info("Broadcast loop started (period=%ss)", self._period)
        try:
            while True:
                await self.run_tick()
                await asyncio.sleep(self._period)
        finally:
            logger.info("Broadcast loop stopped")

    async def _process_key(self, key: str) -> tuple[bool, int, int]:
        venue, symbol = split_key(key)
        loop = asyncio.get_running_loop()
        try:
            quote = await loop.run_in_executor(
                self._executor, self._price_source.get_price, venue, symbol
            )
        except Exception as exc:  # noqa: BLE001 - one key must not sink the tick
            logger.warning("Quote fetch failed for %s: %s", key, exc)
            frame = error_frame(venue, symbol, str(exc), self._clock())
            ok = False
        else:
            self._remember(key, quote.price)
            fx_rate = self._fx_source.rate if self._fx_source is not None else None
            frame = tick_frame(quote, fx_rate, self._clock())
            ok = True

        delivered, dropped = await self._deliver(key, frame)
        return ok, delivered, dropped

    async def _deliver(self, key: str, frame: dict[str, Any]) -> tuple[int, int]:
        delivered = 0
        dropped = 0
        for connection_id, transport in self._registry.subscribers(key):
            if not transport.is_open:
                dropped += 1
                continue
            try:
                await transport.send_json(frame)
            except Exception as exc:  # noqa: BLE001 - closed transports are a no-op
                logger.debug("Dropped %s frame for %s on %s: %s", frame["type"], key, connection_id, exc)
                dropped += 1
            else:
                delivered += 1
        return delivered, dropped

    def _remember(self, key: str, price: Decimal) -> None:
        history = self._history.get(key)
        if history is None:
            history = deque(maxlen=self._history_size)
            self._history[key] = history
        history.append(price)
