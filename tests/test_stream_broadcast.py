"""Tests for the broadcast scheduler.

Each test drives ticks directly with ``asyncio.run(scheduler.run_tick())``
against fakes; no event loop outlives a test.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

from packages.papertrade.stream.broadcast import BroadcastScheduler, error_frame, tick_frame
from packages.papertrade.stream.registry import SubscriptionRegistry
from packages.papertrade.quotes import quote_with_spread
from tests import _fakes as fakes

BTC = {"venue": "crypto", "symbol": "bitcoin"}
ETH = {"venue": "crypto", "symbol": "ethereum"}
IBM = {"venue": "stock", "symbol": "IBM"}


def _setup(prices=None, fx="83.0"):
    registry = SubscriptionRegistry()
    source = fakes.FakePriceSource(
        prices or {"crypto:bitcoin": "100", "crypto:ethereum": "2000", "stock:IBM": "150"}
    )
    scheduler = BroadcastScheduler(
        registry,
        source,
        fakes.FakeFx(fx),
        period_seconds=0.01,
        clock=fakes.StepClock(start=42),
    )
    return registry, source, scheduler


def _connect(registry, cid, *items, **transport_kwargs):
    transport = fakes.FakeTransport(**transport_kwargs)
    registry.register(cid, transport)
    registry.subscribe(cid, list(items))
    return transport


# ===========================================================================
# Frames
# ===========================================================================


def test_tick_frame_shape():
    quote = quote_with_spread("crypto", "bitcoin", Decimal("100"), Decimal("0.0006"))
    assert tick_frame(quote, Decimal("83.5"), 7) == {
        "type": "tick",
        "venue": "crypto",
        "symbol": "bitcoin",
        "fx": "83.5",
        "price": "100.00",
        "bid": "99.97",
        "ask": "100.03",
        "ts": 7,
    }


def test_tick_frame_without_fx():
    quote = quote_with_spread("stock", "IBM", Decimal("150"), Decimal("0.0008"))
    assert tick_frame(quote, None, 1)["fx"] is None


def test_error_frame_shape():
    assert error_frame("stock", "IBM", "ALPHAVANTAGE_KEY missing", 9) == {
        "type": "error",
        "venue": "stock",
        "symbol": "IBM",
        "message": "ALPHAVANTAGE_KEY missing",
        "ts": 9,
    }


# ===========================================================================
# run_tick
# ===========================================================================


class TestRunTick:
    def test_no_subscribers_means_no_fetch(self):
        registry, source, scheduler = _setup()
        registry.register("idle", fakes.FakeTransport())

        report = asyncio.run(scheduler.run_tick())

        assert report.fetched == 0
        assert source.calls == []

    def test_one_fetch_per_key_regardless_of_subscribers(self):
        registry, source, scheduler = _setup()
        t1 = _connect(registry, "c1", BTC)
        t2 = _connect(registry, "c2", BTC, IBM)

        report = asyncio.run(scheduler.run_tick())

        assert sorted(source.calls) == [("crypto", "bitcoin"), ("stock", "IBM")]
        assert report.ticks == 2
        assert report.delivered == 3
        assert [f["symbol"] for f in t1.frames] == ["bitcoin"]
        assert sorted(f["symbol"] for f in t2.frames) == ["IBM", "bitcoin"]

    def test_frames_carry_fx_and_timestamp(self):
        registry, _, scheduler = _setup(fx="84.25")
        transport = _connect(registry, "c1", BTC)
        asyncio.run(scheduler.run_tick())
        frame = transport.frames[0]
        assert frame["type"] == "tick"
        assert frame["fx"] == "84.25"
        assert frame["ts"] == 42
        assert frame["price"] == "100.00"

    def test_failing_key_is_isolated(self):
        registry, source, scheduler = _setup()
        source.fail("crypto", "ethereum", "HTTP 429 for upstream")
        transport = _connect(registry, "c1", BTC, ETH)

        report = asyncio.run(scheduler.run_tick())

        by_symbol = {f["symbol"]: f for f in transport.frames}
        assert by_symbol["bitcoin"]["type"] == "tick"
        assert by_symbol["ethereum"]["type"] == "error"
        assert by_symbol["ethereum"]["message"] == "HTTP 429 for upstream"
        assert (report.ticks, report.errors) == (1, 1)

    def test_unexpected_exception_becomes_error_frame(self):
        registry, source, scheduler = _setup()

        def explode(venue, symbol):
            raise KeyError("boom")

        source.get_price = explode
        transport = _connect(registry, "c1", BTC)

        report = asyncio.run(scheduler.run_tick())

        assert report.errors == 1
        assert transport.frames[0]["type"] == "error"

    def test_unknown_venue_error_frame(self):
        registry, _, scheduler = _setup()
        transport = _connect(registry, "c1", {"venue": "forex", "symbol": "EURUSD"})
        asyncio.run(scheduler.run_tick())
        assert transport.frames == [
            {"type": "error", "venue": "forex", "symbol": "EURUSD", "message": "Unknown venue", "ts": 42}
        ]

    def test_closed_transport_is_skipped(self):
        registry, _, scheduler = _setup()
        closed = _connect(registry, "c1", BTC, is_open=False)
        live = _connect(registry, "c2", BTC)

        report = asyncio.run(scheduler.run_tick())

        assert closed.frames == []
        assert len(live.frames) == 1
        assert (report.delivered, report.dropped) == (1, 1)

    def test_broken_transport_does_not_stop_others(self):
        registry, _, scheduler = _setup()
        _connect(registry, "c1", BTC, broken=True)
        live = _connect(registry, "c2", BTC)

        report = asyncio.run(scheduler.run_tick())

        assert len(live.frames) == 1
        assert report.dropped == 1

    def test_unregistered_connection_gets_nothing(self):
        registry, source, scheduler = _setup()
        transport = _connect(registry, "c1", BTC)
        registry.unregister("c1")

        asyncio.run(scheduler.run_tick())

        assert transport.frames == []
        assert source.calls == []

    def test_late_subscribe_after_disconnect_fetches_nothing(self):
        registry, source, scheduler = _setup()
        _connect(registry, "c1", BTC)
        registry.unregister("c1")
        registry.subscribe("c1", [BTC])

        for _ in range(3):
            report = asyncio.run(scheduler.run_tick())

        assert report.fetched == 0
        assert source.calls == []

    def test_resubscribe_changes_next_tick(self):
        registry, _, scheduler = _setup()
        transport = _connect(registry, "c1", BTC)
        asyncio.run(scheduler.run_tick())
        registry.subscribe("c1", [IBM])
        asyncio.run(scheduler.run_tick())
        assert [f["symbol"] for f in transport.frames] == ["bitcoin", "IBM"]


# ===========================================================================
# History and loop
# ===========================================================================


def test_recent_prices_keeps_successful_ticks_only():
    registry, source, scheduler = _setup()
    _connect(registry, "c1", BTC)

    asyncio.run(scheduler.run_tick())
    source.set_price("crypto", "bitcoin", "101")
    asyncio.run(scheduler.run_tick())
    source.fail("crypto", "bitcoin")
    asyncio.run(scheduler.run_tick())

    assert scheduler.recent_prices("crypto:bitcoin") == [Decimal("100.00"), Decimal("101.00")]
    assert scheduler.recent_prices("stock:IBM") == []


def test_history_is_bounded():
    registry = SubscriptionRegistry()
    source = fakes.FakePriceSource({"crypto:bitcoin": "1"})
    scheduler = BroadcastScheduler(registry, source, history_size=3, clock=fakes.StepClock())
    _connect(registry, "c1", BTC)

    for price in ("1", "2", "3", "4", "5"):
        source.set_price("crypto", "bitcoin", price)
        asyncio.run(scheduler.run_tick())

    assert scheduler.recent_prices("crypto:bitcoin") == [Decimal("3.00"), Decimal("4.00"), Decimal("5.00")]


def test_run_forever_ticks_until_cancelled():
    registry, source, scheduler = _setup()
    transport = _connect(registry, "c1", BTC)

    async def run_briefly():
        task = asyncio.create_task(scheduler.run_forever())
        await asyncio.sleep(0.05)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    asyncio.run(run_briefly())

    assert len(transport.frames) >= 2
    assert all(f["type"] == "tick" for f in transport.frames)
