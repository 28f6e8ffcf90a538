"""Tests for the subscription registry and subscribe-message parsing."""

from __future__ import annotations

import json

import pytest

from packages.papertrade.stream.registry import (
    MalformedMessage,
    SubscriptionRegistry,
    item_key,
    parse_subscribe_message,
    split_key,
)
from tests import _fakes as fakes


def _msg(*items, **extra):
    body = {"type": "subscribe", "items": list(items)}
    body.update(extra)
    return json.dumps(body)


# ===========================================================================
# parse_subscribe_message
# ===========================================================================


class TestParse:
    def test_returns_items(self):
        items = parse_subscribe_message(_msg({"venue": "crypto", "symbol": "bitcoin"}))
        assert items == [{"venue": "crypto", "symbol": "bitcoin"}]

    def test_accepts_bytes(self):
        raw = _msg({"venue": "stock", "symbol": "IBM"}).encode("utf-8")
        assert parse_subscribe_message(raw) == [{"venue": "stock", "symbol": "IBM"}]

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2]",
            '"subscribe"',
            json.dumps({"type": "unsubscribe", "items": []}),
            json.dumps({"items": []}),
            json.dumps({"type": "subscribe"}),
            json.dumps({"type": "subscribe", "items": "crypto:bitcoin"}),
            b"\xff\xfe",
        ],
    )
    def test_malformed(self, raw):
        with pytest.raises(MalformedMessage):
            parse_subscribe_message(raw)


class TestItemKey:
    def test_well_formed(self):
        assert item_key({"venue": "crypto", "symbol": "bitcoin"}) == "crypto:bitcoin"

    def test_strips_whitespace(self):
        assert item_key({"venue": " stock ", "symbol": "IBM "}) == "stock:IBM"

    @pytest.mark.parametrize(
        "item",
        [
            None,
            "crypto:bitcoin",
            {"venue": "crypto"},
            {"symbol": "bitcoin"},
            {"venue": "", "symbol": "bitcoin"},
            {"venue": "crypto", "symbol": 42},
        ],
    )
    def test_ill_formed_is_none(self, item):
        assert item_key(item) is None

    def test_split_key(self):
        assert split_key("crypto:bitcoin") == ("crypto", "bitcoin")
        assert split_key("stock:BRK:B") == ("stock", "BRK:B")


# ===========================================================================
# SubscriptionRegistry
# ===========================================================================


class TestRegistry:
    def test_register_starts_empty(self):
        reg = SubscriptionRegistry()
        reg.register("c1", fakes.FakeTransport())
        assert len(reg) == 1
        assert reg.interests("c1") == frozenset()
        assert reg.wanted_keys() == set()

    def test_subscribe_replaces_interest_set(self):
        reg = SubscriptionRegistry()
        reg.register("c1", fakes.FakeTransport())
        reg.subscribe("c1", [{"venue": "crypto", "symbol": "bitcoin"}, {"venue": "stock", "symbol": "IBM"}])
        keys = reg.subscribe("c1", [{"venue": "crypto", "symbol": "ethereum"}])

        assert keys == ["crypto:ethereum"]
        assert reg.interests("c1") == frozenset({"crypto:ethereum"})

    def test_subscribe_with_empty_list_clears(self):
        reg = SubscriptionRegistry()
        reg.register("c1", fakes.FakeTransport())
        reg.subscribe("c1", [{"venue": "crypto", "symbol": "bitcoin"}])
        assert reg.subscribe("c1", []) == []
        assert reg.wanted_keys() == set()

    def test_ill_formed_items_dropped_and_duplicates_collapsed(self):
        reg = SubscriptionRegistry()
        reg.register("c1", fakes.FakeTransport())
        keys = reg.subscribe(
            "c1",
            [
                {"venue": "stock", "symbol": "IBM"},
                {"venue": "crypto"},
                "junk",
                {"venue": "stock", "symbol": "IBM"},
                {"venue": "crypto", "symbol": "bitcoin"},
            ],
        )
        assert keys == ["crypto:bitcoin", "stock:IBM"]

    def test_wanted_keys_is_union(self):
        reg = SubscriptionRegistry()
        reg.register("c1", fakes.FakeTransport())
        reg.register("c2", fakes.FakeTransport())
        reg.subscribe("c1", [{"venue": "crypto", "symbol": "bitcoin"}])
        reg.subscribe("c2", [{"venue": "crypto", "symbol": "bitcoin"}, {"venue": "stock", "symbol": "IBM"}])
        assert reg.wanted_keys() == {"crypto:bitcoin", "stock:IBM"}

    def test_wanted_keys_is_a_snapshot(self):
        reg = SubscriptionRegistry()
        reg.register("c1", fakes.FakeTransport())
        reg.subscribe("c1", [{"venue": "crypto", "symbol": "bitcoin"}])
        snapshot = reg.wanted_keys()
        reg.subscribe("c1", [])
        assert snapshot == {"crypto:bitcoin"}

    def test_unregister_removes_interest(self):
        reg = SubscriptionRegistry()
        reg.register("c1", fakes.FakeTransport())
        reg.subscribe("c1", [{"venue": "crypto", "symbol": "bitcoin"}])
        reg.unregister("c1")
        assert len(reg) == 0
        assert reg.wanted_keys() == set()
        assert reg.subscribers("crypto:bitcoin") == []

    def test_unregister_unknown_is_noop(self):
        reg = SubscriptionRegistry()
        reg.unregister("ghost")
        assert len(reg) == 0

    def test_subscribers_only_for_key(self):
        reg = SubscriptionRegistry()
        t1, t2 = fakes.FakeTransport(), fakes.FakeTransport()
        reg.register("c1", t1)
        reg.register("c2", t2)
        reg.subscribe("c1", [{"venue": "crypto", "symbol": "bitcoin"}])
        reg.subscribe("c2", [{"venue": "stock", "symbol": "IBM"}])
        assert reg.subscribers("crypto:bitcoin") == [("c1", t1)]

    def test_subscribe_unknown_connection_is_ignored(self):
        reg = SubscriptionRegistry()
        assert reg.subscribe("c9", [{"venue": "crypto", "symbol": "bitcoin"}]) == []
        assert len(reg) == 0
        assert reg.wanted_keys() == set()

    def test_subscribe_after_unregister_does_not_resurrect(self):
        reg = SubscriptionRegistry()
        reg.register("c1", fakes.FakeTransport())
        reg.unregister("c1")
        assert reg.subscribe("c1", [{"venue": "crypto", "symbol": "bitcoin"}]) == []
        assert len(reg) == 0
        assert reg.wanted_keys() == set()

    def test_register_again_resets_interests(self):
        reg = SubscriptionRegistry()
        reg.register("c1", fakes.FakeTransport())
        reg.subscribe("c1", [{"venue": "crypto", "symbol": "bitcoin"}])
        reg.register("c1", fakes.FakeTransport())
        assert reg.interests("c1") == frozenset()
