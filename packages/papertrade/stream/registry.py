"""Per-connection subscription registry for the price stream.

Each connection is tracked by an opaque connection id; its transport handle
is stored on its :class:`SubscriptionState` and looked up when delivering,
never used as the table key.

Subscribe messages *replace* a connection's interest set wholesale::

    {"type": "subscribe", "items": [{"venue": "crypto", "symbol": "bitcoin"}]}

Items missing a venue or symbol are dropped silently.  A message that is not
valid JSON, not an object, not of type ``subscribe``, or whose ``items`` is
not a list raises :class:`MalformedMessage`; the caller drops it and keeps the
connection open.

Thread-safety: all table access goes through one lock.  Interest sets are
frozensets swapped in whole, so :meth:`SubscriptionRegistry.wanted_keys`
always sees each connection's set either before or after a subscribe, never
half-way.
"""

from __future__ import annotations

import dataclasses
import json
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol, Union

from ..paper.rules import instrument_key


class MalformedMessage(ValueError):
    """Raised when a client stream message cannot be understood."""


class Transport(Protocol):
    """Outbound side of one client connection."""

    @property
    def is_open(self) -> bool:
        ...

    async def send_json(self, frame: dict[str, Any]) -> None:
        ...


@dataclass(frozen=True)
class SubscriptionState:
    connection_id: str
    transport: Optional[Transport] = None
    keys: frozenset = frozenset()


def item_key(item: Any) -> Optional[str]:
    """Return ``"venue:symbol"`` for a well-formed item, else None."""
    if not isinstance(item, dict):
        return None
    venue = item.get("venue")
    symbol = item.get("symbol")
    if not isinstance(venue, str) or not isinstance(symbol, str):
        return None
    venue = venue.strip()
    symbol = symbol.strip()
    if not venue or not symbol:
        return None
    return instrument_key(venue, symbol)


def split_key(key: str) -> tuple[str, str]:
    venue, _, symbol = key.partition(":")
    return venue, symbol


def parse_subscribe_message(raw: Union[str, bytes]) -> list[Any]:
    """Decode a client message and return its ``items`` list."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MalformedMessage("message is not UTF-8") from exc
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MalformedMessage(f"message is not valid JSON: {exc}") from exc
    if not isinstance(msg, dict):
        raise MalformedMessage(f"message must be a JSON object, got {type(msg).__name__}")
    if msg.get("type") != "subscribe":
        raise MalformedMessage(f"unsupported message type: {msg.get('type')!r}")
    items = msg.get("items")
    if not isinstance(items, list):
        raise MalformedMessage("subscribe message needs an 'items' list")
    return items


class SubscriptionRegistry:
    """connection id -> :class:`SubscriptionState` table."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, SubscriptionState] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def register(self, connection_id: str, transport: Transport) -> SubscriptionState:
        """Start tracking a connection with an empty interest set."""
        state = SubscriptionState(connection_id=connection_id, transport=transport)
        with self._lock:
            self._states[connection_id] = state
        return state

    def subscribe(self, connection_id: str, items: Iterable[Any]) -> list[str]:
        """Replace the connection's interest set; return the resulting keys, sorted.

        Unknown connection ids (never registered, or already unregistered)
        are ignored and get ``[]``.
        """
        keys = set()
        for item in items:
            key = item_key(item)
            if key is not None:
                keys.add(key)
        new_keys = frozenset(keys)

        with self._lock:
            state = self._states.get(connection_id)
            if state is None:
                return []
            self._states[connection_id] = dataclasses.replace(state, keys=new_keys)
        return sorted(new_keys)

    def unregister(self, connection_id: str) -> None:
        """Forget a connection.  No error if it is unknown."""
        with self._lock:
            self._states.pop(connection_id, None)

    def interests(self, connection_id: str) -> frozenset:
        with self._lock:
            state = self._states.get(connection_id)
        return state.keys if state is not None else frozenset()

    def wanted_keys(self) -> set[str]:
        """Union of every connection's interest set (fresh snapshot)."""
        with self._lock:
            states = list(self._states.values())
        wanted: set[str] = set()
        for state in states:
            wanted.update(state.keys)
        return wanted

    def subscribers(self, key: str) -> list[tuple[str, Transport]]:
        """Connections interested in *key* that have a transport attached."""
        with self._lock:
            states = list(self._states.values())
        return [
            (state.connection_id, state.transport)
            for state in states
            if key in state.keys and state.transport is not None
        ]
