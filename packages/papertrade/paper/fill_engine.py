"""Paper fill engine: order intent -> quote -> ledger mutation -> fill record.

Processing order for one :meth:`FillEngine.submit` call:

  1. **Validate** the intent (:class:`.rules.ValidationError` before any I/O).
  2. **Quote** the instrument through the injected ``PriceSource``.  A
     :class:`~..quotes.QuoteUnavailable` propagates to the caller untouched;
     retrying is the caller's decision.  Price, fee and notional are then
     converted to minor units; an order too large to represent is a
     :class:`.rules.ValidationError`.
  3. **Book** under ``TradingState.lock``: allocate the order id, append the
     order, open a lot (BUY/COVER) or close lots FIFO (SELL/SHORT), append
     the fill.

Failure can only happen in steps 1-2, so a failed submit never leaves a
partial mutation behind.  Every successful submit mutates exactly one ledger
entry and appends exactly one order and one fill.

Fees are a flat fraction of notional (``price * qty * fee_rate``), charged on
every fill.  On opening fills the fee is stored on the lot; on closing fills
it is subtracted from realized P/L once per order.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from ..money import to_minor
from ..quotes import PriceSource, QuoteUnavailable
from .rules import Fill, Mode, Order, Side, ValidationError, validate_order_intent
from .state import TradingState, now_ms

logger = logging.getLogger(__name__)

DEFAULT_FEE_RATE = Decimal("0.0005")

# Largest notional a single order may book, in minor units.
MAX_NOTIONAL_MINOR = 10**20


class FillEngine:
    """Executes paper orders against a :class:`TradingState`."""

    def __init__(
        self,
        state: TradingState,
        price_source: PriceSource,
        fee_rate: Decimal = DEFAULT_FEE_RATE,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._state = state
        self._price_source = price_source
        self._fee_rate = Decimal(str(fee_rate))
        self._clock = clock

    @property
    def fee_rate(self) -> Decimal:
        return self._fee_rate

    def fee_minor(self, price: Decimal, qty: Decimal) -> int:
        return to_minor(price * qty * self._fee_rate)

    def submit(self, venue: Any, symbol: Any, side: Any, qty: Any) -> Fill:
        """Fill one order at the current quoted price.

        Raises:
            ValidationError: missing or invalid intent fields, or a notional
                too large to book.
            QuoteUnavailable: the price source could not quote the instrument.
        """
        venue, symbol, side, qty = validate_order_intent(venue, symbol, side, qty)

        quote = self._price_source.get_price(venue, symbol)
        price = quote.price
        if price <= 0:
            raise QuoteUnavailable(f"Non-positive price for {venue}:{symbol}: {price}")

        price_minor, fee_minor = self._money(venue, symbol, price, qty)

        with self._state.lock:
            order = Order(
                order_id=self._state.next_order_id(),
                ts=self._clock(),
                venue=venue,
                symbol=symbol,
                side=side,
                qty=qty,
                price=price,
                mode=Mode.PAPER,
            )
            self._state.orders.append(order)
            fill = self._book(order, price_minor, fee_minor)

        logger.info(
            "Paper fill #%d %s %s %s @ %s fee=%s realized=%s",
            order.order_id, order.side, order.qty, order.key,
            order.price, fill.fee, fill.realized,
        )
        return fill

    def _money(self, venue: str, symbol: str, price: Decimal, qty: Decimal) -> tuple[int, int]:
        """Price and fee in minor units, checked before anything is booked."""
        try:
            notional_minor = to_minor(price * qty)
            price_minor = to_minor(price)
            fee_minor = self.fee_minor(price, qty)
        except InvalidOperation:
            raise ValidationError(f"order notional too large for {venue}:{symbol}") from None
        if notional_minor > MAX_NOTIONAL_MINOR:
            raise ValidationError(f"order notional too large for {venue}:{symbol}")
        return price_minor, fee_minor

    def _book(self, order: Order, price_minor: int, fee_minor: int) -> Fill:
        """Apply *order* to the ledger and append its fill.  Caller holds the lock."""
        ledger = self._state.ledger
        if Side.is_opening(order.side):
            ledger.apply_open(order.key, order.qty, price_minor, fee_minor)
            realized_minor = 0
        else:
            realized_minor = ledger.apply_close(order.key, order.qty, price_minor, fee_minor)

        fill = Fill(order=order, fee_minor=fee_minor, realized_minor=realized_minor)
        self._state.fills.append(fill)
        return fill
