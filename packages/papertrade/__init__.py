"""Paper-trading engine and price fan-out for the Auto Trader service."""

from .money import from_minor, to_minor
from .quotes import PriceSource, Quote, QuoteUnavailable, VenuePriceSource, build_price_source
from .fx import FxRateCache
from .paper.rules import Fill, Order, Side, ValidationError
from .paper.ledger import Ledger
from .paper.state import TradingState
from .paper.fill_engine import FillEngine
from .paper.report import ReportQuery
from .stream.registry import MalformedMessage, SubscriptionRegistry
from .stream.broadcast import BroadcastScheduler

__version__ = "0.1.0"

__all__ = [
    "to_minor",
    "from_minor",
    "PriceSource",
    "Quote",
    "QuoteUnavailable",
    "VenuePriceSource",
    "build_price_source",
    "FxRateCache",
    "Fill",
    "Order",
    "Side",
    "ValidationError",
    "Ledger",
    "TradingState",
    "FillEngine",
    "ReportQuery",
    "MalformedMessage",
    "SubscriptionRegistry",
    "BroadcastScheduler",
]
