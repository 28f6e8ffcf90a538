"""USD -> INR rate cache with a stale-but-available policy.

The rate starts at a configured default and is refreshed periodically.  A
failed refresh (HTTP error, malformed body, non-positive rate) keeps the
previous value indefinitely; callers always get *a* rate and never see an
error.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from decimal import Decimal, InvalidOperation
from typing import Optional

import requests

from .http_client import HttpClient

logger = logging.getLogger(__name__)

DEFAULT_FX_API_BASE = "https://api.exchangerate.host"
DEFAULT_FX_RATE = Decimal("83.0")


class FxRateCache:
    """Cached USD -> *quote_currency* rate."""

    def __init__(
        self,
        client: Optional[HttpClient] = None,
        default_rate: Decimal = DEFAULT_FX_RATE,
        base_currency: str = "USD",
        quote_currency: str = "INR",
    ) -> None:
        self.client = client or HttpClient(base_url=DEFAULT_FX_API_BASE)
        self.base_currency = base_currency
        self.quote_currency = quote_currency
        self._rate = Decimal(str(default_rate))
        self._lock = threading.Lock()

    @property
    def rate(self) -> Decimal:
        with self._lock:
            return self._rate

    def refresh(self) -> bool:
        """Fetch a fresh rate.  Returns True when a new rate was stored."""
        try:
            payload = self.client.get_json(
                "/latest",
                params={"base": self.base_currency, "symbols": self.quote_currency},
            )
        except (requests.RequestException, ValueError) as exc:
            logger.warning("FX refresh failed, keeping %s: %s", self.rate, exc)
            return False

        rates = payload.get("rates") if isinstance(payload, dict) else None
        raw = rates.get(self.quote_currency) if isinstance(rates, dict) else None
        try:
            new_rate = Decimal(str(raw)) if raw is not None else None
        except InvalidOperation:
            new_rate = None
        if new_rate is None or not new_rate.is_finite() or new_rate <= 0:
            logger.warning("FX refresh returned no usable %s rate, keeping %s", self.quote_currency, self.rate)
            return False

        with self._lock:
            self._rate = new_rate
        logger.debug("FX %s/%s = %s", self.base_currency, self.quote_currency, new_rate)
        return True

    async def run_forever(self, interval_seconds: float = 60.0) -> None:
        """Refresh now and then every *interval_seconds* until cancelled."""
        loop = asyncio.get_running_loop()
        while True:
            await loop.run_in_executor(None, self.refresh)
            await asyncio.sleep(interval_seconds)
