"""Auto Trader API: paper orders, reports, mode flags, and the price stream.

Usage:
    uvicorn services.api.main:app --port 8080
    # or
    python -m autotrader serve
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query, WebSocket
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field
from starlette.websockets import WebSocketState

from packages.papertrade import __version__
from packages.papertrade.config import AppConfig
from packages.papertrade.fx import FxRateCache
from packages.papertrade.http_client import HttpClient
from packages.papertrade.paper.fill_engine import FillEngine
from packages.papertrade.paper.report import ReportQuery
from packages.papertrade.paper.rules import ValidationError, instrument_key
from packages.papertrade.paper.state import TradingState
from packages.papertrade.quotes import PriceSource, QuoteUnavailable, build_price_source
from packages.papertrade.recommend import simple_reco
from packages.papertrade.stream.broadcast import BroadcastScheduler
from packages.papertrade.stream.registry import (
    MalformedMessage,
    SubscriptionRegistry,
    parse_subscribe_message,
)

CONFIG = AppConfig.from_env()

logging.basicConfig(
    level=getattr(logging, CONFIG.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

_INDEX_HTML = """<!doctype html>
<html>
<head><meta charset="utf-8"/><title>Auto Trader</title></head>
<body>
<h1>Auto Trader &mdash; Paper Demo</h1>
<p>REST: <code>/api/price</code>, <code>/api/mode</code>, <code>/api/paper/order</code>,
<code>/api/reports</code>, <code>/api/reco</code>. Stream: <code>/ws</code>.</p>
</body>
</html>
"""


# Request models
class OrderRequest(BaseModel):
    """Request body for /api/paper/order.

    Every field is optional here so that missing fields come back as a 400
    from order validation rather than a schema error.
    """

    venue: Optional[str] = Field(default=None, description="crypto or stock")
    symbol: Optional[str] = Field(default=None, description="CoinGecko id or ticker")
    side: Optional[str] = Field(default=None, description="BUY, SELL, SHORT or COVER")
    qty: Any = Field(default=None, description="Positive quantity")


class ModeRequest(BaseModel):
    """Request body for POST /api/mode."""

    crypto: Optional[str] = None
    stocks: Optional[str] = None


class WebSocketTransport:
    """Adapts a FastAPI WebSocket to the registry's transport protocol."""

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket
        self._closed = False
        self._send_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._ws.client_state == WebSocketState.CONNECTED
            and self._ws.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        self._closed = True

    async def send_json(self, frame: dict[str, Any]) -> None:
        async with self._send_lock:
            await self._ws.send_json(frame)


def create_app(
    config: Optional[AppConfig] = None,
    state: Optional[TradingState] = None,
    price_source: Optional[PriceSource] = None,
    fx_source: Optional[FxRateCache] = None,
    registry: Optional[SubscriptionRegistry] = None,
    start_background: bool = True,
) -> FastAPI:
    """Create the Auto Trader FastAPI application.

    Parameters
    ----------
    config:
        Service settings.  Defaults to :meth:`AppConfig.from_env`.
    state, price_source, fx_source, registry:
        Injectable collaborators; tests pass fakes and a fresh
        :class:`TradingState`.
    start_background:
        Start the broadcast and FX refresh loops in the app lifespan.
    """
    config = config or CONFIG
    state = state or TradingState()
    price_source = price_source or build_price_source(
        alphavantage_key=config.alphavantage_key,
        coingecko_base=config.coingecko_api_base,
        alphavantage_base=config.alphavantage_api_base,
        timeout=config.http_timeout_seconds,
    )
    fx_source = fx_source or FxRateCache(
        client=HttpClient(base_url=config.fx_api_base, timeout=config.http_timeout_seconds),
        default_rate=config.fx_default_rate,
    )
    registry = registry or SubscriptionRegistry()

    engine = FillEngine(state, price_source, fee_rate=config.fee_rate)
    reports = ReportQuery(state)
    scheduler = BroadcastScheduler(
        registry,
        price_source,
        fx_source,
        period_seconds=config.tick_seconds,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        tasks: list[asyncio.Task] = []
        if start_background:
            tasks.append(asyncio.create_task(scheduler.run_forever()))
            tasks.append(asyncio.create_task(fx_source.run_forever(config.fx_refresh_seconds)))
        try:
            yield
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    app = FastAPI(
        title="Auto Trader API",
        description="Paper trading with FIFO lots and a live price stream",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.trading = state
    app.state.registry = registry
    app.state.scheduler = scheduler
    app.state.fx = fx_source

    # ------------------------------------------------------------------
    # GET / and /health
    # ------------------------------------------------------------------

    @app.get("/", response_class=HTMLResponse)
    async def root() -> HTMLResponse:
        return HTMLResponse(content=_INDEX_HTML, status_code=200)

    @app.get("/health")
    async def health_check() -> dict[str, Any]:
        return {"status": "healthy", "service": "autotrader-api", "connections": len(registry)}

    # ------------------------------------------------------------------
    # Quotes and recommendations
    # ------------------------------------------------------------------

    @app.get("/api/price")
    def get_price(venue: str = "crypto", symbol: str = "bitcoin") -> dict[str, Any]:
        try:
            quote = price_source.get_price(venue, symbol)
        except QuoteUnavailable as exc:
            raise HTTPException(status_code=502, detail=str(exc))
        return {**quote.to_dict(), "fx": str(fx_source.rate)}

    @app.get("/api/reco")
    async def get_reco(venue: str = "crypto", symbol: str = "bitcoin") -> dict[str, Any]:
        prices = scheduler.recent_prices(instrument_key(venue, symbol))
        return {"venue": venue, "symbol": symbol, "samples": len(prices), **simple_reco(prices)}

    # ------------------------------------------------------------------
    # Mode flags (advisory only; fills are always paper)
    # ------------------------------------------------------------------

    @app.get("/api/mode")
    async def get_mode() -> dict[str, Any]:
        return {"mode": state.get_mode()}

    @app.post("/api/mode")
    async def set_mode(request: ModeRequest) -> dict[str, Any]:
        try:
            mode = state.set_mode(crypto=request.crypto, stocks=request.stocks)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        return {"mode": mode}

    # ------------------------------------------------------------------
    # Paper orders and reports
    # ------------------------------------------------------------------

    @app.post("/api/paper/order")
    def submit_paper_order(request: OrderRequest) -> dict[str, Any]:
        try:
            fill = engine.submit(request.venue, request.symbol, request.side, request.qty)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except QuoteUnavailable as exc:
            logger.warning("Paper order rejected, no quote: %s", exc)
            raise HTTPException(status_code=502, detail=str(exc))
        return {"order": fill.order.to_dict(), "fill": fill.to_dict()}

    @app.get("/api/reports")
    async def get_reports(
        from_ts: Optional[int] = Query(default=None, alias="from"),
        to_ts: Optional[int] = Query(default=None, alias="to"),
        report_type: str = Query(default="all", alias="type"),
    ) -> dict[str, Any]:
        try:
            return reports.query(from_ts=from_ts, to_ts=to_ts, kind=report_type)
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    # ------------------------------------------------------------------
    # WS /ws
    # ------------------------------------------------------------------

    @app.websocket("/ws")
    async def price_stream(websocket: WebSocket) -> None:
        await websocket.accept()
        connection_id = uuid.uuid4().hex[:12]
        transport = WebSocketTransport(websocket)
        registry.register(connection_id, transport)
        logger.info("Stream connection %s opened", connection_id)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes") or b""
                try:
                    items = parse_subscribe_message(raw)
                except MalformedMessage as exc:
                    logger.debug("Dropped message on %s: %s", connection_id, exc)
                    continue
                keys = registry.subscribe(connection_id, items)
                await transport.send_json({"type": "subscribed", "items": keys})
        finally:
            transport.mark_closed()
            registry.unregister(connection_id)
            logger.info("Stream connection %s closed", connection_id)

    return app


app = create_app()
