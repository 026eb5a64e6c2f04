"""
FastAPI server: REST proxy over Tradier plus the live flow WebSocket.
This file wires:
- ExpiringCache + TradierClient (cache-checked upstream calls)
- SubscriptionRegistry, FlowScanner and BroadcastScheduler
- Background tasks for the periodic broadcast and the cache sweep
"""

import asyncio
import json
import re
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import List, Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from optionsentinel.clients.tradier_client import TradierClient
from optionsentinel.config import Settings, load_settings
from optionsentinel.core.broadcast import BroadcastScheduler, ViewerConnection
from optionsentinel.core.cache import ExpiringCache, run_sweeper
from optionsentinel.core.clock import SystemClock
from optionsentinel.core.errors import MalformedSubscription, TransportGone, UpstreamError
from optionsentinel.core.models import (
    ErrorMessage,
    HistoryBar,
    QuoteSummary,
    ScoredSignal,
    Security,
    SubscribeMessage,
)
from optionsentinel.core.registry import SubscriptionRegistry, normalize_tickers
from optionsentinel.core.scanner import FlowScanner

logger = logging.getLogger(__name__)

HISTORY_RANGES = {"1W": 7, "1M": 30, "3M": 90}
TICKER_PATTERN = r"^[A-Z][A-Z.]{0,5}$"


def parse_subscribe(raw: str) -> SubscribeMessage:
    """Validate an inbound push-channel message as an authorized subscribe."""
    try:
        message = SubscribeMessage.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise MalformedSubscription(f"Invalid subscribe message: {e}") from e
    if not message.elevated:
        raise MalformedSubscription("Custom tickers require an elevated account")

    tickers = normalize_tickers(message.tickers)
    bad = [t for t in tickers if not re.match(TICKER_PATTERN, t)]
    if bad:
        raise MalformedSubscription(f"Invalid tickers: {', '.join(bad)}")
    return message.model_copy(update={"tickers": tickers})


def create_app(
    settings: Optional[Settings] = None,
    client=None,
    clock=None,
    start_background: bool = True,
) -> FastAPI:
    settings = settings or load_settings()
    flow = settings.flow
    clock = clock or SystemClock()

    cache = ExpiringCache(clock)
    if client is None:
        client = TradierClient(
            settings.tradier_api_key, settings.tradier_base_url, cache=cache, ttl=flow.ttl
        )
    else:
        cache = getattr(client, "cache", cache)
    registry = SubscriptionRegistry(flow.default_tickers, flow.max_universe)
    scanner = FlowScanner(client, registry, flow, clock)
    scheduler = BroadcastScheduler(scanner, registry, flow.broadcast_interval_seconds, clock)

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        tasks = []
        if start_background:
            tasks.append(asyncio.create_task(scheduler.run()))
            tasks.append(asyncio.create_task(run_sweeper(cache, flow.cache_sweep_interval_seconds)))
        yield
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await scheduler.aclose()
        close = getattr(client, "close", None)
        if close:
            await close()

    app = FastAPI(title="OptionSentinel", version="0.1.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    app.state.settings = settings
    app.state.cache = cache
    app.state.client = client
    app.state.registry = registry
    app.state.scanner = scanner
    app.state.scheduler = scheduler

    @app.exception_handler(UpstreamError)
    async def upstream_error_handler(request: Request, exc: UpstreamError):
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.exception_handler(Exception)
    async def error_handler(request: Request, exc: Exception):
        return JSONResponse(status_code=500, content={"error": str(exc)})

    # --- REST ---

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/api/quote/{ticker}", response_model=QuoteSummary)
    async def get_quote(ticker: str):
        quote = await client.get_quote(ticker.upper())
        if quote is None:
            return JSONResponse(status_code=404, content={"error": "Symbol not found"})
        return QuoteSummary.from_quote(quote)

    @app.get("/api/history/{ticker}", response_model=List[HistoryBar])
    async def get_history(ticker: str, range_: str = Query("1M", alias="range")):
        days = HISTORY_RANGES.get(range_.upper())
        if days is None:
            return JSONResponse(
                status_code=400,
                content={"error": f"range must be one of {', '.join(HISTORY_RANGES)}"},
            )
        return await client.get_history(ticker.upper(), clock.today() - timedelta(days=days))

    @app.get("/api/options/expirations/{ticker}", response_model=List[str])
    async def get_expirations(ticker: str):
        return await client.get_expirations(ticker.upper())

    @app.get("/api/options/chain/{ticker}/{expiration}")
    async def get_chain(ticker: str, expiration: str):
        return await client.get_chain_raw(ticker.upper(), expiration)

    @app.get("/api/search", response_model=List[Security])
    async def search(q: str = ""):
        if len(q) < 2:
            return []
        return await client.search(q)

    @app.get("/api/flow", response_model=List[ScoredSignal])
    async def get_flow(tickers: Optional[str] = Query(None)):
        """On-demand scan for pull-to-refresh."""
        universe = normalize_tickers(tickers.split(",")) if tickers else flow.default_tickers
        return await scanner.scan_many(universe)

    @app.get("/api/cache/stats")
    async def cache_stats():
        return cache.stats()

    # --- Push channel ---

    @app.websocket("/ws")
    async def flow_feed(websocket: WebSocket):
        await websocket.accept()
        connection = ViewerConnection(websocket, registry)
        connection.open()
        scheduler.register(connection)
        logger.info("[ws] client connected (%d open)", len(scheduler.connections))
        scheduler.trigger()

        try:
            while True:
                raw = await websocket.receive_text()
                try:
                    message = parse_subscribe(raw)
                except MalformedSubscription as e:
                    logger.info("[ws] rejected subscription: %s", e)
                    await connection.send(ErrorMessage(message=str(e)).model_dump_json())
                    continue
                connection.elevated = True
                connection.update_subscriptions(message.tickers)
                logger.info("[ws] client subscribed to %s", connection.tickers)
                scheduler.trigger()
        except (WebSocketDisconnect, TransportGone):
            pass
        finally:
            scheduler.unregister(connection)
            connection.close()
            logger.info("[ws] client disconnected (%d open)", len(scheduler.connections))

    # mobile clients connect at the server root
    app.add_api_websocket_route("/", flow_feed)

    return app
