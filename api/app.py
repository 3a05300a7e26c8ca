"""FastAPI application — JSON endpoints for scores, market scans and backtests."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from signalhub.config import get_settings
from signalhub.main import configure_logging
from signalhub.markets import MARKETS
from signalhub.service import close_service, get_service, init_service

logger = logging.getLogger(__name__)

_settings = get_settings()

# Rate limiter
limiter = Limiter(key_func=get_remote_address)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_service()
    logger.info("SignalHub API started (%d markets)", len(MARKETS))
    yield
    await close_service()


app = FastAPI(
    title="SignalHub",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
_origins = [o.strip() for o in _settings.allowed_origins.split(",") if o.strip()] if _settings.allowed_origins else []
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins or [],  # empty = no cross-origin allowed (same-origin only)
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["Content-Type"],
)


def _check_market(market: str) -> str:
    key = market.strip().lower()
    if key not in MARKETS:
        raise HTTPException(404, f"Unknown market '{market}'. Known: {', '.join(sorted(MARKETS))}")
    return key


@app.get("/api/markets")
async def list_markets():
    """Markets with their profile and asset list."""
    return [
        {
            "key": m.key,
            "label": m.label,
            "kind": m.kind,
            "profile": m.profile,
            "assets": [{"symbol": a.symbol, "name": a.name} for a in m.assets],
        }
        for m in MARKETS.values()
    ]


@app.get("/api/score/{market}/{symbol}")
@limiter.limit(_settings.api_rate_limit)
async def score_symbol(request: Request, market: str, symbol: str):
    """Current indicators and composite score for one symbol."""
    key = _check_market(market)
    try:
        return await get_service().score_symbol(key, symbol)
    except ValueError as e:
        raise HTTPException(400, str(e))


@app.get("/api/scan/{market}")
@limiter.limit(_settings.api_rate_limit)
async def scan_market(request: Request, market: str):
    """Current score for every asset of a market."""
    key = _check_market(market)
    return await get_service().scan_market(key)


@app.get("/api/backtest/{market}")
@limiter.limit(_settings.api_rate_limit)
async def backtest_market(
    request: Request,
    market: str,
    symbol: str | None = Query(default=None, description="Backtest a single symbol"),
):
    """Signal-transition backtest and strategy audit for a market (or one symbol)."""
    key = _check_market(market)
    service = get_service()
    try:
        if symbol:
            return await service.backtest_symbol(key, symbol)
        return await service.backtest_market(key)
    except ValueError as e:
        raise HTTPException(400, str(e))


@app.get("/api/cache-stats")
async def cache_stats():
    """Read-through cache and provider circuit statistics."""
    return get_service().get_stats()


@app.get("/health")
async def health_check():
    """Health check for uptime monitors.

    Returns 200 with status=healthy, or 503 with status=degraded and an issue
    list when the cache store is unreachable or a provider circuit is open.
    """
    issues: list[str] = []
    service = get_service()

    try:
        service.cache.store.get("__health__")
    except Exception as e:
        issues.append(f"cache store: {e}")

    circuits = service.get_stats().get("circuit_breaker", {})
    for provider, stats in circuits.items():
        if stats.get("is_open"):
            issues.append(f"provider circuit open: {provider}")

    if issues:
        return JSONResponse(
            status_code=503,
            content={"status": "degraded", "issues": issues},
        )
    return {"status": "healthy"}
