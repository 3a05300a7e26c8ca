"""Signal service — fetch, score, backtest and cache, per market.

This is the seam the API and CLI call into. Results are plain JSON-ready
dicts so they can live in the read-through cache unchanged.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from signalhub.backtest.audit import run_asset_audit, summarize_market_audit
from signalhub.backtest.engine import BacktestResult, aggregate_backtests, run_backtest
from signalhub.config import Settings, get_settings
from signalhub.data.aggregator import DataAggregator
from signalhub.data.cache import ReadThroughCache
from signalhub.data.kv_store import build_store
from signalhub.data.series import PriceSeries
from signalhub.features.indicators import compute_indicator_set
from signalhub.markets import CRYPTO, Asset, MarketSpec, get_market, profile_for_market
from signalhub.signals.scoring import ScoreProfile, compute_score

logger = logging.getLogger(__name__)

CACHE_VERSION = "v1"


def resolve_asset(market: MarketSpec, symbol: str) -> Asset:
    """Known asset of the market, or an ad-hoc one built from the symbol."""
    asset = market.find(symbol)
    if asset is not None:
        return asset
    sym = symbol.strip().upper()
    if not sym:
        raise ValueError("symbol must not be empty")
    if market.kind == CRYPTO:
        base = sym[:-4] if sym.endswith("USDT") else sym
        return Asset(symbol=base, name=base, quote_symbol=f"{base}USDT", fallback_symbol=f"{base}-USD")
    return Asset(symbol=sym, name=sym, quote_symbol=sym)


def score_payload(
    asset: Asset,
    market: MarketSpec,
    series: PriceSeries | None,
    profile: ScoreProfile,
) -> dict:
    base = {"symbol": asset.symbol, "name": asset.name, "market": market.key}
    if series is None or series.empty:
        return {**base, "available": False, "asof": None, "indicators": None, "score": None}
    indicators = compute_indicator_set(series.closes, series.volumes)
    result = compute_score(indicators, profile)
    return {
        **base,
        "available": True,
        "asof": series.last_timestamp,
        "close": series.closes[-1],
        "bars": len(series),
        "source": series.source,
        "indicators": indicators.to_dict(),
        "score": result.to_dict(),
    }


class SignalService:
    def __init__(
        self,
        aggregator: DataAggregator | None = None,
        cache: ReadThroughCache | None = None,
        settings: Settings | None = None,
    ):
        self._settings = settings or get_settings()
        self._aggregator = aggregator or DataAggregator()
        self._cache = cache or ReadThroughCache(build_store(self._settings.cache_db_path))

    @property
    def cache(self) -> ReadThroughCache:
        return self._cache

    def _key(self, *parts: Any) -> str:
        return ":".join([CACHE_VERSION, *(str(p) for p in parts)])

    # ------------------------------------------------------------------
    # Scores
    # ------------------------------------------------------------------

    async def score_symbol(self, market_key: str, symbol: str) -> dict:
        market = get_market(market_key)
        asset = resolve_asset(market, symbol)
        profile = profile_for_market(market, self._settings)

        async def compute() -> dict:
            series = await self._aggregator.get_daily_series(asset, market.kind)
            return score_payload(asset, market, series, profile)

        return await self._cache.get_or_refresh(
            self._key("score", market.key, asset.symbol),
            self._settings.score_ttl_seconds,
            self._settings.score_revalidate_seconds,
            compute,
        )

    async def scan_market(self, market_key: str) -> dict:
        """Current score of every asset in the market; unavailable assets map to ``None``."""
        market = get_market(market_key)
        profile = profile_for_market(market, self._settings)

        async def compute() -> dict:
            started = time.monotonic()
            series_map = await self._aggregator.fetch_many(market.assets, market.kind)
            results: dict[str, dict | None] = {}
            for asset in market.assets:
                series = series_map.get(asset.symbol)
                results[asset.symbol] = (
                    score_payload(asset, market, series, profile) if series is not None else None
                )
            logger.info(
                "Scanned %s: %d/%d assets in %.1fs",
                market.key, sum(1 for r in results.values() if r), len(results),
                time.monotonic() - started,
            )
            return {"market": market.key, "label": market.label, "profile": profile.name, "results": results}

        return await self._cache.get_or_refresh(
            self._key("scan", market.key),
            self._settings.score_ttl_seconds,
            self._settings.score_revalidate_seconds,
            compute,
        )

    # ------------------------------------------------------------------
    # Backtests
    # ------------------------------------------------------------------

    def _run_backtest(self, series: PriceSeries, profile: ScoreProfile) -> BacktestResult:
        s = self._settings
        return run_backtest(
            series.closes,
            series.volumes,
            s.backtest_window,
            s.backtest_horizons,
            profile=profile,
            method=s.backtest_method,
            confirmation_bars=s.confirmation_bars,
            timestamps=series.timestamps,
        )

    async def backtest_symbol(self, market_key: str, symbol: str) -> dict:
        """Signal events and stats for one instrument."""
        market = get_market(market_key)
        asset = resolve_asset(market, symbol)
        profile = profile_for_market(market, self._settings)

        async def compute() -> dict:
            series = await self._aggregator.get_daily_series(asset, market.kind)
            base = {"symbol": asset.symbol, "market": market.key}
            if series.empty:
                return {**base, "available": False, "backtest": None}
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, self._run_backtest, series, profile)
            return {**base, "available": True, "backtest": result.to_dict()}

        return await self._cache.get_or_refresh(
            self._key("backtest", market.key, asset.symbol, self._settings.backtest_window),
            self._settings.backtest_ttl_seconds,
            self._settings.backtest_revalidate_seconds,
            compute,
        )

    def _backtest_market_sync(
        self,
        market: MarketSpec,
        series_map: dict[str, PriceSeries | None],
        profile: ScoreProfile,
    ) -> dict:
        results: dict[str, BacktestResult | None] = {}
        audits = []
        for asset in market.assets:
            series = series_map.get(asset.symbol)
            if series is None:
                results[asset.symbol] = None
                continue
            result = self._run_backtest(series, profile)
            results[asset.symbol] = result
            if not result.insufficient_data:
                audits.append(run_asset_audit(asset.symbol, result.points))

        aggregate = aggregate_backtests(results, self._settings.backtest_horizons)
        return {
            "market": market.key,
            "label": market.label,
            "profile": profile.name,
            "window": self._settings.backtest_window,
            "method": self._settings.backtest_method,
            **aggregate.to_dict(),
            "strategies": summarize_market_audit(audits),
        }

    async def backtest_market(self, market_key: str) -> dict:
        """Pooled backtest stats plus the strategy audit for a whole market."""
        market = get_market(market_key)
        profile = profile_for_market(market, self._settings)

        async def compute() -> dict:
            started = time.monotonic()
            series_map = await self._aggregator.fetch_many(market.assets, market.kind)
            loop = asyncio.get_running_loop()
            payload = await loop.run_in_executor(
                None, self._backtest_market_sync, market, series_map, profile,
            )
            logger.info("Backtested %s in %.1fs", market.key, time.monotonic() - started)
            return payload

        return await self._cache.get_or_refresh(
            self._key("backtest", market.key, self._settings.backtest_window),
            self._settings.backtest_ttl_seconds,
            self._settings.backtest_revalidate_seconds,
            compute,
        )

    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        return {"cache": self._cache.get_stats(), **self._aggregator.get_stats()}

    async def close(self) -> None:
        await self._cache.drain()
        self._aggregator.close()
        try:
            purged = self._cache.store.clear_expired()
            logger.info("Purged %d expired cache entries", purged)
        except Exception as e:
            logger.warning("Cache purge failed: %s", e)
        close_store = getattr(self._cache.store, "close", None)
        if close_store is not None:
            close_store()


# Singleton
_service: SignalService | None = None


def init_service() -> SignalService:
    global _service
    if _service is None:
        _service = SignalService()
    return _service


def get_service() -> SignalService:
    return init_service()


async def close_service() -> None:
    global _service
    if _service is not None:
        await _service.close()
        _service = None
