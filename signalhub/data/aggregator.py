"""Unified price-data interface — provider fallback chains and a bounded worker pool.

Fallback chains:
  - crypto: Binance klines -> Yahoo chart (``BTC-USD`` style symbol)
  - equity: Yahoo chart -> yfinance

A provider whose circuit is open is skipped. When every provider fails the
asset gets an empty series; callers treat that as insufficient data and a
single failing asset never fails a batch.

``fetch_many`` runs ``fetch_concurrency`` workers that pull assets from an
``asyncio.Queue`` so the number of in-flight requests stays bounded.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from signalhub.config import get_settings
from signalhub.data.binance_client import BinanceClient
from signalhub.data.circuit_breaker import APICircuitBreaker
from signalhub.data.series import PriceSeries
from signalhub.data.yahoo_client import YahooChartClient
from signalhub.data.yfinance_client import YFinanceClient
from signalhub.markets import CRYPTO, Asset

logger = logging.getLogger(__name__)


class DataAggregator:
    """Fetches daily series across providers with fallback logic."""

    def __init__(
        self,
        yahoo: YahooChartClient | None = None,
        binance: BinanceClient | None = None,
        yfinance: YFinanceClient | None = None,
        circuit_breaker: APICircuitBreaker | None = None,
        concurrency: int | None = None,
    ):
        settings = get_settings()
        self.yahoo = yahoo or YahooChartClient()
        self.binance = binance or BinanceClient()
        self.yfinance = yfinance or YFinanceClient()
        self._circuit_breaker = circuit_breaker or APICircuitBreaker(
            failure_threshold=settings.circuit_failure_threshold,
            cooldown_seconds=settings.circuit_cooldown_seconds,
        )
        self._concurrency = concurrency or settings.fetch_concurrency
        self._settings = settings

    def _chain(self, asset: Asset, kind: str) -> list[tuple[str, Callable[[], Awaitable[PriceSeries]]]]:
        if kind == CRYPTO:
            chain = [("binance", lambda: self.binance.get_daily_series(
                asset.quote_symbol, self._settings.crypto_history_limit,
            ))]
            if asset.fallback_symbol:
                chain.append(("yahoo", lambda: self.yahoo.get_daily_series(
                    asset.fallback_symbol, self._settings.equity_history_range,
                )))
            return chain
        symbol = asset.fallback_symbol or asset.quote_symbol
        return [
            ("yahoo", lambda: self.yahoo.get_daily_series(
                asset.quote_symbol, self._settings.equity_history_range,
            )),
            ("yfinance", lambda: self.yfinance.get_daily_series(
                symbol, self._settings.equity_history_range,
            )),
        ]

    async def get_daily_series(self, asset: Asset, kind: str) -> PriceSeries:
        """Walk the fallback chain; an empty series when every provider fails."""
        for provider, fetch in self._chain(asset, kind):
            if self._circuit_breaker.is_open(provider):
                logger.debug("%s circuit open, skipping for %s", provider, asset.symbol)
                continue
            try:
                series = await fetch()
            except Exception as e:
                self._circuit_breaker.record_failure(provider, e)
                logger.warning("%s daily series failed for %s: %s", provider, asset.symbol, e)
                continue
            self._circuit_breaker.record_success(provider)
            if not series.empty:
                return series
            logger.debug("%s returned no bars for %s", provider, asset.symbol)

        logger.error("All price sources failed for %s", asset.symbol)
        return PriceSeries()

    async def fetch_many(
        self,
        assets: Sequence[Asset],
        kind: str,
    ) -> dict[str, PriceSeries | None]:
        """Fetch every asset through a bounded worker pool.

        Returns ``symbol -> series``, with ``None`` for assets that produced no data.
        """
        queue: asyncio.Queue[Asset] = asyncio.Queue()
        for asset in assets:
            queue.put_nowait(asset)
        out: dict[str, PriceSeries | None] = {}

        async def worker() -> None:
            while True:
                try:
                    asset = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    series = await self.get_daily_series(asset, kind)
                    out[asset.symbol] = series if not series.empty else None
                except Exception as e:
                    logger.error("Unexpected error fetching %s: %s", asset.symbol, e)
                    out[asset.symbol] = None
                finally:
                    queue.task_done()

        workers = max(1, min(self._concurrency, len(assets)))
        await asyncio.gather(*(worker() for _ in range(workers)))

        fetched = sum(1 for v in out.values() if v is not None)
        logger.info("Fetched %d/%d %s series", fetched, len(assets), kind)
        # keep the caller's asset order
        return {a.symbol: out.get(a.symbol) for a in assets}

    def get_stats(self) -> dict:
        return {"circuit_breaker": self._circuit_breaker.get_stats()}

    def close(self) -> None:
        self.yfinance.close()
