"""Binance spot klines client — daily candles for crypto pairs."""

from __future__ import annotations

import logging

import httpx

from signalhub.config import get_settings
from signalhub.data.retry import fetch_with_retry, raise_for_rate_limit
from signalhub.data.series import PriceSeries, clean_series

logger = logging.getLogger(__name__)

PROVIDER = "binance"
KLINES_PATH = "/api/v3/klines"
MIN_LIMIT = 50
MAX_LIMIT = 1000

# kline row layout: [open_time_ms, open, high, low, close, volume, close_time_ms, ...]
_OPEN_TIME = 0
_CLOSE = 4
_VOLUME = 5


class BinanceClient:
    def __init__(self, base_url: str | None = None):
        settings = get_settings()
        self._base_url = (base_url or settings.binance_base_url).rstrip("/")
        self._settings = settings

    async def _get_klines(self, pair: str, interval: str, limit: int) -> list:
        params = {"symbol": pair, "interval": interval, "limit": limit}
        async with httpx.AsyncClient(timeout=self._settings.http_timeout_seconds) as client:
            resp = await client.get(self._base_url + KLINES_PATH, params=params)
            raise_for_rate_limit(resp, PROVIDER)
            return resp.json()

    async def get_daily_series(self, pair: str, limit: int | None = None) -> PriceSeries:
        """Fetch up to ``limit`` daily candles (clamped to 50-1000)."""
        limit = limit or self._settings.crypto_history_limit
        limit = max(MIN_LIMIT, min(MAX_LIMIT, int(limit)))
        rows = await fetch_with_retry(
            lambda: self._get_klines(pair, "1d", limit),
            timeout=self._settings.http_timeout_seconds,
            max_attempts=self._settings.http_max_attempts,
            backoff_base=self._settings.http_backoff_base,
            jitter=self._settings.http_backoff_jitter,
            label=f"binance klines {pair}",
        )
        return parse_klines(rows)


def parse_klines(rows: list) -> PriceSeries:
    if not isinstance(rows, list) or not rows:
        return PriceSeries(source=PROVIDER)
    timestamps, closes, volumes = [], [], []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) <= _VOLUME:
            continue
        timestamps.append(int(row[_OPEN_TIME]) // 1000 if row[_OPEN_TIME] is not None else None)
        closes.append(row[_CLOSE])
        volumes.append(row[_VOLUME])
    return clean_series(timestamps, closes, volumes, source=PROVIDER)
