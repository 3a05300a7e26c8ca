"""Yahoo Finance chart API client — daily closes and volumes for equities, ETFs, indices."""

from __future__ import annotations

import logging

import httpx

from signalhub.config import get_settings
from signalhub.data.retry import fetch_with_retry, raise_for_rate_limit
from signalhub.data.series import PriceSeries, clean_series

logger = logging.getLogger(__name__)

PROVIDER = "yahoo"
CHART_PATH = "/v8/finance/chart/{symbol}"


class YahooChartClient:
    def __init__(self, base_url: str | None = None):
        settings = get_settings()
        self._base_url = (base_url or settings.yahoo_base_url).rstrip("/")
        self._settings = settings

    async def _get_chart(self, symbol: str, range_: str) -> dict:
        url = self._base_url + CHART_PATH.format(symbol=symbol)
        params = {"interval": "1d", "range": range_, "includePrePost": "false"}
        async with httpx.AsyncClient(
            timeout=self._settings.http_timeout_seconds,
            headers={"User-Agent": "Mozilla/5.0", "Accept": "application/json"},
        ) as client:
            resp = await client.get(url, params=params)
            raise_for_rate_limit(resp, PROVIDER)
            return resp.json()

    async def get_daily_series(self, symbol: str, range_: str | None = None) -> PriceSeries:
        """Fetch daily bars; an empty series when Yahoo has nothing for the symbol."""
        range_ = range_ or self._settings.equity_history_range
        data = await fetch_with_retry(
            lambda: self._get_chart(symbol, range_),
            timeout=self._settings.http_timeout_seconds,
            max_attempts=self._settings.http_max_attempts,
            backoff_base=self._settings.http_backoff_base,
            jitter=self._settings.http_backoff_jitter,
            label=f"yahoo chart {symbol}",
        )
        return parse_chart(data)


def parse_chart(data: dict) -> PriceSeries:
    """Parse a v8 chart payload into a clean series."""
    results = (data.get("chart") or {}).get("result") or []
    if not results:
        error = (data.get("chart") or {}).get("error")
        if error:
            logger.debug("Yahoo chart error: %s", error)
        return PriceSeries(source=PROVIDER)

    result = results[0]
    timestamps = result.get("timestamp") or []
    quotes = ((result.get("indicators") or {}).get("quote") or [{}])[0]
    closes = quotes.get("close") or []
    volumes = quotes.get("volume") or []

    n = min(len(timestamps), len(closes))
    volumes = list(volumes[:n]) + [0.0] * max(0, n - len(volumes))
    return clean_series(timestamps[:n], closes[:n], volumes, source=PROVIDER)
