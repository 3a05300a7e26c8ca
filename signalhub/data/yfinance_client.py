"""yfinance fallback client — daily history when the chart API fails."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
import asyncio

import pandas as pd
import yfinance as yf

from signalhub.config import get_settings
from signalhub.data.retry import fetch_with_retry
from signalhub.data.series import PriceSeries, clean_series

PROVIDER = "yfinance"


class YFinanceClient:
    """Synchronous yfinance wrapped for async usage via executor."""

    def __init__(self, max_workers: int = 4):
        self._executor = ThreadPoolExecutor(max_workers=max_workers)
        self._settings = get_settings()

    def _fetch_history(self, symbol: str, period: str) -> pd.DataFrame:
        tk = yf.Ticker(symbol)
        df = tk.history(period=period, interval="1d", auto_adjust=True)
        if df.empty:
            return pd.DataFrame()
        df = df.reset_index()
        df.columns = [str(c).lower() for c in df.columns]
        return df

    async def get_daily_series(self, symbol: str, period: str = "2y") -> PriceSeries:
        loop = asyncio.get_running_loop()
        # a hung call is abandoned at the timeout; its worker thread finishes on its own
        df = await fetch_with_retry(
            lambda: loop.run_in_executor(self._executor, self._fetch_history, symbol, period),
            timeout=self._settings.http_timeout_seconds,
            max_attempts=self._settings.http_max_attempts,
            backoff_base=self._settings.http_backoff_base,
            jitter=self._settings.http_backoff_jitter,
            label=f"yfinance history {symbol}",
        )
        return frame_to_series(df)

    def close(self) -> None:
        self._executor.shutdown(wait=False)


def frame_to_series(df: pd.DataFrame) -> PriceSeries:
    if df.empty or "close" not in df.columns:
        return PriceSeries(source=PROVIDER)
    date_col = "date" if "date" in df.columns else "datetime"
    if date_col not in df.columns:
        return PriceSeries(source=PROVIDER)
    stamps = pd.to_datetime(df[date_col], utc=True)
    timestamps = ((stamps - pd.Timestamp(0, tz="UTC")) // pd.Timedelta(seconds=1)).tolist()
    volumes = df["volume"].tolist() if "volume" in df.columns else [0.0] * len(df)
    return clean_series(timestamps, df["close"].tolist(), volumes, source=PROVIDER)
