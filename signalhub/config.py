"""Central configuration — loads .env and exposes typed settings."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from pydantic_settings import BaseSettings
from pydantic import Field, model_validator

logger = logging.getLogger(__name__)


class RSIMode(str, Enum):
    """How the RSI reading is mapped onto scorer points."""
    LINEAR = "linear"      # 30 -> -2, 70 -> +2
    CENTERED = "centered"  # 40 -> -2, 60 -> +2

# Resolve project root (parent of signalhub/)
PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_PATH = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    # --- Providers ---
    yahoo_base_url: str = "https://query2.finance.yahoo.com"
    binance_base_url: str = "https://api.binance.com"
    equity_history_range: str = "2y"
    crypto_history_limit: int = 900

    # --- HTTP resilience ---
    http_timeout_seconds: float = 8.0
    http_max_attempts: int = 3
    http_backoff_base: float = 0.4  # seconds: 0.4, 0.8, 1.6 (+ jitter)
    http_backoff_jitter: float = 0.25  # fraction of the delay added at random
    fetch_concurrency: int = 6
    circuit_failure_threshold: int = 3
    circuit_cooldown_seconds: float = 300.0

    # --- Cache ---
    cache_db_path: str = ""  # empty = in-process memory store
    score_ttl_seconds: int = 300
    score_revalidate_seconds: int = 60
    backtest_ttl_seconds: int = 24 * 3600
    backtest_revalidate_seconds: int = 6 * 3600

    # --- Backtest ---
    backtest_window: int = 200
    backtest_horizons: list[int] = Field(default=[7, 30])
    confirmation_bars: int = 7
    backtest_method: str = "window"  # "window" (exact) or "rolling" (O(N))

    # --- Scoring ---
    equity_rsi_mode: RSIMode = RSIMode.LINEAR
    crypto_rsi_mode: RSIMode = RSIMode.CENTERED

    # --- API ---
    api_rate_limit: str = "60/minute"
    allowed_origins: str = ""  # Comma-separated CORS origins (empty = same-origin only)

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"; json suits log drains

    @model_validator(mode="after")
    def _validate_ranges(self) -> "Settings":
        """Reject values the engine cannot run with."""
        if self.backtest_window <= 0:
            raise ValueError("backtest_window must be positive")
        if any(h <= 0 for h in self.backtest_horizons):
            raise ValueError("backtest_horizons must all be positive")
        if self.fetch_concurrency <= 0:
            raise ValueError("fetch_concurrency must be positive")
        for prefix in ("score", "backtest"):
            ttl = getattr(self, f"{prefix}_ttl_seconds")
            window = getattr(self, f"{prefix}_revalidate_seconds")
            if window >= ttl:
                logger.warning(
                    "%s_revalidate_seconds (%d) >= %s_ttl_seconds (%d) — "
                    "every cached read will trigger a background refresh",
                    prefix, window, prefix, ttl,
                )
        if self.backtest_method not in ("window", "rolling"):
            raise ValueError(
                f"backtest_method must be 'window' or 'rolling', got {self.backtest_method!r}"
            )
        return self

    model_config = {
        "env_file": str(ENV_PATH),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
