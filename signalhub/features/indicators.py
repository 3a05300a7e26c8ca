"""Indicator set — the snapshot the composite scorer consumes.

``compute_indicator_set`` works on the full arrays it is given (the last bar
is "now"). ``rolling_indicator_sets`` produces the same snapshot for every bar
of a long series in one O(N) pass, for walk-forward replays.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from signalhub.features.extractors import (
    TrendFeatures,
    VolatilityFeatures,
    latest_trend_features,
    latest_volatility_features,
    trend_features_at,
    volatility_features_at,
)
from signalhub.features.primitives import (
    avg_volume,
    macd,
    macd_series,
    rsi,
    rsi_series,
    sma,
    sma_series,
)

MA_FAST = 50
MA_SLOW = 200
RSI_PERIOD = 14
VOLUME_PERIOD = 20

GOLDEN_CROSS = "Golden Cross"
DEATH_CROSS = "Death Cross"


@dataclass(frozen=True)
class IndicatorSet:
    ma50: float | None = None
    ma200: float | None = None
    rsi14: float | None = None
    macd: float | None = None
    macd_signal: float | None = None
    macd_hist: float | None = None
    volume: float | None = None
    volume_avg20: float | None = None
    volume_ratio: float | None = None
    trend: TrendFeatures = field(default_factory=TrendFeatures)
    volatility: VolatilityFeatures = field(default_factory=VolatilityFeatures)

    @property
    def cross(self) -> str | None:
        if self.ma50 is None or self.ma200 is None:
            return None
        if self.ma50 > self.ma200:
            return GOLDEN_CROSS
        if self.ma50 < self.ma200:
            return DEATH_CROSS
        return None

    def to_dict(self) -> dict:
        return {
            "ma": {"ma50": self.ma50, "ma200": self.ma200, "cross": self.cross},
            "rsi": self.rsi14,
            "macd": {
                "macd": self.macd,
                "signal": self.macd_signal,
                "hist": self.macd_hist,
            },
            "volume": {
                "last": self.volume,
                "avg20": self.volume_avg20,
                "ratio": self.volume_ratio,
            },
            "trend": self.trend.to_dict(),
            "volatility": self.volatility.to_dict(),
        }


def _check_lengths(closes: Sequence[float], volumes: Sequence[float]) -> None:
    if len(closes) != len(volumes):
        raise ValueError(
            f"closes and volumes must have equal length ({len(closes)} != {len(volumes)})"
        )


def _volume_ratio(volume: float | None, average: float | None) -> float | None:
    if volume is None or average is None or average <= 0:
        return None
    return volume / average


def compute_indicator_set(
    closes: Sequence[float],
    volumes: Sequence[float],
) -> IndicatorSet:
    """Compute every indicator at the last bar. Inputs are not modified."""
    _check_lengths(closes, volumes)
    closes = list(closes)
    volumes = list(volumes)

    m = macd(closes)
    volume = float(volumes[-1]) if volumes else None
    volume_avg = avg_volume(volumes, VOLUME_PERIOD)
    return IndicatorSet(
        ma50=sma(closes, MA_FAST),
        ma200=sma(closes, MA_SLOW),
        rsi14=rsi(closes, RSI_PERIOD),
        macd=m.macd,
        macd_signal=m.signal,
        macd_hist=m.hist,
        volume=volume,
        volume_avg20=volume_avg,
        volume_ratio=_volume_ratio(volume, volume_avg),
        trend=latest_trend_features(closes),
        volatility=latest_volatility_features(closes),
    )


def rolling_indicator_sets(
    closes: Sequence[float],
    volumes: Sequence[float],
    start: int = 0,
) -> list[IndicatorSet]:
    """Indicator sets for bars ``start..n-1`` in a single pass.

    The entry for bar ``i`` uses only ``closes[:i+1]``. SMA, volume and
    feature values match a trailing-window computation exactly; EMA-based
    values (RSI, MACD) are seeded from the first bar of the series.
    """
    _check_lengths(closes, volumes)
    closes = list(closes)
    volumes = [float(v) for v in volumes]

    ma_fast = sma_series(closes, MA_FAST)
    ma_slow = sma_series(closes, MA_SLOW)
    rsi_values = rsi_series(closes, RSI_PERIOD)
    macd_values = macd_series(closes)
    volume_avg = sma_series(volumes, VOLUME_PERIOD)

    out: list[IndicatorSet] = []
    for i in range(max(start, 0), len(closes)):
        m = macd_values[i]
        out.append(IndicatorSet(
            ma50=ma_fast[i],
            ma200=ma_slow[i],
            rsi14=rsi_values[i],
            macd=m.macd,
            macd_signal=m.signal,
            macd_hist=m.hist,
            volume=volumes[i],
            volume_avg20=volume_avg[i],
            volume_ratio=_volume_ratio(volumes[i], volume_avg[i]),
            trend=trend_features_at(closes, i),
            volatility=volatility_features_at(closes, i),
        ))
    return out
