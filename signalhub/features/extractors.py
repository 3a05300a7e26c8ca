"""Feature extractors — trend and volatility descriptors at a single bar.

All extractors take ``(closes, i, lookback)`` and read only ``closes[..i]``.
They return ``None`` when the history before ``i`` is too short or ``i`` is
outside the array, and raise ``ValueError`` for a non-positive lookback.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass

import numpy as np

FLAT_EPSILON = 1e-12
BREAKOUT_FULL_SCALE = 0.05  # 5% beyond the trailing high/low saturates the bias


@dataclass(frozen=True)
class TrendFeatures:
    ret20: float | None = None
    ret60: float | None = None
    range_pos20: float | None = None
    efficiency14: float | None = None
    breakout20: float | None = None
    stretch20: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class VolatilityFeatures:
    stdev20: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _valid(closes: Sequence[float], i: int, lookback: int) -> bool:
    if lookback <= 0:
        raise ValueError(f"lookback must be positive, got {lookback}")
    return 0 <= i < len(closes)


def lookback_return_pct(closes: Sequence[float], i: int, lookback: int = 20) -> float | None:
    """Percent change from ``closes[i - lookback]`` to ``closes[i]``."""
    if not _valid(closes, i, lookback) or i - lookback < 0:
        return None
    base = closes[i - lookback]
    if base <= 0:
        return None
    return (closes[i] / base - 1) * 100


def range_position(closes: Sequence[float], i: int, lookback: int = 20) -> float | None:
    """Where ``closes[i]`` sits between the window low (0) and high (1); 0.5 when flat."""
    if not _valid(closes, i, lookback) or i - lookback + 1 < 0:
        return None
    window = closes[i - lookback + 1:i + 1]
    lo = min(window)
    hi = max(window)
    span = hi - lo
    if span <= FLAT_EPSILON:
        return 0.5
    return min(1.0, max(0.0, (closes[i] - lo) / span))


def realized_volatility(closes: Sequence[float], i: int, lookback: int = 20) -> float | None:
    """Population standard deviation of simple returns over ``(i - lookback, i]``."""
    if not _valid(closes, i, lookback) or i - lookback < 0:
        return None
    window = np.asarray(closes[i - lookback:i + 1], dtype=float)
    prev = window[:-1]
    if np.any(prev <= 0):
        return None
    returns = window[1:] / prev - 1
    return float(np.std(returns))


def trend_efficiency(closes: Sequence[float], i: int, lookback: int = 14) -> float | None:
    """Net move over ``lookback`` bars divided by the path length; 0 for a flat path."""
    if not _valid(closes, i, lookback) or i - lookback < 0:
        return None
    window = closes[i - lookback:i + 1]
    path = sum(abs(window[k] - window[k - 1]) for k in range(1, len(window)))
    if path <= FLAT_EPSILON:
        return 0.0
    net = abs(window[-1] - window[0])
    return min(1.0, max(0.0, net / path))


def breakout_bias(closes: Sequence[float], i: int, lookback: int = 20) -> float | None:
    """Signed breakout reading in [-1, 1] against the prior ``lookback`` closes.

    Above the trailing high the bias runs from 0.5 to 1 as the excess grows to
    ``BREAKOUT_FULL_SCALE``; below the trailing low it mirrors that. Inside the
    range it is the range position shifted to be centered at 0.
    """
    if not _valid(closes, i, lookback) or i - lookback < 0:
        return None
    prior = closes[i - lookback:i]
    hi = max(prior)
    lo = min(prior)
    c = closes[i]
    if c > hi and hi > 0:
        excess = c / hi - 1
        return 0.5 + 0.5 * min(1.0, excess / BREAKOUT_FULL_SCALE)
    if c < lo and lo > 0:
        deficit = 1 - c / lo
        return -(0.5 + 0.5 * min(1.0, deficit / BREAKOUT_FULL_SCALE))
    span = hi - lo
    if span <= FLAT_EPSILON:
        return 0.0
    return (c - lo) / span - 0.5


def stretch_from_sma(closes: Sequence[float], i: int, lookback: int = 20) -> float | None:
    """Percent distance of ``closes[i]`` from its ``lookback``-bar SMA."""
    if not _valid(closes, i, lookback) or i - lookback + 1 < 0:
        return None
    mean = sum(closes[i - lookback + 1:i + 1]) / lookback
    if mean <= 0:
        return None
    return (closes[i] / mean - 1) * 100


def _finite_or_none(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return value


def trend_features_at(closes: Sequence[float], i: int, lookback: int = 20) -> TrendFeatures:
    long_lookback = max(lookback * 3, lookback + 20)
    return TrendFeatures(
        ret20=_finite_or_none(lookback_return_pct(closes, i, lookback)),
        ret60=_finite_or_none(lookback_return_pct(closes, i, long_lookback)),
        range_pos20=_finite_or_none(range_position(closes, i, lookback)),
        efficiency14=_finite_or_none(trend_efficiency(closes, i, 14)),
        breakout20=_finite_or_none(breakout_bias(closes, i, lookback)),
        stretch20=_finite_or_none(stretch_from_sma(closes, i, lookback)),
    )


def volatility_features_at(closes: Sequence[float], i: int, lookback: int = 20) -> VolatilityFeatures:
    return VolatilityFeatures(stdev20=_finite_or_none(realized_volatility(closes, i, lookback)))


def latest_trend_features(closes: Sequence[float], lookback: int = 20) -> TrendFeatures:
    """Trend features at the last bar of ``closes``."""
    return trend_features_at(closes, len(closes) - 1, lookback)


def latest_volatility_features(closes: Sequence[float], lookback: int = 20) -> VolatilityFeatures:
    """Volatility features at the last bar of ``closes``."""
    return volatility_features_at(closes, len(closes) - 1, lookback)
