"""Numeric TA primitives — SMA, EMA, Wilder RSI, MACD, average volume.

Every function takes a clean numeric sequence and returns ``None`` when there
is not enough history. A non-positive period is a caller bug and raises.

The ``*_series`` variants return a list aligned to the input where entry ``i``
equals the scalar function applied to ``values[:i+1]``. They run in O(N) and
back the rolling walk-forward in the backtest engine.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class MacdResult:
    macd: float | None
    signal: float | None
    hist: float | None


def _check_period(period: int, name: str = "period") -> None:
    if period <= 0:
        raise ValueError(f"{name} must be positive, got {period}")


def sma(values: Sequence[float], period: int) -> float | None:
    """Mean of the last ``period`` values."""
    _check_period(period)
    if len(values) < period:
        return None
    tail = values[len(values) - period:]
    return float(sum(tail) / period)


def ema(values: Sequence[float], period: int) -> float | None:
    """Exponential moving average seeded with the SMA of the first ``period`` values."""
    _check_period(period)
    if len(values) < period:
        return None
    k = 2.0 / (period + 1)
    e = sum(values[:period]) / period
    for v in values[period:]:
        e = v * k + e * (1 - k)
    return float(e)


def rsi(values: Sequence[float], period: int = 14) -> float | None:
    """Wilder RSI. ``None`` when ``len(values) <= period``; 100 when there are no losses."""
    _check_period(period)
    if len(values) <= period:
        return None
    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        diff = values[i] - values[i - 1]
        if diff >= 0:
            gains += diff
        else:
            losses -= diff
    avg_gain = gains / period
    avg_loss = losses / period
    for i in range(period + 1, len(values)):
        diff = values[i] - values[i - 1]
        avg_gain = (avg_gain * (period - 1) + max(diff, 0.0)) / period
        avg_loss = (avg_loss * (period - 1) + max(-diff, 0.0)) / period
    return _rsi_from_averages(avg_gain, avg_loss)


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return float(100 - 100 / (1 + rs))


def macd(
    values: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MacdResult:
    """MACD line, signal line and histogram at the last bar.

    The MACD line exists from index ``slow - 1``; the signal line is the
    SMA-seeded EMA of that line. All three are ``None`` together when
    ``len(values) < slow + signal``.
    """
    _check_period(fast, "fast")
    _check_period(slow, "slow")
    _check_period(signal, "signal")
    if len(values) < slow + signal:
        return MacdResult(None, None, None)
    line, sig = _macd_lines(values, fast, slow, signal)
    m, s = line[-1], sig[-1]
    return MacdResult(macd=m, signal=s, hist=m - s)


def avg_volume(volumes: Sequence[float], period: int = 20) -> float | None:
    return sma(volumes, period)


# ---------------------------------------------------------------------------
# Series variants (entry i == scalar function over values[:i+1])
# ---------------------------------------------------------------------------

def sma_series(values: Sequence[float], period: int) -> list[float | None]:
    _check_period(period)
    n = len(values)
    out: list[float | None] = [None] * n
    if n < period:
        return out
    csum = np.cumsum(np.asarray(values, dtype=float))
    for i in range(period - 1, n):
        total = csum[i] - (csum[i - period] if i >= period else 0.0)
        out[i] = float(total / period)
    return out


def ema_series(values: Sequence[float], period: int) -> list[float | None]:
    _check_period(period)
    n = len(values)
    out: list[float | None] = [None] * n
    if n < period:
        return out
    k = 2.0 / (period + 1)
    e = sum(values[:period]) / period
    out[period - 1] = float(e)
    for i in range(period, n):
        e = values[i] * k + e * (1 - k)
        out[i] = float(e)
    return out


def rsi_series(values: Sequence[float], period: int = 14) -> list[float | None]:
    _check_period(period)
    n = len(values)
    out: list[float | None] = [None] * n
    if n <= period:
        return out
    gains = 0.0
    losses = 0.0
    for i in range(1, period + 1):
        diff = values[i] - values[i - 1]
        if diff >= 0:
            gains += diff
        else:
            losses -= diff
    avg_gain = gains / period
    avg_loss = losses / period
    out[period] = _rsi_from_averages(avg_gain, avg_loss)
    for i in range(period + 1, n):
        diff = values[i] - values[i - 1]
        avg_gain = (avg_gain * (period - 1) + max(diff, 0.0)) / period
        avg_loss = (avg_loss * (period - 1) + max(-diff, 0.0)) / period
        out[i] = _rsi_from_averages(avg_gain, avg_loss)
    return out


def macd_series(
    values: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> list[MacdResult]:
    _check_period(fast, "fast")
    _check_period(slow, "slow")
    _check_period(signal, "signal")
    n = len(values)
    empty = MacdResult(None, None, None)
    out = [empty] * n
    if n < slow + signal:
        return out
    line, sig = _macd_lines(values, fast, slow, signal)
    # line[j] is the MACD value at bar slow - 1 + j; sig[j] at bar slow - 1 + signal - 1 + j
    offset = slow - 1 + signal - 1
    for j, s in enumerate(sig):
        bar = offset + j
        if bar + 1 < slow + signal:
            continue
        m = line[signal - 1 + j]
        out[bar] = MacdResult(macd=m, signal=s, hist=m - s)
    return out


def _macd_lines(
    values: Sequence[float], fast: int, slow: int, signal: int,
) -> tuple[list[float], list[float]]:
    if fast >= slow:
        raise ValueError(f"fast ({fast}) must be shorter than slow ({slow})")
    fast_ema = ema_series(values, fast)
    slow_ema = ema_series(values, slow)
    line = [
        f - s
        for f, s in zip(fast_ema[slow - 1:], slow_ema[slow - 1:])
        if f is not None and s is not None
    ]
    sig = [v for v in ema_series(line, signal) if v is not None]
    return line, sig
