"""Return statistics — win rate, mean/median, compounded curve, drawdown, streaks."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass

import numpy as np

START_CAPITAL = 100.0


@dataclass(frozen=True)
class ReturnStats:
    count: int
    wins: int
    losses: int
    win_rate: float | None
    avg_return_pct: float | None
    median_return_pct: float | None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class TradeMetrics:
    total_trades: int
    win_rate: float | None
    avg_return_pct: float | None
    median_return_pct: float | None
    flat_profit: float           # sum of P/L on a fixed 100 stake per trade
    compounded_value: float      # 100 reinvested through every trade
    compounded_return_pct: float
    max_drawdown_pct: float      # of the compounded curve
    profit_factor: float | None  # None when there were no losing trades
    max_consecutive_wins: int
    max_consecutive_losses: int

    def to_dict(self) -> dict:
        return asdict(self)


def summarize_returns(returns: Iterable[float | None]) -> ReturnStats:
    """Stats over the non-null returns (%). A return above zero is a win."""
    values = [float(r) for r in returns if r is not None]
    if not values:
        return ReturnStats(
            count=0, wins=0, losses=0,
            win_rate=None, avg_return_pct=None, median_return_pct=None,
        )
    arr = np.array(values)
    wins = int(np.sum(arr > 0))
    return ReturnStats(
        count=len(values),
        wins=wins,
        losses=len(values) - wins,
        win_rate=round(wins / len(values), 4),
        avg_return_pct=round(float(np.mean(arr)), 4),
        median_return_pct=round(float(np.median(arr)), 4),
    )


def compounded_curve(returns: list[float], start: float = START_CAPITAL) -> list[float]:
    """Equity curve of ``start`` reinvested through each return (%), starting point included."""
    curve = [start]
    value = start
    for r in returns:
        value *= 1 + r / 100
        curve.append(value)
    return curve


def max_drawdown_pct(curve: list[float]) -> float:
    """Largest peak-to-trough fall of an equity curve, in percent of the peak."""
    if len(curve) < 2:
        return 0.0
    arr = np.array(curve, dtype=float)
    running_max = np.maximum.accumulate(arr)
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdowns = np.where(running_max > 0, (running_max - arr) / running_max * 100, 0.0)
    return round(float(np.max(drawdowns)), 4)


def compute_trade_metrics(returns: list[float]) -> TradeMetrics:
    """Metrics for a chronological list of closed-trade returns (%)."""
    if not returns:
        return _empty_metrics()

    stats = summarize_returns(returns)
    arr = np.array(returns, dtype=float)
    curve = compounded_curve(returns)

    total_gains = float(np.sum(arr[arr > 0]))
    total_losses = abs(float(np.sum(arr[arr <= 0])))
    profit_factor = round(total_gains / total_losses, 4) if total_losses > 0 else None

    max_con_wins, max_con_losses = _consecutive_streaks(returns)

    return TradeMetrics(
        total_trades=stats.count,
        win_rate=stats.win_rate,
        avg_return_pct=stats.avg_return_pct,
        median_return_pct=stats.median_return_pct,
        flat_profit=round(float(np.sum(arr)), 4),
        compounded_value=round(curve[-1], 4),
        compounded_return_pct=round((curve[-1] / START_CAPITAL - 1) * 100, 4),
        max_drawdown_pct=max_drawdown_pct(curve),
        profit_factor=profit_factor,
        max_consecutive_wins=max_con_wins,
        max_consecutive_losses=max_con_losses,
    )


def _consecutive_streaks(returns: list[float]) -> tuple[int, int]:
    max_wins = max_losses = 0
    current_wins = current_losses = 0

    for r in returns:
        if r > 0:
            current_wins += 1
            current_losses = 0
            max_wins = max(max_wins, current_wins)
        else:
            current_losses += 1
            current_wins = 0
            max_losses = max(max_losses, current_losses)

    return max_wins, max_losses


def _empty_metrics() -> TradeMetrics:
    return TradeMetrics(
        total_trades=0, win_rate=None, avg_return_pct=None, median_return_pct=None,
        flat_profit=0.0, compounded_value=START_CAPITAL, compounded_return_pct=0.0,
        max_drawdown_pct=0.0, profit_factor=None, max_consecutive_wins=0,
        max_consecutive_losses=0,
    )
