"""Backtest layer — walk-forward signal replay, return stats and strategy audit."""

from signalhub.backtest.engine import BacktestResult, SignalEvent, aggregate_backtests, run_backtest
from signalhub.backtest.metrics import ReturnStats, summarize_returns
from signalhub.backtest.audit import run_asset_audit, summarize_market_audit

__all__ = [
    "BacktestResult",
    "SignalEvent",
    "aggregate_backtests",
    "run_backtest",
    "ReturnStats",
    "summarize_returns",
    "run_asset_audit",
    "summarize_market_audit",
]
