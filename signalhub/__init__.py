"""SignalHub — market-data signal service: indicators, composite scores, backtests."""

__version__ = "0.1.0"
