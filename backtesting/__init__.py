"""
Backtest history and metrics for the live-trading gate.

Records backtest runs per strategy and computes total return and max
drawdown from equity curves.
"""

from backtesting.history import BacktestRecord, InMemoryBacktestService
from backtesting.metrics import Metrics, compute_metrics

__all__ = [
    "BacktestRecord",
    "InMemoryBacktestService",
    "Metrics",
    "compute_metrics",
]
