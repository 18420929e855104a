"""
Tests for backtesting: metrics and the in-memory backtest history.
"""

from datetime import datetime

import pandas as pd
import pytest

from backtesting import BacktestRecord, InMemoryBacktestService, compute_metrics
from backtesting.history import COMPLETED, FAILED


def _curve(*values: float) -> list[tuple[datetime, float]]:
    return [(datetime(2024, 1, i + 1), v) for i, v in enumerate(values)]


# --- metrics ---


def test_compute_metrics_basic():
    m = compute_metrics(10_000.0, _curve(10_500.0, 10_200.0, 11_000.0))
    assert m.final_value == 11_000.0
    assert m.total_pnl == pytest.approx(1_000.0)
    assert m.total_return == pytest.approx(10.0)
    assert m.max_drawdown == pytest.approx((10_500.0 - 10_200.0) / 10_500.0 * 100)


def test_compute_metrics_empty_curve():
    m = compute_metrics(10_000.0, [])
    assert m.final_value == 10_000.0
    assert m.total_return == 0.0
    assert m.max_drawdown == 0.0


def test_compute_metrics_counts_drop_from_initial_capital():
    m = compute_metrics(10_000.0, _curve(8_000.0, 12_000.0))
    assert m.total_return == pytest.approx(20.0)
    assert m.max_drawdown == pytest.approx(20.0)


def test_compute_metrics_from_series():
    series = pd.Series([100.0, 90.0, 120.0], index=pd.date_range("2024-01-01", periods=3, freq="D"))
    m = compute_metrics(100.0, series)
    assert m.total_return == pytest.approx(20.0)
    assert m.max_drawdown == pytest.approx(10.0)


def test_compute_metrics_monotonic_curve_has_no_drawdown():
    m = compute_metrics(100.0, _curve(101.0, 102.0, 103.0))
    assert m.max_drawdown == 0.0


# --- history ---


def test_history_is_oldest_first_per_strategy():
    service = InMemoryBacktestService()
    first = service.record_run("s1", 100.0, _curve(110.0))
    failed = service.record_failure("s1")
    service.record_run("s2", 100.0, _curve(90.0))

    history = service.get_backtest_history("s1")
    assert [r.id for r in history] == [first.id, failed.id]
    assert history[0].status == COMPLETED
    assert history[0].metrics.total_return == pytest.approx(10.0)
    assert history[1].status == FAILED
    assert history[1].metrics is None
    assert service.get_backtest_history("unknown") == []


def test_history_returns_copy():
    service = InMemoryBacktestService()
    service.record(BacktestRecord(strategy_id="s1", status=COMPLETED))
    service.get_backtest_history("s1").clear()
    assert len(service.get_backtest_history("s1")) == 1
