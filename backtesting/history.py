"""
In-memory backtest history per strategy.

Stands in for the external backtest service: records runs in insertion
order and returns them oldest first, which is what the live-trading gate
expects from get_backtest_history.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Sequence

import pandas as pd

from backtesting.metrics import Metrics, compute_metrics

COMPLETED = "completed"
FAILED = "failed"


@dataclass(frozen=True)
class BacktestRecord:
    strategy_id: str
    status: str
    metrics: Metrics | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


class InMemoryBacktestService:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._history: dict[str, list[BacktestRecord]] = {}

    def record(self, record: BacktestRecord) -> BacktestRecord:
        with self._lock:
            self._history.setdefault(record.strategy_id, []).append(record)
        return record

    def record_run(
        self,
        strategy_id: str,
        initial_value: float,
        equity_curve: Sequence[tuple[datetime, float]] | pd.Series,
    ) -> BacktestRecord:
        """Compute metrics for a finished run and store it as completed."""
        metrics = compute_metrics(initial_value, equity_curve)
        return self.record(BacktestRecord(strategy_id=strategy_id, status=COMPLETED, metrics=metrics))

    def record_failure(self, strategy_id: str) -> BacktestRecord:
        return self.record(BacktestRecord(strategy_id=strategy_id, status=FAILED))

    def get_backtest_history(self, strategy_id: str) -> list[BacktestRecord]:
        with self._lock:
            return list(self._history.get(strategy_id, []))
