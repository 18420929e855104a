"""
Backtest metrics used by the live-trading gate: total return and max drawdown.

Both are percentages. Drawdown is measured from the running peak of the
equity curve.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class Metrics:
    """Summary of one backtest run."""

    initial_value: float
    final_value: float
    total_pnl: float
    total_return: float
    max_drawdown: float


def _values(equity_curve: Sequence[tuple[datetime, float]] | pd.Series) -> np.ndarray:
    if isinstance(equity_curve, pd.Series):
        return equity_curve.to_numpy(dtype=float)
    return np.array([v for _, v in equity_curve], dtype=float)


def compute_metrics(
    initial_value: float,
    equity_curve: Sequence[tuple[datetime, float]] | pd.Series,
) -> Metrics:
    """
    Compute return and drawdown from initial capital and an equity curve.

    Parameters
    ----------
    initial_value : float
        Starting portfolio value.
    equity_curve : sequence of (datetime, value) or pd.Series
        Time-ordered portfolio values.

    Returns
    -------
    Metrics
        final_value, total_pnl, total_return (%), max_drawdown (% from peak).
    """
    values = _values(equity_curve)
    if values.size == 0:
        return Metrics(
            initial_value=initial_value,
            final_value=initial_value,
            total_pnl=0.0,
            total_return=0.0,
            max_drawdown=0.0,
        )

    final_value = float(values[-1])
    total_pnl = final_value - initial_value
    total_return = (total_pnl / initial_value * 100.0) if initial_value else 0.0

    # Include the starting capital so a loss on the first bar counts as drawdown.
    curve = np.concatenate(([initial_value], values))
    peak = np.maximum.accumulate(curve)
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdown_pct = np.where(peak > 0, (peak - curve) / peak * 100.0, 0.0)
    max_drawdown = float(np.max(drawdown_pct))

    return Metrics(
        initial_value=initial_value,
        final_value=final_value,
        total_pnl=total_pnl,
        total_return=total_return,
        max_drawdown=max_drawdown,
    )
