"""
Portfolio: valuation snapshot of a user's open positions.

Read model only; derived on demand from the ledger and supplied prices.
A symbol with no supplied price is valued at its entry price.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass, field

import pandas as pd

from orderdesk.ledger import PositionLedger

SUMMARY_COLUMNS = [
    "symbol",
    "side",
    "quantity",
    "entry_price",
    "current_price",
    "current_value",
    "unrealized_pnl",
    "unrealized_pnl_percent",
]


@dataclass(frozen=True)
class PositionSummary:
    symbol: str
    side: str
    quantity: float
    entry_price: float
    current_price: float
    current_value: float
    unrealized_pnl: float
    unrealized_pnl_percent: float


@dataclass(frozen=True)
class PortfolioSummary:
    total_value: float = 0.0
    total_cost: float = 0.0
    total_pnl: float = 0.0
    total_pnl_percent: float = 0.0
    positions: list[PositionSummary] = field(default_factory=list)

    def to_frame(self) -> pd.DataFrame:
        """Per-position breakdown, one row per open position."""
        if not self.positions:
            return pd.DataFrame(columns=SUMMARY_COLUMNS)
        return pd.DataFrame([asdict(p) for p in self.positions], columns=SUMMARY_COLUMNS)


class PortfolioAggregator:
    def __init__(self, ledger: PositionLedger) -> None:
        self.ledger = ledger

    def get_portfolio_summary(self, user_id: str, current_prices: Mapping[str, float]) -> PortfolioSummary:
        total_value = 0.0
        total_cost = 0.0
        rows: list[PositionSummary] = []
        for position in self.ledger.open_positions(user_id):
            price = current_prices.get(position.symbol) or position.entry_price
            current_value = price * position.quantity
            cost = position.entry_price * position.quantity
            pnl = position.unrealized_pnl(price)
            total_value += current_value
            total_cost += cost
            rows.append(
                PositionSummary(
                    symbol=position.symbol,
                    side=position.side.value,
                    quantity=position.quantity,
                    entry_price=position.entry_price,
                    current_price=price,
                    current_value=current_value,
                    unrealized_pnl=pnl,
                    unrealized_pnl_percent=pnl / cost * 100 if cost else 0.0,
                )
            )
        total_pnl = total_value - total_cost
        return PortfolioSummary(
            total_value=total_value,
            total_cost=total_cost,
            total_pnl=total_pnl,
            total_pnl_percent=total_pnl / total_cost * 100 if total_cost > 0 else 0.0,
            positions=rows,
        )
