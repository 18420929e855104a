"""
Position: open or closed exposure in one symbol for one user.

Immutable; the PositionLedger replaces records as fills arrive.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class PositionSide(Enum):
    LONG = "long"
    SHORT = "short"


@dataclass(frozen=True)
class Position:
    """
    Weighted-average-cost position. closed_at is None while open;
    realized_pnl is only set when the position is closed.
    """

    id: str
    user_id: str
    strategy_id: str
    symbol: str
    side: PositionSide
    quantity: float
    entry_price: float
    opened_at: datetime
    closed_at: datetime | None = None
    realized_pnl: float | None = None

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    @property
    def signed_quantity(self) -> float:
        """Quantity with sign: positive long, negative short."""
        return self.quantity if self.side is PositionSide.LONG else -self.quantity

    def unrealized_pnl(self, current_price: float) -> float:
        if self.side is PositionSide.LONG:
            return (current_price - self.entry_price) * self.quantity
        return (self.entry_price - current_price) * self.quantity
