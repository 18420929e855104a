"""
PositionLedger: applies filled orders to per-user, per-symbol positions.

At most one open position per (user, symbol). Same-direction fills average
the entry price by cost; opposite fills reduce, close, or flip the position.
Realized PnL is only attributed when a position closes in full.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone

from orderdesk.errors import StateConflictError
from orderdesk.order import Order, OrderStatus, Side
from orderdesk.position import Position, PositionSide
from orderdesk.repository import InMemoryPositionRepository, PositionRepository

logger = logging.getLogger(__name__)

# Quantity differences below this are float noise; a fill within it of the
# open quantity closes the position.
QUANTITY_EPSILON = 1e-9


def _side_for(order_side: Side) -> PositionSide:
    return PositionSide.LONG if order_side is Side.BUY else PositionSide.SHORT


@dataclass(frozen=True)
class LedgerUpdate:
    """Outcome of applying one fill: the position it closed (if any) and the open one after it."""

    closed: Position | None = None
    open: Position | None = None

    @property
    def realized_pnl(self) -> float:
        if self.closed is None or self.closed.realized_pnl is None:
            return 0.0
        return self.closed.realized_pnl


class PositionLedger:
    """
    Weighted-average-cost ledger. Not thread-safe by itself: the caller
    serializes apply() per user (see OrderEngine).
    """

    def __init__(self, repository: PositionRepository | None = None) -> None:
        self._repo = repository or InMemoryPositionRepository()

    def apply(self, order: Order) -> LedgerUpdate:
        """Update the user's position in order.symbol from a filled order."""
        if order.status is not OrderStatus.FILLED or order.filled_price is None:
            raise StateConflictError(
                f"Order {order.id} is not filled; cannot apply to positions",
                reason="order_not_filled",
            )
        now = order.filled_at or datetime.now(timezone.utc)
        fill_price = order.filled_price
        existing = self._repo.find_open(order.user_id, order.symbol)

        if existing is None:
            opened = self._open(order, order.quantity, fill_price, now)
            return LedgerUpdate(open=opened)

        if existing.side is _side_for(order.side):
            total_qty = existing.quantity + order.quantity
            entry = (existing.entry_price * existing.quantity + fill_price * order.quantity) / total_qty
            added = replace(existing, quantity=total_qty, entry_price=entry)
            self._repo.upsert(added)
            logger.debug("Position %s increased to %s @ %.8f", added.id, total_qty, entry)
            return LedgerUpdate(open=added)

        if order.quantity < existing.quantity - QUANTITY_EPSILON:
            reduced = replace(existing, quantity=existing.quantity - order.quantity)
            self._repo.upsert(reduced)
            logger.debug("Position %s reduced to %s", reduced.id, reduced.quantity)
            return LedgerUpdate(open=reduced)

        # Full close, possibly flipping into the opposite side.
        if existing.side is PositionSide.LONG:
            pnl = (fill_price - existing.entry_price) * existing.quantity
        else:
            pnl = (existing.entry_price - fill_price) * existing.quantity
        closed = replace(existing, closed_at=now, realized_pnl=pnl)
        self._repo.upsert(closed)
        logger.info(
            "Position closed: user=%s symbol=%s side=%s qty=%s realized_pnl=%.8f",
            closed.user_id,
            closed.symbol,
            closed.side.value,
            closed.quantity,
            pnl,
        )
        remainder = order.quantity - existing.quantity
        opened = self._open(order, remainder, fill_price, now) if remainder > QUANTITY_EPSILON else None
        return LedgerUpdate(closed=closed, open=opened)

    def _open(self, order: Order, quantity: float, price: float, now: datetime) -> Position:
        position = Position(
            id=str(uuid.uuid4()),
            user_id=order.user_id,
            strategy_id=order.strategy_id,
            symbol=order.symbol,
            side=_side_for(order.side),
            quantity=quantity,
            entry_price=price,
            opened_at=now,
        )
        self._repo.upsert(position)
        logger.info(
            "Position opened: user=%s symbol=%s side=%s qty=%s entry=%.8f",
            position.user_id,
            position.symbol,
            position.side.value,
            quantity,
            price,
        )
        return position

    def open_position(self, user_id: str, symbol: str) -> Position | None:
        return self._repo.find_open(user_id, symbol)

    def open_positions(self, user_id: str) -> list[Position]:
        return [p for p in self._repo.find_by_user(user_id) if p.is_open]

    def closed_positions(self, user_id: str) -> list[Position]:
        return [p for p in self._repo.find_by_user(user_id) if not p.is_open]

    def calculate_unrealized_pnl(self, user_id: str, symbol: str, current_price: float) -> float:
        """Unrealized PnL of the open position in symbol; 0 if flat."""
        position = self._repo.find_open(user_id, symbol)
        if position is None:
            return 0.0
        return position.unrealized_pnl(current_price)
