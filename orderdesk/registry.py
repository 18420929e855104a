"""
OrderRegistry: order storage and the order state machine.

pending -> filled | cancelled | rejected | expired. Every transition requires
the order to be pending; terminal orders are never modified again.
The registry does not lock; OrderEngine serializes calls per user.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime, timezone

from orderdesk.errors import NotFoundError, StateConflictError, ValidationError
from orderdesk.order import Order, OrderMode, OrderParams, OrderStatus
from orderdesk.repository import InMemoryOrderRepository, OrderRepository
from orderdesk.risk import RiskGate, is_positive_number

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class OrderRegistry:
    def __init__(self, gate: RiskGate, repository: OrderRepository | None = None) -> None:
        self.gate = gate
        self._repo = repository or InMemoryOrderRepository()

    @property
    def repository(self) -> OrderRepository:
        return self._repo

    def create(self, params: OrderParams, *, allow_manual_live: bool = False) -> Order:
        """Run the risk gate and store a new pending order."""
        self.gate.validate(params, allow_manual_live=allow_manual_live)
        order = Order.from_params(str(uuid.uuid4()), params, _now())
        self._repo.upsert(order)
        logger.info(
            "Order created: id=%s user=%s %s %s %s qty=%s mode=%s",
            order.id,
            order.user_id,
            order.symbol,
            order.side.value,
            order.order_type.value,
            order.quantity,
            order.mode.value,
        )
        return order

    def get(self, order_id: str) -> Order | None:
        return self._repo.find_by_id(order_id)

    def require(self, order_id: str) -> Order:
        order = self._repo.find_by_id(order_id)
        if order is None:
            raise NotFoundError("Order not found", reason="order_not_found")
        return order

    def require_pending(self, order_id: str, action: str) -> Order:
        order = self.require(order_id)
        if not order.is_pending:
            raise StateConflictError(
                f"Cannot {action} {order.status.value} order", reason="order_not_pending"
            )
        return order

    def _transition(self, order: Order, status: OrderStatus, **changes) -> Order:
        updated = replace(order, status=status, updated_at=_now(), **changes)
        self._repo.upsert(updated)
        return updated

    def cancel(self, order_id: str) -> Order:
        order = self.require_pending(order_id, "cancel")
        cancelled = self._transition(order, OrderStatus.CANCELLED)
        logger.info("Order cancelled: id=%s", order_id)
        return cancelled

    def cancel_all(self, user_id: str, symbol: str | None = None) -> list[Order]:
        """Cancel every pending order of the user, optionally limited to one symbol."""
        cancelled = [
            self._transition(o, OrderStatus.CANCELLED)
            for o in self._repo.find_by_user(user_id)
            if o.is_pending and (symbol is None or o.symbol == symbol)
        ]
        if cancelled:
            logger.info("Cancelled %d pending order(s) for user=%s symbol=%s", len(cancelled), user_id, symbol)
        return cancelled

    def modify(
        self,
        order_id: str,
        *,
        price: float | None = None,
        quantity: float | None = None,
        stop_price: float | None = None,
    ) -> Order:
        order = self.require_pending(order_id, "modify")
        changes: dict[str, float] = {}
        if price is not None:
            if not is_positive_number(price):
                raise ValidationError("Price must be positive", reason="invalid_price")
            changes["price"] = price
        if quantity is not None:
            if not is_positive_number(quantity):
                raise ValidationError("Quantity must be positive", reason="invalid_quantity")
            changes["quantity"] = quantity
        if stop_price is not None:
            if not is_positive_number(stop_price):
                raise ValidationError("Stop price must be positive", reason="invalid_stop_price")
            changes["stop_price"] = stop_price
        updated = replace(order, updated_at=_now(), **changes)
        self._repo.upsert(updated)
        logger.info("Order modified: id=%s changes=%s", order_id, changes)
        return updated

    def mark_filled(self, order_id: str, filled_price: float, fee: float) -> Order:
        order = self.require_pending(order_id, "fill")
        now = _now()
        return self._transition(order, OrderStatus.FILLED, filled_price=filled_price, filled_at=now, fee=fee)

    def list_for_user(
        self,
        user_id: str,
        *,
        status: OrderStatus | str | None = None,
        symbol: str | None = None,
        mode: OrderMode | str | None = None,
    ) -> list[Order]:
        orders: Iterable[Order] = self._repo.find_by_user(user_id)
        if status is not None:
            wanted_status = OrderStatus(status)
            orders = (o for o in orders if o.status is wanted_status)
        if symbol is not None:
            orders = (o for o in orders if o.symbol == symbol)
        if mode is not None:
            wanted_mode = OrderMode(mode)
            orders = (o for o in orders if o.mode is wanted_mode)
        return list(orders)

    def list_for_strategy(self, strategy_id: str) -> list[Order]:
        return self._repo.find_by_strategy(strategy_id)

    def count_pending(self, user_id: str) -> int:
        return sum(1 for o in self._repo.find_by_user(user_id) if o.is_pending)
