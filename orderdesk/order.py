"""
Order: a user's trade intent and its lifecycle state.

Immutable. State changes go through the OrderRegistry, which stores a new
value built with dataclasses.replace; callers only ever hold snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Side(Enum):
    BUY = "buy"
    SELL = "sell"

    @property
    def sign(self) -> int:
        """+1 for buy, -1 for sell."""
        return 1 if self is Side.BUY else -1


class OrderType(Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"

    @property
    def is_stop(self) -> bool:
        return self in (OrderType.STOP_LOSS, OrderType.TAKE_PROFIT)


class OrderStatus(Enum):
    """pending -> {filled, cancelled, rejected, expired}; all but pending are terminal."""

    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.PENDING


class OrderMode(Enum):
    PAPER = "paper"
    LIVE = "live"


@dataclass(frozen=True)
class OrderParams:
    """Parameters for creating an order (or staging one for approval)."""

    user_id: str
    strategy_id: str
    symbol: str
    side: Side
    order_type: OrderType
    quantity: float
    mode: OrderMode = OrderMode.PAPER
    price: float | None = None
    stop_price: float | None = None
    exchange_id: str | None = None

    def __post_init__(self) -> None:
        # Accept plain strings ("buy", "limit", "live") from API payloads.
        if not isinstance(self.side, Side):
            object.__setattr__(self, "side", Side(self.side))
        if not isinstance(self.order_type, OrderType):
            object.__setattr__(self, "order_type", OrderType(self.order_type))
        if not isinstance(self.mode, OrderMode):
            object.__setattr__(self, "mode", OrderMode(self.mode))

    @property
    def signed_quantity(self) -> float:
        return self.side.sign * self.quantity


@dataclass(frozen=True)
class Order:
    """An order as stored by the registry, including fill state."""

    id: str
    user_id: str
    strategy_id: str
    symbol: str
    side: Side
    order_type: OrderType
    quantity: float
    mode: OrderMode
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    price: float | None = None
    stop_price: float | None = None
    exchange_id: str | None = None
    filled_price: float | None = None
    filled_at: datetime | None = None
    fee: float | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is OrderStatus.PENDING

    @classmethod
    def from_params(cls, order_id: str, params: OrderParams, now: datetime) -> "Order":
        return cls(
            id=order_id,
            user_id=params.user_id,
            strategy_id=params.strategy_id,
            symbol=params.symbol,
            side=params.side,
            order_type=params.order_type,
            quantity=params.quantity,
            mode=params.mode,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
            price=params.price,
            stop_price=params.stop_price,
            exchange_id=params.exchange_id,
        )
