"""
Storage for orders and positions.

Repository ABCs (find_by_id, find_by_user, upsert) keep the engine
storage-agnostic. The in-memory implementations keep records in a dict keyed
by id with secondary indices; each guards its maps with its own lock.
KeyedLocks serializes read-modify-write sequences per key (user id).
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Hashable

from orderdesk.errors import StateConflictError
from orderdesk.order import Order
from orderdesk.position import Position


class KeyedLocks:
    """One re-entrant lock per key, created on first use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = {}

    def for_key(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock


class OrderRepository(ABC):
    @abstractmethod
    def find_by_id(self, order_id: str) -> Order | None:
        ...

    @abstractmethod
    def find_by_user(self, user_id: str) -> list[Order]:
        """All orders for a user, in creation order."""
        ...

    @abstractmethod
    def find_by_strategy(self, strategy_id: str) -> list[Order]:
        ...

    @abstractmethod
    def find_pending(self, symbol: str | None = None) -> list[Order]:
        """Pending orders across all users, optionally for one symbol."""
        ...

    @abstractmethod
    def upsert(self, order: Order) -> None:
        ...


class PositionRepository(ABC):
    @abstractmethod
    def find_by_id(self, position_id: str) -> Position | None:
        ...

    @abstractmethod
    def find_by_user(self, user_id: str) -> list[Position]:
        """All positions for a user (open and closed), in opening order."""
        ...

    @abstractmethod
    def find_open(self, user_id: str, symbol: str) -> Position | None:
        ...

    @abstractmethod
    def upsert(self, position: Position) -> None:
        ...


class InMemoryOrderRepository(OrderRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._orders: dict[str, Order] = {}
        self._by_user: dict[str, list[str]] = {}
        self._by_strategy: dict[str, list[str]] = {}

    def find_by_id(self, order_id: str) -> Order | None:
        return self._orders.get(order_id)

    def find_by_user(self, user_id: str) -> list[Order]:
        with self._lock:
            return [self._orders[i] for i in self._by_user.get(user_id, [])]

    def find_by_strategy(self, strategy_id: str) -> list[Order]:
        with self._lock:
            return [self._orders[i] for i in self._by_strategy.get(strategy_id, [])]

    def find_pending(self, symbol: str | None = None) -> list[Order]:
        with self._lock:
            return [
                o for o in self._orders.values() if o.is_pending and (symbol is None or o.symbol == symbol)
            ]

    def upsert(self, order: Order) -> None:
        with self._lock:
            if order.id not in self._orders:
                self._by_user.setdefault(order.user_id, []).append(order.id)
                self._by_strategy.setdefault(order.strategy_id, []).append(order.id)
            self._orders[order.id] = order


class InMemoryPositionRepository(PositionRepository):
    """Keeps an (user_id, symbol) -> open position id index alongside the records."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._positions: dict[str, Position] = {}
        self._by_user: dict[str, list[str]] = {}
        self._open: dict[tuple[str, str], str] = {}

    def find_by_id(self, position_id: str) -> Position | None:
        return self._positions.get(position_id)

    def find_by_user(self, user_id: str) -> list[Position]:
        with self._lock:
            return [self._positions[i] for i in self._by_user.get(user_id, [])]

    def find_open(self, user_id: str, symbol: str) -> Position | None:
        with self._lock:
            position_id = self._open.get((user_id, symbol))
            return self._positions[position_id] if position_id else None

    def upsert(self, position: Position) -> None:
        key = (position.user_id, position.symbol)
        with self._lock:
            current_open = self._open.get(key)
            if position.is_open:
                if current_open is not None and current_open != position.id:
                    raise StateConflictError(
                        f"Open position already exists for {position.user_id} {position.symbol}",
                        reason="duplicate_open_position",
                    )
                self._open[key] = position.id
            elif current_open == position.id:
                del self._open[key]
            if position.id not in self._positions:
                self._by_user.setdefault(position.user_id, []).append(position.id)
            self._positions[position.id] = position
