"""
Paper execution: simulated fills for paper-mode orders.

Market fills apply slippage against the supplied price and charge a
percentage fee. Limit and stop orders stay pending until a supplied price
satisfies their trigger; they then fill without slippage and pay the flat
trigger fee. Every fill updates the position ledger under the user's lock,
then notifies observers.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager

import pandas as pd

from orderdesk.config import EngineConfig
from orderdesk.errors import ValidationError
from orderdesk.execution.types import ExecutionOptions, FillObserver
from orderdesk.ledger import PositionLedger
from orderdesk.order import Order, OrderMode, OrderType, Side
from orderdesk.registry import OrderRegistry
from orderdesk.repository import KeyedLocks
from orderdesk.risk import is_positive_number

logger = logging.getLogger(__name__)


def slipped_price(side: Side, price: float, slippage_pct: float) -> float:
    """Buys fill above the reference price, sells below."""
    if side is Side.BUY:
        return price * (1 + slippage_pct / 100)
    return price * (1 - slippage_pct / 100)


def fee_for(quantity: float, price: float, fee_pct: float) -> float:
    return quantity * price * fee_pct / 100


def limit_triggered(side: Side, limit_price: float, current_price: float) -> bool:
    if side is Side.BUY:
        return current_price <= limit_price
    return current_price >= limit_price


def stop_triggered(order_type: OrderType, side: Side, stop_price: float, current_price: float) -> bool:
    """stop_loss fires against the position, take_profit in its favour."""
    if order_type is OrderType.STOP_LOSS:
        if side is Side.SELL:
            return current_price <= stop_price
        return current_price >= stop_price
    if order_type is OrderType.TAKE_PROFIT:
        if side is Side.SELL:
            return current_price >= stop_price
        return current_price <= stop_price
    return False


def prices_from_frame(df: pd.DataFrame) -> dict[str, float]:
    """
    Latest price per symbol from a market-data frame: long format with
    symbol/close columns, or wide format with one column per symbol.
    """
    prices: dict[str, float] = {}
    if df.empty:
        return prices
    if "symbol" in df.columns:
        price_col = "close" if "close" in df.columns else "last"
        for sym, rows in df.groupby("symbol", sort=False):
            prices[str(sym)] = float(rows[price_col].iloc[-1])
    else:
        for sym in df.columns:
            prices[str(sym)] = float(df[sym].iloc[-1])
    return prices


def _require_price(current_price: float) -> None:
    if not is_positive_number(current_price):
        raise ValidationError("Current price must be positive", reason="invalid_price")


class FillEngine:
    """
    Simulates fills for paper orders. Live orders are never filled here;
    trigger checks on them are no-ops.
    """

    def __init__(
        self,
        registry: OrderRegistry,
        ledger: PositionLedger,
        *,
        config: EngineConfig | None = None,
        locks: KeyedLocks | None = None,
        observers: Sequence[FillObserver] = (),
    ) -> None:
        self.registry = registry
        self.ledger = ledger
        self.config = config or EngineConfig()
        self.locks = locks or KeyedLocks()
        self.observers: list[FillObserver] = list(observers)

    @contextmanager
    def _locked(self, order_id: str) -> Iterator[Order]:
        """Hold the owning user's lock and yield a fresh read of the order."""
        order = self.registry.require(order_id)
        with self.locks.for_key(order.user_id):
            yield self.registry.require(order_id)

    def execute_paper_order(
        self,
        order_id: str,
        current_price: float,
        options: ExecutionOptions | None = None,
    ) -> Order:
        """Fill a pending paper order now at current_price adjusted for slippage."""
        _require_price(current_price)
        opts = options or ExecutionOptions(
            slippage_pct=self.config.default_slippage_pct, fee_pct=self.config.default_fee_pct
        )
        with self._locked(order_id) as order:
            self.registry.require_pending(order_id, "execute")
            if order.mode is not OrderMode.PAPER:
                raise ValidationError("Only paper orders can be simulated", reason="not_paper_order")
            price = slipped_price(order.side, current_price, opts.slippage_pct)
            return self._fill(order, price, fee_for(order.quantity, price, opts.fee_pct))

    def check_limit_order(self, order_id: str, current_price: float) -> Order:
        """Fill a pending paper limit order at its limit price if current_price reached it."""
        with self._locked(order_id) as order:
            if order.order_type is not OrderType.LIMIT or not order.is_pending or order.mode is not OrderMode.PAPER:
                return order
            _require_price(current_price)
            if not limit_triggered(order.side, order.price, current_price):
                logger.debug("Limit order %s not triggered at %s (limit %s)", order.id, current_price, order.price)
                return order
            return self._fill(order, order.price, fee_for(order.quantity, order.price, self.config.trigger_fee_pct))

    def check_stop_order(self, order_id: str, current_price: float) -> Order:
        """Fill a pending paper stop_loss/take_profit order at current_price if triggered."""
        with self._locked(order_id) as order:
            if not order.order_type.is_stop or not order.is_pending or order.mode is not OrderMode.PAPER:
                return order
            _require_price(current_price)
            if not stop_triggered(order.order_type, order.side, order.stop_price, current_price):
                logger.debug("Stop order %s not triggered at %s (stop %s)", order.id, current_price, order.stop_price)
                return order
            return self._fill(
                order, current_price, fee_for(order.quantity, current_price, self.config.trigger_fee_pct)
            )

    def process_price_tick(self, prices: Mapping[str, float] | pd.DataFrame) -> list[Order]:
        """
        Check every pending paper limit/stop order in the given symbols against
        the tick. Returns the orders that filled.
        """
        latest = prices_from_frame(prices) if isinstance(prices, pd.DataFrame) else dict(prices)
        filled: list[Order] = []
        for symbol, price in latest.items():
            if not is_positive_number(price):
                logger.warning("Skipping %s: invalid tick price %s", symbol, price)
                continue
            for order in self.registry.repository.find_pending(symbol):
                if order.mode is not OrderMode.PAPER:
                    continue
                if order.order_type is OrderType.LIMIT:
                    result = self.check_limit_order(order.id, price)
                elif order.order_type.is_stop:
                    result = self.check_stop_order(order.id, price)
                else:
                    continue
                if not result.is_pending:
                    filled.append(result)
        return filled

    def _fill(self, order: Order, price: float, fee: float) -> Order:
        filled = self.registry.mark_filled(order.id, price, fee)
        update = self.ledger.apply(filled)
        logger.info(
            "Paper fill: id=%s %s %s %s @ %.8f fee=%.8f",
            filled.id,
            filled.side.value,
            filled.quantity,
            filled.symbol,
            price,
            fee,
        )
        for observer in self.observers:
            observer(filled, update)
        return filled
