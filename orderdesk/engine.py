"""
OrderEngine: the public surface of the order desk.

Wires OrderRegistry, RiskGate, FillEngine, PositionLedger, ApprovalWorkflow
and PortfolioAggregator around one set of per-user locks. Mutations for a
user are serialized; different users proceed independently.
Gate rejections are logged and kept in a rejected-request log before the
error is re-raised to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone

import pandas as pd

from orderdesk.approvals import ApprovalRequest, ApprovalStatus, ApprovalWorkflow
from orderdesk.config import EngineConfig
from orderdesk.errors import OrderDeskError
from orderdesk.execution.paper import FillEngine
from orderdesk.execution.types import ExecutionOptions, FillObserver
from orderdesk.ledger import LedgerUpdate, PositionLedger
from orderdesk.order import Order, OrderMode, OrderParams, OrderStatus
from orderdesk.portfolio import PortfolioAggregator, PortfolioSummary
from orderdesk.position import Position
from orderdesk.registry import OrderRegistry
from orderdesk.repository import InMemoryOrderRepository, KeyedLocks, OrderRepository, PositionRepository
from orderdesk.risk import DailyLossTracker, RiskGate
from orderdesk.services import (
    BacktestService,
    ConfigService,
    ExchangeConnectionStore,
    StrategyService,
    TierConfigService,
    UserStore,
)

logger = logging.getLogger(__name__)


@dataclass
class RejectedOrderLog:
    """One entry for a create/approve request the gates refused."""

    reason: str
    message: str
    timestamp: datetime
    params: OrderParams | None = None
    approval_id: str | None = None


class OrderEngine:
    """
    Order creation, paper fills, cancellation and modification, positions,
    portfolio valuation and live-order approvals for many users.
    """

    def __init__(
        self,
        *,
        users: UserStore,
        strategies: StrategyService,
        exchange_connections: ExchangeConnectionStore,
        tiers: ConfigService | None = None,
        backtests: BacktestService | None = None,
        config: EngineConfig | None = None,
        order_repository: OrderRepository | None = None,
        position_repository: PositionRepository | None = None,
        observers: Sequence[FillObserver] = (),
    ) -> None:
        self.config = config or EngineConfig()
        self.locks = KeyedLocks()
        self.daily_losses = DailyLossTracker()
        self.ledger = PositionLedger(position_repository)
        orders = order_repository or InMemoryOrderRepository()
        self.gate = RiskGate(
            self.config,
            users=users,
            strategies=strategies,
            tiers=tiers or TierConfigService(),
            exchange_connections=exchange_connections,
            ledger=self.ledger,
            orders=orders,
            daily_losses=self.daily_losses,
            backtests=backtests,
        )
        self.registry = OrderRegistry(self.gate, orders)
        self.fills = FillEngine(
            self.registry,
            self.ledger,
            config=self.config,
            locks=self.locks,
            observers=[self._record_realized_loss, *observers],
        )
        self.approvals = ApprovalWorkflow(self.registry, config=self.config, locks=self.locks)
        self.portfolio = PortfolioAggregator(self.ledger)
        self._rejected_log: list[RejectedOrderLog] = []
        if self.gate.kill_switch:
            logger.warning("OrderEngine started with kill switch ENGAGED: live orders are blocked.")

    # --- kill switch / rejected log ---

    @property
    def kill_switch(self) -> bool:
        return self.gate.kill_switch

    def set_kill_switch(self, value: bool) -> None:
        """Emergency stop: when True, all live orders are rejected."""
        self.gate.set_kill_switch(value)

    def get_rejected_log(self) -> list[RejectedOrderLog]:
        """Return log of rejected requests for debugging and reporting."""
        return list(self._rejected_log)

    def _log_rejection(self, err: OrderDeskError, params: OrderParams | None, approval_id: str | None = None) -> None:
        self._rejected_log.append(
            RejectedOrderLog(
                reason=err.reason or type(err).__name__,
                message=err.message,
                timestamp=datetime.now(timezone.utc),
                params=params,
                approval_id=approval_id,
            )
        )
        logger.warning(
            "Order request rejected (%s): %s [user=%s]",
            err.reason or type(err).__name__,
            err.message,
            params.user_id if params else None,
        )

    # --- orders ---

    def create_order(self, params: OrderParams) -> Order:
        with self.locks.for_key(params.user_id):
            try:
                return self.registry.create(params)
            except OrderDeskError as err:
                self._log_rejection(err, params)
                raise

    def cancel_order(self, order_id: str) -> Order:
        user_id = self.registry.require(order_id).user_id
        with self.locks.for_key(user_id):
            return self.registry.cancel(order_id)

    def cancel_all_orders(self, user_id: str, symbol: str | None = None) -> None:
        with self.locks.for_key(user_id):
            self.registry.cancel_all(user_id, symbol)

    def modify_order(
        self,
        order_id: str,
        *,
        price: float | None = None,
        quantity: float | None = None,
        stop_price: float | None = None,
    ) -> Order:
        user_id = self.registry.require(order_id).user_id
        with self.locks.for_key(user_id):
            return self.registry.modify(order_id, price=price, quantity=quantity, stop_price=stop_price)

    def get_order(self, order_id: str) -> Order | None:
        return self.registry.get(order_id)

    def get_user_orders(
        self,
        user_id: str,
        *,
        status: OrderStatus | str | None = None,
        symbol: str | None = None,
        mode: OrderMode | str | None = None,
    ) -> list[Order]:
        return self.registry.list_for_user(user_id, status=status, symbol=symbol, mode=mode)

    def get_strategy_orders(self, strategy_id: str) -> list[Order]:
        return self.registry.list_for_strategy(strategy_id)

    # --- paper execution ---

    def execute_paper_order(
        self,
        order_id: str,
        current_price: float,
        *,
        slippage_pct: float | None = None,
        fee_pct: float | None = None,
    ) -> Order:
        options = None
        if slippage_pct is not None or fee_pct is not None:
            options = ExecutionOptions(
                slippage_pct=self.config.default_slippage_pct if slippage_pct is None else slippage_pct,
                fee_pct=self.config.default_fee_pct if fee_pct is None else fee_pct,
            )
        return self.fills.execute_paper_order(order_id, current_price, options)

    def check_limit_order(self, order_id: str, current_price: float) -> Order:
        return self.fills.check_limit_order(order_id, current_price)

    def check_stop_order(self, order_id: str, current_price: float) -> Order:
        return self.fills.check_stop_order(order_id, current_price)

    def process_price_tick(self, prices: Mapping[str, float] | pd.DataFrame) -> list[Order]:
        return self.fills.process_price_tick(prices)

    # --- positions / portfolio ---

    def get_open_positions(self, user_id: str) -> list[Position]:
        return self.ledger.open_positions(user_id)

    def get_closed_positions(self, user_id: str) -> list[Position]:
        return self.ledger.closed_positions(user_id)

    def calculate_unrealized_pnl(self, user_id: str, symbol: str, current_price: float) -> float:
        return self.ledger.calculate_unrealized_pnl(user_id, symbol, current_price)

    def get_portfolio_summary(self, user_id: str, current_prices: Mapping[str, float]) -> PortfolioSummary:
        return self.portfolio.get_portfolio_summary(user_id, current_prices)

    # --- daily loss budget ---

    def record_loss(self, user_id: str, amount: float) -> float:
        """Add amount to the user's loss for the day; returns the new total."""
        return self.daily_losses.record(user_id, amount)

    def reset_daily_losses(self) -> None:
        self.daily_losses.reset()
        logger.info("Daily loss counters reset")

    def _record_realized_loss(self, order: Order, update: LedgerUpdate) -> None:
        if update.realized_pnl < 0:
            total = self.daily_losses.record(order.user_id, -update.realized_pnl)
            logger.info("Realized loss %.8f for user=%s; daily loss now %.8f", -update.realized_pnl, order.user_id, total)

    # --- approvals ---

    def create_approval_request(self, params: OrderParams) -> ApprovalRequest:
        return self.approvals.create_approval_request(params)

    def approve_live_order(self, user_id: str, request_id: str) -> tuple[ApprovalRequest, Order]:
        try:
            return self.approvals.approve_live_order(user_id, request_id)
        except OrderDeskError as err:
            request = self.approvals.get(request_id)
            self._log_rejection(err, request.params if request else None, approval_id=request_id)
            raise

    def reject_approval(self, user_id: str, request_id: str) -> ApprovalRequest:
        return self.approvals.reject_approval(user_id, request_id)

    def get_user_approvals(self, user_id: str, status: ApprovalStatus | str | None = None) -> list[ApprovalRequest]:
        return self.approvals.list_for_user(user_id, status)
