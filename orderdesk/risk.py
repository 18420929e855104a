"""
RiskGate: the ordered pre-trade decision chain.

Checks run in a fixed order and the first failure raises; a passing run has
no side effects. Order of evaluation:

1. order shape (quantity, symbol format, required price fields)
2. user exists
3. tier budgets: daily loss, open pending orders
4. strategy position-size cap
5. live mode only: kill switch, strategy active, auto execution mode,
   tier live entitlement, exchange connection, backtest gate
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Mapping
from typing import Any

from orderdesk.config import EngineConfig
from orderdesk.errors import ComplianceGateError, EntitlementError, NotFoundError, ValidationError
from orderdesk.ledger import PositionLedger
from orderdesk.order import OrderMode, OrderParams, OrderType
from orderdesk.repository import OrderRepository
from orderdesk.services import (
    BacktestService,
    ConfigService,
    ExchangeConnectionStore,
    ExecutionMode,
    StrategyInfo,
    StrategyService,
    UserInfo,
    UserStore,
)

logger = logging.getLogger(__name__)

COMPLETED = "completed"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def is_positive_number(value: Any) -> bool:
    """True for a finite number above zero; rejects None, NaN and infinities."""
    return _is_number(value) and value > 0


def validate_order_shape(params: OrderParams, separator: str = "/") -> None:
    """Raise ValidationError if the order parameters are structurally invalid."""
    if not is_positive_number(params.quantity):
        raise ValidationError("Quantity must be positive", reason="invalid_quantity")
    if not params.symbol or separator not in params.symbol:
        raise ValidationError(
            f"Invalid symbol format. Use BASE{separator}QUOTE format (e.g., BTC{separator}USDT)",
            reason="invalid_symbol",
        )
    if params.order_type is OrderType.LIMIT and params.price is None:
        raise ValidationError("Limit orders require a price", reason="missing_price")
    if params.order_type.is_stop and params.stop_price is None:
        raise ValidationError("Stop orders require a stop price", reason="missing_stop_price")
    if params.price is not None and not is_positive_number(params.price):
        raise ValidationError("Price must be positive", reason="invalid_price")
    if params.stop_price is not None and not is_positive_number(params.stop_price):
        raise ValidationError("Stop price must be positive", reason="invalid_stop_price")


class DailyLossTracker:
    """Per-user running loss for the current trading day."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._losses: dict[str, float] = {}

    def record(self, user_id: str, amount: float) -> float:
        with self._lock:
            total = self._losses.get(user_id, 0.0) + amount
            self._losses[user_id] = total
            return total

    def get(self, user_id: str) -> float:
        return self._losses.get(user_id, 0.0)

    def reset(self) -> None:
        with self._lock:
            self._losses.clear()


def _field(obj: Any, snake: str, camel: str | None = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(camel or snake, obj.get(snake))
    return getattr(obj, snake, None)


class RiskGate:
    """
    Pre-trade and live-eligibility checks. Collaborators are injected; the
    kill switch comes from EngineConfig and can be flipped with set_kill_switch.
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        users: UserStore,
        strategies: StrategyService,
        tiers: ConfigService,
        exchange_connections: ExchangeConnectionStore,
        ledger: PositionLedger,
        orders: OrderRepository,
        daily_losses: DailyLossTracker,
        backtests: BacktestService | None = None,
    ) -> None:
        self.config = config
        self.users = users
        self.strategies = strategies
        self.tiers = tiers
        self.exchange_connections = exchange_connections
        self.ledger = ledger
        self.orders = orders
        self.daily_losses = daily_losses
        self.backtests = backtests
        self._kill_switch = config.live_trading_disabled

    @property
    def kill_switch(self) -> bool:
        return self._kill_switch

    def set_kill_switch(self, value: bool) -> None:
        """Emergency stop: when True, all live orders are rejected."""
        if value != self._kill_switch:
            logger.warning("Kill switch %s", "ENGAGED" if value else "released")
        self._kill_switch = value

    def validate(self, params: OrderParams, *, allow_manual_live: bool = False) -> None:
        """
        Run the full chain for params. allow_manual_live skips the
        execution-mode check; it is used when an approved request is materialized.
        """
        validate_order_shape(params, self.config.symbol_separator)
        user = self._require_user(params.user_id)
        features = self.tiers.get_tier_features(user.tier)

        daily_loss = self.daily_losses.get(user.id)
        if not features.allows_daily_loss(daily_loss):
            raise EntitlementError("Daily loss limit reached", reason="daily_loss_limit")
        if not features.allows_open_orders(self._pending_count(user.id)):
            raise EntitlementError("Maximum open orders reached", reason="max_open_orders")

        strategy = self._require_strategy(params.strategy_id)
        self._check_position_size(params, strategy)

        if params.mode is OrderMode.LIVE:
            self._check_live(params, user, strategy, features.live_trading_enabled, allow_manual_live)

    def _pending_count(self, user_id: str) -> int:
        return sum(1 for o in self.orders.find_by_user(user_id) if o.is_pending)

    def _require_user(self, user_id: str) -> UserInfo:
        user = self.users.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", reason="user_not_found")
        return user

    def _require_strategy(self, strategy_id: str) -> StrategyInfo:
        strategy = self.strategies.get_strategy(strategy_id)
        if strategy is None:
            raise NotFoundError("Strategy not found", reason="strategy_not_found")
        return strategy

    def _check_position_size(self, params: OrderParams, strategy: StrategyInfo) -> None:
        limit = strategy.max_position_size
        if limit is None:
            return
        position = self.ledger.open_position(params.user_id, params.symbol)
        current = position.signed_quantity if position is not None else 0.0
        if abs(current + params.signed_quantity) > limit:
            raise EntitlementError("Order would exceed maximum position size", reason="max_position_size")

    def _check_live(
        self,
        params: OrderParams,
        user: UserInfo,
        strategy: StrategyInfo,
        live_entitled: bool,
        allow_manual_live: bool,
    ) -> None:
        if self._kill_switch:
            raise ComplianceGateError("Live trading is temporarily disabled", reason="kill_switch")
        if not strategy.is_active:
            raise ComplianceGateError("Strategy must be active for live trading", reason="strategy_inactive")
        if strategy.execution_mode is not ExecutionMode.AUTO and not allow_manual_live:
            raise ComplianceGateError(
                "This strategy is configured for manual execution only. "
                "Enable autonomous mode before placing live orders.",
                reason="manual_execution_mode",
            )
        if not live_entitled:
            raise EntitlementError(
                f"Live trading not available for {user.tier} tier", reason="live_trading_not_entitled"
            )
        if not self.exchange_connections.find_by_user_id(user.id):
            raise ComplianceGateError(
                "Exchange connection required for live trading", reason="exchange_connection_required"
            )
        self.check_backtest_gate(params.strategy_id)

    def check_backtest_gate(self, strategy_id: str) -> None:
        """Latest completed backtest must exist with non-negative return and bounded drawdown."""
        history = self.backtests.get_backtest_history(strategy_id) if self.backtests is not None else []
        completed = [r for r in history if _field(r, "status") == COMPLETED]
        if not completed:
            raise ComplianceGateError(
                "Strategy must pass a successful backtest before live trading", reason="backtest_gate"
            )
        metrics = _field(completed[-1], "metrics")
        if metrics is None:
            raise ComplianceGateError(
                "Latest backtest metrics are missing; re-run backtest before live trading",
                reason="backtest_gate",
            )
        total_return = _field(metrics, "total_return", "totalReturn")
        max_drawdown = _field(metrics, "max_drawdown", "maxDrawdown")
        if not _is_number(total_return) or not _is_number(max_drawdown):
            raise ComplianceGateError(
                "Latest backtest metrics are invalid; re-run backtest before live trading",
                reason="backtest_gate",
            )
        if total_return < self.config.min_backtest_return:
            raise ComplianceGateError(
                "Latest backtest has negative return; adjust strategy before enabling live trading",
                reason="backtest_gate",
            )
        if max_drawdown > self.config.max_backtest_drawdown:
            raise ComplianceGateError(
                f"Latest backtest max drawdown exceeds {self.config.max_backtest_drawdown:g}%; "
                "reduce risk before enabling live trading",
                reason="backtest_gate",
            )
