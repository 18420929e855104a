"""
Collaborator interfaces consumed by the engine, plus in-memory implementations.

The engine only depends on the Protocols. The in-memory classes back tests,
examples and single-process deployments; hosts with a database supply their
own objects with the same methods.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Protocol

from orderdesk.config import DEFAULT_TIER_FEATURES, TierFeatures
from orderdesk.errors import EntitlementError, NotFoundError, ValidationError

ACTIVE_STATUS = "active"


class ExecutionMode(Enum):
    """How live orders derived from a strategy are placed."""

    AUTO = "auto"
    MANUAL = "manual"


@dataclass(frozen=True)
class UserInfo:
    id: str
    tier: str


@dataclass(frozen=True)
class StrategyInfo:
    """
    Strategy state needed for gating. config is passed through unopened
    except for maxPositionSize.
    """

    id: str
    user_id: str
    status: str = "draft"
    execution_mode: ExecutionMode = ExecutionMode.MANUAL
    config: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.execution_mode, ExecutionMode):
            object.__setattr__(self, "execution_mode", ExecutionMode(self.execution_mode))

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_STATUS

    @property
    def max_position_size(self) -> float | None:
        """Configured cap on absolute position size, or None when unset."""
        value = self.config.get("maxPositionSize", self.config.get("max_position_size"))
        if not value:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Strategy {self.id} has invalid maxPositionSize: {value!r}", reason="invalid_strategy_config"
            ) from None


class UserStore(Protocol):
    def get_user(self, user_id: str) -> UserInfo | None:
        ...


class StrategyService(Protocol):
    def get_strategy(self, strategy_id: str) -> StrategyInfo | None:
        ...


class ConfigService(Protocol):
    def get_tier_features(self, tier: str) -> TierFeatures:
        ...


class ExchangeConnectionStore(Protocol):
    def find_by_user_id(self, user_id: str) -> Sequence[Any]:
        ...


class BacktestService(Protocol):
    """Returns backtest records oldest first; each has .status and .metrics."""

    def get_backtest_history(self, strategy_id: str) -> Sequence[Any]:
        ...


# --- In-memory implementations ---


class InMemoryUserStore:
    def __init__(self) -> None:
        self._users: dict[str, UserInfo] = {}

    def add_user(self, user_id: str, tier: str) -> UserInfo:
        user = UserInfo(id=user_id, tier=tier)
        self._users[user_id] = user
        return user

    def get_user(self, user_id: str) -> UserInfo | None:
        return self._users.get(user_id)


class InMemoryStrategyService:
    def __init__(self) -> None:
        self._strategies: dict[str, StrategyInfo] = {}

    def add_strategy(self, strategy: StrategyInfo) -> StrategyInfo:
        self._strategies[strategy.id] = strategy
        return strategy

    def get_strategy(self, strategy_id: str) -> StrategyInfo | None:
        return self._strategies.get(strategy_id)

    def _require(self, strategy_id: str) -> StrategyInfo:
        strategy = self._strategies.get(strategy_id)
        if strategy is None:
            raise NotFoundError("Strategy not found", reason="strategy_not_found")
        return strategy

    def update_status(self, strategy_id: str, status: str) -> StrategyInfo:
        strategy = replace(self._require(strategy_id), status=status)
        self._strategies[strategy_id] = strategy
        return strategy

    def set_execution_mode(self, strategy_id: str, mode: ExecutionMode | str) -> StrategyInfo:
        strategy = replace(self._require(strategy_id), execution_mode=ExecutionMode(mode))
        self._strategies[strategy_id] = strategy
        return strategy


class TierConfigService:
    """Tier entitlements from an injected table keyed by tier name."""

    def __init__(self, tiers: Mapping[str, TierFeatures] | None = None) -> None:
        self._tiers = dict(DEFAULT_TIER_FEATURES if tiers is None else tiers)

    def get_tier_features(self, tier: str) -> TierFeatures:
        try:
            return self._tiers[tier]
        except KeyError:
            raise EntitlementError(f"Unknown tier: {tier}", reason="unknown_tier") from None


class InMemoryExchangeConnectionStore:
    def __init__(self) -> None:
        self._connections: dict[str, list[str]] = {}

    def add_connection(self, user_id: str, exchange: str) -> None:
        self._connections.setdefault(user_id, []).append(exchange)

    def find_by_user_id(self, user_id: str) -> list[str]:
        return list(self._connections.get(user_id, []))
