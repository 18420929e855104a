"""
Engine configuration: kill switch, fill defaults, backtest gate thresholds,
and per-tier entitlements.

Values are passed in explicitly at construction. from_env() is a convenience
for hosts that configure through the process environment.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Set to "true" to block every live-mode order (global kill switch).
LIVE_TRADING_DISABLED_ENV = "LIVE_TRADING_DISABLED"

UNLIMITED = -1


@dataclass(frozen=True)
class TierFeatures:
    """Entitlements for one subscription tier. -1 means unlimited."""

    live_trading_enabled: bool
    max_open_orders: int
    max_daily_loss: float

    def allows_open_orders(self, current: int) -> bool:
        return self.max_open_orders == UNLIMITED or current < self.max_open_orders

    def allows_daily_loss(self, current: float) -> bool:
        return self.max_daily_loss == UNLIMITED or current < self.max_daily_loss


DEFAULT_TIER_FEATURES: Mapping[str, TierFeatures] = {
    "free": TierFeatures(live_trading_enabled=False, max_open_orders=5, max_daily_loss=100.0),
    "pro": TierFeatures(live_trading_enabled=True, max_open_orders=10, max_daily_loss=1000.0),
    "elite": TierFeatures(live_trading_enabled=True, max_open_orders=50, max_daily_loss=10_000.0),
    "institutional": TierFeatures(
        live_trading_enabled=True, max_open_orders=UNLIMITED, max_daily_loss=UNLIMITED
    ),
}


@dataclass(frozen=True)
class EngineConfig:
    """
    Static engine settings.

    live_trading_disabled is the kill switch: when True every live order is
    rejected before any other live-eligibility check runs.
    """

    live_trading_disabled: bool = False
    symbol_separator: str = "/"
    default_slippage_pct: float = 0.1
    default_fee_pct: float = 0.1
    trigger_fee_pct: float = 0.1
    min_backtest_return: float = 0.0
    max_backtest_drawdown: float = 30.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "EngineConfig":
        """Build config, reading the kill switch from LIVE_TRADING_DISABLED."""
        env = os.environ if environ is None else environ
        disabled = env.get(LIVE_TRADING_DISABLED_ENV, "").lower() == "true"
        if disabled:
            logger.warning("Kill switch engaged via %s: live orders are blocked.", LIVE_TRADING_DISABLED_ENV)
        overrides.setdefault("live_trading_disabled", disabled)
        return cls(**overrides)
