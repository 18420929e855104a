"""Shared fixtures: in-memory collaborators and a wired OrderEngine."""

from __future__ import annotations

from datetime import datetime

import pytest

from backtesting import InMemoryBacktestService
from orderdesk import EngineConfig, OrderEngine
from orderdesk.services import (
    ExecutionMode,
    InMemoryExchangeConnectionStore,
    InMemoryStrategyService,
    InMemoryUserStore,
    StrategyInfo,
)
from tests.support import FREE_USER, INSTITUTIONAL_USER, STRATEGY, USER


@pytest.fixture
def users() -> InMemoryUserStore:
    store = InMemoryUserStore()
    store.add_user(USER, "pro")
    store.add_user(INSTITUTIONAL_USER, "institutional")
    store.add_user(FREE_USER, "free")
    return store


@pytest.fixture
def strategies() -> InMemoryStrategyService:
    service = InMemoryStrategyService()
    service.add_strategy(StrategyInfo(id=STRATEGY, user_id=USER))
    return service


@pytest.fixture
def connections() -> InMemoryExchangeConnectionStore:
    return InMemoryExchangeConnectionStore()


@pytest.fixture
def backtests() -> InMemoryBacktestService:
    return InMemoryBacktestService()


@pytest.fixture
def config() -> EngineConfig:
    return EngineConfig()


@pytest.fixture
def engine(users, strategies, connections, backtests, config) -> OrderEngine:
    return OrderEngine(
        users=users,
        strategies=strategies,
        exchange_connections=connections,
        backtests=backtests,
        config=config,
    )


@pytest.fixture
def live_ready(strategies, connections, backtests):
    """Make every live gate pass for USER / STRATEGY (execution mode left manual)."""
    strategies.update_status(STRATEGY, "active")
    connections.add_connection(USER, "binance")
    connections.add_connection(FREE_USER, "binance")
    backtests.record_run(
        STRATEGY,
        10_000.0,
        [(datetime(2024, 1, 1), 10_500.0), (datetime(2024, 1, 31), 11_000.0)],
    )
    return strategies


@pytest.fixture
def auto_live_ready(live_ready):
    live_ready.set_execution_mode(STRATEGY, ExecutionMode.AUTO)
    return live_ready
