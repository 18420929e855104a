"""
Paper trading example: orders, fills, positions and a live-order approval.

Shows: OrderEngine wired to in-memory collaborators, market and limit paper
fills, a price tick, the portfolio summary as a DataFrame, the approval flow
for a manual-execution strategy, and the kill switch.
"""

from __future__ import annotations

import logging
from datetime import datetime

from backtesting import InMemoryBacktestService
from orderdesk import (
    ComplianceGateError,
    EngineConfig,
    OrderDeskError,
    OrderEngine,
    OrderMode,
    OrderParams,
    OrderType,
    Side,
)
from orderdesk.services import (
    InMemoryExchangeConnectionStore,
    InMemoryStrategyService,
    InMemoryUserStore,
    StrategyInfo,
)


def print_fill_observer(order, update) -> None:
    """Observer: post-fill log (e.g. journal, notifications)."""
    print(f"  [Observer] FILL {order.side.value} {order.quantity} {order.symbol} @ {order.filled_price:.2f}")
    if update.closed is not None:
        print(f"  [Observer] closed position, realized PnL {update.realized_pnl:.2f}")


def main() -> None:
    user_id = "demo-user"
    strategy_id = "demo-strategy"

    users = InMemoryUserStore()
    users.add_user(user_id, "pro")
    strategies = InMemoryStrategyService()
    strategies.add_strategy(StrategyInfo(id=strategy_id, user_id=user_id, config={"maxPositionSize": 2.0}))
    connections = InMemoryExchangeConnectionStore()
    backtests = InMemoryBacktestService()

    engine = OrderEngine(
        users=users,
        strategies=strategies,
        exchange_connections=connections,
        backtests=backtests,
        config=EngineConfig.from_env(),
        observers=[print_fill_observer],
    )

    def params(**kw) -> OrderParams:
        base = dict(user_id=user_id, strategy_id=strategy_id, symbol="BTC/USDT", quantity=0.5)
        base.update(kw)
        return OrderParams(**base)

    print("--- Paper market buy ---")
    buy = engine.create_order(params(side=Side.BUY, order_type=OrderType.MARKET))
    engine.execute_paper_order(buy.id, 50_000.0)

    print("\n--- Paper limit buy, filled by a price tick ---")
    limit = engine.create_order(params(side=Side.BUY, order_type=OrderType.LIMIT, price=48_000.0))
    engine.process_price_tick({"BTC/USDT": 49_000.0})
    print(f"  after 49000 tick: {engine.get_order(limit.id).status.value}")
    engine.process_price_tick({"BTC/USDT": 47_900.0})
    print(f"  after 47900 tick: {engine.get_order(limit.id).status.value}")

    print("\n--- Portfolio ---")
    summary = engine.get_portfolio_summary(user_id, {"BTC/USDT": 51_000.0})
    print(summary.to_frame().to_string(index=False))
    print(f"Total value={summary.total_value:.2f} pnl={summary.total_pnl:.2f} ({summary.total_pnl_percent:.2f}%)")

    print("\n--- Live order via approval (manual strategy) ---")
    strategies.update_status(strategy_id, "active")
    connections.add_connection(user_id, "binance")
    backtests.record_run(
        strategy_id,
        10_000.0,
        [(datetime(2024, 1, 1), 10_400.0), (datetime(2024, 2, 1), 10_900.0)],
    )
    live = params(side=Side.SELL, order_type=OrderType.MARKET, mode=OrderMode.LIVE)
    try:
        engine.create_order(live)
    except ComplianceGateError as err:
        print(f"  Direct live order refused: {err.message}")
    request = engine.create_approval_request(live)
    approved, order = engine.approve_live_order(user_id, request.id)
    print(f"  Approval {approved.status.value}: live order {order.id} is {order.status.value}")

    print("\n--- Kill switch ---")
    engine.set_kill_switch(True)
    request = engine.create_approval_request(live)
    try:
        engine.approve_live_order(user_id, request.id)
    except OrderDeskError as err:
        print(f"  Approval refused: {err.message}")

    print("\n--- Rejected log ---")
    for entry in engine.get_rejected_log():
        print(f"  Rejected: reason={entry.reason}, message={entry.message}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    main()
