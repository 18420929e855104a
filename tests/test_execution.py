"""
Tests for paper execution: market fills with slippage and fees, limit and
stop triggers, price ticks, and fill observers.
"""

from __future__ import annotations

import pandas as pd
import pytest

from tests.support import STRATEGY, USER
from orderdesk import (
    NotFoundError,
    OrderEngine,
    OrderMode,
    OrderParams,
    OrderStatus,
    OrderType,
    Side,
    StateConflictError,
    ValidationError,
)
from orderdesk.execution import ExecutionOptions, limit_triggered, prices_from_frame, stop_triggered
from orderdesk.position import PositionSide


def _params(**overrides) -> OrderParams:
    fields = dict(
        user_id=USER,
        strategy_id=STRATEGY,
        symbol="BTC/USDT",
        side=Side.BUY,
        order_type=OrderType.MARKET,
        quantity=0.1,
    )
    fields.update(overrides)
    return OrderParams(**fields)


# --- market fills ---


def test_buy_fills_above_reference_price(engine):
    order = engine.create_order(_params())
    filled = engine.execute_paper_order(order.id, 50_000.0)
    assert filled.status == OrderStatus.FILLED
    assert filled.filled_price == pytest.approx(50_050.0)
    assert filled.fee == pytest.approx(0.1 * 50_050.0 * 0.001)
    assert filled.filled_at is not None
    assert engine.get_order(order.id).status == OrderStatus.FILLED


def test_sell_fills_below_reference_price(engine):
    order = engine.create_order(_params(side=Side.SELL))
    filled = engine.execute_paper_order(order.id, 50_000.0)
    assert filled.filled_price == pytest.approx(49_950.0)


def test_slippage_stays_within_bound(engine):
    order = engine.create_order(_params())
    filled = engine.execute_paper_order(order.id, 50_000.0)
    assert 50_000.0 <= filled.filled_price <= 50_000.0 * 1.001 + 1e-6


def test_custom_slippage_and_fee(engine):
    order = engine.create_order(_params(quantity=2.0))
    filled = engine.execute_paper_order(order.id, 100.0, slippage_pct=0.5, fee_pct=0.2)
    assert filled.filled_price == pytest.approx(100.5)
    assert filled.fee == pytest.approx(2.0 * 100.5 * 0.002)


def test_zero_slippage_fills_at_reference(engine):
    order = engine.create_order(_params())
    assert engine.execute_paper_order(order.id, 50_000.0, slippage_pct=0).filled_price == 50_000.0


def test_negative_execution_options_rejected():
    with pytest.raises(ValidationError):
        ExecutionOptions(slippage_pct=-0.1)


def test_fill_opens_position(engine):
    order = engine.create_order(_params(quantity=0.5))
    filled = engine.execute_paper_order(order.id, 50_000.0)
    positions = engine.get_open_positions(USER)
    assert len(positions) == 1
    assert positions[0].side == PositionSide.LONG
    assert positions[0].quantity == 0.5
    assert positions[0].entry_price == filled.filled_price
    assert positions[0].strategy_id == STRATEGY


def test_execute_twice_conflicts(engine):
    order = engine.create_order(_params())
    engine.execute_paper_order(order.id, 50_000.0)
    with pytest.raises(StateConflictError):
        engine.execute_paper_order(order.id, 50_000.0)
    assert len(engine.get_open_positions(USER)) == 1


def test_execute_cancelled_order_conflicts(engine):
    order = engine.create_order(_params())
    engine.cancel_order(order.id)
    with pytest.raises(StateConflictError):
        engine.execute_paper_order(order.id, 50_000.0)


def test_live_orders_are_never_simulated(engine, auto_live_ready):
    order = engine.create_order(_params(mode=OrderMode.LIVE))
    with pytest.raises(ValidationError, match="Only paper orders"):
        engine.execute_paper_order(order.id, 50_000.0)
    assert engine.get_order(order.id).is_pending


def test_execute_unknown_order(engine):
    with pytest.raises(NotFoundError):
        engine.execute_paper_order("missing", 50_000.0)


@pytest.mark.parametrize("price", [0, -10.0])
def test_execute_requires_positive_price(engine, price):
    order = engine.create_order(_params())
    with pytest.raises(ValidationError):
        engine.execute_paper_order(order.id, price)
    assert engine.get_order(order.id).is_pending


# --- limit orders ---


def test_buy_limit_waits_for_price(engine):
    order = engine.create_order(_params(order_type=OrderType.LIMIT, price=48_000.0))
    assert engine.check_limit_order(order.id, 49_000.0).is_pending

    filled = engine.check_limit_order(order.id, 48_000.0)
    assert filled.status == OrderStatus.FILLED
    assert filled.filled_price == 48_000.0
    assert filled.fee == pytest.approx(0.1 * 48_000.0 * 0.001)


def test_buy_limit_fills_at_limit_not_market(engine):
    order = engine.create_order(_params(order_type=OrderType.LIMIT, price=48_000.0))
    assert engine.check_limit_order(order.id, 47_000.0).filled_price == 48_000.0


def test_sell_limit_triggers_at_or_above(engine):
    order = engine.create_order(_params(side=Side.SELL, order_type=OrderType.LIMIT, price=52_000.0))
    assert engine.check_limit_order(order.id, 51_000.0).is_pending
    assert engine.check_limit_order(order.id, 52_500.0).filled_price == 52_000.0


def test_limit_check_ignores_other_order_types(engine):
    order = engine.create_order(_params())
    assert engine.check_limit_order(order.id, 1.0) == order


def test_limit_check_on_cancelled_order_is_noop(engine):
    order = engine.create_order(_params(order_type=OrderType.LIMIT, price=48_000.0))
    cancelled = engine.cancel_order(order.id)
    assert engine.check_limit_order(order.id, 40_000.0) == cancelled


@pytest.mark.parametrize(
    "side, limit, current, expected",
    [
        (Side.BUY, 100.0, 99.0, True),
        (Side.BUY, 100.0, 100.0, True),
        (Side.BUY, 100.0, 101.0, False),
        (Side.SELL, 100.0, 101.0, True),
        (Side.SELL, 100.0, 100.0, True),
        (Side.SELL, 100.0, 99.0, False),
    ],
)
def test_limit_triggered(side, limit, current, expected):
    assert limit_triggered(side, limit, current) is expected


# --- stop orders ---


@pytest.mark.parametrize(
    "order_type, side, stop, current, expected",
    [
        (OrderType.STOP_LOSS, Side.SELL, 45_000.0, 44_999.0, True),
        (OrderType.STOP_LOSS, Side.SELL, 45_000.0, 45_001.0, False),
        (OrderType.STOP_LOSS, Side.BUY, 55_000.0, 55_000.0, True),
        (OrderType.STOP_LOSS, Side.BUY, 55_000.0, 54_000.0, False),
        (OrderType.TAKE_PROFIT, Side.SELL, 55_000.0, 55_500.0, True),
        (OrderType.TAKE_PROFIT, Side.SELL, 55_000.0, 54_000.0, False),
        (OrderType.TAKE_PROFIT, Side.BUY, 45_000.0, 44_000.0, True),
        (OrderType.TAKE_PROFIT, Side.BUY, 45_000.0, 46_000.0, False),
        (OrderType.LIMIT, Side.BUY, 45_000.0, 44_000.0, False),
    ],
)
def test_stop_triggered(order_type, side, stop, current, expected):
    assert stop_triggered(order_type, side, stop, current) is expected


def test_stop_loss_closes_long_position(engine):
    entry = engine.create_order(_params(quantity=1.0))
    engine.execute_paper_order(entry.id, 50_000.0, slippage_pct=0)
    stop = engine.create_order(
        _params(side=Side.SELL, order_type=OrderType.STOP_LOSS, quantity=1.0, stop_price=45_000.0)
    )

    assert engine.check_stop_order(stop.id, 46_000.0).is_pending
    filled = engine.check_stop_order(stop.id, 44_900.0)
    assert filled.status == OrderStatus.FILLED
    assert filled.filled_price == 44_900.0
    assert engine.get_open_positions(USER) == []
    closed = engine.get_closed_positions(USER)
    assert closed[0].realized_pnl == pytest.approx(-5_100.0)


def test_take_profit_fills_at_current_price(engine):
    order = engine.create_order(_params(side=Side.SELL, order_type=OrderType.TAKE_PROFIT, stop_price=55_000.0))
    assert engine.check_stop_order(order.id, 56_000.0).filled_price == 56_000.0


def test_stop_check_ignores_limit_orders(engine):
    order = engine.create_order(_params(order_type=OrderType.LIMIT, price=48_000.0))
    assert engine.check_stop_order(order.id, 1.0).is_pending


# --- price ticks ---


def test_price_tick_fills_triggered_orders(engine):
    btc = engine.create_order(_params(order_type=OrderType.LIMIT, price=48_000.0))
    eth = engine.create_order(
        _params(symbol="ETH/USDT", side=Side.SELL, order_type=OrderType.STOP_LOSS, stop_price=2_900.0)
    )
    market = engine.create_order(_params())

    filled = engine.process_price_tick({"BTC/USDT": 47_900.0, "ETH/USDT": 3_000.0})

    assert [o.id for o in filled] == [btc.id]
    assert engine.get_order(eth.id).is_pending
    assert engine.get_order(market.id).is_pending


def test_price_tick_from_long_frame(engine):
    order = engine.create_order(_params(order_type=OrderType.LIMIT, price=48_000.0))
    ticks = pd.DataFrame(
        {"symbol": ["BTC/USDT", "ETH/USDT", "BTC/USDT"], "close": [49_000.0, 3_000.0, 47_500.0]}
    )
    filled = engine.process_price_tick(ticks)
    assert [o.id for o in filled] == [order.id]
    assert filled[0].filled_price == 48_000.0


def test_price_tick_skips_live_orders(engine, auto_live_ready):
    live = engine.create_order(_params(order_type=OrderType.LIMIT, price=48_000.0, mode=OrderMode.LIVE))
    assert engine.process_price_tick({"BTC/USDT": 40_000.0}) == []
    assert engine.get_order(live.id).is_pending


def test_price_tick_skips_invalid_prices(engine):
    order = engine.create_order(_params(order_type=OrderType.LIMIT, price=48_000.0))
    assert engine.process_price_tick({"BTC/USDT": 0.0}) == []
    assert engine.get_order(order.id).is_pending


def test_prices_from_wide_frame():
    df = pd.DataFrame({"BTC/USDT": [50_000.0, 51_000.0], "ETH/USDT": [3_000.0, 3_100.0]})
    assert prices_from_frame(df) == {"BTC/USDT": 51_000.0, "ETH/USDT": 3_100.0}


def test_prices_from_empty_frame():
    assert prices_from_frame(pd.DataFrame()) == {}


# --- observers ---


def test_fill_observers_receive_order_and_update(users, strategies, connections):
    seen = []
    engine = OrderEngine(
        users=users,
        strategies=strategies,
        exchange_connections=connections,
        observers=[lambda order, update: seen.append((order, update))],
    )
    order = engine.create_order(_params(quantity=1.0))
    engine.execute_paper_order(order.id, 100.0, slippage_pct=0)
    close = engine.create_order(_params(side=Side.SELL, quantity=1.0))
    engine.execute_paper_order(close.id, 110.0, slippage_pct=0)

    assert [o.id for o, _ in seen] == [order.id, close.id]
    assert seen[0][1].open is not None and seen[0][1].closed is None
    assert seen[1][1].realized_pnl == pytest.approx(10.0)


# --- non-finite and out-of-range prices ---


@pytest.mark.parametrize("price", [float("nan"), float("inf")])
def test_execute_rejects_non_finite_price(engine, price):
    order = engine.create_order(_params())
    with pytest.raises(ValidationError):
        engine.execute_paper_order(order.id, price)
    assert engine.get_order(order.id).is_pending
    assert engine.get_open_positions(USER) == []


def test_price_tick_skips_nan_prices(engine):
    order = engine.create_order(_params(order_type=OrderType.LIMIT, price=48_000.0))
    ticks = pd.DataFrame({"symbol": ["BTC/USDT"], "close": [float("nan")]})
    assert engine.process_price_tick(ticks) == []
    assert engine.process_price_tick({"BTC/USDT": float("nan")}) == []
    assert engine.get_order(order.id).is_pending
    assert engine.get_open_positions(USER) == []


def test_trigger_checks_on_untriggerable_orders_ignore_price(engine):
    market = engine.create_order(_params())
    assert engine.check_limit_order(market.id, 0) == market
    assert engine.check_stop_order(market.id, -1.0) == market

    engine.execute_paper_order(market.id, 50_000.0)
    filled = engine.get_order(market.id)
    assert engine.check_limit_order(market.id, float("nan")) == filled


def test_trigger_checks_validate_price_for_pending_orders(engine):
    limit = engine.create_order(_params(order_type=OrderType.LIMIT, price=48_000.0))
    with pytest.raises(ValidationError):
        engine.check_limit_order(limit.id, 0)
    stop = engine.create_order(_params(side=Side.SELL, order_type=OrderType.STOP_LOSS, stop_price=45_000.0))
    with pytest.raises(ValidationError):
        engine.check_stop_order(stop.id, float("nan"))
