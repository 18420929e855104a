"""
Tests for the portfolio summary: per-position valuation, totals, missing
prices, and the DataFrame view.
"""

from __future__ import annotations

import pytest

from tests.support import STRATEGY, USER
from orderdesk import OrderParams, OrderType, Side
from orderdesk.portfolio import SUMMARY_COLUMNS


def _fill(engine, symbol: str, side: Side, quantity: float, price: float) -> None:
    order = engine.create_order(
        OrderParams(
            user_id=USER,
            strategy_id=STRATEGY,
            symbol=symbol,
            side=side,
            order_type=OrderType.MARKET,
            quantity=quantity,
        )
    )
    engine.execute_paper_order(order.id, price, slippage_pct=0)


@pytest.fixture
def book(engine):
    _fill(engine, "BTC/USDT", Side.BUY, 1.0, 50_000.0)
    _fill(engine, "ETH/USDT", Side.SELL, 2.0, 3_000.0)
    return engine


def test_summary_totals(book):
    summary = book.get_portfolio_summary(USER, {"BTC/USDT": 55_000.0, "ETH/USDT": 2_900.0})
    assert summary.total_value == pytest.approx(60_800.0)
    assert summary.total_cost == pytest.approx(56_000.0)
    assert summary.total_pnl == pytest.approx(4_800.0)
    assert summary.total_pnl_percent == pytest.approx(4_800.0 / 56_000.0 * 100)


def test_summary_positions(book):
    summary = book.get_portfolio_summary(USER, {"BTC/USDT": 55_000.0, "ETH/USDT": 2_900.0})
    by_symbol = {p.symbol: p for p in summary.positions}

    btc = by_symbol["BTC/USDT"]
    assert btc.side == "long"
    assert btc.current_value == pytest.approx(55_000.0)
    assert btc.unrealized_pnl == pytest.approx(5_000.0)
    assert btc.unrealized_pnl_percent == pytest.approx(10.0)

    eth = by_symbol["ETH/USDT"]
    assert eth.side == "short"
    assert eth.current_value == pytest.approx(5_800.0)
    assert eth.unrealized_pnl == pytest.approx(200.0)
    assert eth.unrealized_pnl_percent == pytest.approx(200.0 / 6_000.0 * 100)


def test_missing_price_uses_entry_price(book):
    summary = book.get_portfolio_summary(USER, {"BTC/USDT": 55_000.0})
    eth = next(p for p in summary.positions if p.symbol == "ETH/USDT")
    assert eth.current_price == 3_000.0
    assert eth.unrealized_pnl == 0.0


def test_closed_positions_excluded(engine):
    _fill(engine, "BTC/USDT", Side.BUY, 1.0, 50_000.0)
    _fill(engine, "BTC/USDT", Side.SELL, 1.0, 51_000.0)
    summary = engine.get_portfolio_summary(USER, {"BTC/USDT": 60_000.0})
    assert summary.positions == []
    assert summary.total_value == 0.0


def test_empty_portfolio(engine):
    summary = engine.get_portfolio_summary(USER, {})
    assert summary.total_value == 0.0
    assert summary.total_cost == 0.0
    assert summary.total_pnl == 0.0
    assert summary.total_pnl_percent == 0.0
    frame = summary.to_frame()
    assert frame.empty
    assert list(frame.columns) == SUMMARY_COLUMNS


def test_summary_frame(book):
    frame = book.get_portfolio_summary(USER, {"BTC/USDT": 55_000.0, "ETH/USDT": 2_900.0}).to_frame()
    assert list(frame.columns) == SUMMARY_COLUMNS
    assert set(frame["symbol"]) == {"BTC/USDT", "ETH/USDT"}
    assert frame["unrealized_pnl"].sum() == pytest.approx(5_200.0)


def test_engine_unrealized_pnl(book):
    assert book.calculate_unrealized_pnl(USER, "BTC/USDT", 49_000.0) == pytest.approx(-1_000.0)
    assert book.calculate_unrealized_pnl(USER, "SOL/USDT", 100.0) == 0.0
