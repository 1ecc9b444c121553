#!/usr/bin/env python3
"""
Tests for the position state machine and its automatic exits.

Run with:
    python -m pytest tests/test_position_manager.py -v
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path for standalone execution
sys.path.insert(0, str(Path(__file__).parent.parent))

from backtester.backtest.position_manager import PositionManager, PositionState
from backtester.strategies.base import ExitRules

T0 = datetime(2026, 1, 1, 12, 0)


def manager(rules: ExitRules | None = None, balance: float = 10000.0, trade_amount: float = 1000.0) -> PositionManager:
    return PositionManager(balance, trade_amount, rules or ExitRules())


class TestOpenClose:
    """Tests for FLAT <-> OPEN transitions."""

    def test_open_from_flat(self):
        pm = manager()
        trade = pm.open(100.0, T0, "test entry")
        assert trade is not None
        assert trade.type == "buy"
        assert trade.amount == pytest.approx(10.0)
        assert trade.value == 1000.0
        assert pm.state == PositionState.OPEN
        assert pm.balance == 9000.0

    def test_buy_while_open_is_noop(self):
        """At most one position at a time."""
        pm = manager()
        pm.open(100.0, T0, "first")
        assert pm.open(90.0, T0 + timedelta(minutes=5), "second") is None
        assert pm.position.entry_price == 100.0
        assert pm.balance == 9000.0

    def test_buy_with_insufficient_balance(self):
        pm = manager(balance=500.0)
        assert pm.open(100.0, T0, "entry") is None
        assert pm.state == PositionState.FLAT
        assert pm.balance == 500.0

    def test_sell_while_flat_is_noop(self):
        pm = manager()
        assert pm.close(100.0, T0, "exit") is None
        assert pm.balance == 10000.0

    def test_close_realizes_pnl(self):
        """profit_loss = (sell - entry) × amount."""
        pm = manager()
        pm.open(100.0, T0, "entry")
        trade = pm.close(110.0, T0 + timedelta(minutes=30), "exit")
        assert trade.type == "sell"
        assert trade.profit_loss == pytest.approx((110.0 - 100.0) * 10.0)
        assert trade.profit_loss_percent == pytest.approx(10.0)
        assert pm.state == PositionState.FLAT
        assert pm.balance == pytest.approx(10100.0)

    def test_pnl_measured_against_cost(self):
        """P/L is value minus the quote actually spent, so the balance reconciles exactly."""
        pm = manager()
        realized = 0.0
        for entry, exit_price in [(3.0, 3.1), (7.0, 6.9), (0.3, 0.31), (11.0, 11.0)]:
            pm.open(entry, T0, "entry")
            assert pm.position.cost == 1000.0
            trade = pm.close(exit_price, T0 + timedelta(minutes=5), "exit")
            assert trade.profit_loss == trade.value - 1000.0
            realized += trade.profit_loss
        assert pm.realized_pnl == realized
        assert pm.balance == 10000.0 + realized

    def test_equity_marks_to_market(self):
        pm = manager()
        assert pm.equity(100.0) == 10000.0
        pm.open(100.0, T0, "entry")
        assert pm.equity(120.0) == pytest.approx(9000.0 + 1200.0)


class TestExitRules:
    """Tests for check_exit."""

    def test_flat_never_exits(self):
        assert manager(ExitRules(stop_loss_percent=1.0)).check_exit(1.0, T0) is None

    def test_stop_loss(self):
        pm = manager(ExitRules(stop_loss_percent=2.0, take_profit_percent=4.0))
        pm.open(100.0, T0, "entry")
        assert pm.check_exit(98.5, T0) is None
        signal = pm.check_exit(98.0, T0)
        assert signal.reason == "stop_loss"

    def test_take_profit(self):
        pm = manager(ExitRules(stop_loss_percent=2.0, take_profit_percent=4.0))
        pm.open(100.0, T0, "entry")
        assert pm.check_exit(103.9, T0) is None
        assert pm.check_exit(104.0, T0).reason == "take_profit"

    def test_high_water_mark_ratchets_up_only(self):
        pm = manager(ExitRules(trailing_percent=50.0))
        pm.open(100.0, T0, "entry")
        pm.check_exit(110.0, T0)
        pm.check_exit(105.0, T0)
        assert pm.position.high_water_mark == 110.0

    def test_trailing_stop_needs_profit(self):
        """A drop from the peak fires only while the position is above the minimum profit."""
        pm = manager(ExitRules(trailing_percent=1.0, trailing_min_profit=0.5))
        pm.open(100.0, T0, "entry")
        pm.check_exit(102.0, T0)
        signal = pm.check_exit(100.9, T0)
        assert signal.reason == "trailing_stop"

        pm = manager(ExitRules(trailing_percent=1.0, trailing_min_profit=0.5))
        pm.open(100.0, T0, "entry")
        pm.check_exit(101.0, T0)
        # 1.1% drop but P/L is -0.1%
        assert pm.check_exit(99.9, T0) is None

    def test_timeout(self):
        """Timeout fires regardless of P/L."""
        pm = manager(ExitRules(timeout_minutes=15))
        pm.open(100.0, T0, "entry")
        assert pm.check_exit(101.0, T0 + timedelta(minutes=10)) is None
        signal = pm.check_exit(101.0, T0 + timedelta(minutes=15))
        assert signal.reason == "timeout"

    def test_priority_stop_before_target(self):
        """When stop-loss and take-profit both match, stop-loss wins."""
        # A negative stop makes every P/L at or below +1% a "stop" while +0.5% is already a target
        pm = manager(ExitRules(stop_loss_percent=-1.0, take_profit_percent=0.5))
        pm.open(100.0, T0, "entry")
        assert pm.check_exit(100.6, T0).reason == "stop_loss"

    def test_priority_trailing_first(self):
        pm = manager(
            ExitRules(trailing_percent=0.1, stop_loss_percent=5.0, take_profit_percent=1.0, timeout_minutes=5)
        )
        pm.open(100.0, T0, "entry")
        pm.check_exit(103.0, T0)
        # Trailing, take-profit and timeout all match here
        assert pm.check_exit(102.0, T0 + timedelta(minutes=10)).reason == "trailing_stop"

    def test_priority_target_before_timeout(self):
        pm = manager(ExitRules(take_profit_percent=1.0, timeout_minutes=5))
        pm.open(100.0, T0, "entry")
        assert pm.check_exit(101.0, T0 + timedelta(minutes=10)).reason == "take_profit"

    def test_invalid_rules(self):
        with pytest.raises(ValueError):
            ExitRules(trailing_percent=0)
        with pytest.raises(ValueError):
            ExitRules(timeout_minutes=-5)
