"""
Position Manager - Handles the position lifecycle and automatic exits.

Manages the single spot position of a backtest run:
- Opening a position from a buy decision (FLAT -> OPEN)
- Raising the high-water mark and checking exits on every candle
- Closing a position from a sell decision or an exit (OPEN -> FLAT)

Fills happen at the candle close; no partial fills, no slippage.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from backtester.backtest.models import Position, Trade
from backtester.strategies.base import ExitRules

logger = logging.getLogger(__name__)


class PositionState(str, Enum):
    FLAT = "flat"
    OPEN = "open"


@dataclass(frozen=True)
class ExitSignal:
    """An automatic exit that fired."""

    reason: str  # trailing_stop | stop_loss | take_profit | timeout
    message: str


class PositionManager:
    """
    Owns the balance and the open position of one run.

    Exit rules are checked in a fixed order, first match wins:
    trailing stop -> stop-loss -> take-profit -> timeout.
    """

    def __init__(self, starting_balance: float, trade_amount: float, rules: ExitRules) -> None:
        """
        Initialize position manager.

        Args:
            starting_balance: Quote balance at the start of the run
            trade_amount: Quote amount spent per buy
            rules: Automatic exit rules
        """
        self.starting_balance = starting_balance
        self.trade_amount = trade_amount
        self.rules = rules
        self.position: Position | None = None
        self.realized_pnl = 0.0

    @property
    def balance(self) -> float:
        """Free quote balance: starting balance plus realized P/L, less the open position's cost."""
        balance = self.starting_balance + self.realized_pnl
        if self.position is not None:
            balance -= self.position.cost
        return balance

    @property
    def state(self) -> PositionState:
        return PositionState.OPEN if self.position is not None else PositionState.FLAT

    @property
    def is_open(self) -> bool:
        return self.position is not None

    def equity(self, price: float) -> float:
        """Balance plus the open position marked at `price`."""
        if self.position is None:
            return self.balance
        return self.balance + self.position.value(price)

    def check_exit(self, price: float, timestamp: datetime) -> ExitSignal | None:
        """
        Update the high-water mark and evaluate the exit rules.

        Args:
            price: Current candle close
            timestamp: Current candle time

        Returns:
            ExitSignal for the first rule that fires, None otherwise
        """
        position = self.position
        if position is None:
            return None

        if price > position.high_water_mark:
            position.high_water_mark = price

        rules = self.rules
        pnl = position.pnl_percent(price)

        if rules.trailing_percent is not None:
            drop = (position.high_water_mark - price) / position.high_water_mark * 100
            if pnl > rules.trailing_min_profit and drop >= rules.trailing_percent:
                return ExitSignal(
                    "trailing_stop",
                    f"Trailing stop: {drop:.2f}% drop from peak {position.high_water_mark:.6f}, "
                    f"locking {pnl:.2f}%",
                )

        if rules.stop_loss_percent is not None and pnl <= -rules.stop_loss_percent:
            return ExitSignal("stop_loss", f"Stop-loss: {pnl:.2f}%")

        if rules.take_profit_percent is not None and pnl >= rules.take_profit_percent:
            return ExitSignal("take_profit", f"Take-profit: {pnl:.2f}%")

        if rules.timeout_minutes is not None:
            held = position.holding_minutes(timestamp)
            if held >= rules.timeout_minutes:
                return ExitSignal("timeout", f"Timeout: {held:.0f}min, P/L: {pnl:.2f}%")

        return None

    def open(self, price: float, timestamp: datetime, reason: str) -> Trade | None:
        """
        Open a position with the configured trade amount.

        Returns:
            Buy trade, or None if already open or the balance is too low
        """
        if self.position is not None:
            logger.warning(f"Buy skipped at {price:.6f}: position already open")
            return None
        if self.balance < self.trade_amount:
            logger.warning(
                f"Buy skipped at {price:.6f}: balance {self.balance:.2f} < trade amount {self.trade_amount:.2f}"
            )
            return None

        amount = self.trade_amount / price
        self.position = Position(amount=amount, entry_price=price, entry_time=timestamp, cost=self.trade_amount)

        logger.info(f"BUY {amount:.6f} @ {price:.6f} ({reason})")
        return Trade(
            timestamp=timestamp,
            type="buy",
            price=price,
            amount=amount,
            value=self.trade_amount,
            reason=reason,
        )

    def close(self, price: float, timestamp: datetime, reason: str) -> Trade | None:
        """
        Close the open position at `price`.

        Returns:
            Sell trade with realized P/L, or None when flat
        """
        position = self.position
        if position is None:
            logger.warning(f"Sell skipped at {price:.6f}: no open position")
            return None

        value = position.value(price)
        profit_loss = value - position.cost
        profit_loss_percent = position.pnl_percent(price)
        self.realized_pnl += profit_loss
        self.position = None

        logger.info(f"SELL {position.amount:.6f} @ {price:.6f} P/L {profit_loss:+.2f} ({reason})")
        return Trade(
            timestamp=timestamp,
            type="sell",
            price=price,
            amount=position.amount,
            value=value,
            reason=reason,
            profit_loss=profit_loss,
            profit_loss_percent=profit_loss_percent,
        )
