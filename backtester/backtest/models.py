"""
Data models for backtesting configuration and results.
"""

from dataclasses import dataclass, field
from datetime import datetime

from rich.console import Console
from rich.table import Table

from backtester.core.config import AdvisorConfig


@dataclass
class BacktestConfig:
    """
    Configuration for a backtest run.

    Defines the market and date range, the policy to replay, the position
    sizing and exit percentages, and the per-policy indicator settings.
    Optional values left as None fall back to the policy's own defaults.
    """

    symbol: str
    strategy: str
    start_date: datetime
    end_date: datetime
    starting_balance: float = 10000.0
    trade_amount: float = 1000.0  # Quote currency spent per buy

    # Exit percentages
    stop_loss_percent: float = 2.0
    take_profit_percent: float = 4.0
    trailing_percent: float | None = None  # Overrides the policy default
    timeout_minutes: float | None = None  # Overrides the policy default

    # Momentum settings
    momentum_period: int = 10
    momentum_threshold: float = 2.0

    # Mean reversion settings
    rsi_period: int = 14
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0

    # Scalping settings
    scalping_target_percent: float = 0.5
    scalping_stop_percent: float = 0.3
    ema_fast: int = 9
    ema_slow: int = 21
    volume_multiplier: float = 1.5
    anti_chop_atr: float = 0.15  # ATR% below which the market counts as choppy

    # Advisor settings
    advisor: AdvisorConfig | None = None
    ai_confidence_threshold: float | None = None  # None = policy default (65 / 55)

    confluence_gate: bool = False  # Entries also need a tradeable confluence verdict
    interval_minutes: int | None = None  # None = pick from the date range

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.symbol:
            raise ValueError("symbol is required")
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        if self.starting_balance <= 0:
            raise ValueError("starting_balance must be positive")
        if self.trade_amount <= 0:
            raise ValueError("trade_amount must be positive")
        if self.stop_loss_percent <= 0 or self.take_profit_percent <= 0:
            raise ValueError("stop_loss_percent and take_profit_percent must be positive")
        if self.trailing_percent is not None and self.trailing_percent <= 0:
            raise ValueError("trailing_percent must be positive")
        if self.timeout_minutes is not None and self.timeout_minutes <= 0:
            raise ValueError("timeout_minutes must be positive")
        if self.ema_fast >= self.ema_slow:
            raise ValueError("ema_fast must be shorter than ema_slow")
        if not 0 < self.rsi_oversold < self.rsi_overbought < 100:
            raise ValueError("RSI thresholds must satisfy 0 < oversold < overbought < 100")
        if self.ai_confidence_threshold is not None and not 0 <= self.ai_confidence_threshold <= 100:
            raise ValueError("ai_confidence_threshold must be between 0 and 100")
        if self.interval_minutes is not None and self.interval_minutes <= 0:
            raise ValueError("interval_minutes must be positive")
        self.strategy = self.strategy.lower().replace(" ", "_").replace("-", "_")

    @property
    def duration_days(self) -> float:
        return (self.end_date - self.start_date).total_seconds() / 86400

    @classmethod
    def from_dict(cls, data: dict) -> "BacktestConfig":
        """Create config from dictionary (dates as ISO strings or datetimes)."""
        values = dict(data)
        for key in ("start_date", "end_date"):
            if isinstance(values.get(key), str):
                values[key] = datetime.fromisoformat(values[key])
        if isinstance(values.get("advisor"), dict):
            values["advisor"] = AdvisorConfig(**values["advisor"])
        known = cls.__dataclass_fields__
        unknown = set(values) - set(known)
        if unknown:
            raise ValueError(f"Unknown config fields: {', '.join(sorted(unknown))}")
        return cls(**values)


@dataclass
class Position:
    """The single open long position of a run."""

    amount: float
    entry_price: float
    entry_time: datetime
    high_water_mark: float = 0.0
    cost: float = 0.0  # Quote spent on entry

    def __post_init__(self) -> None:
        """Start the high-water mark at the entry price; cost defaults to amount × entry."""
        if self.high_water_mark < self.entry_price:
            self.high_water_mark = self.entry_price
        if not self.cost:
            self.cost = self.amount * self.entry_price

    def pnl_percent(self, price: float) -> float:
        """Unrealized P/L in percent at `price`."""
        return (price - self.entry_price) / self.entry_price * 100

    def holding_minutes(self, timestamp: datetime) -> float:
        return (timestamp - self.entry_time).total_seconds() / 60

    def value(self, price: float) -> float:
        return self.amount * price


@dataclass(frozen=True)
class Trade:
    """A simulated fill."""

    timestamp: datetime
    type: str  # "buy" | "sell"
    price: float
    amount: float
    value: float
    reason: str
    profit_loss: float | None = None  # Sells only
    profit_loss_percent: float | None = None

    @property
    def is_sell(self) -> bool:
        return self.type == "sell"

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "type": self.type,
            "price": self.price,
            "amount": self.amount,
            "value": self.value,
            "reason": self.reason,
            "profit_loss": self.profit_loss,
            "profit_loss_percent": self.profit_loss_percent,
        }


@dataclass(frozen=True)
class EquityPoint:
    """A single point in the equity curve."""

    timestamp: datetime
    equity: float


@dataclass(frozen=True)
class BacktestMetrics:
    """
    Results from a completed backtest run.

    Dollar loss figures (average_loss, largest_loss) are absolute values.
    """

    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float  # Percent of sells with positive P/L
    total_profit_loss: float
    total_profit_loss_percent: float
    starting_balance: float
    ending_balance: float
    max_drawdown: float
    max_drawdown_percent: float
    sharpe_ratio: float
    profit_factor: float
    average_win: float
    average_loss: float
    largest_win: float
    largest_loss: float
    average_holding_minutes: int
    trades: list[Trade] = field(default_factory=list)
    equity_curve: list[EquityPoint] = field(default_factory=list)
    candle_interval_minutes: int = 5
    advisory_calls: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "performance": {
                "starting_balance": self.starting_balance,
                "ending_balance": self.ending_balance,
                "total_profit_loss": self.total_profit_loss,
                "total_profit_loss_percent": self.total_profit_loss_percent,
                "win_rate": self.win_rate,
                "max_drawdown": self.max_drawdown,
                "max_drawdown_percent": self.max_drawdown_percent,
                "sharpe_ratio": self.sharpe_ratio,
                "profit_factor": self.profit_factor,
            },
            "trades": {
                "total": self.total_trades,
                "winning": self.winning_trades,
                "losing": self.losing_trades,
                "average_win": self.average_win,
                "average_loss": self.average_loss,
                "largest_win": self.largest_win,
                "largest_loss": self.largest_loss,
                "average_holding_minutes": self.average_holding_minutes,
                "history": [t.to_dict() for t in self.trades],
            },
            "equity_curve": [
                {"timestamp": p.timestamp.isoformat(), "equity": p.equity} for p in self.equity_curve
            ],
            "execution": {
                "candle_interval_minutes": self.candle_interval_minutes,
                "advisory_calls": self.advisory_calls,
            },
        }

    def print_summary(self, console: Console | None = None, recent_trades: int = 10) -> None:
        """Print a summary of backtest results."""
        console = console or Console()

        table = Table(title="📊 BACKTEST RESULTS", show_header=False, title_justify="left")
        table.add_column("Metric", style="bold")
        table.add_column("Value", justify="right")

        pnl_style = "green" if self.total_profit_loss >= 0 else "red"
        table.add_row("💰 Starting Balance", f"${self.starting_balance:,.2f}")
        table.add_row("💰 Ending Balance", f"${self.ending_balance:,.2f}")
        table.add_row(
            "💰 Total P&L",
            f"[{pnl_style}]${self.total_profit_loss:+,.2f} ({self.total_profit_loss_percent:+.2f}%)[/{pnl_style}]",
        )
        table.add_section()
        table.add_row("📊 Win Rate", f"{self.win_rate:.1f}%")
        table.add_row("📊 Max Drawdown", f"${self.max_drawdown:,.2f} ({self.max_drawdown_percent:.2f}%)")
        table.add_row("📊 Sharpe Ratio", f"{self.sharpe_ratio:.2f}")
        table.add_row("📊 Profit Factor", f"{self.profit_factor:.2f}")
        table.add_section()
        table.add_row("🔄 Total Trades", str(self.total_trades))
        table.add_row("🔄 Winning / Losing", f"{self.winning_trades} / {self.losing_trades}")
        table.add_row("🔄 Avg Win / Avg Loss", f"${self.average_win:,.2f} / ${self.average_loss:,.2f}")
        table.add_row("🔄 Largest Win / Loss", f"${self.largest_win:,.2f} / ${self.largest_loss:,.2f}")
        table.add_row("🔄 Avg Holding Time", f"{self.average_holding_minutes} min")
        table.add_section()
        table.add_row("⚙️  Candle Interval", f"{self.candle_interval_minutes} min")
        table.add_row("⚙️  Advisor Calls", str(self.advisory_calls))
        console.print(table)

        if not self.trades or recent_trades <= 0:
            return

        trades_table = Table(title=f"🧾 LAST {min(recent_trades, len(self.trades))} TRADES", title_justify="left")
        trades_table.add_column("Time")
        trades_table.add_column("Side")
        trades_table.add_column("Price", justify="right")
        trades_table.add_column("P/L", justify="right")
        trades_table.add_column("Reason")
        for trade in self.trades[-recent_trades:]:
            if trade.profit_loss is None:
                pnl = ""
            else:
                style = "green" if trade.profit_loss > 0 else "red"
                pnl = f"[{style}]${trade.profit_loss:+,.2f} ({trade.profit_loss_percent:+.2f}%)[/{style}]"
            trades_table.add_row(
                trade.timestamp.strftime("%Y-%m-%d %H:%M"),
                trade.type.upper(),
                f"{trade.price:,.6f}",
                pnl,
                trade.reason,
            )
        console.print(trades_table)
