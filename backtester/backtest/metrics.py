"""
Metrics Calculator - aggregate a finished run into BacktestMetrics.
"""

import math

from backtester.backtest.models import BacktestMetrics, EquityPoint, Trade

# Reported instead of infinity when there are profits but no losses
PROFIT_FACTOR_SENTINEL = 999.0

MINUTES_PER_YEAR = 525600


def sharpe_ratio(returns: list[float], interval_minutes: int) -> float:
    """
    Annualized Sharpe ratio of per-candle returns.

    mean / sample std × sqrt(candles per year). 0 with fewer than two
    returns or zero deviation.
    """
    if len(returns) < 2 or interval_minutes <= 0:
        return 0.0

    mean = sum(returns) / len(returns)
    variance = sum((r - mean) ** 2 for r in returns) / (len(returns) - 1)
    std = math.sqrt(variance)
    if std == 0:
        return 0.0

    return mean / std * math.sqrt(MINUTES_PER_YEAR / interval_minutes)


def profit_factor(gross_profit: float, gross_loss: float) -> float:
    """Gross profit / gross loss with the sentinel for loss-free runs."""
    if gross_loss > 0:
        return gross_profit / gross_loss
    if gross_profit > 0:
        return PROFIT_FACTOR_SENTINEL
    return 0.0


def average_holding_minutes(trades: list[Trade]) -> int:
    """Mean minutes between each buy and the sell that follows it, rounded."""
    durations = [
        (trades[i + 1].timestamp - trades[i].timestamp).total_seconds() / 60
        for i in range(0, len(trades) - 1, 2)
    ]
    if not durations:
        return 0
    return round(sum(durations) / len(durations))


def calculate_metrics(
    trades: list[Trade],
    equity_curve: list[EquityPoint],
    returns: list[float],
    starting_balance: float,
    ending_balance: float,
    max_drawdown: float,
    max_drawdown_percent: float,
    interval_minutes: int,
    advisory_calls: int = 0,
) -> BacktestMetrics:
    """
    Compute every run metric.

    Args:
        trades: All fills in order (buys and sells alternate)
        equity_curve: Sampled equity points
        returns: Per-candle equity returns in %
        starting_balance: Balance before the run
        ending_balance: Balance after the final forced close
        max_drawdown: Largest peak-to-trough equity drop (quote currency)
        max_drawdown_percent: That drop as % of its peak
        interval_minutes: Candle interval, used to annualize Sharpe
        advisory_calls: Advisor calls made during the run

    Returns:
        BacktestMetrics
    """
    sells = [t for t in trades if t.is_sell and t.profit_loss is not None]
    wins = [t.profit_loss for t in sells if t.profit_loss > 0]
    losses = [t.profit_loss for t in sells if t.profit_loss <= 0]

    gross_profit = sum(wins)
    gross_loss = abs(sum(losses))
    total_profit_loss = sum((t.profit_loss for t in sells), 0.0)

    return BacktestMetrics(
        total_trades=len(sells),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=len(wins) / len(sells) * 100 if sells else 0.0,
        total_profit_loss=total_profit_loss,
        total_profit_loss_percent=total_profit_loss / starting_balance * 100,
        starting_balance=starting_balance,
        ending_balance=ending_balance,
        max_drawdown=max_drawdown,
        max_drawdown_percent=max_drawdown_percent,
        sharpe_ratio=sharpe_ratio(returns, interval_minutes),
        profit_factor=profit_factor(gross_profit, gross_loss),
        average_win=gross_profit / len(wins) if wins else 0.0,
        average_loss=gross_loss / len(losses) if losses else 0.0,
        largest_win=max(wins) if wins else 0.0,
        largest_loss=abs(min(losses)) if losses else 0.0,
        average_holding_minutes=average_holding_minutes(trades),
        trades=list(trades),
        equity_curve=list(equity_curve),
        candle_interval_minutes=interval_minutes,
        advisory_calls=advisory_calls,
    )
