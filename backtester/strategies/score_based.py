"""
Score-based policy - the advisor-free mode.

Tallies bull and bear points from a fixed set of indicators over the whole
history up to the current candle. Deterministic and fast: no advisor is
ever consulted, so a run with this policy makes zero external calls.
"""

from backtester.core.candle import closes
from backtester.indicators import bollinger_bands, ema, macd, rsi

from .base import Action, Decision, DecisionPolicy, ExitRules

ENTRY_SCORE = 4.0
ENTRY_RATIO = 1.2
EXIT_SCORE = 3.0
MOMENTUM_LOOKBACK = 10

SCALP_TRAILING_PERCENT = 0.15
SCALP_TIMEOUT_MINUTES = 15


def score_entry(
    price: float,
    rsi_value: float | None,
    ema_fast: float | None,
    ema_slow: float | None,
    ema50: float | None,
    macd_histogram: float | None,
    percent_b: float | None,
    momentum: float | None,
) -> tuple[float, float]:
    """
    Bull/bear points for an entry. Indicators that are None score nothing.

    Returns:
        (bull, bear)
    """
    bull = 0.0
    bear = 0.0

    if rsi_value is not None:
        if rsi_value < 30:
            bull += 2
        elif rsi_value < 40:
            bull += 1
        if rsi_value > 70:
            bear += 2
        elif rsi_value > 60:
            bear += 1

    if ema_fast is not None and ema_slow is not None:
        if ema_fast > ema_slow:
            bull += 1.5
        else:
            bear += 1.5

    if ema50 is not None:
        if price > ema50:
            bull += 1.5
        else:
            bear += 1.5

    if macd_histogram is not None:
        if macd_histogram > 0:
            bull += 1
        else:
            bear += 1

    if percent_b is not None:
        if percent_b < 25:
            bull += 1.5
        elif percent_b < 40:
            bull += 0.5
        if percent_b > 75:
            bear += 1.5

    if momentum is not None:
        if momentum > 0.3:
            bull += 1
        elif momentum < -0.3:
            bear += 1

    return bull, bear


def score_exit(rsi_value: float | None, ema_fast: float | None, ema_slow: float | None) -> float:
    """Bear points used to exit an open position."""
    bear = 0.0
    if rsi_value is not None:
        if rsi_value > 70:
            bear += 2
        elif rsi_value > 60:
            bear += 1
    if ema_fast is not None and ema_slow is not None and ema_fast < ema_slow:
        bear += 1.5
    return bear


class ScoreBasedPolicy(DecisionPolicy):
    """Signal scoring without an advisor."""

    name = "signal_only"
    description = "Indicator scoring only, no advisor calls"

    def exit_rules(self, config) -> ExitRules:
        return ExitRules(
            trailing_percent=config.trailing_percent or SCALP_TRAILING_PERCENT,
            stop_loss_percent=config.scalping_stop_percent,
            take_profit_percent=config.scalping_target_percent,
            timeout_minutes=config.timeout_minutes or SCALP_TIMEOUT_MINUTES,
        )

    async def decide(self, history, index, position, config) -> Decision:
        prices = closes(history[: index + 1])
        price = prices[-1]
        rsi_value = rsi(prices, config.rsi_period)
        ema_fast = ema(prices, config.ema_fast)
        ema_slow = ema(prices, config.ema_slow)

        if position is not None:
            bear = score_exit(rsi_value, ema_fast, ema_slow)
            if bear >= EXIT_SCORE:
                pnl = position.pnl_percent(price)
                return Decision(Action.SELL, 100, f"Signal exit: Bear {bear:.1f} (P/L: {pnl:.2f}%)")
            return Decision.hold(f"Holding: Bear {bear:.1f}")

        macd_result = macd(prices)
        bands = bollinger_bands(prices, 20)
        past = prices[max(0, index - MOMENTUM_LOOKBACK)]
        momentum = (price - past) / past * 100 if past else None

        bull, bear = score_entry(
            price,
            rsi_value,
            ema_fast,
            ema_slow,
            ema(prices, 50),
            macd_result.histogram if macd_result else None,
            bands.percent_b(price) if bands else None,
            momentum,
        )

        trend_confirmed = ema_fast is not None and ema_slow is not None and ema_fast > ema_slow
        if bull >= ENTRY_SCORE and bull > bear * ENTRY_RATIO and trend_confirmed:
            rsi_text = f"{rsi_value:.0f}" if rsi_value is not None else "n/a"
            return Decision(Action.BUY, 100, f"Signal buy: Bull {bull:.1f} vs Bear {bear:.1f} (RSI:{rsi_text})")
        return Decision.hold(f"Bull {bull:.1f} vs Bear {bear:.1f}")
