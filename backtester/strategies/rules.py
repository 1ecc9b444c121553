"""
Classic rule policies - deterministic single-indicator strategies.

All four read the last 51 candles and stay on hold until index 30.
Stop-loss and take-profit come from the run config through exit_rules().
"""

from backtester.core.candle import Candle, closes
from backtester.indicators import ema, rate_of_change, rsi

from .base import MIN_RULE_INDEX, Action, Decision, DecisionPolicy, window

RULE_WINDOW = 51


def _prices(history: list[Candle], index: int) -> list[float]:
    return closes(window(history, index, RULE_WINDOW))


class MomentumPolicy(DecisionPolicy):
    """Buy when ROC exceeds the threshold, sell when it drops below -threshold."""

    name = "momentum"
    description = "Rate of change breakout (ROC > threshold)"

    async def decide(self, history, index, position, config) -> Decision:
        if index < MIN_RULE_INDEX:
            return Decision.hold("Insufficient data")

        momentum = rate_of_change(_prices(history, index), config.momentum_period)
        if momentum is None:
            return Decision.hold("Insufficient data")

        threshold = config.momentum_threshold
        if position is None and momentum > threshold:
            return Decision(Action.BUY, 100, f"Momentum {momentum:.2f}% > {threshold}%")
        if position is not None and momentum < -threshold:
            return Decision(Action.SELL, 100, f"Momentum {momentum:.2f}% < -{threshold}%")
        return Decision.hold(f"Momentum {momentum:.2f}%")


class MeanReversionPolicy(DecisionPolicy):
    """Buy oversold RSI, sell overbought RSI."""

    name = "mean_reversion"
    description = "RSI oversold / overbought reversion"

    async def decide(self, history, index, position, config) -> Decision:
        if index < MIN_RULE_INDEX:
            return Decision.hold("Insufficient data")

        value = rsi(_prices(history, index), config.rsi_period)
        if value is None:
            return Decision.hold("Insufficient data")

        if position is None and value < config.rsi_oversold:
            return Decision(Action.BUY, 100, f"RSI {value:.1f} oversold")
        if position is not None and value > config.rsi_overbought:
            return Decision(Action.SELL, 100, f"RSI {value:.1f} overbought")
        return Decision.hold(f"RSI {value:.1f}")


class ScalpingPolicy(DecisionPolicy):
    """EMA fast/slow cross with an RSI 40-70 filter and a small profit target."""

    name = "scalping"
    description = "EMA cross with RSI filter and scalp target"

    async def decide(self, history, index, position, config) -> Decision:
        if index < MIN_RULE_INDEX:
            return Decision.hold("Insufficient data")

        prices = _prices(history, index)
        fast = ema(prices, config.ema_fast)
        slow = ema(prices, config.ema_slow)
        value = rsi(prices, 14)
        if fast is None or slow is None:
            return Decision.hold("Insufficient data")

        if position is None:
            if fast > slow and value is not None and 40 < value < 70:
                return Decision(Action.BUY, 100, f"EMA{config.ema_fast} > EMA{config.ema_slow}, RSI {value:.1f}")
            return Decision.hold("No crossover setup")

        pnl = position.pnl_percent(prices[-1])
        if pnl >= config.scalping_target_percent:
            return Decision(Action.SELL, 100, f"Scalp target: {pnl:+.2f}%")
        if fast < slow:
            return Decision(Action.SELL, 100, "EMA crossed down")
        return Decision.hold(f"Holding {pnl:+.2f}%")


class CombinedPolicy(DecisionPolicy):
    """Needs two of three confirmations: ROC, RSI zone, EMA trend."""

    name = "combined"
    description = "2-of-3 confirmation: ROC, RSI, EMA trend"

    async def decide(self, history, index, position, config) -> Decision:
        if index < MIN_RULE_INDEX:
            return Decision.hold("Insufficient data")

        prices = _prices(history, index)
        momentum = rate_of_change(prices, 10)
        value = rsi(prices, 14)
        fast = ema(prices, 9)
        slow = ema(prices, 21)

        bull = 0
        bear = 0
        if momentum is not None:
            if momentum > 1:
                bull += 1
            elif momentum < -1:
                bear += 1
        if value is not None:
            if value < 40:
                bull += 1
            elif value > 60:
                bear += 1
        if fast is not None and slow is not None:
            if fast > slow:
                bull += 1
            elif fast < slow:
                bear += 1

        if position is None and bull >= 2:
            return Decision(Action.BUY, 100, f"{bull}/3 bullish confirmations")
        if position is not None and bear >= 2:
            return Decision(Action.SELL, 100, f"{bear}/3 bearish confirmations")
        return Decision.hold(f"Bull {bull} / Bear {bear}")
