"""
Volume and momentum helpers - VWAP, volume ratio, rate of change.
"""

from collections.abc import Sequence

from backtester.core.candle import Candle


def vwap(candles: Sequence[Candle]) -> float | None:
    """
    Volume Weighted Average Price using the typical price (H + L + C) / 3.

    Returns:
        VWAP, the last close when the window has no volume, or None for no candles
    """
    if not candles:
        return None

    total_volume = sum(c.volume for c in candles)
    if total_volume <= 0:
        return candles[-1].close

    return sum(c.typical_price * c.volume for c in candles) / total_volume


def volume_ratio(candles: Sequence[Candle], period: int = 20) -> float | None:
    """
    Current volume relative to the average of the last `period` candles.

    Returns:
        Ratio (1.0 = average) or None if insufficient data or zero average
    """
    if period <= 0 or len(candles) < period:
        return None

    average = sum(c.volume for c in candles[-period:]) / period
    if average == 0:
        return None

    return candles[-1].volume / average


def rate_of_change(prices: list[float], period: int = 10) -> float | None:
    """
    Percent change between the last price and the price `period` bars earlier.

    Returns:
        ROC % or None if insufficient data
    """
    if period <= 0 or len(prices) < period + 1:
        return None

    past = prices[-1 - period]
    if past == 0:
        return None

    return (prices[-1] - past) / past * 100
