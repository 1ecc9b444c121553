"""
ATR Indicator - Average True Range.

Two flavours:
- atr(): Wilder-smoothed true range, used whenever candles carry high/low
- price_atr(): mean absolute bar-to-bar change, for close-only series
"""

from collections.abc import Sequence
from typing import Protocol


class CandleLike(Protocol):
    """Protocol for candle-like objects with OHLC data."""

    high: float
    low: float
    close: float


def true_range(current: CandleLike, previous_close: float | None = None) -> float:
    """
    Calculate True Range for a single candle.

    True Range is the greatest of:
    1. Current High - Current Low
    2. |Current High - Previous Close|
    3. |Current Low - Previous Close|
    """
    high_low = current.high - current.low
    if previous_close is None:
        return high_low

    return max(high_low, abs(current.high - previous_close), abs(current.low - previous_close))


def atr(candles: Sequence[CandleLike], period: int = 14) -> float | None:
    """
    Calculate Average True Range with Wilder's smoothing.

    Args:
        candles: Candles with high, low, close (most recent last)
        period: Lookback period (default 14)

    Returns:
        ATR value or None if fewer than period + 1 candles
    """
    if period <= 0 or len(candles) < period + 1:
        return None

    ranges = [true_range(candles[0])]
    ranges.extend(true_range(candles[i], candles[i - 1].close) for i in range(1, len(candles)))

    current = sum(ranges[:period]) / period
    for tr in ranges[period:]:
        current = (current * (period - 1) + tr) / period

    return current


def atr_percent(candles: Sequence[CandleLike], period: int = 14) -> float | None:
    """
    ATR as a percentage of the latest close.

    Returns:
        ATR % or None if insufficient data or a zero close
    """
    value = atr(candles, period)
    if value is None:
        return None

    last_close = candles[-1].close
    if last_close == 0:
        return None

    return value / last_close * 100


def price_atr(prices: list[float], period: int = 14) -> float | None:
    """
    Simplified ATR for close-only data: mean |Δprice| over the last `period` bars.

    Args:
        prices: List of prices (most recent last), needs period + 1 prices
        period: Lookback period (default 14)

    Returns:
        Mean absolute change or None if insufficient data
    """
    if period <= 0 or len(prices) < period + 1:
        return None

    window = prices[-(period + 1) :]
    return sum(abs(b - a) for a, b in zip(window, window[1:])) / period
