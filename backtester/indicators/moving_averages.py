"""
Moving Average Indicators - SMA and EMA.

EMA seeds with the SMA of the first `period` prices and then recurses with
multiplier 2 / (period + 1), so the value at any index equals the value
recomputed from scratch over the prefix ending at that index.
"""


def sma(prices: list[float], period: int) -> float | None:
    """
    Calculate Simple Moving Average.

    Args:
        prices: List of prices (most recent last)
        period: Number of periods to average

    Returns:
        Unweighted mean of the last `period` prices, or None if insufficient data
    """
    if period <= 0 or len(prices) < period:
        return None

    return sum(prices[-period:]) / period


def ema(prices: list[float], period: int) -> float | None:
    """
    Calculate Exponential Moving Average at the last price.

    Args:
        prices: List of prices (most recent last)
        period: Number of periods for EMA calculation

    Returns:
        Current EMA value or None if insufficient data
    """
    series = ema_series(prices, period)
    return series[-1] if series else None


def ema_series(prices: list[float], period: int) -> list[float]:
    """
    Calculate EMA for every index from `period - 1` onward.

    Element k of the result is the EMA of prices[: period + k].

    Args:
        prices: List of prices (most recent last)
        period: Number of periods for EMA calculation

    Returns:
        List of EMA values (len(prices) - period + 1 items), empty if insufficient data
    """
    if period <= 0 or len(prices) < period:
        return []

    multiplier = 2 / (period + 1)
    current = sum(prices[:period]) / period
    result = [current]

    for price in prices[period:]:
        current = (price - current) * multiplier + current
        result.append(current)

    return result
