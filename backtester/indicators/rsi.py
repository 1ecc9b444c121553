"""
RSI Indicator - Relative Strength Index.

Measures the speed and magnitude of recent price changes to flag
overbought or oversold conditions.
"""


def rsi(prices: list[float], period: int = 14) -> float | None:
    """
    Calculate Relative Strength Index over the last `period` changes.

    RSI = 100 - (100 / (1 + RS))
    RS = average gain / average loss, both averaged over `period` deltas

    Args:
        prices: List of prices (most recent last), needs period + 1 prices minimum
        period: Lookback period (default 14)

    Returns:
        RSI value (0-100, two decimals) or None if insufficient data.
        Exactly 100 when there were no losing deltas in the window.
    """
    if period <= 0 or len(prices) < period + 1:
        return None

    window = prices[-(period + 1) :]
    gains = 0.0
    losses = 0.0
    for previous, current in zip(window, window[1:]):
        change = current - previous
        if change > 0:
            gains += change
        else:
            losses -= change

    avg_gain = gains / period
    avg_loss = losses / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return round(100 - (100 / (1 + rs)), 2)


def rsi_series(prices: list[float], period: int = 14) -> list[float]:
    """
    Calculate RSI at every prefix where it is defined.

    Args:
        prices: List of prices (most recent last)
        period: Lookback period (default 14)

    Returns:
        List of RSI values, the first one for prices[: period + 1]
    """
    if period <= 0 or len(prices) < period + 1:
        return []

    result: list[float] = []
    for end in range(period + 1, len(prices) + 1):
        value = rsi(prices[:end], period)
        if value is not None:
            result.append(value)

    return result
