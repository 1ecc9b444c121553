"""
Support / Resistance from local price extremes.
"""

from dataclasses import dataclass

MIN_POINTS = 5


@dataclass(frozen=True)
class PriceLevels:
    """Nearest support below and resistance above the current price."""

    support: float
    resistance: float

    def distance_to_support(self, price: float) -> float:
        """Distance to support as % of price."""
        return (price - self.support) / price * 100 if price else 0.0

    def distance_to_resistance(self, price: float) -> float:
        """Distance to resistance as % of price."""
        return (self.resistance - price) / price * 100 if price else 0.0


def support_resistance(prices: list[float], lookback: int = 15) -> PriceLevels | None:
    """
    Find support and resistance in the most recent `lookback` prices.

    A local minimum (maximum) is a point strictly lower (higher) than both
    neighbours. Support is the highest local minimum below the current price,
    falling back to the window minimum; resistance is the lowest local maximum
    above the current price, falling back to the window maximum.

    Args:
        prices: List of prices (most recent last), at least 5
        lookback: Window size (default 15, capped at the series length)

    Returns:
        PriceLevels or None if fewer than 5 prices
    """
    if len(prices) < MIN_POINTS:
        return None

    window = prices[-min(max(lookback, MIN_POINTS), len(prices)) :]
    current = prices[-1]

    local_lows: list[float] = []
    local_highs: list[float] = []
    for prev, curr, nxt in zip(window, window[1:], window[2:]):
        if curr < prev and curr < nxt:
            local_lows.append(curr)
        if curr > prev and curr > nxt:
            local_highs.append(curr)

    below = [low for low in local_lows if low < current]
    above = [high for high in local_highs if high > current]

    support = max(below) if below else min(window)
    resistance = min(above) if above else max(window)

    return PriceLevels(support=support, resistance=resistance)
