"""
Bollinger Bands - SMA ± k population standard deviations.
"""

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class BollingerBands:
    """Upper/middle/lower band values."""

    upper: float
    middle: float
    lower: float

    @property
    def width(self) -> float:
        return self.upper - self.lower

    def percent_b(self, price: float) -> float:
        """
        Position of `price` within the bands, in percent.

        0 = on the lower band, 100 = on the upper band. Zero-width bands
        (a perfectly flat window) report the midpoint, 50.
        """
        if self.width == 0:
            return 50.0
        return (price - self.lower) / self.width * 100


def bollinger_bands(
    prices: list[float],
    period: int = 20,
    num_std: float = 2.0,
) -> BollingerBands | None:
    """
    Calculate Bollinger Bands over the last `period` prices.

    Args:
        prices: List of prices (most recent last)
        period: SMA window (default 20)
        num_std: Band distance in standard deviations (default 2)

    Returns:
        BollingerBands or None if insufficient data
    """
    if period <= 0 or len(prices) < period:
        return None

    window = prices[-period:]
    middle = sum(window) / period
    variance = sum((p - middle) ** 2 for p in window) / period
    deviation = math.sqrt(variance) * num_std

    return BollingerBands(upper=middle + deviation, middle=middle, lower=middle - deviation)
