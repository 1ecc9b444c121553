"""
MACD Indicator - Moving Average Convergence Divergence.

MACD line = EMA(fast) - EMA(slow). The signal line is the EMA of the MACD
value recomputed at every prefix, not of a single snapshot.
"""

from dataclasses import dataclass

from .moving_averages import ema_series


@dataclass(frozen=True)
class MACDResult:
    """Result of MACD calculation."""

    macd_line: float  # Fast EMA - Slow EMA
    signal_line: float | None  # EMA of MACD line, None until enough history
    histogram: float | None  # MACD line - Signal line

    @property
    def is_bullish(self) -> bool:
        """True if MACD is above its signal line."""
        return self.histogram is not None and self.histogram > 0

    @property
    def is_bearish(self) -> bool:
        """True if MACD is below its signal line."""
        return self.histogram is not None and self.histogram < 0


def macd_line_series(prices: list[float], fast: int = 12, slow: int = 26) -> list[float]:
    """
    MACD value at every prefix from `slow` prices onward.

    Element k equals EMA(fast) - EMA(slow) over prices[: slow + k].
    """
    if fast <= 0 or slow <= 0 or fast >= slow:
        return []

    fast_ema = ema_series(prices, fast)
    slow_ema = ema_series(prices, slow)
    if not slow_ema:
        return []

    # fast_ema starts (slow - fast) indices earlier than slow_ema
    offset = slow - fast
    return [f - s for f, s in zip(fast_ema[offset:], slow_ema)]


def macd(
    prices: list[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> MACDResult | None:
    """
    Calculate MACD (Moving Average Convergence Divergence).

    Args:
        prices: List of prices (most recent last)
        fast: Fast EMA period (default 12)
        slow: Slow EMA period (default 26)
        signal: Signal line EMA period (default 9)

    Returns:
        MACDResult, or None if there are fewer than `slow` prices.
        signal_line and histogram stay None below slow + signal prices.
    """
    if signal <= 0:
        return None

    lines = macd_line_series(prices, fast, slow)
    if not lines:
        return None

    current = lines[-1]
    if len(prices) < slow + signal:
        return MACDResult(macd_line=current, signal_line=None, histogram=None)

    signal_values = ema_series(lines, signal)
    if not signal_values:
        return MACDResult(macd_line=current, signal_line=None, histogram=None)

    signal_value = signal_values[-1]
    return MACDResult(
        macd_line=current,
        signal_line=signal_value,
        histogram=current - signal_value,
    )
