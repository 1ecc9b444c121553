"""
Market Regime Classifier - trending, ranging or choppy.

Combines an ADX-style directional index with a choppiness ratio (share of
direction reversals) and a range-efficiency ratio (net move ÷ total range).
The thresholds below are fixed; downstream scoring depends on them.
"""

from dataclasses import dataclass
from enum import Enum

# Close-only series get synthetic bands of ±0.5% around each close
SYNTHETIC_BAND = 0.005

CHOPPY_THRESHOLD = 0.6
ADX_TREND_THRESHOLD = 25.0
EFFICIENCY_TREND_THRESHOLD = 0.5
NARROW_RANGE_PERCENT = 2.0
LOW_EFFICIENCY = 0.3
LOW_CHOPPINESS = 0.4
CONSISTENCY_THRESHOLD = 0.5


class Regime(str, Enum):
    """Discrete market regime."""

    TRENDING_UP = "trending_up"
    TRENDING_DOWN = "trending_down"
    RANGING = "ranging"
    CHOPPY = "choppy"


@dataclass(frozen=True)
class ADXResult:
    """Average Directional Index with its directional indicators."""

    adx: float
    plus_di: float
    minus_di: float


@dataclass(frozen=True)
class MarketRegime:
    """Regime classification with a 0-100 strength."""

    regime: Regime
    strength: int
    adx: float | None
    description: str

    @property
    def is_trending(self) -> bool:
        return self.regime in (Regime.TRENDING_UP, Regime.TRENDING_DOWN)


def adx(
    prices: list[float],
    period: int = 14,
    highs: list[float] | None = None,
    lows: list[float] | None = None,
) -> ADXResult | None:
    """
    Calculate ADX from Wilder-smoothed true range and directional movement.

    When `highs`/`lows` are given (same length as `prices`) they are used
    directly. Close-only input falls back to deterministic bands of
    close × (1 ± 0.5%).

    Args:
        prices: Close prices (most recent last), at least 2 × period
        period: Smoothing period (default 14)
        highs: Optional bar highs aligned with `prices`
        lows: Optional bar lows aligned with `prices`

    Returns:
        ADXResult or None if insufficient data
    """
    if period <= 0 or len(prices) < period * 2:
        return None

    if highs is not None and lows is not None and len(highs) == len(prices) == len(lows):
        bar_highs = highs
        bar_lows = lows
    else:
        bar_highs = [p * (1 + SYNTHETIC_BAND) for p in prices]
        bar_lows = [p * (1 - SYNTHETIC_BAND) for p in prices]

    true_ranges: list[float] = []
    plus_dms: list[float] = []
    minus_dms: list[float] = []

    for i in range(1, len(prices)):
        high, low = bar_highs[i], bar_lows[i]
        prev_close = prices[i - 1]
        true_ranges.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))

        up_move = high - bar_highs[i - 1]
        down_move = bar_lows[i - 1] - low
        plus_dms.append(up_move if up_move > down_move and up_move > 0 else 0.0)
        minus_dms.append(down_move if down_move > up_move and down_move > 0 else 0.0)

    smoothed_tr = sum(true_ranges[:period])
    smoothed_plus = sum(plus_dms[:period])
    smoothed_minus = sum(minus_dms[:period])

    dx_values: list[float] = []
    for i in range(period, len(true_ranges)):
        smoothed_tr = smoothed_tr - smoothed_tr / period + true_ranges[i]
        smoothed_plus = smoothed_plus - smoothed_plus / period + plus_dms[i]
        smoothed_minus = smoothed_minus - smoothed_minus / period + minus_dms[i]

        plus_di = smoothed_plus / smoothed_tr * 100 if smoothed_tr > 0 else 0.0
        minus_di = smoothed_minus / smoothed_tr * 100 if smoothed_tr > 0 else 0.0
        di_sum = plus_di + minus_di
        dx_values.append(abs(plus_di - minus_di) / di_sum * 100 if di_sum > 0 else 0.0)

    if len(dx_values) < period:
        return None

    value = sum(dx_values[:period]) / period
    for dx in dx_values[period:]:
        value = (value * (period - 1) + dx) / period

    plus_di = smoothed_plus / smoothed_tr * 100 if smoothed_tr > 0 else 0.0
    minus_di = smoothed_minus / smoothed_tr * 100 if smoothed_tr > 0 else 0.0
    return ADXResult(adx=value, plus_di=plus_di, minus_di=minus_di)


def detect_market_regime(
    prices: list[float],
    period: int = 20,
    highs: list[float] | None = None,
    lows: list[float] | None = None,
) -> MarketRegime:
    """
    Classify the market regime over the last `period` prices.

    Rules, first match wins:
    1. choppiness > 0.6 → choppy
    2. ADX > 25 and efficiency > 0.5 → trending in the direction of the net move
    3. range < 2% or (efficiency < 0.3 and choppiness < 0.4) → ranging
    4. trend consistency > 0.5 → trending in the direction of the net move
    5. otherwise → choppy

    Args:
        prices: Close prices (most recent last)
        period: Classification window (default 20)
        highs: Optional bar highs aligned with `prices` for the ADX
        lows: Optional bar lows aligned with `prices` for the ADX

    Returns:
        MarketRegime (choppy with strength 0 when data is insufficient)
    """
    if period < 3 or len(prices) < period:
        return MarketRegime(Regime.CHOPPY, 0, None, "Insufficient data")

    window = prices[-period:]
    start, current = window[0], window[-1]

    adx_result = adx(prices, 14, highs, lows)
    adx_value = adx_result.adx if adx_result is not None else None

    change = (current - start) / start * 100 if start else 0.0

    higher_highs = 0
    lower_lows = 0
    reversals = 0
    for prev2, prev1, curr in zip(window, window[1:], window[2:]):
        if curr > prev1 > prev2:
            higher_highs += 1
        elif curr < prev1 < prev2:
            lower_lows += 1

        prev_dir = 1 if prev1 > prev2 else -1
        curr_dir = 1 if curr > prev1 else -1
        if prev_dir != curr_dir:
            reversals += 1

    total_moves = len(window) - 2
    consistency = max(higher_highs, lower_lows) / total_moves
    choppiness = reversals / total_moves

    high, low = max(window), min(window)
    range_pct = (high - low) / low * 100 if low else 0.0
    efficiency = abs(change) / range_pct if range_pct > 0 else 0.0

    direction = Regime.TRENDING_UP if change > 0 else Regime.TRENDING_DOWN

    if choppiness > CHOPPY_THRESHOLD:
        return MarketRegime(
            Regime.CHOPPY,
            round(choppiness * 100),
            adx_value,
            f"{reversals} reversals in {total_moves} moves, avoid trading",
        )

    if adx_value is not None and adx_value > ADX_TREND_THRESHOLD and efficiency > EFFICIENCY_TREND_THRESHOLD:
        extremes = f"{higher_highs} higher highs" if change > 0 else f"{lower_lows} lower lows"
        return MarketRegime(
            direction,
            min(100, round(adx_value * 1.5)),
            adx_value,
            f"ADX {adx_value:.0f}, {change:+.1f}% move, {extremes}",
        )

    if range_pct < NARROW_RANGE_PERCENT or (efficiency < LOW_EFFICIENCY and choppiness < LOW_CHOPPINESS):
        return MarketRegime(
            Regime.RANGING,
            round((1 - efficiency) * 50),
            adx_value,
            f"Price in {range_pct:.1f}% range, mean reversion favorable",
        )

    if consistency > CONSISTENCY_THRESHOLD:
        return MarketRegime(
            direction,
            round(consistency * 70),
            adx_value,
            f"Moderate trend, {change:+.1f}% move",
        )

    return MarketRegime(
        Regime.CHOPPY,
        round(choppiness * 60),
        adx_value,
        "Mixed signals, reduce position size",
    )
