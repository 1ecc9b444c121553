"""
Core building blocks shared by every layer.

Modules:
- candle: Candle model and price extraction helpers
- timeframes: Fixed-ratio aggregation and the per-run timeframe cache
- config: Per-run advisor configuration
"""

from backtester.core.candle import Candle, closes, highs, lows
from backtester.core.config import AdvisorConfig, normalize_endpoint
from backtester.core.timeframes import (
    TIMEFRAME_MINUTES,
    TIMEFRAME_WEIGHTS,
    TimeframeCache,
    aggregate_candles,
    interval_to_timeframe,
    timeframe_factor,
)

__all__ = [
    "AdvisorConfig",
    "Candle",
    "TIMEFRAME_MINUTES",
    "TIMEFRAME_WEIGHTS",
    "TimeframeCache",
    "aggregate_candles",
    "closes",
    "highs",
    "interval_to_timeframe",
    "lows",
    "normalize_endpoint",
    "timeframe_factor",
]
