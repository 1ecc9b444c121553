"""
Technical Indicators Module - Pure math functions for market analysis.

All functions are stateless, operate on price or candle lists (most recent
last) and return None when the series is too short.
"""

from .atr import atr, atr_percent, price_atr, true_range
from .bollinger import BollingerBands, bollinger_bands
from .levels import PriceLevels, support_resistance
from .macd import MACDResult, macd, macd_line_series
from .moving_averages import ema, ema_series, sma
from .regime import ADXResult, MarketRegime, Regime, adx, detect_market_regime
from .rsi import rsi, rsi_series
from .snapshot import (
    IndicatorSnapshot,
    calculate_snapshot,
    determine_trend,
    format_snapshot_for_advisor,
)
from .volume import rate_of_change, volume_ratio, vwap

__all__ = [
    # Moving Averages
    "sma",
    "ema",
    "ema_series",
    # Oscillators
    "rsi",
    "rsi_series",
    "macd",
    "macd_line_series",
    "MACDResult",
    # Volatility
    "atr",
    "atr_percent",
    "price_atr",
    "true_range",
    "bollinger_bands",
    "BollingerBands",
    # Volume / momentum
    "vwap",
    "volume_ratio",
    "rate_of_change",
    # Structure
    "support_resistance",
    "PriceLevels",
    "adx",
    "ADXResult",
    "detect_market_regime",
    "MarketRegime",
    "Regime",
    # Snapshot
    "IndicatorSnapshot",
    "calculate_snapshot",
    "determine_trend",
    "format_snapshot_for_advisor",
]
