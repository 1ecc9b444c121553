#!/usr/bin/env python3
"""
Unit tests for the indicators module.

Run with:
    python -m pytest tests/test_indicators.py -v
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path for standalone execution
sys.path.insert(0, str(Path(__file__).parent.parent))

from backtester.core.candle import Candle
from backtester.indicators import (
    Regime,
    adx,
    atr,
    atr_percent,
    bollinger_bands,
    calculate_snapshot,
    detect_market_regime,
    determine_trend,
    ema,
    ema_series,
    format_snapshot_for_advisor,
    macd,
    price_atr,
    rate_of_change,
    rsi,
    rsi_series,
    sma,
    support_resistance,
    true_range,
    volume_ratio,
    vwap,
)


def make_candle(close: float, high: float | None = None, low: float | None = None, volume: float = 0.0, minute: int = 0):
    return Candle(
        timestamp=datetime(2026, 1, 1) + timedelta(minutes=minute),
        open=close,
        high=close if high is None else high,
        low=close if low is None else low,
        close=close,
        volume=volume,
    )


class TestSMA:
    """Tests for Simple Moving Average."""

    def test_sma_basic(self):
        """Test basic SMA calculation."""
        prices = [10.0, 11.0, 12.0, 13.0, 14.0]
        # Last 3 prices: 12, 13, 14 -> avg = 13
        assert sma(prices, period=3) == 13.0

    def test_sma_insufficient_data(self):
        """Test SMA returns None with insufficient data."""
        assert sma([10.0, 11.0], period=3) is None
        assert sma([], period=3) is None

    def test_sma_invalid_period(self):
        """Test SMA with invalid period."""
        prices = [10.0, 11.0, 12.0]
        assert sma(prices, period=0) is None
        assert sma(prices, period=-1) is None


class TestEMA:
    """Tests for Exponential Moving Average."""

    def test_ema_basic(self):
        """Seeded with the SMA, then multiplier 2/(period+1)."""
        # seed = 11, then 12, then 13 with multiplier 0.5
        assert ema([10.0, 11.0, 12.0, 13.0, 14.0], period=3) == pytest.approx(13.0)

    def test_ema_series_length(self):
        """One value per index from period - 1 onward."""
        assert ema_series([10.0, 11.0, 12.0, 13.0, 14.0], 3) == pytest.approx([11.0, 12.0, 13.0])

    def test_ema_series_matches_prefix_recompute(self):
        """Value at every index equals the EMA recomputed over that prefix."""
        prices = [100 + (i % 7) * 1.3 - (i % 3) for i in range(40)]
        series = ema_series(prices, 9)
        for k, value in enumerate(series):
            assert value == pytest.approx(ema(prices[: 9 + k], 9))

    def test_ema_insufficient_data(self):
        """Test EMA returns None with insufficient data."""
        assert ema([1.0, 2.0], period=3) is None
        assert ema_series([1.0, 2.0], period=3) == []


class TestRSI:
    """Tests for Relative Strength Index."""

    def test_rsi_all_gains(self):
        """No losing deltas means exactly 100."""
        assert rsi([float(p) for p in range(1, 20)], period=14) == 100.0

    def test_rsi_all_losses(self):
        """No gains means 0."""
        assert rsi([float(p) for p in range(20, 1, -1)], period=14) == 0.0

    def test_rsi_balanced(self):
        """Equal gains and losses give 50."""
        assert rsi([1.0, 2.0, 1.0], period=2) == 50.0

    def test_rsi_insufficient_data(self):
        """Needs period + 1 prices."""
        assert rsi([1.0] * 14, period=14) is None

    def test_rsi_in_range(self):
        """RSI stays within 0-100."""
        prices = [100 + ((i * 7) % 11) - 5 for i in range(60)]
        for value in rsi_series(prices, 14):
            assert 0 <= value <= 100

    def test_rsi_series_length(self):
        """One value per prefix with at least period + 1 prices."""
        prices = [float(i % 5) for i in range(30)]
        assert len(rsi_series(prices, 14)) == 30 - 14


class TestMACD:
    """Tests for MACD."""

    def test_macd_insufficient_data(self):
        """Fewer than the slow period returns None."""
        assert macd([100.0] * 25) is None

    def test_macd_signal_needs_history(self):
        """Signal line appears only from slow + signal prices."""
        prices = [100.0 + i for i in range(30)]
        result = macd(prices)
        assert result is not None
        assert result.signal_line is None
        assert result.histogram is None

    def test_macd_flat_prices(self):
        """Flat prices give a zero line and zero histogram."""
        result = macd([100.0] * 40)
        assert result.macd_line == pytest.approx(0.0)
        assert result.histogram == pytest.approx(0.0)

    def test_macd_uptrend_positive(self):
        """Accelerating rise puts the fast EMA above the slow EMA."""
        prices = [100.0 + i * i * 0.05 for i in range(60)]
        result = macd(prices)
        assert result.macd_line > 0
        assert result.is_bullish


class TestBollinger:
    """Tests for Bollinger Bands."""

    def test_bands_known_values(self):
        """Population standard deviation around the SMA."""
        bands = bollinger_bands([1.0, 2.0, 3.0, 4.0, 5.0], period=5)
        assert bands.middle == 3.0
        assert bands.upper == pytest.approx(3.0 + 2 * 2**0.5)
        assert bands.lower == pytest.approx(3.0 - 2 * 2**0.5)

    def test_flat_window_percent_b(self):
        """Zero-width bands report the midpoint."""
        bands = bollinger_bands([50.0] * 20)
        assert bands.width == 0
        assert bands.percent_b(50.0) == 50.0

    def test_insufficient_data(self):
        assert bollinger_bands([1.0] * 19, period=20) is None


class TestATR:
    """Tests for Average True Range."""

    def test_true_range_gap(self):
        """Gap from the previous close widens the range."""
        candle = make_candle(105.0, high=106.0, low=104.0)
        assert true_range(candle) == 2.0
        assert true_range(candle, previous_close=100.0) == 6.0

    def test_atr_constant_range(self):
        """Constant 2.0 range gives ATR 2.0."""
        candles = [make_candle(100.0, high=101.0, low=99.0, minute=i) for i in range(20)]
        assert atr(candles, 14) == pytest.approx(2.0)

    def test_atr_insufficient_data(self):
        candles = [make_candle(100.0, minute=i) for i in range(14)]
        assert atr(candles, 14) is None

    def test_price_atr(self):
        """Close-only ATR is the mean absolute change."""
        assert price_atr([float(i) for i in range(20)], 14) == pytest.approx(1.0)

    def test_atr_percent(self):
        candles = [make_candle(100.0, high=101.0, low=99.0, minute=i) for i in range(20)]
        assert atr_percent(candles, 14) == pytest.approx(2.0)
        assert atr_percent(candles[:5], 14) is None


class TestVolume:
    """Tests for VWAP, volume ratio and rate of change."""

    def test_vwap_weighted(self):
        candles = [make_candle(10.0, volume=1.0), make_candle(20.0, volume=3.0)]
        assert vwap(candles) == pytest.approx(17.5)

    def test_vwap_no_volume(self):
        """No volume falls back to the last close."""
        assert vwap([make_candle(10.0), make_candle(12.0)]) == 12.0

    def test_vwap_empty(self):
        assert vwap([]) is None

    def test_volume_ratio(self):
        candles = [make_candle(10.0, volume=1.0) for _ in range(19)] + [make_candle(10.0, volume=21.0)]
        # average = (19 + 21) / 20 = 2
        assert volume_ratio(candles, 20) == pytest.approx(10.5)

    def test_rate_of_change(self):
        assert rate_of_change([100.0] + [0.0] * 9 + [110.0], 10) == pytest.approx(10.0)
        assert rate_of_change([1.0] * 5, 10) is None


class TestSupportResistance:
    """Tests for local extreme levels."""

    def test_nearest_levels(self):
        """Highest local low below, lowest local high above."""
        levels = support_resistance([10.0, 9.0, 10.0, 11.0, 10.0, 12.0, 11.0])
        assert levels.support == 10.0
        assert levels.resistance == 12.0

    def test_fallback_to_window_extremes(self):
        """Monotonic series has no local extremes."""
        levels = support_resistance([1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
        assert levels.support == 1.0
        assert levels.resistance == 6.0

    def test_insufficient_data(self):
        assert support_resistance([1.0, 2.0, 3.0, 4.0]) is None


class TestMarketRegime:
    """Tests for the regime classifier."""

    def test_insufficient_data(self):
        regime = detect_market_regime([100.0] * 10)
        assert regime.regime == Regime.CHOPPY
        assert regime.strength == 0

    def test_steady_uptrend(self):
        """Monotonic rise: no reversals, high ADX, full efficiency."""
        regime = detect_market_regime([100.0 + i for i in range(40)])
        assert regime.regime == Regime.TRENDING_UP
        assert regime.strength == 100
        assert regime.is_trending

    def test_alternating_is_choppy(self):
        """Every move reverses."""
        regime = detect_market_regime([100.0 + (i % 2) for i in range(40)])
        assert regime.regime == Regime.CHOPPY

    def test_adx_steady_rise(self):
        """Only upward directional movement: +DI dominates and ADX saturates."""
        result = adx([100.0 + i for i in range(40)])
        assert result.minus_di == 0.0
        assert result.plus_di > 0
        assert result.adx == pytest.approx(100.0)

    def test_adx_uses_real_highs_and_lows(self):
        prices = [100.0 - i for i in range(40)]
        result = adx(prices, highs=[p + 1 for p in prices], lows=[p - 1 for p in prices])
        assert result.plus_di == 0.0
        assert result.adx == pytest.approx(100.0)

    def test_adx_insufficient_data(self):
        assert adx([100.0] * 27) is None

    def test_flat_is_ranging(self):
        """Zero range counts as a narrow range."""
        regime = detect_market_regime([100.0] * 40)
        assert regime.regime == Regime.RANGING
        assert regime.strength == 50


class TestSnapshot:
    """Tests for the indicator snapshot."""

    def test_short_series_fields_none(self):
        """Fields lacking history stay None."""
        snapshot = calculate_snapshot([100.0, 101.0, 102.0])
        assert snapshot.rsi is None
        assert snapshot.sma20 is None
        assert snapshot.macd is None
        assert snapshot.bollinger_upper is None
        assert snapshot.percent_b is None
        assert snapshot.support is None

    def test_uptrend_snapshot(self):
        prices = [100.0 * 1.002**i for i in range(80)]
        snapshot = calculate_snapshot(prices)
        assert snapshot.trend == "bullish"
        assert snapshot.micro_trend == "bullish"
        assert snapshot.sma50 is not None
        assert snapshot.macd_histogram is not None

    def test_empty_prices_rejected(self):
        with pytest.raises(ValueError):
            calculate_snapshot([])

    def test_determine_trend_votes(self):
        """Trend needs a lead of more than one vote."""
        assert determine_trend(110.0, 100.0, 95.0, 60.0, 1.0, 0.5) == ("bullish", "strong")
        assert determine_trend(100.0, None, None, 50.0, None, None) == ("neutral", "weak")

    def test_format_for_advisor(self):
        snapshot = calculate_snapshot([100.0 + i * 0.1 for i in range(60)])
        text = format_snapshot_for_advisor(snapshot, "BTCUSDT")
        assert text.startswith("=== BTCUSDT TECHNICAL ANALYSIS ===")
        assert "RSI(14)" in text
        assert "OVERALL:" in text
