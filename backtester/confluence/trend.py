"""
Higher-timeframe trend filter.

Aggregates the base history to 1h and 4h candles, scores each for trend
direction and combines the two into an alignment verdict that says whether
long entries are allowed at all.
"""

import logging
from dataclasses import dataclass

from backtester.core.candle import Candle, closes
from backtester.core.timeframes import aggregate_candles
from backtester.indicators import ema, macd, rate_of_change, rsi

logger = logging.getLogger(__name__)

MIN_TREND_CANDLES = 50
MIN_BASE_CANDLES = 60

ALIGNED_BULL = "aligned_bull"
ALIGNED_BEAR = "aligned_bear"
CONFLICTING = "conflicting"
NEUTRAL = "neutral"


@dataclass(frozen=True)
class TrendAnalysis:
    """Trend direction of one higher timeframe."""

    direction: str  # bullish | bearish | neutral
    strength: float  # 0-100
    ema20: float
    ema50: float
    rsi: float
    momentum: float
    description: str

    @classmethod
    def insufficient(cls) -> "TrendAnalysis":
        return cls("neutral", 0, 0.0, 0.0, 50.0, 0.0, "Insufficient data")


@dataclass(frozen=True)
class MultiTimeframeAnalysis:
    """1h/4h alignment verdict."""

    htf_1h: TrendAnalysis
    htf_4h: TrendAnalysis
    alignment: str  # aligned_bull | aligned_bear | conflicting | neutral
    can_trade: bool
    trade_direction: str  # long | short | none
    description: str


def analyze_trend(candles: list[Candle]) -> TrendAnalysis:
    """
    Score the trend of a higher-timeframe series.

    Needs 50 candles; shorter series are neutral with strength 0.
    """
    if len(candles) < MIN_TREND_CANDLES:
        return TrendAnalysis.insufficient()

    prices = closes(candles)
    price = prices[-1]
    ema20 = ema(prices, 20)
    ema50 = ema(prices, 50)
    rsi_value = rsi(prices, 14)
    momentum = rate_of_change(prices, 10) or 0.0
    macd_result = macd(prices)
    if rsi_value is None:
        rsi_value = 50.0

    bull = 0.0
    bear = 0.0

    if price > ema20 > ema50:
        bull += 3
    elif price < ema20 < ema50:
        bear += 3
    elif price > ema50:
        bull += 1
    elif price < ema50:
        bear += 1

    if rsi_value > 55:
        bull += 1.5
    elif rsi_value < 45:
        bear += 1.5

    if momentum > 2:
        bull += 2
    elif momentum > 0.5:
        bull += 1
    elif momentum < -2:
        bear += 2
    elif momentum < -0.5:
        bear += 1

    if macd_result is not None and macd_result.signal_line is not None:
        if macd_result.histogram > 0 and macd_result.macd_line > macd_result.signal_line:
            bull += 1.5
        elif macd_result.histogram < 0 and macd_result.macd_line < macd_result.signal_line:
            bear += 1.5

    gap20 = (price - ema20) / ema20 * 100 if ema20 else 0.0
    net = bull - bear

    if net >= 4:
        return TrendAnalysis(
            "bullish",
            min(100.0, 60 + net * 5),
            ema20,
            ema50,
            rsi_value,
            momentum,
            f"STRONG UPTREND: Price {gap20:.1f}% above EMA20, RSI {rsi_value:.0f}, Mom {momentum:.1f}%",
        )
    if net >= 2:
        return TrendAnalysis(
            "bullish", 50 + net * 5, ema20, ema50, rsi_value, momentum,
            "Uptrend: Price above key EMAs, positive momentum",
        )
    if net <= -4:
        return TrendAnalysis(
            "bearish",
            min(100.0, 60 + abs(net) * 5),
            ema20,
            ema50,
            rsi_value,
            momentum,
            f"STRONG DOWNTREND: Price {abs(gap20):.1f}% below EMA20, RSI {rsi_value:.0f}, Mom {momentum:.1f}%",
        )
    if net <= -2:
        return TrendAnalysis(
            "bearish", 50 + abs(net) * 5, ema20, ema50, rsi_value, momentum,
            "Downtrend: Price below key EMAs, negative momentum",
        )
    return TrendAnalysis(
        "neutral", 30, ema20, ema50, rsi_value, momentum,
        f"RANGING/CHOPPY: No clear trend, RSI {rsi_value:.0f}, mixed signals",
    )


def analyze_multiple_timeframes(history: list[Candle], interval_minutes: int) -> MultiTimeframeAnalysis:
    """
    Combine 1h and 4h trend into an alignment verdict.

    Args:
        history: Base candles up to and including the current index
        interval_minutes: Base candle interval

    Returns:
        MultiTimeframeAnalysis. With fewer than 60 base candles the result is
        neutral and long trades are allowed.
    """
    if len(history) < MIN_BASE_CANDLES:
        return MultiTimeframeAnalysis(
            TrendAnalysis.insufficient(),
            TrendAnalysis.insufficient(),
            NEUTRAL,
            True,
            "long",
            "Limited HTF data - using lower timeframe signals only",
        )

    htf_1h = analyze_trend(aggregate_candles(history, max(1, 60 // interval_minutes)))
    htf_4h = analyze_trend(aggregate_candles(history, max(1, 240 // interval_minutes)))
    d1, d4 = htf_1h.direction, htf_4h.direction

    if d1 == "bullish" and d4 == "bullish":
        result = (ALIGNED_BULL, True, "long", "BULLISH ALIGNMENT: 1H & 4H both trending up - LOOK FOR LONG ENTRIES")
    elif d1 == "bearish" and d4 == "bearish":
        result = (ALIGNED_BEAR, True, "short", "BEARISH ALIGNMENT: 1H & 4H both trending down - AVOID LONGS")
    elif d1 == "neutral" and d4 == "neutral":
        result = (
            NEUTRAL, True, "long",
            "RANGING MARKET: Both TFs neutral - trade with lower confidence, focus on quick scalps",
        )
    elif {d1, d4} == {"bullish", "bearish"}:
        result = (
            CONFLICTING,
            True,
            "long" if d1 == "bullish" else "none",
            f"CONFLICTING: 1H={d1}, 4H={d4} - trade cautiously with lower TF signals",
        )
    elif d4 == "bullish":
        can_trade = htf_4h.strength >= 50
        result = (
            ALIGNED_BULL, can_trade, "long" if can_trade else "none",
            "4H BULLISH (1H neutral): Cautious longs allowed if 4H strong",
        )
    elif d4 == "bearish":
        # Spot only: no shorts
        result = (ALIGNED_BEAR, False, "none", "4H BEARISH: Avoid longs, wait for reversal")
    else:
        can_trade = d1 == "bullish" and htf_1h.strength >= 60
        result = (
            NEUTRAL, can_trade, "long" if can_trade else "none",
            f"1H {d1}, 4H neutral: {'Cautious trades' if can_trade else 'Wait for confirmation'}",
        )

    alignment, can_trade, direction, description = result
    return MultiTimeframeAnalysis(htf_1h, htf_4h, alignment, can_trade, direction, description)


def format_mtf_for_advisor(analysis: MultiTimeframeAnalysis) -> str:
    """Render the alignment verdict for the advisor prompt."""
    return (
        "=== HIGHER TIMEFRAME TREND ===\n"
        f"- 1H: {analysis.htf_1h.direction.upper()} (strength {analysis.htf_1h.strength:.0f}) "
        f"- {analysis.htf_1h.description}\n"
        f"- 4H: {analysis.htf_4h.direction.upper()} (strength {analysis.htf_4h.strength:.0f}) "
        f"- {analysis.htf_4h.description}\n"
        f"- Alignment: {analysis.alignment.upper()} - {analysis.description}"
    )
