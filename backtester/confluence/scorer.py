"""
Confluence Scorer - per-timeframe signal scoring and weighted consensus.

Each timeframe scores five independent contributions (RSI zone, MACD
alignment, price vs MA20, price vs MA50, 10-bar range position). The
consensus is the weight-normalized sum of signed strengths over the
timeframes that actually had data.
"""

import logging

from backtester.core.candle import Candle, closes
from backtester.core.timeframes import TIMEFRAME_MINUTES, TIMEFRAME_WEIGHTS, TimeframeCache
from backtester.indicators import macd, rsi, sma

from .models import (
    ConfluenceResult,
    ConfluenceThresholds,
    OverallSignal,
    ScoreContributions,
    TimeframeSignal,
    TrendSignal,
)

logger = logging.getLogger(__name__)

MIN_TIMEFRAME_CANDLES = 30
RANGE_LOOKBACK = 10


def analyze_timeframe(candles: list[Candle], timeframe: str) -> TimeframeSignal | None:
    """
    Score one timeframe.

    Args:
        candles: Candles of this timeframe (oldest first)
        timeframe: Timeframe name, e.g. "1h"

    Returns:
        TimeframeSignal, or None when there are fewer than 30 candles
    """
    if len(candles) < MIN_TIMEFRAME_CANDLES:
        return None

    prices = closes(candles)
    price = prices[-1]

    rsi_value = rsi(prices, 14)
    macd_result = macd(prices)
    ma20 = sma(prices, 20)
    ma50 = sma(prices, 50) if len(prices) >= 50 else ma20

    rsi_score = 0.0
    if rsi_value is not None:
        if rsi_value < 30:
            rsi_score = 2.0
        elif rsi_value < 40:
            rsi_score = 1.0
        elif rsi_value > 70:
            rsi_score = -2.0
        elif rsi_value > 60:
            rsi_score = -1.0

    macd_score = 0.0
    macd_signal = "neutral"
    if macd_result is not None and macd_result.signal_line is not None:
        histogram = macd_result.histogram
        if histogram > 0 and macd_result.macd_line > macd_result.signal_line:
            macd_score = 1.5
            macd_signal = "bullish"
        elif histogram < 0 and macd_result.macd_line < macd_result.signal_line:
            macd_score = -1.5
            macd_signal = "bearish"

    ma20_score = _side_score(price, ma20)
    ma50_score = _side_score(price, ma50)

    range_score = 0.0
    recent = candles[-RANGE_LOOKBACK:]
    high = max(c.high for c in recent)
    low = min(c.low for c in recent)
    if high > low:
        position = (price - low) / (high - low)
        if position > 0.8:
            range_score = -0.5
        elif position < 0.2:
            range_score = 0.5

    contributions = ScoreContributions(
        rsi_score=rsi_score,
        macd_score=macd_score,
        ma20_score=ma20_score,
        ma50_score=ma50_score,
        range_score=range_score,
    )
    total = contributions.total_score

    if total > 1.0:
        signal = TrendSignal.BULLISH
    elif total < -1.0:
        signal = TrendSignal.BEARISH
    else:
        signal = TrendSignal.NEUTRAL

    trend_direction = "sideways"
    if ma20 is not None and ma50 is not None:
        if ma20 > ma50 * 1.01:
            trend_direction = "up"
        elif ma20 < ma50 * 0.99:
            trend_direction = "down"

    price_vs_ma = "at"
    if ma20:
        if price > ma20 * 1.005:
            price_vs_ma = "above"
        elif price < ma20 * 0.995:
            price_vs_ma = "below"

    return TimeframeSignal(
        timeframe=timeframe,
        signal=signal,
        strength=min(100.0, abs(total) * 20),
        contributions=contributions,
        rsi=rsi_value,
        macd_signal=macd_signal,
        trend_direction=trend_direction,
        price_vs_ma=price_vs_ma,
    )


def _side_score(price: float, average: float | None) -> float:
    if average is None:
        return 0.0
    if price > average:
        return 0.5
    if price < average:
        return -0.5
    return 0.0


def calculate_confluence(
    signals: list[TimeframeSignal | None],
    thresholds: ConfluenceThresholds | None = None,
) -> ConfluenceResult:
    """
    Combine per-timeframe signals into one weighted consensus.

    None entries (timeframes without data) are excluded from both the
    weighted sum and the total weight.

    Args:
        signals: One entry per canonical timeframe, None where no data
        thresholds: Gates for the overall signal and should_trade

    Returns:
        ConfluenceResult
    """
    thresholds = thresholds or ConfluenceThresholds()
    evaluated = [s for s in signals if s is not None]

    if not evaluated:
        return ConfluenceResult(
            overall_signal=OverallSignal.NEUTRAL,
            confluence_score=0.0,
            timeframes=[],
            alignment=0.0,
            should_trade=False,
            recommendation="NEUTRAL - No timeframe has enough data",
        )

    weighted = 0.0
    total_weight = 0.0
    for signal in evaluated:
        weight = TIMEFRAME_WEIGHTS[signal.timeframe]
        weighted += signal.signed_strength * weight
        total_weight += weight

    score = weighted / total_weight if total_weight > 0 else 0.0

    bullish = sum(1 for s in evaluated if s.signal == TrendSignal.BULLISH)
    bearish = sum(1 for s in evaluated if s.signal == TrendSignal.BEARISH)
    alignment = max(bullish, bearish) / len(evaluated)

    if score > thresholds.strong_score and alignment >= thresholds.strong_alignment:
        overall = OverallSignal.STRONG_BUY
    elif score > thresholds.signal_score:
        overall = OverallSignal.BUY
    elif score < -thresholds.strong_score and alignment >= thresholds.strong_alignment:
        overall = OverallSignal.STRONG_SELL
    elif score < -thresholds.signal_score:
        overall = OverallSignal.SELL
    else:
        overall = OverallSignal.NEUTRAL

    should_trade = abs(score) > thresholds.trade_score and alignment >= thresholds.trade_alignment

    count = len(evaluated)
    if overall == OverallSignal.STRONG_BUY:
        recommendation = (
            f"Strong BUY signal - {bullish}/{count} timeframes bullish with {alignment * 100:.0f}% alignment"
        )
    elif overall == OverallSignal.BUY:
        recommendation = f"BUY signal - {bullish}/{count} timeframes bullish"
    elif overall == OverallSignal.STRONG_SELL:
        recommendation = (
            f"Strong SELL signal - {bearish}/{count} timeframes bearish with {alignment * 100:.0f}% alignment"
        )
    elif overall == OverallSignal.SELL:
        recommendation = f"SELL signal - {bearish}/{count} timeframes bearish"
    else:
        recommendation = f"NEUTRAL - Mixed signals across timeframes ({bullish} bullish, {bearish} bearish)"

    return ConfluenceResult(
        overall_signal=overall,
        confluence_score=score,
        timeframes=evaluated,
        alignment=alignment,
        should_trade=should_trade,
        recommendation=recommendation,
    )


def confluence_from_history(
    symbol: str,
    history: list[Candle],
    cache: TimeframeCache,
    thresholds: ConfluenceThresholds | None = None,
) -> ConfluenceResult:
    """
    Score every canonical timeframe derivable from `history` and combine them.

    `history` must already be sliced to the current simulation index.
    """
    signals: list[TimeframeSignal | None] = []
    for timeframe in TIMEFRAME_MINUTES:
        series = cache.series(symbol, timeframe, history)
        signals.append(analyze_timeframe(series, timeframe) if series else None)

    result = calculate_confluence(signals, thresholds)
    logger.debug(
        f"{symbol} confluence: {result.overall_signal.value} "
        f"(score {result.confluence_score:.1f}, {len(result.timeframes)} timeframes)"
    )
    return result


def format_confluence_for_advisor(result: ConfluenceResult) -> str:
    """One-paragraph summary of the consensus for the advisor prompt."""
    if not result.timeframes:
        return f"Multi-Timeframe Confluence: unavailable. {result.recommendation}"

    summary = ", ".join(
        f"{tf.timeframe}: {tf.signal.value.upper()} (RSI:{tf.rsi:.0f})"
        if tf.rsi is not None
        else f"{tf.timeframe}: {tf.signal.value.upper()} (RSI:N/A)"
        for tf in result.timeframes
    )
    return (
        f"Multi-Timeframe Confluence: {result.overall_signal.value.upper()} "
        f"(score: {result.confluence_score:.1f}, alignment: {result.alignment * 100:.0f}%). "
        f"Timeframes: {summary}. {result.recommendation}"
    )
