"""
Indicator Snapshot - every indicator value for a series ending at one index.

Fields that lack enough history stay None; consumers must treat None as
"exclude this signal", never as zero.
"""

from dataclasses import dataclass

from .atr import price_atr
from .bollinger import bollinger_bands
from .levels import support_resistance
from .macd import macd
from .moving_averages import ema, sma
from .regime import MarketRegime, detect_market_regime
from .rsi import rsi

# EMA5 vs EMA20 gap (in %) needed to call a micro-trend
MICRO_TREND_THRESHOLD = 0.05


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values computed from a price series ending at one index."""

    price: float
    rsi: float | None
    sma20: float | None
    sma50: float | None
    ema5: float | None
    ema12: float | None
    ema20: float | None
    ema26: float | None
    macd: float | None
    macd_signal: float | None
    macd_histogram: float | None
    bollinger_upper: float | None
    bollinger_middle: float | None
    bollinger_lower: float | None
    atr: float | None
    support: float | None
    resistance: float | None
    trend: str  # bullish | bearish | neutral
    strength: str  # strong | moderate | weak
    micro_trend: str  # bullish | bearish | neutral
    regime: MarketRegime

    @property
    def percent_b(self) -> float | None:
        """Bollinger %B of the current price."""
        if self.bollinger_upper is None or self.bollinger_lower is None:
            return None
        width = self.bollinger_upper - self.bollinger_lower
        if width == 0:
            return 50.0
        return (self.price - self.bollinger_lower) / width * 100

    @property
    def atr_percent(self) -> float | None:
        if self.atr is None or self.price == 0:
            return None
        return self.atr / self.price * 100


def determine_trend(
    price: float,
    sma20: float | None,
    sma50: float | None,
    rsi_value: float | None,
    macd_value: float | None,
    macd_signal: float | None,
) -> tuple[str, str]:
    """
    Vote on the overall trend.

    Returns:
        (trend, strength), where the trend is set only when one side leads
        by more than one vote.
    """
    bullish = 0.0
    bearish = 0.0

    if sma20 is not None:
        if price > sma20 * 1.01:
            bullish += 1
        elif price < sma20 * 0.99:
            bearish += 1

    if sma50 is not None:
        if price > sma50 * 1.02:
            bullish += 1
        elif price < sma50 * 0.98:
            bearish += 1

    if sma20 is not None and sma50 is not None:
        if sma20 > sma50:
            bullish += 1
        elif sma20 < sma50:
            bearish += 1

    if rsi_value is not None:
        if rsi_value > 70:
            bearish += 1
        elif rsi_value < 30:
            bullish += 1
        elif rsi_value > 55:
            bullish += 0.5
        elif rsi_value < 45:
            bearish += 0.5

    if macd_value is not None and macd_signal is not None:
        if macd_value > macd_signal:
            bullish += 1
        elif macd_value < macd_signal:
            bearish += 1

    if bullish > bearish + 1:
        return "bullish", _vote_strength(bullish)
    if bearish > bullish + 1:
        return "bearish", _vote_strength(bearish)
    return "neutral", "weak"


def _vote_strength(votes: float) -> str:
    if votes >= 4:
        return "strong"
    if votes >= 2:
        return "moderate"
    return "weak"


def calculate_snapshot(
    prices: list[float],
    highs: list[float] | None = None,
    lows: list[float] | None = None,
) -> IndicatorSnapshot:
    """
    Compute every indicator over `prices`.

    Args:
        prices: Close prices (most recent last), must not be empty
        highs: Optional bar highs aligned with `prices` (used by the regime ADX)
        lows: Optional bar lows aligned with `prices`

    Returns:
        IndicatorSnapshot
    """
    if not prices:
        raise ValueError("prices must not be empty")

    price = prices[-1]
    rsi_value = rsi(prices, 14)
    sma20 = sma(prices, 20)
    sma50 = sma(prices, 50)
    ema5 = ema(prices, 5)
    ema20 = ema(prices, 20)
    macd_result = macd(prices)
    bands = bollinger_bands(prices, 20, 2)
    levels = support_resistance(prices, 15)

    macd_value = macd_result.macd_line if macd_result else None
    macd_signal = macd_result.signal_line if macd_result else None
    trend, strength = determine_trend(price, sma20, sma50, rsi_value, macd_value, macd_signal)

    micro_trend = "neutral"
    if ema5 is not None and ema20:
        gap = (ema5 - ema20) / ema20 * 100
        if gap > MICRO_TREND_THRESHOLD:
            micro_trend = "bullish"
        elif gap < -MICRO_TREND_THRESHOLD:
            micro_trend = "bearish"

    return IndicatorSnapshot(
        price=price,
        rsi=rsi_value,
        sma20=sma20,
        sma50=sma50,
        ema5=ema5,
        ema12=ema(prices, 12),
        ema20=ema20,
        ema26=ema(prices, 26),
        macd=macd_value,
        macd_signal=macd_signal,
        macd_histogram=macd_result.histogram if macd_result else None,
        bollinger_upper=bands.upper if bands else None,
        bollinger_middle=bands.middle if bands else None,
        bollinger_lower=bands.lower if bands else None,
        atr=price_atr(prices, 14),
        support=levels.support if levels else None,
        resistance=levels.resistance if levels else None,
        trend=trend,
        strength=strength,
        micro_trend=micro_trend,
        regime=detect_market_regime(prices, 20, highs, lows),
    )


def format_snapshot_for_advisor(snapshot: IndicatorSnapshot, symbol: str) -> str:
    """Render the snapshot as a plain-text block for the advisor prompt."""
    price = snapshot.price
    lines = [f"=== {symbol} TECHNICAL ANALYSIS ==="]

    if snapshot.rsi is not None:
        if snapshot.rsi > 70:
            reading = "OVERBOUGHT (selling pressure likely)"
        elif snapshot.rsi > 60:
            reading = "getting overbought"
        elif snapshot.rsi < 30:
            reading = "OVERSOLD (bounce likely)"
        elif snapshot.rsi < 40:
            reading = "getting oversold"
        else:
            reading = "neutral"
        lines.append(f"- RSI(14): {snapshot.rsi:.1f} - {reading}")

    for label, value in (("SMA20", snapshot.sma20), ("SMA50", snapshot.sma50)):
        if value:
            gap = (price - value) / value * 100
            side = "ABOVE" if gap > 0 else "BELOW"
            lines.append(f"- {label}: ${value:.5f} (price is {abs(gap):.2f}% {side})")

    if snapshot.macd is not None:
        if snapshot.macd_signal is None:
            cross = "neutral"
        elif snapshot.macd > snapshot.macd_signal:
            cross = "BULLISH crossover"
        else:
            cross = "BEARISH crossover"
        lines.append(f"- MACD: {snapshot.macd:.6f} ({cross})")

    if snapshot.bollinger_upper is not None and snapshot.bollinger_lower is not None:
        if price > snapshot.bollinger_upper:
            position = "ABOVE upper band (overextended)"
        elif price < snapshot.bollinger_lower:
            position = "BELOW lower band (oversold)"
        else:
            position = f"at {snapshot.percent_b:.0f}% of band width"
        lines.append(f"- Bollinger Bands: {position}")

    if snapshot.support is not None and snapshot.resistance is not None and price:
        lines.append(
            f"- Support: ${snapshot.support:.5f} ({abs(snapshot.support - price) / price * 100:.2f}% away)"
        )
        lines.append(
            f"- Resistance: ${snapshot.resistance:.5f} "
            f"({abs(snapshot.resistance - price) / price * 100:.2f}% away)"
        )

    if snapshot.atr_percent is not None:
        lines.append(f"- Volatility (ATR): {snapshot.atr_percent:.2f}% average price movement")

    lines.append(f"- Micro-trend (EMA5/20): {snapshot.micro_trend.upper()}")
    lines.append(
        f"- Regime: {snapshot.regime.regime.value.upper()} "
        f"(strength {snapshot.regime.strength}) - {snapshot.regime.description}"
    )
    lines.append(f"- OVERALL: {snapshot.trend.upper()} trend with {snapshot.strength.upper()} signals")

    return "\n".join(lines)
