"""
Data models for multi-timeframe confluence scoring.
"""

from dataclasses import dataclass, field
from enum import Enum


class TrendSignal(str, Enum):
    """Direction of a single timeframe."""

    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"


class OverallSignal(str, Enum):
    """Consensus across all evaluated timeframes."""

    STRONG_BUY = "strong_buy"
    BUY = "buy"
    NEUTRAL = "neutral"
    SELL = "sell"
    STRONG_SELL = "strong_sell"

    @property
    def is_buy(self) -> bool:
        return self in (OverallSignal.BUY, OverallSignal.STRONG_BUY)

    @property
    def is_sell(self) -> bool:
        return self in (OverallSignal.SELL, OverallSignal.STRONG_SELL)


@dataclass(frozen=True)
class ScoreContributions:
    """Points from each independent contribution. The total is always their sum."""

    rsi_score: float = 0.0
    macd_score: float = 0.0
    ma20_score: float = 0.0
    ma50_score: float = 0.0
    range_score: float = 0.0

    @property
    def total_score(self) -> float:
        return self.rsi_score + self.macd_score + self.ma20_score + self.ma50_score + self.range_score


@dataclass(frozen=True)
class TimeframeSignal:
    """Trend/confluence signal for one timeframe at one evaluation point."""

    timeframe: str
    signal: TrendSignal
    strength: float  # 0-100
    contributions: ScoreContributions
    rsi: float | None = None
    macd_signal: str = "neutral"  # bullish | bearish | neutral
    trend_direction: str = "sideways"  # up | down | sideways
    price_vs_ma: str = "at"  # above | below | at

    @property
    def signed_strength(self) -> float:
        """+strength when bullish, -strength when bearish, 0 when neutral."""
        if self.signal == TrendSignal.BULLISH:
            return self.strength
        if self.signal == TrendSignal.BEARISH:
            return -self.strength
        return 0.0


@dataclass(frozen=True)
class ConfluenceThresholds:
    """
    User-tunable gates on top of the fixed scoring arithmetic.

    Scores are on the -100..100 scale, alignment on 0..1.
    """

    strong_score: float = 60.0
    strong_alignment: float = 0.8
    signal_score: float = 30.0
    trade_score: float = 25.0
    trade_alignment: float = 0.6

    def __post_init__(self) -> None:
        """Validate thresholds."""
        if not 0 <= self.strong_alignment <= 1 or not 0 <= self.trade_alignment <= 1:
            raise ValueError("alignment thresholds must be between 0 and 1")
        if self.signal_score < 0 or self.trade_score < 0:
            raise ValueError("score thresholds cannot be negative")
        if self.strong_score < self.signal_score:
            raise ValueError("strong_score must be >= signal_score")


@dataclass(frozen=True)
class ConfluenceResult:
    """Weighted consensus across timeframes."""

    overall_signal: OverallSignal
    confluence_score: float
    timeframes: list[TimeframeSignal] = field(default_factory=list)
    alignment: float = 0.0  # 0..1
    should_trade: bool = False
    recommendation: str = ""

    @property
    def bullish_count(self) -> int:
        return sum(1 for tf in self.timeframes if tf.signal == TrendSignal.BULLISH)

    @property
    def bearish_count(self) -> int:
        return sum(1 for tf in self.timeframes if tf.signal == TrendSignal.BEARISH)
