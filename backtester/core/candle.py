"""
Candle model - the OHLCV bar every layer of the engine consumes.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Candle:
    """A single OHLCV candlestick. Immutable once produced."""

    timestamp: datetime  # Start of the bucket
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def is_bullish(self) -> bool:
        """Returns True if close > open (green candle)."""
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        """Returns True if close < open (red candle)."""
        return self.close < self.open

    @property
    def body_percent(self) -> float:
        """Signed open-to-close change in percent."""
        if self.open == 0:
            return 0.0
        return (self.close - self.open) / self.open * 100

    @property
    def typical_price(self) -> float:
        """(high + low + close) / 3, used by VWAP."""
        return (self.high + self.low + self.close) / 3

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Candle":
        """Create from a dict such as a CSV row (values may be strings)."""
        timestamp = data["timestamp"]
        if not isinstance(timestamp, datetime):
            timestamp = datetime.fromisoformat(str(timestamp))
        return cls(
            timestamp=timestamp,
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=float(data.get("volume") or 0.0),
        )


def closes(candles: list[Candle]) -> list[float]:
    """Extract close prices (most recent last)."""
    return [c.close for c in candles]


def highs(candles: list[Candle]) -> list[float]:
    return [c.high for c in candles]


def lows(candles: list[Candle]) -> list[float]:
    return [c.low for c in candles]
