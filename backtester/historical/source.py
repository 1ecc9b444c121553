"""
Candle sources - where a backtest gets its price history.

All sources are synchronous; the engine calls them off the event loop.
"""

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Protocol

from backtester.core.candle import Candle
from backtester.core.timeframes import aggregate_candles
from backtester.historical.fetcher import BybitHistoricalFetcher, load_csv

logger = logging.getLogger(__name__)


class CandleSource(Protocol):
    """Anything that can supply candles for a symbol and interval."""

    def fetch_candles(self, symbol: str, interval_minutes: int, since: datetime) -> list[Candle]:
        """Candles at `interval_minutes` starting at `since`, oldest first."""
        ...


def detect_interval(candles: list[Candle]) -> int | None:
    """Smallest gap between consecutive candles in whole minutes."""
    gaps = [
        (b.timestamp - a.timestamp).total_seconds() / 60
        for a, b in zip(candles, candles[1:])
        if b.timestamp > a.timestamp
    ]
    if not gaps:
        return None
    return max(1, round(min(gaps)))


def resample(candles: list[Candle], interval_minutes: int) -> list[Candle]:
    """
    Bring candles to `interval_minutes`.

    Finer candles are merged when the interval is a whole multiple of
    theirs; anything else is returned unchanged with a warning.
    """
    native = detect_interval(candles)
    if native is None or native == interval_minutes:
        return candles
    if native < interval_minutes and interval_minutes % native == 0:
        return aggregate_candles(candles, interval_minutes // native)
    logger.warning(f"Cannot resample {native}-min candles to {interval_minutes} min, using them as-is")
    return candles


class InMemoryCandleSource:
    """Serves a fixed candle list (tests, notebooks, preloaded data)."""

    def __init__(self, candles: list[Candle], resample_to_interval: bool = False):
        self.candles = sorted(candles, key=lambda c: c.timestamp)
        self.resample_to_interval = resample_to_interval

    def fetch_candles(self, symbol: str, interval_minutes: int, since: datetime) -> list[Candle]:
        candles = [c for c in self.candles if c.timestamp >= since]
        if self.resample_to_interval:
            candles = resample(candles, interval_minutes)
        return candles


class CSVCandleSource:
    """
    Reads candles from a CSV file written by the downloader.

    The file is loaded once; finer candles are merged up to the requested
    interval.
    """

    def __init__(self, filepath: str | Path):
        self.filepath = Path(filepath)
        self._candles: list[Candle] | None = None

    def _load(self) -> list[Candle]:
        if self._candles is None:
            self._candles = load_csv(self.filepath)
            logger.info(f"Loaded {len(self._candles)} candles from {self.filepath}")
        return self._candles

    def fetch_candles(self, symbol: str, interval_minutes: int, since: datetime) -> list[Candle]:
        candles = [c for c in self._load() if c.timestamp >= since]
        return resample(candles, interval_minutes)


class BybitCandleSource:
    """
    Downloads candles from Bybit on demand.

    Usage:
        source = BybitCandleSource(until=config.end_date)
        candles = source.fetch_candles("BTCUSDT", 5, config.start_date)
    """

    def __init__(
        self,
        category: str = "spot",
        until: datetime | None = None,
        fetcher: BybitHistoricalFetcher | None = None,
    ):
        """
        Args:
            category: Bybit market category
            until: Last candle time to download (default: now)
            fetcher: Optional fetcher to reuse (its client stays open)
        """
        self.until = until
        self._fetcher = fetcher
        self._category = category

    def fetch_candles(self, symbol: str, interval_minutes: int, since: datetime) -> list[Candle]:
        until = self.until or datetime.now(timezone.utc).replace(tzinfo=None, second=0, microsecond=0)
        # fetch() excludes its end; include a candle starting exactly at `until`
        until = until + timedelta(minutes=interval_minutes)
        if self._fetcher is not None:
            return self._fetcher.fetch(symbol, since, until, interval_minutes)
        with BybitHistoricalFetcher(category=self._category) as fetcher:
            return fetcher.fetch(symbol, since, until, interval_minutes)
