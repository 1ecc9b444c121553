"""
Multi-Timeframe Aggregator - derive higher-timeframe candles from a base series.

Aggregation is fixed-ratio bucketing: N consecutive base candles become one
higher-timeframe candle. Callers pass only the history available at the
current simulation index; nothing here looks past the end of the list it
is given.
"""

from backtester.core.candle import Candle

# Canonical timeframes and their length in minutes
TIMEFRAME_MINUTES: dict[str, int] = {
    "1m": 1,
    "5m": 5,
    "15m": 15,
    "30m": 30,
    "1h": 60,
    "4h": 240,
    "1d": 1440,
}

# Confluence weights per timeframe (sum to 1.0)
TIMEFRAME_WEIGHTS: dict[str, float] = {
    "1m": 0.08,
    "5m": 0.10,
    "15m": 0.14,
    "30m": 0.14,
    "1h": 0.18,
    "4h": 0.18,
    "1d": 0.18,
}


def aggregate_candles(candles: list[Candle], factor: int) -> list[Candle]:
    """
    Bucket every `factor` consecutive candles into one.

    open = first open, high/low = bucket max/min, close = last close,
    volume = bucket sum, timestamp = first candle's timestamp.
    A trailing partial bucket is included.

    Args:
        candles: Base candles (oldest first)
        factor: Number of base candles per bucket

    Returns:
        Aggregated candles (oldest first)
    """
    if factor <= 0:
        raise ValueError("factor must be positive")
    if factor == 1:
        return list(candles)

    aggregated: list[Candle] = []
    for start in range(0, len(candles), factor):
        chunk = candles[start : start + factor]
        if not chunk:
            continue
        aggregated.append(_merge(chunk))
    return aggregated


def _merge(chunk: list[Candle]) -> Candle:
    return Candle(
        timestamp=chunk[0].timestamp,
        open=chunk[0].open,
        high=max(c.high for c in chunk),
        low=min(c.low for c in chunk),
        close=chunk[-1].close,
        volume=sum(c.volume for c in chunk),
    )


def timeframe_factor(timeframe: str, base_interval_minutes: int) -> int | None:
    """
    Number of base candles per candle of `timeframe`.

    Returns None when the timeframe cannot be built from the base interval
    (finer than the base, or not an integer multiple of it).
    """
    minutes = TIMEFRAME_MINUTES.get(timeframe)
    if minutes is None:
        raise ValueError(f"Unknown timeframe '{timeframe}'. Available: {', '.join(TIMEFRAME_MINUTES)}")
    if base_interval_minutes <= 0 or minutes < base_interval_minutes:
        return None
    if minutes % base_interval_minutes != 0:
        return None
    return minutes // base_interval_minutes


def interval_to_timeframe(interval_minutes: int) -> str | None:
    """Map a candle interval to its canonical timeframe name, if any."""
    for name, minutes in TIMEFRAME_MINUTES.items():
        if minutes == interval_minutes:
            return name
    return None


class TimeframeCache:
    """
    Per-run cache of aggregated candle series keyed by (symbol, timeframe).

    Completed buckets are cached; the trailing partial bucket is rebuilt on
    every call from the history slice the caller provides, so the cache never
    holds data from beyond the current index.

    Usage:
        cache = TimeframeCache(base_interval_minutes=5)
        hourly = cache.series("BTCUSDT", "1h", candles[: index + 1])
    """

    def __init__(self, base_interval_minutes: int):
        self.base_interval_minutes = base_interval_minutes
        self._completed: dict[tuple[str, str], list[Candle]] = {}
        self._consumed: dict[tuple[str, str], int] = {}

    def series(self, symbol: str, timeframe: str, history: list[Candle]) -> list[Candle] | None:
        """
        Get the aggregated series for `timeframe` over `history`.

        Returns:
            Aggregated candles, or None if the timeframe is not derivable
            from the base interval
        """
        factor = timeframe_factor(timeframe, self.base_interval_minutes)
        if factor is None:
            return None
        if factor == 1:
            return list(history)

        key = (symbol, timeframe)
        completed = self._completed.setdefault(key, [])
        consumed = self._consumed.get(key, 0)

        # History shorter than what was cached means a new replay started
        if len(history) < consumed:
            completed.clear()
            consumed = 0

        full_buckets = len(history) // factor
        boundary = full_buckets * factor
        if boundary > consumed:
            completed.extend(aggregate_candles(history[consumed:boundary], factor))
            consumed = boundary
        self._consumed[key] = consumed

        partial = history[boundary:]
        if partial:
            return completed + [_merge(partial)]
        return list(completed)

    def clear(self) -> None:
        """Drop every cached series."""
        self._completed.clear()
        self._consumed.clear()
