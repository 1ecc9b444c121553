"""
Bybit Historical Data Fetcher.

Downloads historical kline (candlestick) data from Bybit's public API and
stores it as CSV for offline backtests.
"""

import csv
import logging
import time
from datetime import datetime, timezone
from pathlib import Path

import httpx

from backtester.core.candle import Candle

logger = logging.getLogger(__name__)

# Bybit API endpoint
BYBIT_API_URL = "https://api.bybit.com/v5/market/kline"

# Maximum candles per request (Bybit limit)
MAX_LIMIT = 1000

# Intervals Bybit serves, in minutes
SUPPORTED_INTERVALS = (1, 3, 5, 15, 30, 60, 120, 240, 360, 720)

CSV_FIELDS = ["timestamp", "open", "high", "low", "close", "volume"]


def to_millis(value: datetime) -> int:
    """Epoch milliseconds; naive datetimes are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def candle_from_bybit(row: list) -> Candle:
    """
    Create a Candle from a Bybit kline row.

    Bybit returns: [startTime, open, high, low, close, volume, turnover]
    All as strings. Timestamps become naive UTC datetimes.
    """
    timestamp = datetime.fromtimestamp(int(row[0]) / 1000, tz=timezone.utc).replace(tzinfo=None)
    return Candle(
        timestamp=timestamp,
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5]),
    )


class BybitHistoricalFetcher:
    """
    Fetches historical kline data from Bybit.

    Usage:
        with BybitHistoricalFetcher(category="spot") as fetcher:
            candles = fetcher.fetch(
                symbol="BTCUSDT",
                start=datetime(2026, 1, 12, 10, 15),
                end=datetime(2026, 1, 12, 11, 15),
                interval_minutes=5,
            )
            save_csv(candles, "data/historical/btc_data.csv")
    """

    def __init__(self, category: str = "spot", client: httpx.Client | None = None, pause: float = 0.1):
        """
        Initialize the fetcher.

        Args:
            category: Market category - "spot", "linear" (USDT perps), or "inverse"
            client: Optional preconfigured httpx client (tests pass a mock transport)
            pause: Seconds to sleep between paginated requests
        """
        self.category = category
        self.client = client or httpx.Client(timeout=30.0)
        self.pause = pause

    def fetch(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        interval_minutes: int = 5,
    ) -> list[Candle]:
        """
        Fetch historical kline data.

        Pages backwards from `end` until `start` is covered.

        Args:
            symbol: Trading pair (e.g., "BTCUSDT")
            start: Start datetime (inclusive)
            end: End datetime (exclusive)
            interval_minutes: Candle interval, one of SUPPORTED_INTERVALS

        Returns:
            Candles sorted by timestamp ascending, without duplicates

        Raises:
            ValueError: Unsupported interval
            RuntimeError: Bybit answered with an error code
        """
        if interval_minutes not in SUPPORTED_INTERVALS:
            raise ValueError(f"Unsupported Bybit interval: {interval_minutes} (supported: {SUPPORTED_INTERVALS})")

        start_ms = to_millis(start)
        end_ms = to_millis(end)
        expected = (end_ms - start_ms) // (interval_minutes * 60_000)
        logger.info(f"Requesting {symbol} {interval_minutes}m klines (~{expected} candles expected)")

        by_time: dict[datetime, Candle] = {}
        current_end = end_ms
        request_count = 0

        while current_end > start_ms:
            params: dict[str, str | int] = {
                "category": self.category,
                "symbol": symbol,
                "interval": str(interval_minutes),
                "start": start_ms,
                "end": current_end,
                "limit": MAX_LIMIT,
            }

            response = self.client.get(BYBIT_API_URL, params=params)
            response.raise_for_status()
            data = response.json()

            if data.get("retCode") != 0:
                raise RuntimeError(f"Bybit API error: {data.get('retMsg', 'Unknown error')}")

            rows = data.get("result", {}).get("list", [])
            if not rows:
                break

            for row in rows:
                row_ms = int(row[0])
                if start_ms <= row_ms < end_ms:
                    candle = candle_from_bybit(row)
                    by_time[candle.timestamp] = candle

            # Bybit returns newest first; continue before the oldest row
            oldest_ms = int(rows[-1][0])
            if oldest_ms >= current_end:
                break
            current_end = oldest_ms - 1

            request_count += 1
            if request_count % 5 == 0:
                logger.info(f"   ... fetched {len(by_time)} candles so far")

            if self.pause:
                time.sleep(self.pause)

        candles = sorted(by_time.values(), key=lambda c: c.timestamp)
        logger.info(f"Received {len(candles)} candles")
        return candles

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def save_csv(candles: list[Candle], filepath: str | Path) -> Path:
    """
    Save candles to a CSV file (parent directories are created).

    Returns:
        Path to saved file
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with filepath.open("w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for candle in candles:
            writer.writerow(candle.to_dict())

    logger.info(f"Saved {len(candles)} candles to {filepath} ({filepath.stat().st_size / 1024:.1f} KB)")
    return filepath


def load_csv(filepath: str | Path) -> list[Candle]:
    """Load candles written by save_csv(), sorted by timestamp."""
    filepath = Path(filepath)
    with filepath.open(newline="") as f:
        candles = [Candle.from_dict(row) for row in csv.DictReader(f)]
    candles.sort(key=lambda c: c.timestamp)
    return candles


def generate_filename(
    symbol: str,
    interval_minutes: int,
    start: datetime,
    end: datetime,
) -> str:
    """Generate a descriptive filename for the data."""
    start_str = start.strftime("%Y%m%d_%H%M")
    end_str = end.strftime("%Y%m%d_%H%M")
    return f"{symbol}_{interval_minutes}m_{start_str}_to_{end_str}.csv"
