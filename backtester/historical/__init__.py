"""
Historical data module for backtesting.

Candle data (OHLCV) from Bybit, stored as CSV, and the candle sources the
engine reads from.
"""

from backtester.historical.fetcher import BybitHistoricalFetcher, generate_filename, load_csv, save_csv
from backtester.historical.source import (
    BybitCandleSource,
    CandleSource,
    CSVCandleSource,
    InMemoryCandleSource,
)

__all__ = [
    # Download
    "BybitHistoricalFetcher",
    "generate_filename",
    "load_csv",
    "save_csv",
    # Sources
    "CandleSource",
    "BybitCandleSource",
    "CSVCandleSource",
    "InMemoryCandleSource",
]
