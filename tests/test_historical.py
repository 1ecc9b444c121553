#!/usr/bin/env python3
"""
Tests for the Bybit fetcher, CSV storage, candle sources and the download CLI.

Run with:
    python -m pytest tests/test_historical.py -v
"""

import argparse
import sys
from datetime import datetime, timedelta
from pathlib import Path

import httpx
import pytest

# Add project root to path for standalone execution
sys.path.insert(0, str(Path(__file__).parent.parent))

from backtester.core.candle import Candle
from backtester.historical import (
    BybitCandleSource,
    BybitHistoricalFetcher,
    CSVCandleSource,
    InMemoryCandleSource,
    generate_filename,
    load_csv,
    save_csv,
)
from backtester.historical import cli
from backtester.historical.fetcher import candle_from_bybit, to_millis
from backtester.historical.source import detect_interval, resample

T0 = datetime(2026, 1, 1)
MINUTE_MS = 60_000


def make_candles(count: int, interval_minutes: int = 5, start: datetime = T0) -> list[Candle]:
    return [
        Candle(
            timestamp=start + timedelta(minutes=i * interval_minutes),
            open=100.0 + i,
            high=101.0 + i,
            low=99.0 + i,
            close=100.5 + i,
            volume=2.0,
        )
        for i in range(count)
    ]


def kline_row(ms: int, price: float = 100.0) -> list[str]:
    return [str(ms), str(price), str(price + 1), str(price - 1), str(price + 0.5), "10", "1000"]


def bybit_response(rows: list[list[str]], ret_code: int = 0, ret_msg: str = "OK") -> httpx.Response:
    return httpx.Response(200, json={"retCode": ret_code, "retMsg": ret_msg, "result": {"list": rows}})


def paging_handler(start_ms: int, interval_minutes: int, page_size: int, requests: list):
    """Serve newest-first pages of every candle at or before the requested end."""

    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        requests.append(dict(params))
        end = int(params["end"])
        step = interval_minutes * MINUTE_MS
        newest = start_ms + (end - start_ms) // step * step
        rows = [kline_row(ms) for ms in range(newest, start_ms - 1, -step)][:page_size]
        return bybit_response(rows)

    return handler


def fetcher_with(handler) -> BybitHistoricalFetcher:
    return BybitHistoricalFetcher(client=httpx.Client(transport=httpx.MockTransport(handler)), pause=0)


class TestBybitRows:
    """Tests for kline row conversion."""

    def test_to_millis_naive_is_utc(self):
        assert to_millis(T0) == 1767225600000

    def test_candle_from_bybit(self):
        candle = candle_from_bybit(["1767225600000", "1.0", "2.0", "0.5", "1.5", "10", "15"])
        assert candle.timestamp == T0
        assert candle.timestamp.tzinfo is None
        assert (candle.open, candle.high, candle.low, candle.close, candle.volume) == (1.0, 2.0, 0.5, 1.5, 10.0)


class TestFetcher:
    """Tests for paginated kline downloads against a mock transport."""

    def test_paginates_backwards(self):
        requests = []
        start = T0
        end = T0 + timedelta(minutes=30)
        with fetcher_with(paging_handler(to_millis(start), 5, 3, requests)) as fetcher:
            candles = fetcher.fetch("BTCUSDT", start, end, 5)

        # End is exclusive: 00:00 .. 00:25
        assert [c.timestamp for c in candles] == [T0 + timedelta(minutes=5 * i) for i in range(6)]
        assert len(requests) == 3
        assert requests[0]["end"] == str(to_millis(end))
        assert requests[1]["end"] == str(to_millis(T0 + timedelta(minutes=20)) - 1)
        assert requests[0]["symbol"] == "BTCUSDT"
        assert requests[0]["category"] == "spot"
        assert requests[0]["interval"] == "5"

    def test_duplicates_removed(self):
        start_ms = to_millis(T0)
        pages = [
            [kline_row(start_ms + 10 * MINUTE_MS), kline_row(start_ms + 10 * MINUTE_MS), kline_row(start_ms + 5 * MINUTE_MS)],
            [kline_row(start_ms + 5 * MINUTE_MS), kline_row(start_ms)],
        ]

        def handler(request):
            return bybit_response(pages.pop(0) if pages else [])

        with fetcher_with(handler) as fetcher:
            candles = fetcher.fetch("BTCUSDT", T0, T0 + timedelta(minutes=15), 5)
        assert [c.timestamp for c in candles] == [T0, T0 + timedelta(minutes=5), T0 + timedelta(minutes=10)]

    def test_empty_page_stops(self):
        with fetcher_with(lambda request: bybit_response([])) as fetcher:
            assert fetcher.fetch("BTCUSDT", T0, T0 + timedelta(hours=1), 5) == []

    def test_api_error(self):
        with fetcher_with(lambda request: bybit_response([], ret_code=10001, ret_msg="params error")) as fetcher:
            with pytest.raises(RuntimeError, match="params error"):
                fetcher.fetch("BTCUSDT", T0, T0 + timedelta(hours=1), 5)

    def test_http_error(self):
        with fetcher_with(lambda request: httpx.Response(503)) as fetcher:
            with pytest.raises(httpx.HTTPStatusError):
                fetcher.fetch("BTCUSDT", T0, T0 + timedelta(hours=1), 5)

    def test_unsupported_interval(self):
        with fetcher_with(lambda request: bybit_response([])) as fetcher:
            with pytest.raises(ValueError, match="Unsupported Bybit interval"):
                fetcher.fetch("BTCUSDT", T0, T0 + timedelta(hours=1), 7)


class TestCsvStorage:
    """Tests for CSV save/load."""

    def test_save_and_load_sorted(self, tmp_path):
        candles = make_candles(5)
        path = save_csv(list(reversed(candles)), tmp_path / "nested" / "btc.csv")
        assert path.exists()
        assert path.read_text().splitlines()[0] == "timestamp,open,high,low,close,volume"
        assert load_csv(path) == candles

    def test_generate_filename(self):
        name = generate_filename("ETHUSDT", 15, datetime(2026, 1, 12, 10, 15), datetime(2026, 1, 14, 9, 0))
        assert name == "ETHUSDT_15m_20260112_1015_to_20260114_0900.csv"


class TestCandleSources:
    """Tests for the sources the engine reads from."""

    def test_detect_interval(self):
        assert detect_interval(make_candles(4, 15)) == 15
        assert detect_interval(make_candles(1)) is None

    def test_resample_merges_finer_candles(self):
        merged = resample(make_candles(10, 1), 5)
        assert len(merged) == 2
        assert merged[0].open == 100.0
        assert merged[0].close == 104.5
        assert merged[0].high == 105.0
        assert merged[0].volume == 10.0
        assert merged[1].timestamp == T0 + timedelta(minutes=5)

    def test_resample_incompatible_unchanged(self):
        candles = make_candles(6, 5)
        assert resample(candles, 7) == candles
        assert resample(candles, 1) == candles

    def test_in_memory_since_filter(self):
        source = InMemoryCandleSource(list(reversed(make_candles(10))))
        candles = source.fetch_candles("BTCUSDT", 5, T0 + timedelta(minutes=20))
        assert len(candles) == 6
        assert candles[0].timestamp == T0 + timedelta(minutes=20)

    def test_in_memory_resample_opt_in(self):
        source = InMemoryCandleSource(make_candles(10, 1), resample_to_interval=True)
        assert len(source.fetch_candles("BTCUSDT", 5, T0)) == 2
        assert len(InMemoryCandleSource(make_candles(10, 1)).fetch_candles("BTCUSDT", 5, T0)) == 10

    def test_csv_source(self, tmp_path):
        path = save_csv(make_candles(30, 1), tmp_path / "btc_1m.csv")
        source = CSVCandleSource(path)
        candles = source.fetch_candles("BTCUSDT", 15, T0)
        assert len(candles) == 2
        assert candles[1].timestamp == T0 + timedelta(minutes=15)
        # Loaded once
        path.unlink()
        assert len(source.fetch_candles("BTCUSDT", 5, T0)) == 6

    def test_bybit_source_includes_end_candle(self):
        class RecordingFetcher:
            def __init__(self):
                self.calls = []

            def fetch(self, symbol, start, end, interval_minutes):
                self.calls.append((symbol, start, end, interval_minutes))
                return []

        fetcher = RecordingFetcher()
        until = T0 + timedelta(hours=2)
        BybitCandleSource(until=until, fetcher=fetcher).fetch_candles("BTCUSDT", 15, T0)
        assert fetcher.calls == [("BTCUSDT", T0, until + timedelta(minutes=15), 15)]


class TestDownloadCli:
    """Tests for the download command."""

    def test_parse_datetime(self):
        assert cli.parse_datetime("12-01-2026:10-15") == datetime(2026, 1, 12, 10, 15)

    def test_parse_datetime_invalid(self):
        with pytest.raises(argparse.ArgumentTypeError):
            cli.parse_datetime("2026-01-12 10:15")

    def test_rejects_unsupported_interval(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["--interval", "7"])

    def test_end_before_start(self):
        with pytest.raises(SystemExit):
            cli.main(["--start", "12-01-2026:11-00", "--end", "12-01-2026:10-00"])

    def test_main_writes_csv(self, tmp_path, monkeypatch):
        class FakeFetcher:
            def __init__(self, category="spot"):
                self.category = category

            def __enter__(self):
                return self

            def __exit__(self, *args):
                return None

            def fetch(self, symbol, start, end, interval_minutes):
                return make_candles(12, interval_minutes, start)

        monkeypatch.setattr(cli, "BybitHistoricalFetcher", FakeFetcher)
        code = cli.main(
            ["--start", "12-01-2026:10-00", "--end", "12-01-2026:11-00", "--output", str(tmp_path), "--filename", "out.csv"]
        )
        assert code == 0
        assert len(load_csv(tmp_path / "out.csv")) == 12

    def test_main_reports_api_error(self, tmp_path, monkeypatch):
        class FailingFetcher:
            def __init__(self, category="spot"):
                pass

            def __enter__(self):
                return self

            def __exit__(self, *args):
                return None

            def fetch(self, symbol, start, end, interval_minutes):
                raise RuntimeError("Bybit API error: params error")

        monkeypatch.setattr(cli, "BybitHistoricalFetcher", FailingFetcher)
        assert cli.main(["--output", str(tmp_path)]) == 1
