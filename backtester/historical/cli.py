#!/usr/bin/env python3
"""
CLI for fetching historical candles from Bybit.

Usage:
    python -m backtester.historical.cli --start 12-01-2026:10-15 --end 12-01-2026:11-15

If no start/end provided, fetches the last hour of data.
"""

import argparse
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
from rich.console import Console
from rich.table import Table

from backtester.historical.fetcher import SUPPORTED_INTERVALS, BybitHistoricalFetcher, generate_filename, save_csv

console = Console()


def parse_datetime(value: str) -> datetime:
    """
    Parse datetime from format: dd-mm-yyyy:hh-mm

    Examples:
        12-01-2026:10-15 -> 2026-01-12 10:15:00
        01-12-2025:09-30 -> 2025-12-01 09:30:00
    """
    try:
        return datetime.strptime(value, "%d-%m-%Y:%H-%M")
    except ValueError as e:
        raise argparse.ArgumentTypeError(
            f"Invalid datetime format: '{value}'. Expected: dd-mm-yyyy:hh-mm (e.g., 12-01-2026:10-15)"
        ) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fetch historical kline data from Bybit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Fetch most recent 1 hour (default)
    %(prog)s

    # Fetch specific time range
    %(prog)s --start 12-01-2026:10-15 --end 12-01-2026:11-15

    # Fetch with specific symbol and interval
    %(prog)s --start 12-01-2026:10-00 --end 14-01-2026:10-00 --symbol ETHUSDT --interval 5
        """,
    )
    parser.add_argument(
        "--start",
        "-s",
        type=parse_datetime,
        default=None,
        help="Start time (UTC) in format dd-mm-yyyy:hh-mm (default: 1 hour ago)",
    )
    parser.add_argument(
        "--end",
        "-e",
        type=parse_datetime,
        default=None,
        help="End time (UTC) in format dd-mm-yyyy:hh-mm (default: now)",
    )
    parser.add_argument("--symbol", "-S", default="BTCUSDT", help="Trading pair symbol (default: BTCUSDT)")
    parser.add_argument(
        "--interval",
        "-i",
        type=int,
        default=5,
        choices=SUPPORTED_INTERVALS,
        help="Candle interval in minutes (default: 5)",
    )
    parser.add_argument(
        "--category",
        "-c",
        default="spot",
        choices=["spot", "linear", "inverse"],
        help="Market category (default: spot)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        default=Path("data/historical"),
        help="Output directory (default: data/historical/)",
    )
    parser.add_argument("--filename", "-f", help="Custom output filename (default: auto-generated)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Default time range: last 1 hour
    if args.end is None:
        args.end = datetime.now(timezone.utc).replace(tzinfo=None, second=0, microsecond=0)
    if args.start is None:
        args.start = args.end - timedelta(hours=1)

    if args.end <= args.start:
        parser.error("End time must be after start time")

    console.print()
    console.print("[bold]🔄 Fetching historical data from Bybit[/bold]")
    console.print(f"   Symbol:   {args.symbol}")
    console.print(f"   Category: {args.category}")
    console.print(f"   Interval: {args.interval}m")
    console.print(f"   Start:    {args.start:%Y-%m-%d %H:%M:%S} UTC")
    console.print(f"   End:      {args.end:%Y-%m-%d %H:%M:%S} UTC")
    console.print()

    try:
        with BybitHistoricalFetcher(category=args.category) as fetcher:
            candles = fetcher.fetch(
                symbol=args.symbol,
                start=args.start,
                end=args.end,
                interval_minutes=args.interval,
            )
    except (httpx.HTTPError, RuntimeError) as e:
        console.print(f"\n[red]❌ Error: {e}[/red]")
        return 1

    if not candles:
        console.print("[red]❌ No data received for the specified time range[/red]")
        return 1

    filename = args.filename or generate_filename(args.symbol, args.interval, args.start, args.end)
    filepath = save_csv(candles, args.output / filename)

    prices = [c.close for c in candles]
    summary = Table(title="📊 Summary", show_header=False, title_justify="left")
    summary.add_row("Candles", str(len(candles)))
    summary.add_row("Time span", f"{(args.end - args.start).total_seconds() / 3600:.1f}h")
    summary.add_row("Price range", f"${min(prices):,.2f} - ${max(prices):,.2f}")
    summary.add_row("Volume", f"{sum(c.volume for c in candles):,.2f}")
    summary.add_row("File", str(filepath))
    console.print(summary)
    console.print("✅ Done!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
