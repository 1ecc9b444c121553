#!/usr/bin/env python3
"""
Run a historical backtest.

Usage:
    python run_backtest.py                                    # signal_only, BTCUSDT, last 3 days from Bybit
    python run_backtest.py --strategy momentum --days 7       # Classic rule strategy
    python run_backtest.py --strategy ai                      # Advised (reads ADVISOR_* from .env)
    python run_backtest.py --data path/to/ohlcv.csv           # Offline CSV (range = file span)
    python run_backtest.py --start 2026-01-10 --end 2026-01-12 --interval 15
    python run_backtest.py --interactive                      # Pick the strategy with arrow keys
    python run_backtest.py --json > result.json               # Machine-readable output

Advised strategies (ai, ai_scalper) fall back to local signal scoring when
the advisor is unreachable.
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import questionary
from questionary import Style
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from backtester.backtest import BacktestConfig, BacktestEngine, BacktestMetrics
from backtester.core.config import AdvisorConfig
from backtester.errors import BacktestError
from backtester.historical import BybitCandleSource, CSVCandleSource, load_csv
from backtester.strategies import is_advised, list_policies

console = Console(stderr=True)

# Custom style for questionary prompts
MENU_STYLE = Style(
    [
        ("qmark", "fg:cyan bold"),
        ("question", "fg:white bold"),
        ("answer", "fg:green bold"),
        ("pointer", "fg:cyan bold"),
        ("highlighted", "fg:cyan bold"),
        ("selected", "fg:green"),
    ]
)


def parse_date(value: str) -> datetime:
    """Parse YYYY-MM-DD or a full ISO timestamp (UTC)."""
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(
            f"Invalid date: '{value}'. Expected YYYY-MM-DD or YYYY-MM-DDTHH:MM"
        ) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Replay a price history through a trading strategy")
    parser.add_argument("--symbol", "-S", default="BTCUSDT", help="Trading pair (default: BTCUSDT)")
    parser.add_argument(
        "--strategy",
        "-p",
        default="signal_only",
        choices=[name for name, _ in list_policies()],
        help="Strategy to replay (default: signal_only)",
    )
    parser.add_argument("--start", type=parse_date, help="Start date (UTC)")
    parser.add_argument("--end", type=parse_date, help="End date (UTC, default: now)")
    parser.add_argument("--days", type=float, default=3.0, help="Days to replay when --start is omitted (default: 3)")
    parser.add_argument("--balance", "-b", type=float, default=10000.0, help="Starting balance (default: 10000)")
    parser.add_argument("--trade-amount", type=float, default=1000.0, help="Quote spent per buy (default: 1000)")
    parser.add_argument("--stop-loss", type=float, default=2.0, help="Stop-loss percent (default: 2.0)")
    parser.add_argument("--take-profit", type=float, default=4.0, help="Take-profit percent (default: 4.0)")
    parser.add_argument("--interval", type=int, help="Candle interval in minutes (default: by date range)")
    parser.add_argument("--confidence", type=float, help="Advisor confidence threshold (default: per strategy)")
    parser.add_argument(
        "--confluence-gate",
        action="store_true",
        help="Advised entries also need a tradeable multi-timeframe confluence",
    )
    parser.add_argument("--no-advisor", action="store_true", help="Run advised strategies on local scoring only")
    parser.add_argument("--data", "-d", type=Path, help="CSV candle file (default: download from Bybit)")
    parser.add_argument("--interactive", "-i", action="store_true", help="Pick the strategy interactively")
    parser.add_argument("--json", action="store_true", help="Print results as JSON on stdout")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    return parser


async def select_strategy() -> str | None:
    """Let user select a strategy using arrow keys."""
    choices = [questionary.Choice(title=f"{name}: {desc}", value=name) for name, desc in list_policies()]
    return await questionary.select(
        "Select a strategy:",
        choices=choices,
        style=MENU_STYLE,
        use_arrow_keys=True,
    ).ask_async()


def resolve_range(args: argparse.Namespace) -> tuple[datetime, datetime]:
    """Date range from the flags, or the data file's span when only --data is given."""
    if args.data and args.start is None and args.end is None:
        candles = load_csv(args.data)
        if candles:
            return candles[0].timestamp, candles[-1].timestamp

    end = args.end or datetime.now(timezone.utc).replace(tzinfo=None, second=0, microsecond=0)
    start = args.start or end - timedelta(days=args.days)
    return start, end


async def run_with_progress(engine: BacktestEngine) -> BacktestMetrics:
    """Run the engine while a progress bar polls its progress channel."""
    task = asyncio.create_task(engine.run())
    with Progress(
        SpinnerColumn(),
        TextColumn("[bold]{task.fields[phase]:<11}"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        bar = progress.add_task("Starting...", total=100, phase="")
        while not task.done():
            snapshot = engine.progress.snapshot()
            progress.update(bar, completed=snapshot.percent, description=snapshot.message, phase=snapshot.phase.value)
            await asyncio.sleep(0.1)
    return await task


async def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    strategy = args.strategy
    if args.interactive:
        strategy = await select_strategy()
        if strategy is None:
            return 1

    if args.data and not args.data.exists():
        console.print(f"[red]❌ Data file not found: {args.data}[/red]")
        return 1

    start, end = resolve_range(args)
    advisor = None
    if is_advised(strategy) and not args.no_advisor:
        advisor = AdvisorConfig.from_env()

    try:
        config = BacktestConfig(
            symbol=args.symbol,
            strategy=strategy,
            start_date=start,
            end_date=end,
            starting_balance=args.balance,
            trade_amount=args.trade_amount,
            stop_loss_percent=args.stop_loss,
            take_profit_percent=args.take_profit,
            interval_minutes=args.interval,
            advisor=advisor,
            ai_confidence_threshold=args.confidence,
            confluence_gate=args.confluence_gate,
        )
    except ValueError as e:
        parser.error(str(e))

    source = CSVCandleSource(args.data) if args.data else BybitCandleSource(until=end)

    console.print()
    console.print("[bold]🚀 BACKTEST CONFIGURATION[/bold]")
    console.print(f"  Symbol:    {config.symbol}")
    console.print(f"  Strategy:  {config.strategy}")
    console.print(f"  Range:     {config.start_date:%Y-%m-%d %H:%M} → {config.end_date:%Y-%m-%d %H:%M} UTC")
    console.print(f"  Data:      {args.data or 'Bybit download'}")
    console.print(f"  Balance:   ${config.starting_balance:,.2f} (${config.trade_amount:,.2f} per trade)")
    if advisor is not None:
        console.print(f"  Advisor:   {advisor.resolved_model} @ {advisor.base_url}")
    console.print()

    engine = BacktestEngine(config, source)
    try:
        metrics = await run_with_progress(engine)
    except (BacktestError, httpx.HTTPError, RuntimeError) as e:
        console.print(f"[red]❌ {e}[/red]")
        return 1

    if args.json:
        print(json.dumps(metrics.to_dict(), indent=2))
    else:
        metrics.print_summary(Console())
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
