"""
Backtest Engine - Replays a price history through a decision policy.

Flow: Candle Source → Indicators/Confluence → Decision Policy → Position Manager → Metrics

The engine fetches the candles of the requested range, walks them one by
one, tracks equity and drawdown, lets the position manager enforce the
policy's exit rules, asks the policy for a decision on the candles it wants
to be asked about, and finally aggregates the fills into BacktestMetrics.
"""

import asyncio
import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from backtester.ai.advisor_client import AdvisorClient
from backtester.backtest.metrics import calculate_metrics
from backtester.backtest.models import BacktestConfig, BacktestMetrics, EquityPoint, Trade
from backtester.backtest.position_manager import PositionManager
from backtester.backtest.progress import Phase, ProgressTracker
from backtester.core.candle import Candle
from backtester.errors import InsufficientDataError
from backtester.historical.source import CandleSource, InMemoryCandleSource
from backtester.strategies import Action, get_policy, is_advised

if TYPE_CHECKING:
    from backtester.ai.advisor_client import Advisor

logger = logging.getLogger(__name__)

MIN_CANDLES = 30
EQUITY_SAMPLE_EVERY = 10
PROGRESS_EVERY = 50

END_OF_BACKTEST = "end of backtest"


def select_interval(config: BacktestConfig) -> int:
    """
    Candle interval for a run.

    The configured interval wins; otherwise 5 min up to 3 days, 15 min up
    to 7 days, 30 min beyond.
    """
    if config.interval_minutes:
        return config.interval_minutes
    days = config.duration_days
    if days <= 3:
        return 5
    if days <= 7:
        return 15
    return 30


class BacktestEngine:
    """
    Runs one backtest.

    Each engine owns its balance, position, policy state and progress
    tracker; run several engines concurrently for parallel runs.

    Usage:
        engine = BacktestEngine(config, CSVCandleSource("data/btc.csv"))
        metrics = await engine.run()
    """

    def __init__(
        self,
        config: BacktestConfig,
        source: CandleSource,
        advisor: "Advisor | None" = None,
    ) -> None:
        """
        Initialize the backtest engine.

        Args:
            config: Backtest configuration
            source: Where candles come from
            advisor: Optional advisor (created from config.advisor for
                advised strategies when not provided)
        """
        self.config = config
        self.source = source
        self.progress = ProgressTracker()
        self._advisor = advisor
        self._owns_advisor = False

    async def run(self) -> BacktestMetrics:
        """
        Execute the backtest.

        Returns:
            BacktestMetrics for the run

        Raises:
            InsufficientDataError: Fewer than 30 candles in the range
        """
        if self._advisor is None and self.config.advisor is not None and is_advised(self.config.strategy):
            self._advisor = AdvisorClient(self.config.advisor)
            self._owns_advisor = True

        try:
            return await self._run()
        except Exception as e:
            self.progress.fail(str(e))
            logger.error(f"Backtest failed for {self.config.symbol}: {e}")
            raise
        finally:
            if self._owns_advisor and isinstance(self._advisor, AdvisorClient):
                await self._advisor.close()
                self._advisor = None
                self._owns_advisor = False

    async def _run(self) -> BacktestMetrics:
        config = self.config
        progress = self.progress

        progress.update(Phase.FETCHING, 0, "Initializing backtest...")
        interval = select_interval(config)
        run_config = replace(config, interval_minutes=interval)
        policy = get_policy(config.strategy, run_config, self._advisor)
        policy.reset()

        logger.info(
            f"Backtest {config.symbol} [{policy.name}] "
            f"{config.start_date:%Y-%m-%d %H:%M} → {config.end_date:%Y-%m-%d %H:%M}, "
            f"{config.duration_days:.1f} days, {interval}-min candles"
        )

        progress.update(Phase.FETCHING, 5, "Fetching historical price data...")
        fetched = await asyncio.to_thread(self.source.fetch_candles, config.symbol, interval, config.start_date)
        logger.info(f"Loaded {len(fetched)} candles ({interval}-min interval)")

        progress.update(Phase.CALCULATING, 10, "Filtering and preparing candle data...")
        candles = [c for c in fetched if config.start_date <= c.timestamp <= config.end_date]
        if len(candles) < MIN_CANDLES:
            raise InsufficientDataError(config.symbol, len(candles), MIN_CANDLES)

        total = len(candles)
        progress.update(
            Phase.SIMULATING, 15, f"Processing {total} candles...", current_candle=0, total_candles=total
        )

        manager = PositionManager(config.starting_balance, config.trade_amount, policy.exit_rules(run_config))
        trades: list[Trade] = []
        equity_curve: list[EquityPoint] = []
        returns: list[float] = []
        peak = config.starting_balance
        last_equity = config.starting_balance
        max_drawdown = 0.0
        max_drawdown_percent = 0.0

        for i, candle in enumerate(candles):
            if i % PROGRESS_EVERY == 0:
                progress.update(
                    Phase.SIMULATING,
                    round(15 + i / total * 75),
                    f"Processing candle {i + 1} of {total}...",
                    current_candle=i + 1,
                    advisory_calls=policy.advisory_calls,
                )

            price = candle.close
            equity = manager.equity(price)
            if i % EQUITY_SAMPLE_EVERY == 0:
                equity_curve.append(EquityPoint(candle.timestamp, equity))

            returns.append((equity - last_equity) / last_equity * 100)
            last_equity = equity

            if equity > peak:
                peak = equity
            drawdown = peak - equity
            if drawdown > max_drawdown:
                max_drawdown = drawdown
                max_drawdown_percent = drawdown / peak * 100

            if manager.is_open:
                exit_signal = manager.check_exit(price, candle.timestamp)
                if exit_signal is not None:
                    logger.debug(f"[{i}] {exit_signal.reason}: {exit_signal.message}")
                    self._record(trades, manager.close(price, candle.timestamp, exit_signal.message))
                    continue

            if not policy.should_evaluate(i, manager.position):
                continue

            decision = await policy.decide(candles, i, manager.position, run_config)
            if not policy.accepts(decision, run_config):
                continue

            if decision.action == Action.BUY and not manager.is_open:
                reason = decision.reasoning or f"{policy.name} entry signal"
                self._record(trades, manager.open(price, candle.timestamp, reason))
            elif decision.action == Action.SELL and manager.is_open:
                reason = decision.reasoning or f"{policy.name} exit signal"
                self._record(trades, manager.close(price, candle.timestamp, reason))

        progress.update(
            Phase.FINALIZING,
            95,
            "Calculating performance metrics...",
            current_candle=total,
            advisory_calls=policy.advisory_calls,
        )

        if manager.is_open:
            last = candles[-1]
            self._record(trades, manager.close(last.close, last.timestamp, END_OF_BACKTEST))

        metrics = calculate_metrics(
            trades=trades,
            equity_curve=equity_curve,
            returns=returns,
            starting_balance=config.starting_balance,
            ending_balance=manager.balance,
            max_drawdown=max_drawdown,
            max_drawdown_percent=max_drawdown_percent,
            interval_minutes=interval,
            advisory_calls=policy.advisory_calls,
        )

        progress.update(Phase.COMPLETE, 100, "Backtest complete!", advisory_calls=policy.advisory_calls)
        logger.info(
            f"Backtest complete: {metrics.total_trades} trades, "
            f"P/L {metrics.total_profit_loss:+.2f} ({metrics.total_profit_loss_percent:+.2f}%), "
            f"{metrics.advisory_calls} advisor calls"
        )
        return metrics

    @staticmethod
    def _record(trades: list[Trade], trade: Trade | None) -> None:
        if trade is not None:
            trades.append(trade)


async def run_backtest(
    config: BacktestConfig,
    candles: list[Candle] | None = None,
    source: CandleSource | None = None,
    advisor: "Advisor | None" = None,
) -> BacktestMetrics:
    """
    Convenience wrapper: run one backtest from a candle list or a source.

    Example:
        >>> metrics = await run_backtest(config, candles=candles)
    """
    if source is None:
        if candles is None:
            raise ValueError("either candles or source is required")
        source = InMemoryCandleSource(candles)
    return await BacktestEngine(config, source, advisor).run()
