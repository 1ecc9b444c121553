"""
Externally-advised policy.

Local signal scoring decides; the advisor confirms. Each evaluation:

1. Higher-timeframe filter (1h/4h alignment) can veto new entries
2. Bull/bear points from the last 51 candles
3. Low-volatility filter
4. Context text (snapshot, confluence, alignment, score) sent to the advisor
5. Entry/exit rules on the local score, with a confidence bonus when the
   advisor agrees

When the advisor is missing, fails, or replies with nothing usable, the
same scoring runs without the bonus.
"""

import logging

from backtester.ai.models import AdvisorReply
from backtester.ai.prompts import build_advised_prompt, position_status
from backtester.confluence import (
    ConfluenceResult,
    MultiTimeframeAnalysis,
    analyze_multiple_timeframes,
    confluence_from_history,
    format_confluence_for_advisor,
)
from backtester.confluence.trend import ALIGNED_BEAR, ALIGNED_BULL
from backtester.core.candle import Candle, closes, highs, lows
from backtester.core.timeframes import TimeframeCache
from backtester.indicators import (
    bollinger_bands,
    calculate_snapshot,
    ema,
    format_snapshot_for_advisor,
    macd,
    rate_of_change,
    rsi,
)

from .base import (
    MIN_ADVISED_INDEX,
    Action,
    Decision,
    DecisionPolicy,
    ExitRules,
    change_percent,
    recent_range_percent,
    window,
)

logger = logging.getLogger(__name__)

ADVISED_WINDOW = 51
DEFAULT_INTERVAL_MINUTES = 5

ENTRY_SCORE = 4.5
ENTRY_RATIO = 1.3
EXIT_SCORE = 3.5
EXIT_RATIO = 1.2
TAKE_PROFIT_PNL = 1.5
STOP_LOSS_PNL = -1.0
MIN_ATR_PERCENT = 0.08

TRAILING_PERCENT = 1.0
TRAILING_MIN_PROFIT = 0.5
TIMEOUT_MINUTES = 240


class AdvisedPolicy(DecisionPolicy):
    """Signal scoring confirmed by an external advisor."""

    name = "ai"
    description = "Multi-timeframe scoring confirmed by an external advisor"
    default_confidence_threshold = 65.0

    def __init__(self, config, advisor=None):
        super().__init__(config, advisor)
        self._cache: TimeframeCache | None = None

    def reset(self) -> None:
        super().reset()
        self._cache = None

    def exit_rules(self, config) -> ExitRules:
        return ExitRules(
            trailing_percent=config.trailing_percent or TRAILING_PERCENT,
            trailing_min_profit=TRAILING_MIN_PROFIT,
            stop_loss_percent=config.stop_loss_percent,
            take_profit_percent=config.take_profit_percent,
            timeout_minutes=config.timeout_minutes or TIMEOUT_MINUTES,
        )

    def should_evaluate(self, index, position) -> bool:
        """Every 12 candles, every 6 while holding."""
        return index % 12 == 0 or (position is not None and index % 6 == 0)

    def interval(self, config) -> int:
        return config.interval_minutes or DEFAULT_INTERVAL_MINUTES

    def confluence(self, history: list[Candle], index: int, config) -> ConfluenceResult:
        """Confluence over every timeframe derivable from the history so far."""
        interval = self.interval(config)
        if self._cache is None or self._cache.base_interval_minutes != interval:
            self._cache = TimeframeCache(interval)
        return confluence_from_history(config.symbol, history[: index + 1], self._cache)

    def entry_blocked(self, confluence: ConfluenceResult, config) -> bool:
        """True when the confluence gate is on and the consensus does not support a long."""
        if not config.confluence_gate:
            return False
        return not (confluence.should_trade and confluence.confluence_score > 0)

    def multi_timeframe(self, history: list[Candle], index: int, config) -> MultiTimeframeAnalysis:
        return analyze_multiple_timeframes(history[: index + 1], self.interval(config))

    async def decide(self, history, index, position, config) -> Decision:
        if index < MIN_ADVISED_INDEX:
            return Decision.hold("Insufficient data")

        mtf = self.multi_timeframe(history, index, config)
        if position is None and not mtf.can_trade:
            return Decision.hold(f"MTF Filter: {mtf.description}", 20)
        if position is None and mtf.alignment == ALIGNED_BEAR:
            return Decision.hold(f"HTF Bearish - not entering longs: {mtf.htf_4h.description}", 15)

        candles = window(history, index, ADVISED_WINDOW)
        prices = closes(candles)
        price = prices[-1]

        rsi_value = rsi(prices, config.rsi_period)
        ema_fast = ema(prices, config.ema_fast)
        ema_slow = ema(prices, config.ema_slow)
        ema50 = ema(prices, 50)
        macd_result = macd(prices)
        bands = bollinger_bands(prices, 20)
        momentum = rate_of_change(prices, 10)
        atr_pct = recent_range_percent(candles)

        bull = 0.0
        bear = 0.0
        if rsi_value is not None:
            if rsi_value < 30:
                bull += 2
            if rsi_value > 70:
                bear += 2
        if ema_fast is not None and ema_slow is not None:
            if ema_fast > ema_slow:
                bull += 1.5
            if ema_fast < ema_slow:
                bear += 1.5
        if ema50 is not None:
            if price > ema50:
                bull += 1
            if price < ema50:
                bear += 1
        if macd_result is not None and macd_result.histogram is not None:
            if macd_result.histogram > 0:
                bull += 1
            if macd_result.histogram < 0:
                bear += 1
        if bands is not None:
            percent_b = bands.percent_b(price)
            if percent_b < 20:
                bull += 1.5
            if percent_b > 80:
                bear += 1.5
        if momentum is not None:
            if momentum > 1:
                bull += 1
            if momentum < -1:
                bear += 1
        if mtf.alignment == ALIGNED_BULL:
            bull += 2

        if atr_pct < MIN_ATR_PERCENT and position is None:
            return Decision.hold(f"Low volatility (ATR {atr_pct:.3f}%) - skipping", 30)

        confluence = self.confluence(history, index, config)
        snapshot = calculate_snapshot(prices, highs(candles), lows(candles))
        prompt = build_advised_prompt(
            mtf=mtf,
            confluence_text=format_confluence_for_advisor(confluence),
            snapshot_text=format_snapshot_for_advisor(snapshot, config.symbol),
            interval_minutes=self.interval(config),
            timestamp=history[index].timestamp.isoformat(),
            price=price,
            atr_percent=atr_pct,
            change_1h=change_percent(prices, 12),
            change_4h=change_percent(prices, 48),
            bull=bull,
            bear=bear,
            position=position_status(position.entry_price if position else None, price),
            stop_loss=config.stop_loss_percent,
            take_profit=config.take_profit_percent,
        )
        reply = await self.consult(prompt)

        if position is None:
            if bull >= ENTRY_SCORE and bull > bear * ENTRY_RATIO and not self.entry_blocked(confluence, config):
                return self._entry(bull, bear, reply)
        else:
            exit_decision = self._exit(position.pnl_percent(price), bull, bear, rsi_value)
            if exit_decision is not None:
                return exit_decision

        if reply is None:
            return Decision.hold("No strong signal", 50)
        return Decision.hold(reply.reasoning or "Waiting for stronger signal", reply.confidence)

    def _entry(self, bull: float, bear: float, reply: AdvisorReply | None) -> Decision:
        confidence = min(85, 55 + bull * 5)
        if reply is None:
            return Decision(Action.BUY, confidence, f"Signal buy: Bull {bull:.1f}")

        confirmed = reply.action == "buy"
        if confirmed:
            confidence = min(95, confidence + 10)
        return Decision(
            Action.BUY,
            confidence,
            f"Signal score: Bull {bull:.1f} vs Bear {bear:.1f}{' (AI confirms)' if confirmed else ''}",
        )

    def _exit(self, pnl: float, bull: float, bear: float, rsi_value: float | None) -> Decision | None:
        if pnl >= TAKE_PROFIT_PNL:
            return Decision(Action.SELL, 85, f"Take profit: {pnl:.2f}%")
        if pnl <= STOP_LOSS_PNL:
            return Decision(Action.SELL, 80, f"Stop loss: {pnl:.2f}%")
        if bear >= EXIT_SCORE and bear > bull * EXIT_RATIO:
            return Decision(Action.SELL, min(80, 55 + bear * 5), f"Exit: Bear score {bear:.1f} (P/L: {pnl:.2f}%)")
        if rsi_value is not None and rsi_value > 70 and pnl > 0.5:
            return Decision(Action.SELL, 75, f"RSI overbought {rsi_value:.0f}, locking {pnl:.2f}%")
        return None
