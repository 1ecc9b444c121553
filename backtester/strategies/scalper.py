"""
Scalper policy - short-horizon advised scalping with a watching state.

The watching state is an explicit value: decide_with_state() takes the
previous state and returns the next one alongside the decision, so a run
can be replayed deterministically from any point.

Watching semantics:
- A setup (pullback, fresh EMA cross, momentum build-up, bull lead) starts
  or continues a watch; consecutive_setups counts candles it persisted.
- A watch expires after 12 candles without a buy or sell.
- While a watch is open and nothing new triggers, the decision is
  WATCHING and the advisor is not called.
- Acting (buy or sell) always resets the state.
"""

import logging
from dataclasses import dataclass, replace

from backtester.ai.prompts import build_scalper_prompt, position_status
from backtester.confluence import format_confluence_for_advisor
from backtester.confluence.trend import ALIGNED_BEAR, ALIGNED_BULL
from backtester.core.candle import closes
from backtester.indicators import bollinger_bands, ema, macd, rate_of_change, rsi, volume_ratio, vwap

from .advised import AdvisedPolicy
from .base import MIN_ADVISED_INDEX, Action, Decision, ExitRules, change_percent, recent_range_percent, window

logger = logging.getLogger(__name__)

SCALPER_WINDOW = 101
NARRATIVE_CANDLES = 12
VWAP_CANDLES = 50
WATCH_EXPIRY_CANDLES = 12

EXIT_SCORE = 3.0
SCORE_RATIO = 1.1
SCALP_STOP_PNL = 0.3

TRAILING_PERCENT = 0.15
TIMEOUT_MINUTES = 15


@dataclass(frozen=True)
class WatchingState:
    """Setup the scalper is tracking between candles."""

    pattern: str | None = None
    since: int = 0
    last_score: float = 0.0
    consecutive_setups: int = 0

    @property
    def is_watching(self) -> bool:
        return self.pattern is not None


RESET_STATE = WatchingState()


class ScalperPolicy(AdvisedPolicy):
    """Aggressive advised scalping on the micro-trend."""

    name = "ai_scalper"
    description = "Advised scalping on EMA5/20 micro-trend with watching mode"
    default_confidence_threshold = 55.0

    def __init__(self, config, advisor=None):
        super().__init__(config, advisor)
        self.state = RESET_STATE

    def reset(self) -> None:
        super().reset()
        self.state = RESET_STATE

    def exit_rules(self, config) -> ExitRules:
        return ExitRules(
            trailing_percent=config.trailing_percent or TRAILING_PERCENT,
            stop_loss_percent=config.scalping_stop_percent,
            take_profit_percent=config.scalping_target_percent,
            timeout_minutes=config.timeout_minutes or TIMEOUT_MINUTES,
        )

    def should_evaluate(self, index, position) -> bool:
        """Every 3 candles, every candle while holding."""
        return index % 3 == 0 or position is not None

    async def decide(self, history, index, position, config) -> Decision:
        decision, self.state = await self.decide_with_state(history, index, position, config, self.state)
        return decision

    async def decide_with_state(
        self,
        history,
        index,
        position,
        config,
        state: WatchingState,
    ) -> tuple[Decision, WatchingState]:
        """
        Decide and compute the next watching state.

        Returns:
            (decision, next_state)
        """
        if index < MIN_ADVISED_INDEX:
            return Decision.hold("Insufficient data"), RESET_STATE

        mtf = self.multi_timeframe(history, index, config)
        if position is None and mtf.alignment == ALIGNED_BEAR:
            return Decision.hold(f"MTF Bearish - skipping scalp: {mtf.htf_1h.description}", 15), RESET_STATE

        candles = window(history, index, SCALPER_WINDOW)
        prices = closes(candles)
        price = prices[-1]

        ema5 = ema(prices, 5)
        ema20 = ema(prices, 20)
        ema_fast = ema(prices, config.ema_fast)
        ema_slow = ema(prices, config.ema_slow)
        rsi_value = rsi(prices, 14)
        momentum = rate_of_change(prices, 5) or 0.0
        bands = bollinger_bands(prices, 20)
        macd_result = macd(prices)
        roc3 = change_percent(prices, 4)
        roc5 = change_percent(prices, 6)
        volume = volume_ratio(candles, 20) or 0.0
        vwap_value = vwap(candles[-VWAP_CANDLES:]) or price
        price_vs_vwap = (price - vwap_value) / vwap_value * 100 if vwap_value else 0.0
        atr_pct = recent_range_percent(candles)

        previous = prices[:-1]
        prev_ema5 = ema(previous, 5)
        prev_ema20 = ema(previous, 20)
        micro_bullish = ema5 is not None and ema20 is not None and ema5 > ema20
        micro_bearish = ema5 is not None and ema20 is not None and ema5 < ema20
        cross_up = micro_bullish and prev_ema5 is not None and prev_ema20 is not None and prev_ema5 <= prev_ema20
        cross_down = micro_bearish and prev_ema5 is not None and prev_ema20 is not None and prev_ema5 >= prev_ema20

        trend_up = ema_fast is not None and ema_slow is not None and ema_fast > ema_slow
        trend_down = ema_fast is not None and ema_slow is not None and ema_fast < ema_slow
        pullback = trend_up and ema_fast * 0.995 <= price <= ema_fast * 1.002

        bull = 0.0
        bear = 0.0

        if micro_bullish:
            bull += 2
        else:
            bear += 2
        if cross_up:
            bull += 2
        if cross_down:
            bear += 2

        if roc3 > 0.05 and roc5 > 0:
            bull += 1
        if roc3 < -0.05 and roc5 < 0:
            bear += 1

        if ema5 is not None and ema_fast is not None:
            if ema5 > ema_fast:
                bull += 1.5
            if ema5 < ema_fast:
                bear += 1.5
        if trend_up:
            bull += 1
        if trend_down:
            bear += 1

        oversold = config.rsi_oversold
        if rsi_value is not None:
            if rsi_value < oversold:
                bull += 2
            if rsi_value > 100 - oversold:
                bear += 2
            if rsi_value < oversold + 10:
                bull += 1
            if rsi_value > 100 - oversold - 10:
                bear += 1

        if bands is not None:
            percent_b = bands.percent_b(price)
            if percent_b < 20:
                bull += 2
            if percent_b > 80:
                bear += 2

        if volume > config.volume_multiplier:
            bull += 1
            bear += 1

        if macd_result is not None and macd_result.histogram is not None:
            if macd_result.histogram > 0:
                bull += 1
            if macd_result.histogram < 0:
                bear += 1

        if momentum > 0.5:
            bull += 2
        elif momentum > 0.3:
            bull += 1
        if momentum < -0.5:
            bear += 2
        elif momentum < -0.3:
            bear += 1

        if price_vs_vwap < -0.2 and trend_up:
            bull += 1.5
        if price_vs_vwap > 0.3 and trend_down:
            bear += 1.5

        if pullback:
            bull += 2

        if mtf.alignment == ALIGNED_BULL:
            bull += 2.0
        elif mtf.htf_1h.direction == "bullish":
            bull += 1.0

        narrative_candles = candles[-NARRATIVE_CANDLES:]
        green = sum(1 for c in narrative_candles if c.is_bullish)
        red = sum(1 for c in narrative_candles if c.is_bearish)
        last_highs = [c.high for c in narrative_candles[-4:]]
        last_lows = [c.low for c in narrative_candles[-4:]]
        higher_highs = len(last_highs) == 4 and last_highs[3] > last_highs[2] > last_highs[1]
        lower_lows = len(last_lows) == 4 and last_lows[3] < last_lows[2] < last_lows[1]

        next_state = self._track(state, index, bull, bear, pullback, cross_up, green, higher_highs)

        interesting = (
            bull >= 3.5
            or mtf.alignment == ALIGNED_BULL
            or green >= 3
            or higher_highs
            or pullback
            or (rsi_value is not None and rsi_value < 40)
            or volume > 1.3
            or position is not None
        )
        if not interesting:
            if next_state.is_watching:
                return (
                    Decision(Action.WATCHING, 30, f"Watching '{next_state.pattern}' since candle {next_state.since}"),
                    next_state,
                )
            return Decision.hold("Watching... waiting for setup", 30), next_state

        choppy = atr_pct < config.anti_chop_atr
        rsi_for_prompt = rsi_value if rsi_value is not None else 50.0

        if green >= 8:
            pattern = "Strong uptrend building"
        elif red >= 8:
            pattern = "Strong downtrend"
        elif green >= 6:
            pattern = "Bullish momentum developing"
        elif red >= 6:
            pattern = "Bearish pressure"
        else:
            pattern = "Choppy/consolidating"

        if higher_highs:
            structure = "** HIGHER HIGHS - Bullish structure **"
        elif lower_lows:
            structure = "** LOWER LOWS - Bearish structure **"
        else:
            structure = ""

        watching = f"\nWATCHING: \"{state.pattern}\" for {index - state.since} candles" if state.is_watching else ""

        prompt = build_scalper_prompt(
            symbol=config.symbol,
            mtf=mtf,
            narrative=[_describe_candle(c) for c in narrative_candles],
            pattern=pattern,
            green=green,
            red=red,
            structure=structure,
            watching=watching,
            timestamp=history[index].timestamp.isoformat(),
            price=price,
            vwap=vwap_value,
            price_vs_vwap=price_vs_vwap,
            atr_percent=atr_pct,
            choppy=choppy,
            micro_bullish=micro_bullish,
            cross_up=cross_up,
            cross_down=cross_down,
            roc3=roc3,
            roc5=roc5,
            bull=bull,
            bear=bear,
            rsi=rsi_for_prompt,
            rsi_oversold=oversold,
            ema_bullish=trend_up,
            pullback=pullback,
            volume_ratio=volume,
            confluence_text=format_confluence_for_advisor(self.confluence(history, index, config)),
            position=position_status(position.entry_price if position else None, price),
            stop_loss=config.scalping_stop_percent,
            take_profit=config.scalping_target_percent,
        )
        logger.debug(f"[ai_scalper] {config.symbol} candle {index}: Bull {bull:.1f}, Bear {bear:.1f}, {pattern}")
        reply = await self.consult(prompt)

        entry_score = 4.0 if choppy else 3.0
        if position is None and bull >= entry_score and bull > bear * SCORE_RATIO:
            if not self._blocked(history, index, config):
                return self._entry(bull, price_vs_vwap, pullback, reply), RESET_STATE

        if position is not None:
            pnl = position.pnl_percent(price)
            exit_decision = self._scalp_exit(pnl, bull, bear, rsi_value, config, advised=reply is not None)
            if exit_decision is not None:
                return exit_decision, RESET_STATE

        if reply is None:
            return Decision.hold("Scalper: No signal", 50), next_state
        return Decision.hold("Scalper: Waiting for signal", reply.confidence), next_state

    def _blocked(self, history, index, config) -> bool:
        if not config.confluence_gate:
            return False
        return self.entry_blocked(self.confluence(history, index, config), config)

    def _track(
        self,
        state: WatchingState,
        index: int,
        bull: float,
        bear: float,
        pullback: bool,
        cross_up: bool,
        green: int,
        higher_highs: bool,
    ) -> WatchingState:
        """Start, continue or expire the watched setup."""
        if state.is_watching and index - state.since >= WATCH_EXPIRY_CANDLES:
            logger.debug(f"[ai_scalper] watch '{state.pattern}' expired after {index - state.since} candles")
            state = RESET_STATE

        if pullback:
            pattern = "ema pullback"
        elif cross_up:
            pattern = "micro-trend cross"
        elif higher_highs and green >= 3:
            pattern = "momentum build-up"
        elif bull >= 3.5 and bull > bear:
            pattern = "bullish score"
        else:
            pattern = None

        score = bull - bear
        if pattern is None:
            return replace(state, last_score=score) if state.is_watching else state
        if state.is_watching:
            return replace(state, last_score=score, consecutive_setups=state.consecutive_setups + 1)
        return WatchingState(pattern=pattern, since=index, last_score=score, consecutive_setups=1)

    def _entry(self, bull: float, price_vs_vwap: float, pullback: bool, reply) -> Decision:
        base = min(85, 55 + bull * 5)
        bonus = (3 if price_vs_vwap < 0 else 0) + (3 if pullback else 0)
        notes = f"{' (pullback)' if pullback else ''}{' (below VWAP)' if price_vs_vwap < 0 else ''}"

        if reply is None:
            return Decision(Action.BUY, min(92, base + bonus), f"Scalp buy: Bull {bull:.1f}{notes}")

        confirmed = reply.action == "buy"
        confidence = min(95, base + (8 if confirmed else 0) + bonus)
        return Decision(
            Action.BUY,
            confidence,
            f"Scalp entry: Bull {bull:.1f}{notes}{' (AI confirms)' if confirmed else ''}",
        )

    def _scalp_exit(
        self,
        pnl: float,
        bull: float,
        bear: float,
        rsi_value: float | None,
        config,
        advised: bool,
    ) -> Decision | None:
        if pnl >= config.scalping_target_percent:
            return Decision(Action.SELL, 90, f"Scalp profit: +{pnl:.2f}%")
        if pnl <= -SCALP_STOP_PNL:
            return Decision(Action.SELL, 85, f"Scalp stop: {pnl:.2f}%")
        if bear >= EXIT_SCORE and bear > bull * SCORE_RATIO:
            return Decision(Action.SELL, min(80, 55 + bear * 5), f"Scalp exit: Bear {bear:.1f} (P/L: {pnl:.2f}%)")
        if advised and rsi_value is not None and rsi_value > 75 and pnl > 0.2:
            return Decision(Action.SELL, 80, f"RSI {rsi_value:.0f}, locking {pnl:.2f}%")
        return None


def _describe_candle(candle) -> str:
    change = candle.body_percent
    color = "🟢" if candle.is_bullish else "🔴"
    size = "BIG" if abs(change) > 0.3 else "med" if abs(change) > 0.1 else "tiny"
    return f"{color}{change:+.2f}%({size})"
