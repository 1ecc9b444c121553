"""
Base classes for decision policies.

Defines the contract every policy implements:
- Action: What a policy can ask for on a candle
- Decision: Action + confidence + reasoning
- ExitRules: Automatic exits the position manager enforces for the policy
- DecisionPolicy: Abstract policy with cadence, confidence gate and advisor plumbing
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import httpx

from backtester.ai.models import AdvisorReply
from backtester.ai.response_parser import parse_response
from backtester.core.candle import Candle
from backtester.errors import AdvisorError
from backtester.indicators import true_range

if TYPE_CHECKING:
    from backtester.ai.advisor_client import Advisor
    from backtester.backtest.models import BacktestConfig, Position

logger = logging.getLogger(__name__)

# Policies need this many candles of history before they decide anything
MIN_RULE_INDEX = 30
MIN_ADVISED_INDEX = 50


class Action(str, Enum):
    """What a policy wants to do on the current candle."""

    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"
    WATCHING = "watching"  # Tracking a setup; never executed


@dataclass(frozen=True)
class Decision:
    """A policy's verdict for one candle."""

    action: Action
    confidence: float = 0.0  # 0-100
    reasoning: str = ""

    def __post_init__(self) -> None:
        """Validate decision."""
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be between 0 and 100, got {self.confidence}")

    @classmethod
    def hold(cls, reasoning: str = "", confidence: float = 0.0) -> "Decision":
        return cls(Action.HOLD, confidence, reasoning)

    @property
    def is_trade(self) -> bool:
        """True for actions the engine can execute."""
        return self.action in (Action.BUY, Action.SELL)


@dataclass(frozen=True)
class ExitRules:
    """
    Automatic exits for an open position. Any rule may be None (disabled).

    The trailing stop only fires once unrealized P/L exceeds
    trailing_min_profit (0 means any profit).
    """

    trailing_percent: float | None = None
    trailing_min_profit: float = 0.0
    stop_loss_percent: float | None = None
    take_profit_percent: float | None = None
    timeout_minutes: float | None = None

    def __post_init__(self) -> None:
        """Validate exit rules."""
        for name in ("trailing_percent", "take_profit_percent", "timeout_minutes"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive")
        if self.trailing_min_profit < 0:
            raise ValueError("trailing_min_profit cannot be negative")


class DecisionPolicy(ABC):
    """
    A trading decision policy.

    Subclasses implement decide(). The engine asks should_evaluate() first
    so that advised policies can limit how often they are consulted, and
    acts on a decision only if accepts() agrees.
    """

    name: str = ""
    description: str = ""
    default_confidence_threshold: float | None = None

    def __init__(self, config: "BacktestConfig", advisor: "Advisor | None" = None):
        self.config = config
        self.advisor = advisor
        self.advisory_calls = 0

    @abstractmethod
    async def decide(
        self,
        history: list[Candle],
        index: int,
        position: "Position | None",
        config: "BacktestConfig",
    ) -> Decision:
        """
        Decide what to do at `index`.

        Args:
            history: Candles of the run; only history[: index + 1] may be read
            index: Current candle index
            position: Open position or None when flat
            config: Run configuration
        """

    def exit_rules(self, config: "BacktestConfig") -> ExitRules:
        """Default exits: the configured stop-loss and take-profit."""
        return ExitRules(
            stop_loss_percent=config.stop_loss_percent,
            take_profit_percent=config.take_profit_percent,
        )

    def should_evaluate(self, index: int, position: "Position | None") -> bool:
        """Whether decide() should be called on this candle."""
        return True

    def confidence_threshold(self, config: "BacktestConfig") -> float | None:
        if config.ai_confidence_threshold is not None:
            return config.ai_confidence_threshold
        return self.default_confidence_threshold

    def accepts(self, decision: Decision, config: "BacktestConfig") -> bool:
        """Whether the engine should act on `decision`."""
        if not decision.is_trade:
            return False
        threshold = self.confidence_threshold(config)
        return threshold is None or decision.confidence >= threshold

    def reset(self) -> None:
        """Clear per-run state before a new replay."""
        self.advisory_calls = 0

    async def consult(self, context_text: str) -> AdvisorReply | None:
        """
        Ask the advisor and parse its reply.

        Returns:
            Parsed reply, or None when there is no advisor, the call failed
            or the reply had no recognisable content
        """
        if self.advisor is None:
            return None

        self.advisory_calls += 1
        model = self.config.advisor.resolved_model if self.config.advisor else None
        try:
            text = await self.advisor.advise(context_text, model)
        except (AdvisorError, httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.warning(f"[{self.name}] advisor call failed, using signal scoring: {e}")
            return None

        reply = parse_response(text)
        if not reply.parsed:
            logger.warning(f"[{self.name}] advisor reply unparseable, using signal scoring")
            return None

        logger.debug(f"[{self.name}] advisor: {reply.action} ({reply.confidence}%) - {reply.reasoning[:50]}")
        return reply


def window(history: list[Candle], index: int, size: int) -> list[Candle]:
    """The last `size` candles up to and including `index`."""
    return history[max(0, index - size + 1) : index + 1]


def recent_range_percent(candles: list[Candle], count: int = 14) -> float:
    """
    Mean true range of the last `count` candles as % of the last close.

    Used as a quick volatility filter; 0.0 with fewer than two candles.
    """
    recent = candles[-count:]
    if len(recent) < 2 or recent[-1].close == 0:
        return 0.0
    ranges = [true_range(c, prev.close) for prev, c in zip(recent, recent[1:])]
    return sum(ranges) / len(ranges) / recent[-1].close * 100


def change_percent(prices: list[float], bars: int) -> float:
    """Percent change from `bars` prices back (counting the last) to the last; 0 when short."""
    if len(prices) < bars or prices[-bars] == 0:
        return 0.0
    return (prices[-1] - prices[-bars]) / prices[-bars] * 100
