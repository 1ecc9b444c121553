"""
Decision Policies Module.

A policy looks at the candle history up to the current index and the open
position, and returns a Decision (buy / sell / hold / watching) with a
confidence. Each policy also declares the automatic exit rules the
position manager enforces for it.

Available policies:
- momentum: ROC breakout
- mean_reversion: RSI oversold/overbought
- scalping: EMA cross with RSI filter
- combined: 2-of-3 confirmation
- signal_only: Indicator scoring, no advisor
- ai: Multi-timeframe scoring confirmed by an external advisor
- ai_scalper: Advised micro-trend scalping with watching mode

Usage:
    from backtester.strategies import get_policy

    policy = get_policy("signal_only", config)
    decision = await policy.decide(candles, index, position, config)
"""

from typing import TYPE_CHECKING

from backtester.strategies.advised import AdvisedPolicy
from backtester.strategies.base import Action, Decision, DecisionPolicy, ExitRules
from backtester.strategies.rules import CombinedPolicy, MeanReversionPolicy, MomentumPolicy, ScalpingPolicy
from backtester.strategies.scalper import ScalperPolicy, WatchingState
from backtester.strategies.score_based import ScoreBasedPolicy

if TYPE_CHECKING:
    from backtester.ai.advisor_client import Advisor
    from backtester.backtest.models import BacktestConfig

# Registry of all policies
_POLICIES: dict[str, type[DecisionPolicy]] = {
    "momentum": MomentumPolicy,
    "mean_reversion": MeanReversionPolicy,
    "scalping": ScalpingPolicy,
    "combined": CombinedPolicy,
    "signal_only": ScoreBasedPolicy,
    "ai": AdvisedPolicy,
    "ai_scalper": ScalperPolicy,
}


def _normalize(name: str) -> str:
    return name.lower().replace(" ", "_").replace("-", "_")


def get_policy(name: str, config: "BacktestConfig", advisor: "Advisor | None" = None) -> DecisionPolicy:
    """
    Create a policy by name.

    Args:
        name: Policy name (case-insensitive, underscores/hyphens/spaces accepted)
        config: Run configuration
        advisor: Advisor for the advised policies (ignored by the others)

    Returns:
        New DecisionPolicy instance (policies hold per-run state)

    Raises:
        ValueError: If policy not found

    Example:
        >>> policy = get_policy("signal-only", config)
    """
    key = _normalize(name)
    if key not in _POLICIES:
        available = ", ".join(_POLICIES.keys())
        raise ValueError(f"Unknown strategy '{name}'. Available: {available}")

    return _POLICIES[key](config, advisor)


def is_advised(name: str) -> bool:
    """True if the policy consults an external advisor."""
    policy = _POLICIES.get(_normalize(name))
    return policy is not None and issubclass(policy, AdvisedPolicy)


def list_policies() -> list[tuple[str, str]]:
    """
    List available policies with descriptions.

    Returns:
        List of (name, description) tuples
    """
    return [(name, policy.description) for name, policy in _POLICIES.items()]


def register_policy(name: str, policy: type[DecisionPolicy]) -> None:
    """
    Register a custom policy class.

    Example:
        >>> class AlwaysHold(DecisionPolicy):
        ...     name = "always_hold"
        ...     description = "Never trades"
        ...     async def decide(self, history, index, position, config):
        ...         return Decision.hold("never")
        >>> register_policy("always_hold", AlwaysHold)
    """
    _POLICIES[_normalize(name)] = policy


__all__ = [
    # Base classes
    "Action",
    "Decision",
    "DecisionPolicy",
    "ExitRules",
    "WatchingState",
    # Registry functions
    "get_policy",
    "is_advised",
    "list_policies",
    "register_policy",
    # Policies
    "AdvisedPolicy",
    "CombinedPolicy",
    "MeanReversionPolicy",
    "MomentumPolicy",
    "ScalperPolicy",
    "ScalpingPolicy",
    "ScoreBasedPolicy",
]
