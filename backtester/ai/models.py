"""Data models for advisor replies and usage metrics."""

import time
from dataclasses import dataclass, field

ADVISOR_ACTIONS = ("buy", "sell", "hold")


@dataclass(frozen=True)
class AdvisorReply:
    """
    Structured advisor answer.

    parsed is False only when the raw text had no recognisable content
    and the defaults were substituted.
    """

    action: str
    confidence: int  # 0-100
    reasoning: str
    parsed: bool = True

    def __post_init__(self) -> None:
        """Validate reply."""
        if self.action not in ADVISOR_ACTIONS:
            raise ValueError(f"action must be one of {ADVISOR_ACTIONS}, got: {self.action}")
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"confidence must be 0-100, got: {self.confidence}")

    @classmethod
    def default(cls) -> "AdvisorReply":
        """Reply used when nothing could be parsed."""
        return cls(action="hold", confidence=50, reasoning="unable to parse", parsed=False)

    @classmethod
    def from_fields(cls, action: object, confidence: object, reasoning: object) -> "AdvisorReply":
        """
        Build a reply from loosely-typed parsed fields.

        Unknown actions become hold, confidence is clamped to 0-100 and
        defaults to 50.
        """
        action_str = str(action or "hold").strip().lower()
        if action_str not in ADVISOR_ACTIONS:
            action_str = "hold"

        try:
            confidence_value = int(float(confidence)) if confidence is not None else 50
        except (TypeError, ValueError, OverflowError):
            confidence_value = 50
        if confidence_value == 0 and not confidence:
            confidence_value = 50
        confidence_value = max(0, min(100, confidence_value))

        return cls(
            action=action_str,
            confidence=confidence_value,
            reasoning=str(reasoning) if reasoning else "",
        )


@dataclass
class AIMetrics:
    """Tracks advisor usage metrics for a run."""

    total_tokens: int = 0
    total_calls: int = 0
    failed_calls: int = 0
    total_response_time_ms: float = 0
    model_name: str = ""
    session_start: float = field(default_factory=time.time)

    @property
    def avg_response_time_ms(self) -> float:
        """Average response time across all calls."""
        if self.total_calls == 0:
            return 0
        return self.total_response_time_ms / self.total_calls

    def record_call(self, tokens: int, response_time_ms: float) -> None:
        """Record a successful advisor call."""
        self.total_tokens += tokens
        self.total_calls += 1
        self.total_response_time_ms += response_time_ms

    def record_failure(self) -> None:
        self.failed_calls += 1

    def reset(self) -> None:
        """Reset all counters."""
        self.total_tokens = 0
        self.total_calls = 0
        self.failed_calls = 0
        self.total_response_time_ms = 0
        self.session_start = time.time()
