"""
Progress channel for a running backtest.

The engine writes, anyone holding the tracker reads snapshot().
"""

from dataclasses import dataclass
from enum import Enum


class Phase(str, Enum):
    FETCHING = "fetching"
    CALCULATING = "calculating"
    SIMULATING = "simulating"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of a run."""

    percent: int
    message: str
    phase: Phase
    current_candle: int = 0
    total_candles: int = 0
    advisory_calls: int = 0

    @property
    def done(self) -> bool:
        return self.phase in (Phase.COMPLETE, Phase.ERROR)


class ProgressTracker:
    """Mutable progress state owned by one engine."""

    def __init__(self) -> None:
        self._snapshot = ProgressSnapshot(percent=0, message="Waiting to start", phase=Phase.FETCHING)

    def update(
        self,
        phase: Phase,
        percent: int,
        message: str,
        current_candle: int | None = None,
        total_candles: int | None = None,
        advisory_calls: int | None = None,
    ) -> None:
        """Replace the snapshot; counters left as None keep their last value."""
        last = self._snapshot
        self._snapshot = ProgressSnapshot(
            percent=max(0, min(100, percent)),
            message=message,
            phase=phase,
            current_candle=last.current_candle if current_candle is None else current_candle,
            total_candles=last.total_candles if total_candles is None else total_candles,
            advisory_calls=last.advisory_calls if advisory_calls is None else advisory_calls,
        )

    def fail(self, message: str) -> None:
        self.update(Phase.ERROR, self._snapshot.percent, message)

    def snapshot(self) -> ProgressSnapshot:
        return self._snapshot
