"""
Backtest Module - Historical strategy simulation.

Orchestrates the flow: Candle Source → Decision Policy → Position Manager → Metrics
"""

from .engine import BacktestEngine, run_backtest, select_interval
from .metrics import PROFIT_FACTOR_SENTINEL, calculate_metrics
from .models import BacktestConfig, BacktestMetrics, EquityPoint, Position, Trade
from .position_manager import ExitSignal, PositionManager, PositionState
from .progress import Phase, ProgressSnapshot, ProgressTracker

__all__ = [
    "BacktestEngine",
    "run_backtest",
    "select_interval",
    "BacktestConfig",
    "BacktestMetrics",
    "EquityPoint",
    "Position",
    "Trade",
    "PositionManager",
    "PositionState",
    "ExitSignal",
    "calculate_metrics",
    "PROFIT_FACTOR_SENTINEL",
    "Phase",
    "ProgressSnapshot",
    "ProgressTracker",
]
