"""
Multi-timeframe confluence and higher-timeframe trend filtering.
"""

from .models import (
    ConfluenceResult,
    ConfluenceThresholds,
    OverallSignal,
    ScoreContributions,
    TimeframeSignal,
    TrendSignal,
)
from .scorer import (
    analyze_timeframe,
    calculate_confluence,
    confluence_from_history,
    format_confluence_for_advisor,
)
from .trend import (
    MultiTimeframeAnalysis,
    TrendAnalysis,
    analyze_multiple_timeframes,
    analyze_trend,
    format_mtf_for_advisor,
)

__all__ = [
    "ConfluenceResult",
    "ConfluenceThresholds",
    "MultiTimeframeAnalysis",
    "OverallSignal",
    "ScoreContributions",
    "TimeframeSignal",
    "TrendAnalysis",
    "TrendSignal",
    "analyze_multiple_timeframes",
    "analyze_timeframe",
    "analyze_trend",
    "calculate_confluence",
    "confluence_from_history",
    "format_confluence_for_advisor",
    "format_mtf_for_advisor",
]
