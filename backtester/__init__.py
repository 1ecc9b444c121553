"""
Backtester - historical strategy simulation engine.

Replays a candle history one bar at a time through:
Indicators → Multi-Timeframe Confluence → Decision Policy → Position State Machine → Metrics
"""

__version__ = "0.4.0"
