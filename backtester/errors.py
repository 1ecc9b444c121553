"""Exceptions raised by the simulation engine."""


class BacktestError(Exception):
    """Base class for run failures."""


class InsufficientDataError(BacktestError):
    """The requested range has fewer candles than the engine needs."""

    def __init__(self, symbol: str, available: int, required: int):
        self.symbol = symbol
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient data for backtesting {symbol} "
            f"(need at least {required} candles, got {available})"
        )


class AdvisorError(Exception):
    """The external advisor could not be reached or returned nothing usable."""
