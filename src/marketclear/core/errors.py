"""Exception types for the marketclear framework."""

from __future__ import annotations


class MarketClearError(Exception):
    """Base class for all marketclear errors."""

    pass


class MarketNotFoundError(MarketClearError, KeyError):
    """Raised when a (good, region) key does not name a known market."""

    def __init__(self, good: str, region: str) -> None:
        self.good = good
        self.region = region
        super().__init__(f"Market '{good}' in region '{region}' not found")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0])


class SolverConfigError(MarketClearError, ValueError):
    """Raised when solver or market configuration is invalid."""

    pass


class SolverFailureError(MarketClearError, RuntimeError):
    """Raised when a period fails to solve and halt-on-failure is set."""

    def __init__(self, period: int, message: str = "") -> None:
        self.period = period
        detail = f": {message}" if message else ""
        super().__init__(f"Period {period} failed to solve{detail}")
