"""Core data structures for the marketclear framework.

This module provides the records the solver operates on:
- Market: price, supply and demand of one good in one region
- MarketSet: keyed collection of markets
- CalcCounter: count of calculation-graph evaluations
- Error types shared across the package
"""

from marketclear.core.calc_counter import CalcCounter
from marketclear.core.errors import (
    MarketClearError,
    MarketNotFoundError,
    SolverConfigError,
    SolverFailureError,
)
from marketclear.core.market import Market, MarketKey
from marketclear.core.marketplace import MarketSet

__all__ = [
    "Market",
    "MarketKey",
    "MarketSet",
    "CalcCounter",
    "MarketClearError",
    "MarketNotFoundError",
    "SolverConfigError",
    "SolverFailureError",
]
