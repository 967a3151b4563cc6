"""Solver component base class.

A SolverComponent is one independent price-adjustment algorithm. It takes
a SolverInfoSet and attempts to clear every unsolved market to the given
tolerances within a given number of iterations. Components never call each
other; sequencing them is the job of the Solver.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import ClassVar

from pydantic import BaseModel, Field

from marketclear.cascade.graph import CalculationGraph
from marketclear.core.calc_counter import CalcCounter
from marketclear.core.market import MarketKey
from marketclear.solver.enums import ReturnCode
from marketclear.solver.info_set import SolverInfoSet

logger = logging.getLogger(__name__)


class IterationInfo(BaseModel):
    """Worst relative excess demand of one iteration.

    Attributes:
        name: Name of the component active in the iteration
        red: Maximum |relative excess demand| after the iteration
    """

    name: str = Field(..., description="Component name")
    red: float = Field(..., description="Maximum relative excess demand")

    model_config = {"frozen": True}


class SolverComponent(ABC):
    """Abstract price-adjustment algorithm.

    Subclasses implement ``solve`` and return a ``ReturnCode``; they must
    restore a consistent market state (prices matching the last
    calculation) before returning.
    """

    name: ClassVar[str] = ""

    def __init__(self, graph: CalculationGraph, calc_counter: CalcCounter) -> None:
        self.graph = graph
        self.calc_counter = calc_counter
        self._past_iters: list[IterationInfo] = []

    @property
    def markets(self):
        return self.graph.markets

    def init(self) -> None:
        """Reset caches kept between solve calls."""
        self._past_iters = []

    def start_method(self) -> None:
        """Clear the iteration trail at the start of a solve call."""
        self._past_iters = []

    def add_iteration(self, name: str, red: float) -> None:
        self._past_iters.append(IterationInfo(name=name, red=red))
        logger.debug("%s iteration %d: max RED %.3e", name, len(self._past_iters), red)

    @property
    def iterations(self) -> list[IterationInfo]:
        """Iteration trail of the most recent solve call."""
        return list(self._past_iters)

    def is_improving(self, window: int) -> bool:
        """Check whether the worst RED is still falling.

        Compares the maximum RED over the last ``window`` iterations with the
        maximum over the ``window`` iterations before them.

        Returns:
            False if the recent maximum is not strictly lower than the prior
            one; True if it is, or if fewer than ``2 * window`` iterations
            have been recorded.
        """
        if window < 1:
            msg = f"window must be positive, got {window}"
            raise ValueError(msg)
        if len(self._past_iters) < 2 * window:
            return True
        recent = max(it.red for it in self._past_iters[-window:])
        prior = max(it.red for it in self._past_iters[-2 * window : -window])
        return recent < prior

    def _calc(self, info_set: SolverInfoSet, period: int) -> bool:
        """Run a full calculation pass.

        Returns:
            False if any market ended with non-finite supply or demand
        """
        self.graph.calc(period)
        self.calc_counter.increment()
        return not info_set.has_non_finite()

    def _restore(
        self, info_set: SolverInfoSet, snapshot: dict[MarketKey, float], period: int
    ) -> None:
        """Reset prices to ``snapshot`` and recalculate."""
        info_set.restore_prices(snapshot)
        self._calc(info_set, period)

    @abstractmethod
    def solve(
        self,
        solution_tolerance: float,
        ed_solution_floor: float,
        max_iterations: int,
        info_set: SolverInfoSet,
        period: int,
    ) -> ReturnCode:
        """Attempt to clear the unsolved markets of ``info_set``.

        Args:
            solution_tolerance: Relative excess demand tolerance
            ed_solution_floor: Absolute excess demand tolerance, also the
                floor of the relative excess demand denominator
            max_iterations: Iteration limit for this call
            info_set: Markets and their solved status
            period: Model period

        Returns:
            The outcome of the attempt
        """
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name})"
