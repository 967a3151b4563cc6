"""Multi-period scenario driver."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from marketclear.cascade.graph import CalculationGraph
from marketclear.config import (
    ScenarioConfig,
    SolverConfig,
    build_graph,
    build_markets,
    load_scenario_config,
)
from marketclear.core.calc_counter import CalcCounter
from marketclear.core.errors import SolverFailureError
from marketclear.core.marketplace import MarketSet
from marketclear.reporting import PeriodSolution, ScenarioResult
from marketclear.solver.solver import Solver

logger = logging.getLogger(__name__)


class Scenario:
    """Solve a sequence of periods, carrying prices forward.

    The final prices of each period are the initial guess of the next one.

    Attributes:
        markets: Market set shared by all periods
        graph: Calculation graph
        config: Solver settings
        solver: Per-period solver
        periods: Default periods of ``run``
    """

    def __init__(
        self,
        markets: MarketSet,
        graph: CalculationGraph,
        config: SolverConfig,
        name: str = "scenario",
        periods: Iterable[int] = (1,),
        calc_counter: CalcCounter | None = None,
    ) -> None:
        self.markets = markets
        self.graph = graph
        self.config = config
        self.name = name
        self.periods = list(periods)
        self.calc_counter = calc_counter or CalcCounter()
        self.solver = Solver(markets, graph, config, self.calc_counter)

    def solve_period(self, period: int, previous: int | None = None) -> PeriodSolution:
        """Solve one period, starting from the prices stored for ``previous``."""
        if previous is not None:
            self.markets.restore_prices(previous)
        self.graph.init_calc(period)
        return self.solver.solve(period)

    def run(self, periods: Iterable[int] | None = None) -> ScenarioResult:
        """Solve every period in order.

        Raises:
            SolverFailureError: If a period fails and ``halt_on_failure`` is set
        """
        periods = list(periods) if periods is not None else list(self.periods)
        self.graph.validate()
        result = ScenarioResult(
            name=self.name,
            metadata={
                "markets": len(self.markets),
                "nodes": len(self.graph),
                "components": [c.name for c in self.config.components],
                "solution_tolerance": self.config.solution_tolerance,
                "ed_solution_floor": self.config.ed_solution_floor,
            },
        )
        start_total = self.calc_counter.total
        logger.info("Running scenario '%s' for periods %s", self.name, periods)

        previous: int | None = None
        for period in periods:
            solution = self.solve_period(period, previous)
            result.periods.append(solution)
            result.total_calcs = self.calc_counter.total - start_total
            if not solution.success and self.config.halt_on_failure:
                raise SolverFailureError(
                    period, f"unsolved markets: {', '.join(solution.unsolved)}"
                )
            previous = period

        logger.info(
            "Scenario '%s' finished: %d/%d periods solved, %d calculations",
            self.name,
            len(periods) - len(result.failed_periods),
            len(periods),
            result.total_calcs,
        )
        return result


def build_scenario(config: ScenarioConfig) -> Scenario:
    """Create markets, graph and solver from a validated config.

    Raises:
        MarketNotFoundError: If a node references an undefined market
        SolverConfigError: If a node or component definition is invalid
    """
    markets = build_markets(config)
    graph = build_graph(config, markets)
    return Scenario(markets, graph, config.solver, name=config.name, periods=config.periods)


def load_scenario(config_path: Path | str) -> Scenario:
    """Load a scenario YAML file and build it."""
    return build_scenario(load_scenario_config(config_path))
