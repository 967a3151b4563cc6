"""Per-period solver orchestrator.

The Solver owns the configured sequence of solver components and runs it
until every market clears, the pass limit is reached or the calculation
budget of the period is spent. Component failures are reported as return
codes; they are logged and the next component takes over from the prices
the failed one left behind.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from marketclear.cascade.graph import CalculationGraph
from marketclear.core.calc_counter import CalcCounter
from marketclear.core.marketplace import MarketSet
from marketclear.reporting import ComponentRun, MarketResult, PeriodSolution
from marketclear.solver.components import SolverComponent, build_solver_component
from marketclear.solver.enums import ReturnCode
from marketclear.solver.info_set import SolverInfoSet

if TYPE_CHECKING:
    from marketclear.config import SolverConfig

logger = logging.getLogger(__name__)


class Solver:
    """Clear all markets of one period.

    Args:
        markets: Market set to clear
        graph: Calculation graph producing supply and demand
        config: Solver settings
        calc_counter: Shared counter; a new one is created when omitted

    Example:
        >>> solver = Solver(markets, graph, SolverConfig())
        >>> solution = solver.solve(period=1)
        >>> solution.success
        True
    """

    def __init__(
        self,
        markets: MarketSet,
        graph: CalculationGraph,
        config: SolverConfig,
        calc_counter: CalcCounter | None = None,
    ) -> None:
        self.markets = markets
        self.graph = graph
        self.config = config
        self.calc_counter = calc_counter or CalcCounter()
        self.components: list[tuple[int, SolverComponent]] = [
            (
                config.iterations_for(component),
                build_solver_component(
                    component.name, graph, self.calc_counter, **component.params
                ),
            )
            for component in config.components
        ]
        self.last_return_code = ReturnCode.ORIGINAL_STATE
        self.info_set: SolverInfoSet | None = None

    def _calc(self, period: int) -> None:
        self.graph.calc(period)
        self.calc_counter.increment()

    def _budget_left(self, period: int, start: int) -> bool:
        used = self.calc_counter.period_count(period) - start
        return used < self.config.max_calcs_per_period

    def solve(self, period: int) -> PeriodSolution:
        """Solve ``period`` starting from the current market prices.

        The final prices, solved or not, are stored on the markets for the
        period.
        """
        tol = self.config.solution_tolerance
        floor = self.config.ed_solution_floor

        self.calc_counter.start_period(period)
        start_calcs = self.calc_counter.period_count(period)
        info_set = SolverInfoSet.from_markets(self.markets)
        self.info_set = info_set
        self.last_return_code = ReturnCode.ORIGINAL_STATE

        self._calc(period)
        info_set.update_solvable(tol, floor)
        logger.info(
            "Period %d: %d markets, %d unsolved, max RED %.3e",
            period,
            len(info_set),
            info_set.count_unsolved(),
            info_set.max_relative_ed(floor),
        )

        for _, component in self.components:
            component.init()

        runs: list[ComponentRun] = []
        for pass_number in range(1, self.config.max_passes + 1):
            if info_set.all_solved() or not self._budget_left(period, start_calcs):
                break
            pass_start_red = info_set.max_relative_ed(floor)
            for max_iterations, component in self.components:
                if info_set.all_solved():
                    break
                if not self._budget_left(period, start_calcs):
                    logger.warning(
                        "Period %d: calculation budget of %d exhausted",
                        period,
                        self.config.max_calcs_per_period,
                    )
                    break
                runs.append(self._run_component(component, max_iterations, info_set, period))

            if info_set.all_solved():
                break
            if info_set.max_relative_ed(floor) >= pass_start_red:
                logger.info("Period %d: pass %d made no progress", period, pass_number)
                break

        solution = self._build_solution(info_set, period, runs, start_calcs)
        self.markets.store_prices(period)

        if solution.success:
            logger.info(
                "Period %d solved in %d calculations (max RED %.3e)",
                period,
                solution.calcs,
                solution.max_relative_excess_demand,
            )
        else:
            logger.warning(
                "Period %d failed to solve: %d unsolved markets (%s), max RED %.3e",
                period,
                len(solution.unsolved),
                ", ".join(solution.unsolved),
                solution.max_relative_excess_demand,
            )
        return solution

    def _run_component(
        self,
        component: SolverComponent,
        max_iterations: int,
        info_set: SolverInfoSet,
        period: int,
    ) -> ComponentRun:
        tol = self.config.solution_tolerance
        floor = self.config.ed_solution_floor
        unsolved_before = info_set.count_unsolved()
        calcs_before = self.calc_counter.period_count(period)

        code = component.solve(tol, floor, max_iterations, info_set, period)
        info_set.update_solvable(tol, floor)
        self.last_return_code = code

        run = ComponentRun(
            component=component.name,
            return_code=code.value,
            calcs=self.calc_counter.period_count(period) - calcs_before,
            unsolved_before=unsolved_before,
            unsolved_after=info_set.count_unsolved(),
            iterations=[it.red for it in component.iterations],
        )
        if code.is_failure:
            logger.warning(
                "Period %d: %s returned %s after %d iterations (%d unsolved)",
                period,
                component.name,
                code.value,
                len(run.iterations),
                run.unsolved_after,
            )
        else:
            logger.info(
                "Period %d: %s returned %s after %d iterations",
                period,
                component.name,
                code.value,
                len(run.iterations),
            )
        return run

    def _build_solution(
        self,
        info_set: SolverInfoSet,
        period: int,
        runs: list[ComponentRun],
        start_calcs: int,
    ) -> PeriodSolution:
        floor = self.config.ed_solution_floor
        markets = [
            MarketResult(
                good=info.market.good,
                region=info.market.region,
                status=info.status.value,
                price=info.price,
                supply=info.market.supply,
                demand=info.market.demand,
                relative_excess_demand=info.relative_excess_demand(floor),
            )
            for info in info_set
        ]
        return PeriodSolution(
            period=period,
            success=info_set.all_solved() and not info_set.has_non_finite(),
            calcs=self.calc_counter.period_count(period) - start_calcs,
            max_relative_excess_demand=info_set.max_relative_ed(floor),
            unsolved=[info.name for info in info_set.unsolved()],
            component_runs=runs,
            markets=markets,
        )
