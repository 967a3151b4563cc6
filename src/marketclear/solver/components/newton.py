"""Derivative-step solver components.

Newton-Raphson builds a finite-difference Jacobian of excess demand with
respect to price over every solvable market, solved ones included, with
cross-market derivatives. It solves the linear system for a
simultaneous price update and damps the step so no price moves by more
than ``max_step`` (relative) per iteration.

The log variant works in log-price space for markets with positive prices
that cannot go negative, which keeps those prices positive and makes the
step scale-free.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from marketclear.cascade.graph import CalculationGraph
from marketclear.core.calc_counter import CalcCounter
from marketclear.solver.components.base import SolverComponent
from marketclear.solver.enums import ReturnCode
from marketclear.solver.info_set import SolverInfo, SolverInfoSet

logger = logging.getLogger(__name__)


class NewtonRaphson(SolverComponent):
    """Simultaneous Newton step on all solvable markets.

    Args:
        graph: Calculation graph to evaluate
        calc_counter: Counter incremented on every calculation
        delta: Relative price perturbation for derivatives
        min_delta: Smallest absolute perturbation
        max_step: Largest relative price change per iteration
        max_condition: Jacobian condition number treated as singular
        price_scale_floor: Price magnitude below which the step cap is absolute
    """

    name = "newton_raphson"

    def __init__(
        self,
        graph: CalculationGraph,
        calc_counter: CalcCounter,
        delta: float = 1e-4,
        min_delta: float = 1e-6,
        max_step: float = 0.5,
        max_condition: float = 1e12,
        price_scale_floor: float = 0.1,
    ) -> None:
        super().__init__(graph, calc_counter)
        if not 0.0 < max_step:
            msg = f"max_step must be positive, got {max_step}"
            raise ValueError(msg)
        if delta <= 0.0 or min_delta <= 0.0:
            msg = "delta and min_delta must be positive"
            raise ValueError(msg)
        self.delta = delta
        self.min_delta = min_delta
        self.max_step = max_step
        self.max_condition = max_condition
        self.price_scale_floor = price_scale_floor
        self.last_jacobian: np.ndarray | None = None

    def init(self) -> None:
        super().init()
        self.last_jacobian = None

    # Coordinate handling ---------------------------------------------------

    def _log_mask(self, infos: Sequence[SolverInfo]) -> np.ndarray:
        """Markets solved in log-price space (none for plain Newton)."""
        return np.zeros(len(infos), dtype=bool)

    def _to_solver_space(self, prices: np.ndarray, mask: np.ndarray) -> np.ndarray:
        x = prices.copy()
        x[mask] = np.log(prices[mask])
        return x

    def _from_solver_space(self, x: np.ndarray, mask: np.ndarray) -> np.ndarray:
        prices = x.copy()
        prices[mask] = np.exp(x[mask])
        return prices

    def _perturbations(self, x: np.ndarray, mask: np.ndarray) -> np.ndarray:
        h = np.maximum(np.abs(x) * self.delta, self.min_delta)
        h[mask] = self.delta
        return h

    def _damp(self, x: np.ndarray, dx: np.ndarray, mask: np.ndarray) -> np.ndarray:
        """Scale ``dx`` so the largest relative price change is ``max_step``."""
        limits = np.maximum(np.abs(x), self.price_scale_floor) * self.max_step
        limits[mask] = np.log1p(self.max_step)
        ratio = float(np.max(np.abs(dx) / limits)) if dx.size else 0.0
        if ratio > 1.0:
            logger.debug("%s: damping step by %.3g", self.name, 1.0 / ratio)
            return dx / ratio
        return dx

    # Steps -----------------------------------------------------------------

    def _jacobian(
        self,
        infos: Sequence[SolverInfo],
        info_set: SolverInfoSet,
        x: np.ndarray,
        mask: np.ndarray,
        base_ed: np.ndarray,
        period: int,
    ) -> np.ndarray | None:
        """Finite-difference Jacobian d(excess demand)/dx.

        Costs one calculation per market. Prices are left at ``x``.

        Returns:
            The Jacobian, or None if a perturbation produced non-finite values
        """
        n = len(infos)
        jacobian = np.zeros((n, n))
        prices = info_set.get_price_vector(infos)
        h = self._perturbations(x, mask)
        for j, info in enumerate(infos):
            x_pert = x.copy()
            x_pert[j] += h[j]
            info.set_price(float(self._from_solver_space(x_pert, mask)[j]))
            # Clamping at zero may shorten the step.
            actual = self._to_solver_space(np.array([info.price]), mask[j : j + 1])[0] - x[j]
            finite = self._calc(info_set, period)
            info.set_price(float(prices[j]))
            if not finite or actual == 0.0:
                return None
            jacobian[:, j] = (info_set.excess_demand_vector(infos) - base_ed) / actual
        if not np.all(np.isfinite(jacobian)):
            return None
        return jacobian

    def _newton_step(self, jacobian: np.ndarray, ed: np.ndarray) -> np.ndarray | None:
        """Solve ``J dx = -ed``; None if J is singular or ill-conditioned."""
        if jacobian.size == 0:
            return None
        condition = np.linalg.cond(jacobian)
        if not np.isfinite(condition) or condition > self.max_condition:
            logger.info("%s: singular Jacobian (condition %.3g)", self.name, condition)
            return None
        try:
            dx = np.linalg.solve(jacobian, -ed)
        except np.linalg.LinAlgError:
            return None
        if not np.all(np.isfinite(dx)):
            return None
        return dx

    def solve(
        self,
        solution_tolerance: float,
        ed_solution_floor: float,
        max_iterations: int,
        info_set: SolverInfoSet,
        period: int,
    ) -> ReturnCode:
        self.start_method()
        if info_set.has_non_finite():
            return ReturnCode.FAILURE_WRONG_DIRECTION
        info_set.update_solvable(solution_tolerance, ed_solution_floor)
        if info_set.all_solved():
            return ReturnCode.SUCCESS

        infos = info_set.solvable()
        active_keys = [info.key for info in infos]
        start_red = info_set.max_relative_ed(ed_solution_floor)
        best_red = start_red
        best_prices = info_set.snapshot_prices()
        worse_count = 0

        for _ in range(max_iterations):
            mask = self._log_mask(infos)
            prices = info_set.get_price_vector(infos)
            x = self._to_solver_space(prices, mask)
            base_ed = info_set.excess_demand_vector(infos)
            current = info_set.snapshot_prices()

            jacobian = self._jacobian(infos, info_set, x, mask, base_ed, period)
            self.last_jacobian = jacobian
            dx = self._newton_step(jacobian, base_ed) if jacobian is not None else None
            if dx is None:
                self._restore(info_set, current, period)
                info_set.update_solvable(solution_tolerance, ed_solution_floor)
                return ReturnCode.FAILURE_SINGULAR_MATRIX

            dx = self._damp(x, dx, mask)
            new_prices = self._from_solver_space(x + dx, mask)
            if not np.all(np.isfinite(new_prices)):
                self._restore(info_set, current, period)
                return ReturnCode.FAILURE_SINGULAR_MATRIX
            info_set.set_price_vector(infos, new_prices)
            if not self._calc(info_set, period):
                logger.info("%s: non-finite supply or demand, restoring", self.name)
                self._restore(info_set, best_prices, period)
                info_set.update_solvable(solution_tolerance, ed_solution_floor)
                return ReturnCode.FAILURE_WRONG_DIRECTION

            reopened = info_set.update_solvable(solution_tolerance, ed_solution_floor)
            if [info.key for info in info_set.solvable()] != active_keys:
                logger.info("%s: solvable markets changed during the step", self.name)
                self._restore(info_set, current, period)
                info_set.update_solvable(solution_tolerance, ed_solution_floor)
                return ReturnCode.FAILURE_SOLUTION_SIZE_CHANGED
            if reopened:
                logger.debug("%s: %d solved markets reopened", self.name, reopened)

            red = info_set.max_relative_ed(ed_solution_floor)
            self.add_iteration(self.name, red)
            if info_set.all_solved():
                return ReturnCode.SUCCESS

            if red < best_red:
                best_red = red
                best_prices = info_set.snapshot_prices()
            worse_count = worse_count + 1 if red > start_red else 0
            if worse_count >= 2:
                logger.info("%s: moving away from solution, restoring best prices", self.name)
                self._restore(info_set, best_prices, period)
                info_set.update_solvable(solution_tolerance, ed_solution_floor)
                return ReturnCode.FAILURE_WRONG_DIRECTION

        return ReturnCode.FAILURE_ITER_MAX_REACHED


class LogNewtonRaphson(NewtonRaphson):
    """Newton-Raphson in log-price space."""

    name = "log_newton_raphson"

    def _log_mask(self, infos: Sequence[SolverInfo]) -> np.ndarray:
        return np.array(
            [not info.market.allow_negative_price and info.price > 0.0 for info in infos],
            dtype=bool,
        )
