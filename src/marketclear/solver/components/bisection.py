"""Bisection solver components.

Both components keep, for each market they work on, a bracket of two
prices whose excess demands have opposite signs, and repeatedly price the
market at the bracket midpoint. They converge slowly but need no
derivatives, which makes them the robust fallback for markets with
non-smooth supply curves.

A bracket is only exact while every other price stays where it was when
its ends were evaluated. When coupled markets move together the root can
leave a bracket, so BisectAll re-evaluates the far end of a bracket that
keeps moving one way and expands it again when the root has left it, and
BisectOne re-brackets a market whenever another price changed since it
last worked on it.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass

from marketclear.cascade.graph import CalculationGraph
from marketclear.core.calc_counter import CalcCounter
from marketclear.core.market import MarketKey
from marketclear.solver.components.base import SolverComponent
from marketclear.solver.enums import ReturnCode, SearchMode, SolvedStatus
from marketclear.solver.info_set import SolverInfo, SolverInfoSet

logger = logging.getLogger(__name__)


@dataclass
class BracketSearch:
    """Progress of the search for one market within a solve call.

    Attributes:
        mode: Step the market takes next
        low_side: Whether the last bisection step replaced the low end
        same_side: Consecutive bisection steps that replaced the same end
        worse: Consecutive bisection steps that ended further from balance
            than both ends of the bracket they started from
        anchor_price: Last evaluated price while expanding
        anchor_ed: Excess demand at ``anchor_price``
        step: Absolute price step of the next expansion
        expansions: Expansion steps taken so far
    """

    mode: SearchMode = SearchMode.BISECT
    low_side: bool | None = None
    same_side: int = 0
    worse: int = 0
    anchor_price: float = 0.0
    anchor_ed: float = 0.0
    step: float = 0.0
    expansions: int = 0

    def start_expansion(self, price: float, ed: float, step: float) -> None:
        self.mode = SearchMode.EXPAND
        self.anchor_price, self.anchor_ed = price, ed
        self.step = step
        self.expansions = 0
        self.low_side = None
        self.same_side = 0
        self.worse = 0

    def start_bisection(self) -> None:
        self.mode = SearchMode.BISECT
        self.low_side = None
        self.same_side = 0


class BracketingComponent(SolverComponent):
    """Shared bracketing and bisection steps.

    Args:
        graph: Calculation graph to evaluate
        calc_counter: Counter incremented on every calculation
        bracket_interval: Relative price change of each expansion step
        max_bracket_iterations: Expansion steps before giving up on a market
        collapse_tolerance: Relative bracket width treated as collapsed
        improvement_window: Window of ``is_improving`` while several markets move
        recheck_after: Consecutive steps replacing the same bracket end after
            which the other end is evaluated again
    """

    def __init__(
        self,
        graph: CalculationGraph,
        calc_counter: CalcCounter,
        bracket_interval: float = 0.5,
        max_bracket_iterations: int = 40,
        collapse_tolerance: float = 1e-12,
        improvement_window: int = 5,
        recheck_after: int = 3,
    ) -> None:
        super().__init__(graph, calc_counter)
        if bracket_interval <= 0.0:
            msg = f"bracket_interval must be positive, got {bracket_interval}"
            raise ValueError(msg)
        if recheck_after < 1:
            msg = f"recheck_after must be at least 1, got {recheck_after}"
            raise ValueError(msg)
        self.bracket_interval = bracket_interval
        self.max_bracket_iterations = max_bracket_iterations
        self.collapse_tolerance = collapse_tolerance
        self.improvement_window = improvement_window
        self.recheck_after = recheck_after

    def _expand(self, info: SolverInfo, price: float, ed: float) -> float | None:
        """Next expansion price away from ``price``, or None if blocked at zero.

        Positive excess demand means the price is too low.
        """
        step = self.bracket_interval
        if ed > 0.0:
            return price * (1.0 + step) if price > 0.0 else price + step * max(abs(price), 1.0)
        if price > 0.0:
            return price / (1.0 + step)
        if info.market.allow_negative_price:
            return price - step * max(abs(price), 1.0)
        return None

    def _expansion_step(self, price: float) -> float:
        """Absolute first step when expanding from ``price`` inside a solve."""
        return self.bracket_interval * abs(price) if price != 0.0 else self.bracket_interval

    def _try_configured_brackets(
        self, infos: Sequence[SolverInfo], info_set: SolverInfoSet, period: int
    ) -> bool:
        """Evaluate configured brackets at both ends (two calculations)."""
        configured = [info for info in infos if info.market.bracket is not None]
        if not configured:
            return True
        for info in configured:
            info.set_price(info.market.bracket[0])
        if not self._calc(info_set, period):
            return False
        low_eds = {info.key: info.excess_demand for info in configured}
        for info in configured:
            info.set_price(info.market.bracket[1])
        if not self._calc(info_set, period):
            return False
        for info in configured:
            low, high = info.market.bracket
            info.set_bracket(low, low_eds[info.key], high, info.excess_demand)
            if not info.is_bracketed:
                info.reset_bracket()
        return True

    def _bracket(
        self,
        infos: Sequence[SolverInfo],
        info_set: SolverInfoSet,
        snapshot: dict[MarketKey, float],
        period: int,
    ) -> bool:
        """Bracket ``infos`` simultaneously.

        Markets that cannot be bracketed are left without a bracket. On
        return, prices are back at ``snapshot`` but quantities may not match
        them; callers recalculate or move prices before reading excess
        demand.

        Returns:
            False if a non-finite quantity was met
        """
        for info in infos:
            info.reset_bracket()
        if not self._try_configured_brackets(infos, info_set, period):
            return False

        pending = [info for info in infos if not info.is_bracketed]
        if pending:
            info_set.restore_prices(snapshot)
            if not self._calc(info_set, period):
                return False
            anchors = {info.key: (info.price, info.excess_demand) for info in pending}

            for _ in range(self.max_bracket_iterations):
                moving: list[SolverInfo] = []
                for info in pending:
                    price, ed = anchors[info.key]
                    next_price = self._expand(info, price, ed)
                    if next_price is None:
                        continue
                    info.set_price(next_price)
                    moving.append(info)
                if not moving:
                    break
                if not self._calc(info_set, period):
                    return False
                for info in moving:
                    price, ed = anchors[info.key]
                    new_ed = info.excess_demand
                    if (new_ed > 0.0) != (ed > 0.0):
                        info.set_bracket(price, ed, info.price, new_ed)
                    else:
                        anchors[info.key] = (info.price, new_ed)
                pending = [info for info in moving if not info.is_bracketed]
                if not pending:
                    break

        unbracketed = [info.name for info in infos if not info.is_bracketed]
        if unbracketed:
            logger.info("%s: could not bracket %s", self.name, ", ".join(unbracketed))
        info_set.restore_prices(snapshot)
        return True

    def _rebracket(
        self, info: SolverInfo, info_set: SolverInfoSet, period: int, step: float
    ) -> bool:
        """Bracket ``info`` again from its current price, doubling ``step``.

        Quantities must match the current prices. The price is left at the
        last evaluated point.

        Returns:
            False if a non-finite quantity was met
        """
        price, ed = info.price, info.excess_demand
        info.reset_bracket()
        for _ in range(self.max_bracket_iterations):
            next_price = price + step if ed > 0.0 else price - step
            if next_price < 0.0 and not info.market.allow_negative_price:
                if price <= 0.0:
                    break
                next_price = 0.0
            info.set_price(next_price)
            if not self._calc(info_set, period):
                return False
            new_ed = info.excess_demand
            if (new_ed > 0.0) != (ed > 0.0):
                info.set_bracket(price, ed, info.price, new_ed)
                return True
            price, ed = info.price, new_ed
            step *= 2.0
        logger.info("%s: could not bracket %s again", self.name, info.name)
        return True

    def _is_collapsed(self, info: SolverInfo) -> bool:
        scale = max(abs(info.price_low or 0.0), abs(info.price_high or 0.0), 1.0)
        return info.bracket_width <= self.collapse_tolerance * scale

    def _next_price(self, info: SolverInfo, search: BracketSearch) -> float | None:
        """Price to evaluate next, or None if the market cannot move on."""
        if search.mode is SearchMode.BISECT:
            if self._is_collapsed(info):
                return None
            return info.bracket_midpoint()
        if search.mode is SearchMode.RECHECK:
            return info.price_high if search.low_side else info.price_low
        if search.expansions >= self.max_bracket_iterations:
            return None
        up = search.anchor_ed > 0.0
        price = search.anchor_price + search.step if up else search.anchor_price - search.step
        if price < 0.0 and not info.market.allow_negative_price:
            if search.anchor_price <= 0.0:
                return None
            price = 0.0
        return price

    def _absorb(self, info: SolverInfo, search: BracketSearch, coupled: bool) -> None:
        """Fold the excess demand at the evaluated price into ``search``.

        ``coupled`` says whether other markets moved in the same
        calculation, in which case stored bracket ends may be out of date.
        """
        ed = info.excess_demand
        if search.mode is SearchMode.BISECT:
            reference = max(abs(info.ed_low), abs(info.ed_high))
            search.worse = search.worse + 1 if abs(ed) > reference else 0
            low_side = info.update_bracket()
            search.same_side = search.same_side + 1 if low_side == search.low_side else 1
            search.low_side = low_side
            if coupled and search.same_side >= self.recheck_after:
                search.mode = SearchMode.RECHECK
            return

        if search.mode is SearchMode.RECHECK:
            far_ed = info.ed_high if search.low_side else info.ed_low
            if (ed > 0.0) == (far_ed > 0.0):
                if search.low_side:
                    info.ed_high = ed
                else:
                    info.ed_low = ed
                search.start_bisection()
            else:
                logger.debug("%s: root of %s left its bracket", self.name, info.name)
                width = info.bracket_width
                info.reset_bracket()
                search.start_expansion(info.price, ed, width)
            return

        if (ed > 0.0) != (search.anchor_ed > 0.0):
            info.set_bracket(search.anchor_price, search.anchor_ed, info.price, ed)
            search.start_bisection()
        else:
            search.anchor_price, search.anchor_ed = info.price, ed
            search.step *= 2.0
            search.expansions += 1


class BisectAll(BracketingComponent):
    """Bisect every unsolved market simultaneously, one calculation per step."""

    name = "bisect_all"

    def solve(
        self,
        solution_tolerance: float,
        ed_solution_floor: float,
        max_iterations: int,
        info_set: SolverInfoSet,
        period: int,
    ) -> ReturnCode:
        self.start_method()
        info_set.update_solvable(solution_tolerance, ed_solution_floor)
        if info_set.all_solved():
            return ReturnCode.SUCCESS

        snapshot = info_set.snapshot_prices()
        infos = info_set.unsolved()
        if not self._bracket(infos, info_set, snapshot, period):
            self._restore(info_set, snapshot, period)
            return ReturnCode.FAILURE_WRONG_DIRECTION

        searches = {info.key: BracketSearch() for info in infos if info.is_bracketed}
        dropped = {info.key for info in infos if not info.is_bracketed}
        if not searches:
            self._restore(info_set, snapshot, period)
            return ReturnCode.FAILURE_WRONG_DIRECTION

        for _ in range(max_iterations):
            coupled = len(searches) > 1
            stepping: list[SolverInfo] = []
            for info in info_set.unsolved():
                search = searches.get(info.key)
                if search is None:
                    continue
                price = self._next_price(info, search)
                if price is None:
                    del searches[info.key]
                    dropped.add(info.key)
                    continue
                info.set_price(price)
                stepping.append(info)
            if not stepping:
                logger.info("%s: remaining brackets collapsed without a solution", self.name)
                if not self.iterations:
                    self._restore(info_set, snapshot, period)
                return ReturnCode.FAILURE_WRONG_DIRECTION

            last_good = info_set.snapshot_prices()
            if not self._calc(info_set, period):
                self._restore(info_set, last_good, period)
                return ReturnCode.FAILURE_WRONG_DIRECTION

            diverging: list[str] = []
            for info in stepping:
                search = searches[info.key]
                self._absorb(info, search, coupled)
                if search.worse >= 2:
                    diverging.append(info.name)

            info_set.update_solvable(solution_tolerance, ed_solution_floor)
            for info in info_set.unsolved():
                if info.key not in searches and info.key not in dropped:
                    search = BracketSearch()
                    search.start_expansion(
                        info.price, info.excess_demand, self._expansion_step(info.price)
                    )
                    searches[info.key] = search

            self.add_iteration(self.name, info_set.max_relative_ed(ed_solution_floor))
            if info_set.all_solved():
                return ReturnCode.SUCCESS
            if diverging:
                logger.info(
                    "%s: %s moved away from balance twice in a row", self.name, ", ".join(diverging)
                )
                return ReturnCode.FAILURE_WRONG_DIRECTION
            if coupled and not self.is_improving(self.improvement_window):
                logger.info("%s: not improving, giving up", self.name)
                return ReturnCode.FAILURE_WRONG_DIRECTION

        return ReturnCode.FAILURE_ITER_MAX_REACHED


class BisectOne(BracketingComponent):
    """Bisect the worst market while it stays the worst, then the next worst.

    Markets are revisited until none is left unsolved, so a market reopened
    by moves in another one is solved again.
    """

    name = "bisect_one"

    def solve(
        self,
        solution_tolerance: float,
        ed_solution_floor: float,
        max_iterations: int,
        info_set: SolverInfoSet,
        period: int,
    ) -> ReturnCode:
        self.start_method()
        info_set.update_solvable(solution_tolerance, ed_solution_floor)
        if info_set.all_solved():
            return ReturnCode.SUCCESS

        dropped: set[MarketKey] = set()
        # Prices seen when each market's bracket was last updated.
        bracket_prices: dict[MarketKey, dict[MarketKey, float]] = {}
        iterations = 0
        while iterations < max_iterations:
            candidates = [info for info in info_set.unsolved() if info.key not in dropped]
            target = info_set.worst_market(ed_solution_floor, candidates)
            if target is None:
                break

            snapshot = info_set.snapshot_prices()
            if target.key not in bracket_prices:
                finite = self._bracket([target], info_set, snapshot, period)
            elif snapshot != bracket_prices[target.key] or not target.is_bracketed:
                step = target.bracket_width
                if not math.isfinite(step) or step <= 0.0:
                    step = self._expansion_step(target.price)
                finite = self._rebracket(target, info_set, period, step)
            else:
                finite = True
            if not finite:
                self._restore(info_set, snapshot, period)
                return ReturnCode.FAILURE_WRONG_DIRECTION
            if not target.is_bracketed:
                dropped.add(target.key)
                self._restore(info_set, snapshot, period)
                info_set.update_solvable(solution_tolerance, ed_solution_floor)
                continue

            search = BracketSearch()
            while iterations < max_iterations:
                price = self._next_price(target, search)
                if price is None:
                    dropped.add(target.key)
                    break
                last_good = info_set.snapshot_prices()
                target.set_price(price)
                if not self._calc(info_set, period):
                    self._restore(info_set, last_good, period)
                    return ReturnCode.FAILURE_WRONG_DIRECTION
                self._absorb(target, search, coupled=False)
                info_set.update_solvable(solution_tolerance, ed_solution_floor)
                iterations += 1
                self.add_iteration(self.name, info_set.max_relative_ed(ed_solution_floor))
                if search.worse >= 2:
                    logger.info(
                        "%s: %s moved away from balance twice in a row", self.name, target.name
                    )
                    return ReturnCode.FAILURE_WRONG_DIRECTION
                if target.status is not SolvedStatus.UNSOLVED:
                    break
                rivals = [
                    info
                    for info in info_set.unsolved()
                    if info is not target and info.key not in dropped
                ]
                rival = info_set.worst_market(ed_solution_floor, rivals)
                if rival is not None and abs(rival.relative_excess_demand(ed_solution_floor)) > abs(
                    target.relative_excess_demand(ed_solution_floor)
                ):
                    break
            bracket_prices[target.key] = info_set.snapshot_prices()

            if info_set.all_solved():
                return ReturnCode.SUCCESS

        if info_set.all_solved():
            return ReturnCode.SUCCESS
        if iterations >= max_iterations:
            return ReturnCode.FAILURE_ITER_MAX_REACHED
        return ReturnCode.FAILURE_WRONG_DIRECTION
