"""Per-period solver view over the market set.

The SolverInfoSet tags every market with a solved status and carries the
bisection bracket of each market. It is built fresh for every period and
owned by the Solver for the duration of that period's solve.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Sequence

import numpy as np
import pandas as pd

from marketclear.core.market import Market, MarketKey
from marketclear.core.marketplace import MarketSet
from marketclear.solver.enums import SolvedStatus


class SolverInfo:
    """Solver-side state of one market.

    The bracket is stored as two (price, excess demand) points whose excess
    demands have opposite signs. Either point may carry the higher price.
    """

    def __init__(self, market: Market) -> None:
        self.market = market
        self.status = (
            SolvedStatus.FIXED_OUTSIDE_SOLVER if market.fixed else SolvedStatus.UNSOLVED
        )
        self.reset_bracket()

    def reset_bracket(self) -> None:
        self.price_low: float | None = None
        self.price_high: float | None = None
        self.ed_low: float | None = None
        self.ed_high: float | None = None

    @property
    def key(self) -> MarketKey:
        return self.market.key

    @property
    def name(self) -> str:
        return self.market.name

    @property
    def fixed(self) -> bool:
        return self.status is SolvedStatus.FIXED_OUTSIDE_SOLVER

    @property
    def price(self) -> float:
        return self.market.price

    def set_price(self, price: float) -> None:
        """Set the market price.

        Raises:
            RuntimeError: If the market is fixed outside the solver
        """
        if self.fixed:
            msg = f"Market {self.name} is fixed outside the solver"
            raise RuntimeError(msg)
        self.market.set_price(price)

    @property
    def excess_demand(self) -> float:
        return self.market.excess_demand

    def relative_excess_demand(self, floor: float) -> float:
        return self.market.relative_excess_demand(floor)

    def is_solved(self, tolerance: float, floor: float) -> bool:
        return self.market.is_solved(tolerance, floor)

    def set_bracket(self, price_a: float, ed_a: float, price_b: float, ed_b: float) -> None:
        """Store two bracket points, lower price first."""
        if price_a <= price_b:
            self.price_low, self.ed_low, self.price_high, self.ed_high = price_a, ed_a, price_b, ed_b
        else:
            self.price_low, self.ed_low, self.price_high, self.ed_high = price_b, ed_b, price_a, ed_a

    @property
    def is_bracketed(self) -> bool:
        """True when the two bracket points have excess demands of opposite sign."""
        if self.ed_low is None or self.ed_high is None:
            return False
        return (self.ed_low > 0.0) != (self.ed_high > 0.0)

    @property
    def bracket_width(self) -> float:
        if self.price_low is None or self.price_high is None:
            return math.inf
        return self.price_high - self.price_low

    def bracket_midpoint(self) -> float:
        if self.price_low is None or self.price_high is None:
            msg = f"Market {self.name} has no bracket"
            raise RuntimeError(msg)
        return 0.5 * (self.price_low + self.price_high)

    def update_bracket(self) -> bool:
        """Replace the bracket end whose excess demand has the current sign.

        Returns:
            True if the low end was replaced
        """
        ed = self.excess_demand
        if (ed > 0.0) == ((self.ed_low or 0.0) > 0.0):
            self.price_low, self.ed_low = self.price, ed
            return True
        self.price_high, self.ed_high = self.price, ed
        return False

    def __repr__(self) -> str:
        return f"SolverInfo({self.name}, {self.status.value}, price={self.price:.6g})"


class SolverInfoSet:
    """Ordered solver view of all markets for one solve attempt.

    Only markets with status UNSOLVED may be mutated by solver components.

    Example:
        >>> info_set = SolverInfoSet.from_markets(markets)
        >>> graph.calc(period)
        >>> info_set.update_solvable(tolerance=1e-3, floor=1e-4)
        >>> info_set.all_solved()
    """

    def __init__(self, infos: Iterable[SolverInfo]) -> None:
        self._infos: list[SolverInfo] = list(infos)

    @classmethod
    def from_markets(cls, markets: MarketSet) -> SolverInfoSet:
        """Build a fresh set; fixed markets are tagged FIXED_OUTSIDE_SOLVER."""
        return cls(SolverInfo(market) for market in markets)

    def __iter__(self) -> Iterator[SolverInfo]:
        return iter(self._infos)

    def __len__(self) -> int:
        return len(self._infos)

    def get(self, key: MarketKey) -> SolverInfo:
        for info in self._infos:
            if info.key == key:
                return info
        good, region = key
        msg = f"Market '{good}' in region '{region}' is not part of this solve"
        raise KeyError(msg)

    def solvable(self) -> list[SolverInfo]:
        """Markets the solver is responsible for (everything not fixed)."""
        return [info for info in self._infos if not info.fixed]

    def unsolved(self) -> list[SolverInfo]:
        return [info for info in self._infos if info.status is SolvedStatus.UNSOLVED]

    def count_unsolved(self) -> int:
        return sum(1 for info in self._infos if info.status is SolvedStatus.UNSOLVED)

    def update_solvable(self, tolerance: float, floor: float) -> int:
        """Re-partition SOLVED/UNSOLVED from current excess demands.

        The fixed flag of each market is read again, so a market fixed or
        released by a policy node during the last calculation changes the
        solvable set here.

        Returns:
            Number of SOLVED markets reopened to UNSOLVED
        """
        reopened = 0
        for info in self._infos:
            if info.market.fixed:
                info.status = SolvedStatus.FIXED_OUTSIDE_SOLVER
                continue
            solved = info.is_solved(tolerance, floor)
            if solved:
                info.status = SolvedStatus.SOLVED
            else:
                if info.status is SolvedStatus.SOLVED:
                    reopened += 1
                info.status = SolvedStatus.UNSOLVED
        return reopened

    def all_solved(self) -> bool:
        return all(info.status is not SolvedStatus.UNSOLVED for info in self._infos)

    def max_relative_ed(self, floor: float) -> float:
        """Largest |relative excess demand| over the solvable markets."""
        values = [abs(info.relative_excess_demand(floor)) for info in self.solvable()]
        return max(values, default=0.0)

    def worst_market(self, floor: float, infos: Sequence[SolverInfo] | None = None) -> SolverInfo | None:
        """Return the market with the largest |relative excess demand|."""
        candidates = list(infos) if infos is not None else self.unsolved()
        if not candidates:
            return None
        return max(candidates, key=lambda info: abs(info.relative_excess_demand(floor)))

    def get_price_vector(self, infos: Sequence[SolverInfo]) -> np.ndarray:
        return np.array([info.price for info in infos], dtype=float)

    def set_price_vector(self, infos: Sequence[SolverInfo], prices: np.ndarray) -> None:
        """Set prices of ``infos`` simultaneously.

        Raises:
            ValueError: If the vector length differs or contains non-finite values
        """
        prices = np.asarray(prices, dtype=float)
        if prices.shape != (len(infos),):
            msg = f"Expected {len(infos)} prices, got shape {prices.shape}"
            raise ValueError(msg)
        if not np.all(np.isfinite(prices)):
            msg = "Price vector contains non-finite values"
            raise ValueError(msg)
        for info, price in zip(infos, prices):
            info.set_price(float(price))

    def excess_demand_vector(self, infos: Sequence[SolverInfo]) -> np.ndarray:
        return np.array([info.excess_demand for info in infos], dtype=float)

    def snapshot_prices(self) -> dict[MarketKey, float]:
        """Current prices of all solvable markets."""
        return {info.key: info.price for info in self.solvable()}

    def restore_prices(self, snapshot: dict[MarketKey, float]) -> None:
        for info in self.solvable():
            if info.key in snapshot:
                info.set_price(snapshot[info.key])

    def has_non_finite(self) -> bool:
        """True if any market has NaN or infinite supply or demand."""
        return any(not info.market.has_finite_quantities() for info in self._infos)

    def reset_brackets(self) -> None:
        for info in self._infos:
            info.reset_bracket()

    def to_frame(self, floor: float) -> pd.DataFrame:
        """Return per-market solver state as a DataFrame."""
        rows = [
            {
                "good": info.market.good,
                "region": info.market.region,
                "status": info.status.value,
                "price": info.price,
                "supply": info.market.supply,
                "demand": info.market.demand,
                "relative_excess_demand": info.relative_excess_demand(floor),
            }
            for info in self._infos
        ]
        return pd.DataFrame(rows).set_index(["good", "region"]) if rows else pd.DataFrame()

    def __repr__(self) -> str:
        return f"SolverInfoSet({len(self._infos)} markets, {self.count_unsolved()} unsolved)"
