"""Tests for SolverInfo and SolverInfoSet."""

from __future__ import annotations

import math

import numpy as np
import pytest

from marketclear.core import MarketSet
from marketclear.solver import SolvedStatus, SolverInfoSet


def make_info_set() -> SolverInfoSet:
    markets = MarketSet()
    markets.add_market("a", "R", price=1.0)
    markets.add_market("b", "R", price=2.0)
    markets.add_market("c", "R", price=3.0, fixed=True)
    return SolverInfoSet.from_markets(markets)


def set_quantities(info_set: SolverInfoSet, good: str, supply: float, demand: float) -> None:
    market = info_set.get((good, "R")).market
    market.clear_quantities()
    market.add_to_supply(supply)
    market.add_to_demand(demand)


def test_fixed_markets_are_tagged() -> None:
    info_set = make_info_set()
    assert info_set.get(("c", "R")).status is SolvedStatus.FIXED_OUTSIDE_SOLVER
    assert [info.key for info in info_set.solvable()] == [("a", "R"), ("b", "R")]
    assert info_set.count_unsolved() == 2


def test_fixed_market_price_cannot_be_set() -> None:
    info_set = make_info_set()
    with pytest.raises(RuntimeError):
        info_set.get(("c", "R")).set_price(5.0)


def test_update_solvable_partitions_and_reopens() -> None:
    info_set = make_info_set()
    set_quantities(info_set, "a", 5.0, 5.0)
    set_quantities(info_set, "b", 4.0, 5.0)

    assert info_set.update_solvable(1e-3, 1e-4) == 0
    assert info_set.get(("a", "R")).status is SolvedStatus.SOLVED
    assert [info.key for info in info_set.unsolved()] == [("b", "R")]
    assert not info_set.all_solved()

    set_quantities(info_set, "a", 4.0, 5.0)
    assert info_set.update_solvable(1e-3, 1e-4) == 1
    assert info_set.count_unsolved() == 2

    set_quantities(info_set, "a", 5.0, 5.0)
    set_quantities(info_set, "b", 5.0, 5.0)
    info_set.update_solvable(1e-3, 1e-4)
    assert info_set.all_solved()
    # The unbalanced fixed market does not block a solution.
    assert info_set.get(("c", "R")).status is SolvedStatus.FIXED_OUTSIDE_SOLVER


def test_update_solvable_follows_fixed_flag() -> None:
    info_set = make_info_set()
    set_quantities(info_set, "c", 5.0, 5.0)

    info_set.get(("a", "R")).market.fixed = True
    info_set.get(("c", "R")).market.fixed = False
    info_set.update_solvable(1e-3, 1e-4)

    assert info_set.get(("a", "R")).status is SolvedStatus.FIXED_OUTSIDE_SOLVER
    assert info_set.get(("c", "R")).status is SolvedStatus.SOLVED
    assert [info.key for info in info_set.solvable()] == [("b", "R"), ("c", "R")]


def test_max_relative_ed_and_worst_market() -> None:
    info_set = make_info_set()
    set_quantities(info_set, "a", 9.0, 10.0)
    set_quantities(info_set, "b", 5.0, 10.0)
    set_quantities(info_set, "c", 0.0, 10.0)

    assert info_set.max_relative_ed(1e-4) == pytest.approx(0.5)
    assert info_set.worst_market(1e-4).key == ("b", "R")


def test_price_vectors() -> None:
    info_set = make_info_set()
    infos = info_set.solvable()
    assert np.allclose(info_set.get_price_vector(infos), [1.0, 2.0])

    info_set.set_price_vector(infos, np.array([1.5, 2.5]))
    assert info_set.get(("b", "R")).price == 2.5

    with pytest.raises(ValueError):
        info_set.set_price_vector(infos, np.array([1.0, math.nan]))
    with pytest.raises(ValueError):
        info_set.set_price_vector(infos, np.array([1.0]))


def test_snapshot_and_restore() -> None:
    info_set = make_info_set()
    snapshot = info_set.snapshot_prices()
    assert ("c", "R") not in snapshot

    info_set.get(("a", "R")).set_price(9.0)
    info_set.restore_prices(snapshot)
    assert info_set.get(("a", "R")).price == 1.0


def test_has_non_finite() -> None:
    info_set = make_info_set()
    assert not info_set.has_non_finite()
    set_quantities(info_set, "b", math.inf, 1.0)
    assert info_set.has_non_finite()


def test_bracket_state() -> None:
    info = make_info_set().get(("a", "R"))
    assert not info.is_bracketed
    assert info.bracket_width == math.inf

    info.set_bracket(10.0, -4.0, 2.0, 3.0)
    assert (info.price_low, info.price_high) == (2.0, 10.0)
    assert info.is_bracketed
    assert info.bracket_midpoint() == 6.0

    # Positive excess demand at the midpoint moves the low end.
    info.set_price(6.0)
    info.market.add_to_demand(1.0)
    info.update_bracket()
    assert (info.price_low, info.price_high) == (6.0, 10.0)
    assert info.bracket_width == 4.0

    info.reset_bracket()
    assert not info.is_bracketed


def test_to_frame() -> None:
    frame = make_info_set().to_frame(1e-4)
    assert list(frame.index.names) == ["good", "region"]
    assert frame.loc[("c", "R"), "status"] == "fixed_outside_solver"
