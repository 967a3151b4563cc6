"""Tests for the Newton-Raphson components."""

from __future__ import annotations

import numpy as np
import pytest

from marketclear.cascade import (
    CalculationGraph,
    LinearDemand,
    LinearSupply,
    Node,
    PriceTerm,
)
from marketclear.core import CalcCounter, MarketKey, MarketSet
from marketclear.solver import (
    LogNewtonRaphson,
    NewtonRaphson,
    ReturnCode,
    SolvedStatus,
    SolverInfoSet,
)


def term(good: str, slope: float) -> PriceTerm:
    return PriceTerm(good=good, region="R", slope=slope)


def make_coupled_graph(price_a: float = 5.0, price_b: float = 5.0) -> CalculationGraph:
    """Two linear markets with cross-price demand.

    Excess demands are ``20 - 3a + 0.5b`` and ``15 + 0.5a - 4b``.
    """
    markets = MarketSet()
    markets.add_market("a", "R", price=price_a)
    markets.add_market("b", "R", price=price_b)
    graph = CalculationGraph(markets)
    graph.add_node(LinearSupply(name="sa", region="R", good="a", terms=[term("a", 2.0)]))
    graph.add_node(
        LinearDemand(
            name="da", region="R", good="a", intercept=20.0, terms=[term("a", -1.0), term("b", 0.5)]
        )
    )
    graph.add_node(LinearSupply(name="sb", region="R", good="b", terms=[term("b", 3.0)]))
    graph.add_node(
        LinearDemand(
            name="db", region="R", good="b", intercept=15.0, terms=[term("a", 0.5), term("b", -1.0)]
        )
    )
    return graph


def closed_form() -> np.ndarray:
    return np.linalg.solve(np.array([[3.0, -0.5], [-0.5, 4.0]]), np.array([20.0, 15.0]))


def prepare(graph: CalculationGraph, tol: float, floor: float) -> SolverInfoSet:
    info_set = SolverInfoSet.from_markets(graph.markets)
    graph.calc(1)
    info_set.update_solvable(tol, floor)
    return info_set


def test_coupled_markets_match_closed_form() -> None:
    graph = make_coupled_graph()
    info_set = prepare(graph, 1e-8, 1e-8)
    counter = CalcCounter()
    component = NewtonRaphson(graph, counter)

    code = component.solve(1e-8, 1e-8, 10, info_set, period=1)

    assert code is ReturnCode.SUCCESS
    assert np.allclose(graph.markets.price_vector(), closed_form(), rtol=1e-7)
    assert np.allclose(component.last_jacobian, [[-3.0, 0.5], [0.5, -4.0]], rtol=1e-5)
    # One calculation per market for the Jacobian plus one per step.
    assert counter.total == 3 * len(component.iterations)


def test_log_newton_matches_closed_form() -> None:
    graph = make_coupled_graph()
    info_set = prepare(graph, 1e-8, 1e-8)

    code = LogNewtonRaphson(graph, CalcCounter()).solve(1e-8, 1e-8, 30, info_set, period=1)

    assert code is ReturnCode.SUCCESS
    assert np.allclose(graph.markets.price_vector(), closed_form(), rtol=1e-6)


def test_step_is_damped() -> None:
    graph = make_coupled_graph(price_a=1.0, price_b=1.0)
    info_set = prepare(graph, 1e-8, 1e-8)
    component = NewtonRaphson(graph, CalcCounter(), max_step=0.25)

    component.solve(1e-8, 1e-8, 1, info_set, period=1)

    prices = graph.markets.price_vector()
    assert np.all(np.abs(prices - 1.0) <= 0.25 + 1e-12)
    assert np.max(np.abs(prices - 1.0)) == pytest.approx(0.25)


def test_identical_markets_give_singular_matrix() -> None:
    markets = MarketSet()
    markets.add_market("a", "R", price=1.0)
    markets.add_market("b", "R", price=1.0)
    graph = CalculationGraph(markets)
    both = [term("a", 1.0), term("b", 1.0)]
    for good in ("a", "b"):
        graph.add_node(LinearSupply(name=f"s{good}", region="R", good=good, terms=both))
        graph.add_node(
            LinearDemand(
                name=f"d{good}",
                region="R",
                good=good,
                intercept=10.0,
                terms=[term("a", -1.0), term("b", -1.0)],
            )
        )
    info_set = prepare(graph, 1e-6, 1e-6)

    code = NewtonRaphson(graph, CalcCounter()).solve(1e-6, 1e-6, 10, info_set, period=1)

    assert code is ReturnCode.FAILURE_SINGULAR_MATRIX
    assert np.all(np.isfinite(markets.price_vector()))
    assert np.allclose(markets.price_vector(), [1.0, 1.0])


class ExplodingDemand(Node):
    """Demand that becomes infinite above a price threshold."""

    good: str
    threshold: float

    def market_keys(self) -> list[MarketKey]:
        return [(self.good, self.region)]

    def calc(self, markets: MarketSet, period: int) -> None:
        market = markets.get_market(self.good, self.region)
        if market.price > self.threshold:
            market.add_to_demand(float("inf"))


def test_non_finite_quantities_restore_prices() -> None:
    markets = MarketSet()
    markets.add_market("a", "R", price=2.5)
    graph = CalculationGraph(markets)
    graph.add_node(LinearSupply(name="s", region="R", good="a", terms=[term("a", 1.0)]))
    graph.add_node(
        LinearDemand(name="d", region="R", good="a", intercept=10.0, terms=[term("a", -1.0)])
    )
    graph.add_node(ExplodingDemand(name="x", region="R", good="a", threshold=3.0))
    info_set = prepare(graph, 1e-6, 1e-6)

    code = NewtonRaphson(graph, CalcCounter()).solve(1e-6, 1e-6, 10, info_set, period=1)

    assert code is ReturnCode.FAILURE_WRONG_DIRECTION
    assert markets.get_price("a", "R") == 2.5
    assert not info_set.has_non_finite()


def test_fixed_market_is_not_moved() -> None:
    graph = make_coupled_graph()
    graph.markets.add_market("c", "R", price=3.0, fixed=True)
    graph.add_node(LinearDemand(name="dc", region="R", good="c", intercept=1.0))
    info_set = prepare(graph, 1e-8, 1e-8)

    code = NewtonRaphson(graph, CalcCounter()).solve(1e-8, 1e-8, 10, info_set, period=1)

    assert code is ReturnCode.SUCCESS
    assert graph.markets.get_price("c", "R") == 3.0


def test_newton_settings_are_validated() -> None:
    with pytest.raises(ValueError):
        NewtonRaphson(CalculationGraph(MarketSet()), CalcCounter(), max_step=0.0)


def test_market_solved_at_start_stays_in_the_system() -> None:
    # Market b clears while a sits at 5; moving a pushes b out of balance.
    graph = make_coupled_graph(price_a=5.0, price_b=4.375)
    info_set = prepare(graph, 1e-8, 1e-8)
    assert info_set.get(("b", "R")).status is SolvedStatus.SOLVED
    component = NewtonRaphson(graph, CalcCounter())

    code = component.solve(1e-8, 1e-8, 10, info_set, period=1)

    assert code is ReturnCode.SUCCESS
    assert component.last_jacobian.shape == (2, 2)
    assert np.allclose(graph.markets.price_vector(), closed_form(), rtol=1e-7)


class FixAbovePrice(Node):
    """Policy that fixes a market once its price passes a cap."""

    good: str
    cap: float

    def market_keys(self) -> list[MarketKey]:
        return [(self.good, self.region)]

    def calc(self, markets: MarketSet, period: int) -> None:
        market = markets.get_market(self.good, self.region)
        if market.price > self.cap:
            market.fixed = True


def test_market_fixed_during_step_changes_solution_size() -> None:
    graph = make_coupled_graph()
    graph.add_node(FixAbovePrice(name="cap", region="R", good="a", cap=6.0))
    info_set = prepare(graph, 1e-8, 1e-8)

    code = NewtonRaphson(graph, CalcCounter()).solve(1e-8, 1e-8, 10, info_set, period=1)

    assert code is ReturnCode.FAILURE_SOLUTION_SIZE_CHANGED
    assert info_set.get(("a", "R")).status is SolvedStatus.FIXED_OUTSIDE_SOLVER
    assert graph.markets.get_price("a", "R") > 6.0
    assert graph.markets.get_price("b", "R") == 5.0


class CubeRootDemand(Node):
    """Excess demand ``cbrt(5 - p)``, on which a plain Newton step overshoots."""

    good: str

    def market_keys(self) -> list[MarketKey]:
        return [(self.good, self.region)]

    def calc(self, markets: MarketSet, period: int) -> None:
        market = markets.get_market(self.good, self.region)
        market.add_to_supply(10.0)
        market.add_to_demand(10.0 + float(np.cbrt(5.0 - market.price)))


def test_worsening_steps_give_wrong_direction() -> None:
    markets = MarketSet()
    markets.add_market("a", "R", price=5.1)
    graph = CalculationGraph(markets)
    graph.add_node(CubeRootDemand(name="x", region="R", good="a"))
    info_set = prepare(graph, 1e-6, 1e-6)
    component = NewtonRaphson(graph, CalcCounter())

    code = component.solve(1e-6, 1e-6, 10, info_set, period=1)

    assert code is ReturnCode.FAILURE_WRONG_DIRECTION
    reds = [it.red for it in component.iterations]
    assert len(reds) == 2
    assert reds[0] < reds[1]
    # The best prices seen are the starting ones.
    assert markets.get_price("a", "R") == 5.1
