"""Tests for the calculation graph and the node registry."""

from __future__ import annotations

import pytest

from marketclear.cascade import (
    CalculationGraph,
    FinalDemand,
    LinearDemand,
    NodeRegistry,
    PriceTerm,
    ResourceSupply,
    Sector,
    get_registry,
)
from marketclear.core import MarketNotFoundError, MarketSet


def make_energy_graph() -> CalculationGraph:
    markets = MarketSet()
    markets.add_market("electricity", "USA", price=12.0)
    markets.add_market("natural gas", "USA", price=4.0)
    markets.add_market("coal", "USA", price=2.0)

    graph = CalculationGraph(markets)
    graph.add_node_from_config(
        {
            "kind": "sector",
            "name": "generation",
            "region": "USA",
            "good": "electricity",
            "base_output": 10.0,
            "subsectors": [
                {
                    "name": "gas",
                    "technologies": [
                        {"name": "ngcc", "non_energy_cost": 5.0, "inputs": {"natural gas": 2.0}}
                    ],
                },
                {
                    "name": "coal",
                    "technologies": [
                        {"name": "pc", "non_energy_cost": 6.0, "inputs": {"coal": 2.5}}
                    ],
                },
            ],
        }
    )
    graph.add_node(
        FinalDemand(name="demand", region="USA", good="electricity", base_quantity=10.0)
    )
    graph.add_node(
        ResourceSupply(
            name="gas", region="USA", good="natural gas", base_quantity=20.0, base_price=4.0
        )
    )
    graph.add_node(
        ResourceSupply(name="coal", region="USA", good="coal", base_quantity=10.0, base_price=2.0)
    )
    return graph


def test_calc_is_idempotent() -> None:
    graph = make_energy_graph()
    graph.calc(1)
    first = (graph.markets.supplies(), graph.markets.demands())
    graph.calc(1)
    second = (graph.markets.supplies(), graph.markets.demands())
    assert first == second


def test_calc_clears_previous_quantities() -> None:
    graph = make_energy_graph()
    graph.calc(1)
    supply = graph.markets.get_market("electricity", "USA").supply
    graph.calc(1)
    assert graph.markets.get_market("electricity", "USA").supply == supply


def test_calc_does_not_depend_on_node_order() -> None:
    graph = make_energy_graph()
    graph.calc(1)
    expected = graph.markets.demands()

    reversed_graph = CalculationGraph(graph.markets, reversed(graph.nodes))
    reversed_graph.calc(1)
    assert reversed_graph.markets.demands() == pytest.approx(expected)


def test_evaluate_returns_supply_and_demand() -> None:
    graph = make_energy_graph()
    supply, demand = graph.evaluate({("electricity", "USA"): 15.0}, period=1)

    assert graph.markets.get_price("electricity", "USA") == 15.0
    assert set(supply) == {("electricity", "USA"), ("natural gas", "USA"), ("coal", "USA")}
    assert demand[("electricity", "USA")] == pytest.approx(10.0 * 15.0**-0.5)
    assert demand[("natural gas", "USA")] > 0.0
    assert demand[("coal", "USA")] > 0.0


def test_add_node_with_unknown_market_raises() -> None:
    graph = make_energy_graph()
    with pytest.raises(MarketNotFoundError):
        graph.add_node(
            LinearDemand(
                name="cross",
                region="USA",
                good="electricity",
                terms=[PriceTerm(good="oil", region="USA", slope=1.0)],
            )
        )
    assert len(graph) == 4


def test_validate() -> None:
    graph = make_energy_graph()
    assert graph.validate()

    graph.nodes.append(FinalDemand(name="oil", region="USA", good="oil", base_quantity=1.0))
    with pytest.raises(MarketNotFoundError):
        graph.validate()


def test_add_node_from_config_requires_kind() -> None:
    graph = make_energy_graph()
    with pytest.raises(ValueError):
        graph.add_node_from_config({"name": "x", "region": "USA", "good": "coal"})
    with pytest.raises(KeyError):
        graph.add_node_from_config({"kind": "nuclear", "name": "x", "region": "USA"})


def test_init_calc_runs_on_every_node() -> None:
    graph = make_energy_graph()
    graph.init_calc(1)
    graph.calc(1)
    assert graph.nodes[0].last_results["output"] > 0.0


class TestNodeRegistry:
    """Tests for the node registry."""

    def test_builtin_kinds_registered(self):
        kinds = get_registry().list_kinds()
        for kind in ("sector", "final_demand", "resource", "linear_supply", "linear_demand"):
            assert kind in kinds

    def test_create_sets_kind(self):
        node = get_registry().create(
            "final_demand", name="d", region="USA", good="x", base_quantity=1.0
        )
        assert isinstance(node, FinalDemand)
        assert node.kind == "final_demand"

    def test_register_duplicate_raises(self):
        registry = NodeRegistry()
        registry.register("sector", Sector)
        assert "sector" in registry
        with pytest.raises(ValueError):
            registry.register("sector", Sector)

    def test_get_unknown_raises(self):
        with pytest.raises(KeyError):
            NodeRegistry().get("sector")
