from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from marketclear.config import scenario_config_from_dict
from marketclear.core import SolverFailureError
from marketclear.reporting import format_solution_summary
from marketclear.scenario import build_scenario, load_scenario
from marketclear.solver import ReturnCode


def oil_payload(**solver) -> dict:
    """Oil market whose demand grows 10% a period."""
    return {
        "name": "oil",
        "periods": [1, 2, 3],
        "solver": {"solution_tolerance": 1e-6, "ed_solution_floor": 1e-6, **solver},
        "markets": [{"good": "oil", "region": "USA", "price": 1.0}],
        "nodes": [
            {
                "kind": "final_demand",
                "name": "demand",
                "region": "USA",
                "good": "oil",
                "base_quantity": 10.0,
                "elasticity": -0.5,
                "period_scalers": {2: 1.1, 3: 1.21},
            },
            {
                "kind": "resource",
                "name": "supply",
                "region": "USA",
                "good": "oil",
                "base_quantity": 10.0,
                "elasticity": 1.0,
            },
        ],
    }


def stuck_payload(**solver) -> dict:
    """Market with constant supply 5 and constant demand 10."""
    return {
        "name": "stuck",
        "periods": [1, 2],
        "solver": solver,
        "markets": [{"good": "oil", "region": "USA"}],
        "nodes": [
            {"kind": "linear_supply", "name": "s", "region": "USA", "good": "oil", "intercept": 5.0},
            {"kind": "linear_demand", "name": "d", "region": "USA", "good": "oil", "intercept": 10.0},
        ],
    }


def test_multi_period_run() -> None:
    scenario = build_scenario(scenario_config_from_dict(oil_payload()))

    result = scenario.run()

    assert result.success
    assert [solution.period for solution in result.periods] == [1, 2, 3]
    # Demand 10 * s * p**-0.5 meets supply 10 * p at p = s**(2/3).
    for period, scaler in [(1, 1.0), (2, 1.1), (3, 1.21)]:
        price = result.get(period).price("oil", "USA")
        assert price == pytest.approx(scaler ** (2.0 / 3.0), rel=1e-5)
    assert set(scenario.markets.get_market("oil", "USA").stored_prices) == {1, 2, 3}
    assert result.total_calcs == sum(solution.calcs for solution in result.periods)


def test_period_starts_from_previous_prices() -> None:
    scenario = build_scenario(scenario_config_from_dict(oil_payload()))
    scenario.run([1, 2])
    stored = scenario.markets.get_market("oil", "USA").stored_prices[2]

    scenario.markets.set_price("oil", "USA", 50.0)
    solution = scenario.solve_period(3, previous=2)

    assert solution.calcs > 0
    assert scenario.markets.get_market("oil", "USA").stored_prices[3] > stored


def test_soft_failure_continues() -> None:
    scenario = build_scenario(scenario_config_from_dict(stuck_payload()))

    result = scenario.run()

    assert not result.success
    assert result.failed_periods == [1, 2]
    assert "FAIL" in format_solution_summary(result)


def test_halt_on_failure_raises() -> None:
    scenario = build_scenario(scenario_config_from_dict(stuck_payload(halt_on_failure=True)))

    with pytest.raises(SolverFailureError) as excinfo:
        scenario.run()

    assert excinfo.value.period == 1
    assert isinstance(excinfo.value, RuntimeError)


def test_report_export(tmp_path: Path) -> None:
    result = build_scenario(scenario_config_from_dict(oil_payload())).run()
    path = tmp_path / "reports" / "oil.json"

    result.save_json(path)

    payload = json.loads(path.read_text())
    assert payload["name"] == "oil"
    assert payload["success"] is True
    assert [p["period"] for p in payload["periods"]] == [1, 2, 3]
    assert payload["periods"][1]["markets"][0]["good"] == "oil"
    assert payload["metadata"]["components"] == ["log_newton_raphson", "bisect_all"]


def test_report_frames() -> None:
    result = build_scenario(scenario_config_from_dict(oil_payload())).run()

    markets = result.markets_frame()
    assert list(markets.index.names) == ["period", "good", "region"]
    assert markets.loc[(2, "oil", "USA"), "price"] == pytest.approx(1.1 ** (2.0 / 3.0), rel=1e-5)

    iterations = result.iterations_frame()
    assert set(iterations.columns) >= {"period", "component", "iteration"}
    assert (iterations["max_relative_excess_demand"] >= 0.0).all()

    summary = format_solution_summary(result.get(2))
    assert summary.startswith("Period 2 SOLVED")


def coupled_payload() -> dict:
    """Markets a and b with cross-price demand; demand for a grows 20% in period 2."""

    def term(good: str, slope: float) -> dict:
        return {"good": good, "region": "R", "slope": slope}

    return {
        "name": "coupled",
        "periods": [1, 2],
        "solver": {"solution_tolerance": 1e-6, "ed_solution_floor": 1e-6},
        "markets": [
            {"good": "a", "region": "R", "price": 5.0},
            {"good": "b", "region": "R", "price": 5.0},
        ],
        "nodes": [
            {
                "kind": "linear_supply",
                "name": "sa",
                "region": "R",
                "good": "a",
                "terms": [term("a", 2.0)],
            },
            {
                "kind": "linear_demand",
                "name": "da",
                "region": "R",
                "good": "a",
                "intercept": 20.0,
                "terms": [term("a", -1.0), term("b", 0.5)],
                "period_scalers": {2: 1.2},
            },
            {
                "kind": "linear_supply",
                "name": "sb",
                "region": "R",
                "good": "b",
                "terms": [term("b", 3.0)],
            },
            {
                "kind": "linear_demand",
                "name": "db",
                "region": "R",
                "good": "b",
                "intercept": 15.0,
                "terms": [term("a", 0.5), term("b", -1.0)],
            },
        ],
    }


def test_period_with_market_already_solved() -> None:
    scenario = build_scenario(scenario_config_from_dict(coupled_payload()))

    result = scenario.run()

    assert result.success
    # Period 2 starts from the period 1 prices, at which b still clears.
    second = result.get(2)
    assert second.component_runs[0].unsolved_before == 1
    assert second.component_runs[0].return_code == ReturnCode.SUCCESS.value
    expected = np.linalg.solve(np.array([[3.2, -0.6], [-0.5, 4.0]]), np.array([24.0, 15.0]))
    assert second.price("a", "R") == pytest.approx(expected[0], rel=1e-5)
    assert second.price("b", "R") == pytest.approx(expected[1], rel=1e-5)


def test_example_scenario_solves_every_period() -> None:
    path = Path(__file__).parents[1] / "examples" / "configs" / "energy_one_region.yaml"

    result = load_scenario(path).run()

    assert result.success
    assert [solution.period for solution in result.periods] == [1, 2, 3]
    assert result.failed_periods == []
