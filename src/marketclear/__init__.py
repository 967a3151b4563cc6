"""marketclear - Market-clearing solver for multi-market economic simulations."""

from marketclear.cascade import CalculationGraph, Node, register_node
from marketclear.config import (
    ScenarioConfig,
    SolverConfig,
    load_scenario_config,
    load_solver_config,
    solver_config_from_dict,
)
from marketclear.core import (
    CalcCounter,
    Market,
    MarketClearError,
    MarketNotFoundError,
    MarketSet,
    SolverConfigError,
    SolverFailureError,
)
from marketclear.reporting import PeriodSolution, ScenarioResult, format_solution_summary
from marketclear.scenario import Scenario, build_scenario, load_scenario
from marketclear.solver import ReturnCode, Solver, SolverInfoSet
from marketclear.version import __version__

__all__ = [
    "__version__",
    "Market",
    "MarketSet",
    "CalcCounter",
    "CalculationGraph",
    "Node",
    "register_node",
    "Solver",
    "SolverInfoSet",
    "ReturnCode",
    "Scenario",
    "build_scenario",
    "load_scenario",
    "SolverConfig",
    "ScenarioConfig",
    "load_solver_config",
    "load_scenario_config",
    "solver_config_from_dict",
    "PeriodSolution",
    "ScenarioResult",
    "format_solution_summary",
    "MarketClearError",
    "MarketNotFoundError",
    "SolverConfigError",
    "SolverFailureError",
]
