"""Solver component registry.

Components are a closed set of algorithms selected by configured name.
"""

from __future__ import annotations

from typing import Any

from marketclear.cascade.graph import CalculationGraph
from marketclear.core.calc_counter import CalcCounter
from marketclear.core.errors import SolverConfigError
from marketclear.solver.components.base import IterationInfo, SolverComponent
from marketclear.solver.components.bisection import BisectAll, BisectOne, BracketingComponent
from marketclear.solver.components.newton import LogNewtonRaphson, NewtonRaphson
from marketclear.solver.enums import ComponentKind

_COMPONENTS: dict[ComponentKind, type[SolverComponent]] = {
    ComponentKind.BISECT_ALL: BisectAll,
    ComponentKind.BISECT_ONE: BisectOne,
    ComponentKind.NEWTON_RAPHSON: NewtonRaphson,
    ComponentKind.LOG_NEWTON_RAPHSON: LogNewtonRaphson,
}


def build_solver_component(
    name: str,
    graph: CalculationGraph,
    calc_counter: CalcCounter,
    **params: Any,
) -> SolverComponent:
    """Create a solver component from its configured name.

    Args:
        name: Component name or alias (e.g. "newton", "bisect_all")
        graph: Calculation graph the component evaluates
        calc_counter: Shared calculation counter
        **params: Component-specific settings

    Raises:
        SolverConfigError: If the name or a setting is not accepted
    """
    try:
        kind = ComponentKind.from_alias(name)
    except ValueError as exc:
        raise SolverConfigError(str(exc)) from exc
    component_cls = _COMPONENTS[kind]
    try:
        return component_cls(graph, calc_counter, **params)
    except (TypeError, ValueError) as exc:
        msg = f"Invalid settings for solver component '{kind.value}': {exc}"
        raise SolverConfigError(msg) from exc


__all__ = [
    "SolverComponent",
    "IterationInfo",
    "BracketingComponent",
    "BisectAll",
    "BisectOne",
    "NewtonRaphson",
    "LogNewtonRaphson",
    "build_solver_component",
]
