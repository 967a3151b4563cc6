"""Market-clearing solver.

- Solver: per-period orchestrator over a sequence of components
- SolverInfoSet: solved/unsolved view of the markets for one period
- Components: bisection and Newton-Raphson price adjustment
"""

from marketclear.solver.components import (
    BisectAll,
    BisectOne,
    IterationInfo,
    LogNewtonRaphson,
    NewtonRaphson,
    SolverComponent,
    build_solver_component,
)
from marketclear.solver.enums import ComponentKind, ReturnCode, SolvedStatus
from marketclear.solver.info_set import SolverInfo, SolverInfoSet
from marketclear.solver.solver import Solver

__all__ = [
    "Solver",
    "SolverInfo",
    "SolverInfoSet",
    "SolverComponent",
    "IterationInfo",
    "BisectAll",
    "BisectOne",
    "NewtonRaphson",
    "LogNewtonRaphson",
    "build_solver_component",
    "ComponentKind",
    "ReturnCode",
    "SolvedStatus",
]
