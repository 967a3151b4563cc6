"""Enum definitions for solver components and market status."""

from __future__ import annotations

from enum import Enum


class ReturnCode(str, Enum):
    """Result of one ``SolverComponent.solve`` call."""

    ORIGINAL_STATE = "original_state"
    SUCCESS = "success"
    FAILURE_ITER_MAX_REACHED = "failure_iter_max_reached"
    FAILURE_WRONG_DIRECTION = "failure_wrong_direction"
    FAILURE_SOLUTION_SIZE_CHANGED = "failure_solution_size_changed"
    FAILURE_SINGULAR_MATRIX = "failure_singular_matrix"

    @property
    def is_failure(self) -> bool:
        return self.value.startswith("failure")


class SolvedStatus(str, Enum):
    """Status of a market within one period's solve."""

    UNSOLVED = "unsolved"
    SOLVED = "solved"
    FIXED_OUTSIDE_SOLVER = "fixed_outside_solver"


class ComponentKind(str, Enum):
    """Names of the available solver components."""

    BISECT_ALL = "bisect_all"
    BISECT_ONE = "bisect_one"
    NEWTON_RAPHSON = "newton_raphson"
    LOG_NEWTON_RAPHSON = "log_newton_raphson"

    @classmethod
    def from_alias(cls, value: str) -> ComponentKind:
        """Normalize component name aliases into a canonical ``ComponentKind``."""
        normalized = str(value).strip().lower().replace("-", "_")
        aliases: dict[str, ComponentKind] = {
            "bisect_all": cls.BISECT_ALL,
            "bisectall": cls.BISECT_ALL,
            "bisection": cls.BISECT_ALL,
            "bisect_one": cls.BISECT_ONE,
            "bisectone": cls.BISECT_ONE,
            "single_market": cls.BISECT_ONE,
            "newton_raphson": cls.NEWTON_RAPHSON,
            "newtonraphson": cls.NEWTON_RAPHSON,
            "newton": cls.NEWTON_RAPHSON,
            "nr": cls.NEWTON_RAPHSON,
            "log_newton_raphson": cls.LOG_NEWTON_RAPHSON,
            "lognewtonraphson": cls.LOG_NEWTON_RAPHSON,
            "log_newton": cls.LOG_NEWTON_RAPHSON,
            "log_nr": cls.LOG_NEWTON_RAPHSON,
        }
        if normalized not in aliases:
            allowed = [k.value for k in cls]
            raise ValueError(f"Unsupported solver component '{value}'. Allowed: {allowed}")
        return aliases[normalized]


class SearchMode(str, Enum):
    """Step a bisection component takes next for one market."""

    BISECT = "bisect"
    RECHECK = "recheck"
    EXPAND = "expand"
