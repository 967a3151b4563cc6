"""Reporting models for market-clearing solutions."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

SCHEMA_VERSION = "marketclear/solution/v1"


@dataclass
class ComponentRun:
    """Outcome of one solver component call."""

    component: str
    return_code: str
    calcs: int
    unsolved_before: int
    unsolved_after: int
    iterations: list[float] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.return_code.startswith("failure")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class MarketResult:
    """Final state of one market in a period."""

    good: str
    region: str
    status: str
    price: float
    supply: float
    demand: float
    relative_excess_demand: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PeriodSolution:
    """Result of solving one period."""

    period: int
    success: bool
    calcs: int
    max_relative_excess_demand: float
    unsolved: list[str] = field(default_factory=list)
    component_runs: list[ComponentRun] = field(default_factory=list)
    markets: list[MarketResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "period": self.period,
            "success": self.success,
            "calcs": self.calcs,
            "max_relative_excess_demand": self.max_relative_excess_demand,
            "unsolved": list(self.unsolved),
            "component_runs": [run.to_dict() for run in self.component_runs],
            "markets": [market.to_dict() for market in self.markets],
        }

    def save_json(self, path: Path | str) -> None:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(self.to_dict(), indent=2))

    def price(self, good: str, region: str) -> float:
        """Final price of a market.

        Raises:
            KeyError: If the market is not part of this solution
        """
        for market in self.markets:
            if market.good == good and market.region == region:
                return market.price
        raise KeyError((good, region))

    def markets_frame(self) -> pd.DataFrame:
        """Final market state indexed by (good, region)."""
        frame = pd.DataFrame(
            [market.to_dict() for market in self.markets],
            columns=[
                "good",
                "region",
                "status",
                "price",
                "supply",
                "demand",
                "relative_excess_demand",
            ],
        )
        return frame.set_index(["good", "region"])

    def iterations_frame(self) -> pd.DataFrame:
        """Worst RED per iteration, one row per iteration of every component call."""
        rows = [
            {
                "period": self.period,
                "call": call,
                "component": run.component,
                "iteration": iteration,
                "max_relative_excess_demand": red,
            }
            for call, run in enumerate(self.component_runs)
            for iteration, red in enumerate(run.iterations, start=1)
        ]
        return pd.DataFrame(
            rows,
            columns=["period", "call", "component", "iteration", "max_relative_excess_demand"],
        )


@dataclass
class ScenarioResult:
    """Top-level report of a multi-period run."""

    name: str
    periods: list[PeriodSolution] = field(default_factory=list)
    total_calcs: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return all(solution.success for solution in self.periods)

    @property
    def failed_periods(self) -> list[int]:
        return [solution.period for solution in self.periods if not solution.success]

    def get(self, period: int) -> PeriodSolution:
        for solution in self.periods:
            if solution.period == period:
                return solution
        raise KeyError(period)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "name": self.name,
            "success": self.success,
            "failed_periods": self.failed_periods,
            "total_calcs": self.total_calcs,
            "periods": [solution.to_dict() for solution in self.periods],
            "metadata": self.metadata,
        }

    def save_json(self, path: Path | str) -> None:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(self.to_dict(), indent=2))

    def markets_frame(self) -> pd.DataFrame:
        """Final market state of every period, indexed by (period, good, region)."""
        frames = [
            solution.markets_frame().assign(period=solution.period) for solution in self.periods
        ]
        if not frames:
            return pd.DataFrame()
        return pd.concat(frames).reset_index().set_index(["period", "good", "region"])

    def iterations_frame(self) -> pd.DataFrame:
        frames = [solution.iterations_frame() for solution in self.periods]
        if not frames:
            return pd.DataFrame()
        return pd.concat(frames, ignore_index=True)


def format_solution_summary(result: ScenarioResult | PeriodSolution) -> str:
    """Compact human-readable summary line."""
    if isinstance(result, PeriodSolution):
        status = "SOLVED" if result.success else "UNSOLVED"
        return (
            f"Period {result.period} {status} | calcs={result.calcs} "
            f"max_red={result.max_relative_excess_demand:.3e} "
            f"unsolved={len(result.unsolved)} components={len(result.component_runs)}"
        )
    status = "PASS" if result.success else "FAIL"
    failed = ",".join(str(p) for p in result.failed_periods) or "-"
    return (
        f"Scenario {result.name} {status} | periods={len(result.periods)} "
        f"failed={failed} calcs={result.total_calcs}"
    )
