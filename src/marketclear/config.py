"""Load and validate YAML configuration for market-clearing scenarios."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from marketclear.cascade.graph import CalculationGraph
from marketclear.core.errors import MarketNotFoundError, SolverConfigError
from marketclear.core.marketplace import MarketSet
from marketclear.solver.enums import ComponentKind


class ComponentConfig(BaseModel):
    """One entry of the configured component sequence.

    Attributes:
        name: Component name (aliases accepted)
        max_iterations: Iteration limit for this component
        params: Component-specific settings
    """

    name: str
    max_iterations: int | None = Field(default=None, gt=0)
    params: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:  # noqa: N805
        """Resolve aliases to the canonical component name."""
        return ComponentKind.from_alias(v).value


def _default_components() -> list[ComponentConfig]:
    return [
        ComponentConfig(name=ComponentKind.LOG_NEWTON_RAPHSON.value),
        ComponentConfig(name=ComponentKind.BISECT_ALL.value),
    ]


class SolverConfig(BaseModel):
    """Solver settings consumed once at setup.

    Attributes:
        solution_tolerance: Relative excess demand tolerance
        ed_solution_floor: Absolute excess demand tolerance and RED floor
        max_iterations: Default iteration limit per component call
        max_passes: Passes over the component sequence per period
        max_calcs_per_period: Calculation budget per period
        halt_on_failure: Stop the run when a period fails to solve
        components: Ordered component sequence
    """

    solution_tolerance: float = Field(default=1e-3, gt=0.0)
    ed_solution_floor: float = Field(default=1e-4, gt=0.0)
    max_iterations: int = Field(default=100, gt=0)
    max_passes: int = Field(default=4, gt=0)
    max_calcs_per_period: int = Field(default=5000, gt=0)
    halt_on_failure: bool = False
    components: list[ComponentConfig] = Field(default_factory=_default_components)

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("solution_tolerance")
    @classmethod
    def validate_tolerance(cls, v: float) -> float:  # noqa: N805
        if v >= 1.0:
            msg = f"solution_tolerance must be below 1, got {v}"
            raise ValueError(msg)
        return v

    @field_validator("components")
    @classmethod
    def validate_components(cls, v: list[ComponentConfig]) -> list[ComponentConfig]:  # noqa: N805
        if not v:
            msg = "At least one solver component must be configured"
            raise ValueError(msg)
        return v

    def iterations_for(self, component: ComponentConfig) -> int:
        return component.max_iterations or self.max_iterations


class MarketConfig(BaseModel):
    """Initial definition of one market."""

    good: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    price: float = 1.0
    allow_negative_price: bool = False
    fixed: bool = False
    tolerance: float | None = Field(default=None, gt=0.0)
    bracket: tuple[float, float] | None = None

    model_config = {"frozen": True, "extra": "forbid"}


class ScenarioConfig(BaseModel):
    """Resolved scenario config from YAML."""

    name: str = "scenario"
    periods: list[int] = Field(default_factory=lambda: [1])
    solver: SolverConfig = Field(default_factory=SolverConfig)
    markets: list[MarketConfig] = Field(default_factory=list)
    nodes: list[dict[str, Any]] = Field(default_factory=list)

    model_config = {"frozen": True, "extra": "forbid"}

    @model_validator(mode="after")
    def validate_scenario(self) -> ScenarioConfig:
        if self.periods != sorted(set(self.periods)):
            msg = f"periods must be strictly increasing, got {self.periods}"
            raise ValueError(msg)
        keys = [(m.good, m.region) for m in self.markets]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            msg = f"Duplicate market definitions: {duplicates}"
            raise ValueError(msg)
        return self


def solver_config_from_dict(payload: dict[str, Any]) -> SolverConfig:
    """Validate solver settings.

    Raises:
        SolverConfigError: If a setting is missing or invalid
    """
    try:
        return SolverConfig.model_validate(payload)
    except ValidationError as exc:
        raise SolverConfigError(f"Invalid solver configuration: {exc}") from exc


def scenario_config_from_dict(payload: dict[str, Any]) -> ScenarioConfig:
    """Validate a full scenario mapping.

    Raises:
        SolverConfigError: If the mapping is not a valid scenario
    """
    if not isinstance(payload, dict):
        raise SolverConfigError("Scenario config must define a top-level mapping")
    try:
        return ScenarioConfig.model_validate(payload)
    except ValidationError as exc:
        raise SolverConfigError(f"Invalid scenario configuration: {exc}") from exc


def load_scenario_config(config_path: Path | str) -> ScenarioConfig:
    """Read and validate a scenario YAML file."""
    path = Path(config_path)
    payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    config = scenario_config_from_dict(payload)
    if config.name == "scenario" and not (payload or {}).get("name"):
        config = config.model_copy(update={"name": path.stem})
    return config


def load_solver_config(config_path: Path | str) -> SolverConfig:
    """Read solver settings from YAML.

    The file may hold the settings at the top level or under a ``solver``
    section of a scenario file.
    """
    payload = yaml.safe_load(Path(config_path).read_text(encoding="utf-8")) or {}
    if not isinstance(payload, dict):
        raise SolverConfigError("Solver config must define a top-level mapping")
    section = payload.get("solver", payload)
    if not isinstance(section, dict):
        raise SolverConfigError("'solver' section must be a mapping")
    return solver_config_from_dict(section)


def build_markets(config: ScenarioConfig) -> MarketSet:
    """Create the market set described by ``config``.

    Raises:
        SolverConfigError: If a market definition is invalid
    """
    markets = MarketSet()
    for market in config.markets:
        try:
            markets.add_market(**market.model_dump())
        except ValueError as exc:
            raise SolverConfigError(f"Invalid market definition {market.model_dump()}: {exc}") from exc
    return markets


def build_graph(config: ScenarioConfig, markets: MarketSet) -> CalculationGraph:
    """Create the calculation graph described by ``config``.

    Raises:
        MarketNotFoundError: If a node references a market that is not defined
        SolverConfigError: If a node definition is invalid
    """
    graph = CalculationGraph(markets)
    for payload in config.nodes:
        try:
            graph.add_node_from_config(payload)
        except MarketNotFoundError:
            raise
        except (KeyError, ValueError) as exc:
            raise SolverConfigError(f"Invalid node definition {payload}: {exc}") from exc
    return graph
