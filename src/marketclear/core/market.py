"""Market records for the market-clearing solver.

A market holds the price, supply and demand of one good in one region.
Markets are created once at configuration time and persist across periods;
the final price of each period is stored so the next period can start from
it.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

MarketKey = tuple[str, str]


class Market(BaseModel):
    """A single commodity market.

    Attributes:
        good: Name of the traded good
        region: Region the market belongs to
        price: Current trial price
        supply: Supplied quantity from the last calculation
        demand: Demanded quantity from the last calculation
        allow_negative_price: Whether the price may fall below zero
            (e.g. an emissions-subsidy market)
        fixed: Market is fixed outside the solver and never perturbed
        tolerance: Optional market-specific relative tolerance
        bracket: Optional initial (low, high) bisection bracket
        stored_prices: Final price of each solved period

    Example:
        >>> oil = Market(good="crude oil", region="USA", price=4.0)
        >>> oil.add_to_demand(10.0)
        >>> oil.add_to_supply(8.0)
        >>> oil.relative_excess_demand(1e-4)
        0.2
    """

    good: str = Field(..., min_length=1, description="Good name")
    region: str = Field(..., min_length=1, description="Region name")
    price: float = Field(default=1.0, description="Current price")
    supply: float = Field(default=0.0, description="Supplied quantity")
    demand: float = Field(default=0.0, description="Demanded quantity")
    allow_negative_price: bool = Field(
        default=False, description="Allow prices below zero"
    )
    fixed: bool = Field(default=False, description="Fixed outside the solver")
    tolerance: float | None = Field(
        default=None, gt=0.0, description="Market-specific solution tolerance"
    )
    bracket: tuple[float, float] | None = Field(
        default=None, description="Initial bisection bracket"
    )
    stored_prices: dict[int, float] = Field(
        default_factory=dict, description="Final price per period"
    )

    model_config = {"frozen": False}

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: float) -> float:  # noqa: N805
        """Reject non-finite initial prices."""
        if not math.isfinite(v):
            msg = f"Market price must be finite, got {v}"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_market(self) -> Market:
        """Check the bracket and the sign convention of the initial price."""
        if self.bracket is not None:
            low, high = self.bracket
            if not (math.isfinite(low) and math.isfinite(high)) or low >= high:
                msg = f"Market '{self.good}' in '{self.region}': invalid bracket {self.bracket}"
                raise ValueError(msg)
            if not self.allow_negative_price and low < 0.0:
                msg = (
                    f"Market '{self.good}' in '{self.region}': bracket {self.bracket} "
                    "goes below zero but negative prices are not allowed"
                )
                raise ValueError(msg)
        if not self.allow_negative_price and self.price < 0.0:
            self.price = 0.0
        return self

    @property
    def key(self) -> MarketKey:
        """(good, region) identity of the market."""
        return (self.good, self.region)

    @property
    def name(self) -> str:
        """Human-readable market name."""
        return f"{self.region}{self.good}"

    def set_price(self, price: float) -> None:
        """Set the trial price.

        This never triggers recalculation of supply or demand.

        Raises:
            ValueError: If the price is NaN or infinite
        """
        price = float(price)
        if not math.isfinite(price):
            msg = f"Attempted to set non-finite price {price} in market {self.name}"
            raise ValueError(msg)
        if not self.allow_negative_price and price < 0.0:
            price = 0.0
        self.price = price

    def clear_quantities(self) -> None:
        """Zero supply and demand before a calculation pass."""
        self.supply = 0.0
        self.demand = 0.0

    def add_to_supply(self, quantity: float) -> None:
        self.supply += quantity

    def add_to_demand(self, quantity: float) -> None:
        self.demand += quantity

    @property
    def excess_demand(self) -> float:
        """Demand minus supply."""
        return self.demand - self.supply

    def relative_excess_demand(self, floor: float) -> float:
        """Excess demand normalized by max(|demand|, floor)."""
        return self.excess_demand / max(abs(self.demand), floor)

    def solution_tolerance(self, default: float) -> float:
        """Return the market tolerance, falling back to ``default``."""
        return self.tolerance if self.tolerance is not None else default

    def is_solved(self, tolerance: float, floor: float) -> bool:
        """Check both the relative and the absolute solution thresholds."""
        tol = self.solution_tolerance(tolerance)
        return (
            abs(self.relative_excess_demand(floor)) <= tol
            and abs(self.excess_demand) <= floor
        )

    def has_finite_quantities(self) -> bool:
        return math.isfinite(self.supply) and math.isfinite(self.demand)

    def store_price(self, period: int) -> None:
        self.stored_prices[period] = self.price

    def to_dict(self) -> dict[str, Any]:
        """Convert market state to a dictionary."""
        return {
            "good": self.good,
            "region": self.region,
            "price": self.price,
            "supply": self.supply,
            "demand": self.demand,
            "excess_demand": self.excess_demand,
            "fixed": self.fixed,
        }

    def __repr__(self) -> str:
        """String representation."""
        fixed_str = " [FIXED]" if self.fixed else ""
        return (
            f"Market {self.name}: price={self.price:.6g}, "
            f"supply={self.supply:.6g}, demand={self.demand:.6g}{fixed_str}"
        )
