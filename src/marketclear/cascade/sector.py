"""Supply sectors: the sector → subsector → technology cascade.

Prices are aggregated bottom-up and output is distributed top-down:

1. Each technology's unit cost is its non-energy cost plus the cost of its
   inputs at current market prices.
2. A subsector shares its technologies with a logit on cost and its price
   is the share-weighted technology cost.
3. The sector shares its subsectors the same way and its price is the
   share-weighted subsector price.
4. Sector output responds to the ratio of the market price of its good to
   its own price, and is split back down through the shares. Technology
   inputs become demands in the input markets.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from pydantic import BaseModel, Field, PrivateAttr, field_validator

from marketclear.cascade.base import Node, register_node
from marketclear.core.market import MarketKey
from marketclear.core.marketplace import MarketSet

# Costs are floored here before the logit power.
MIN_COST = 1e-6


def logit_shares(costs: np.ndarray, weights: np.ndarray, exponent: float) -> np.ndarray:
    """Compute logit shares ``w * c**exponent / sum(w * c**exponent)``.

    Args:
        costs: Unit costs of the competing options
        weights: Share weights (non-negative)
        exponent: Logit exponent, normally negative

    Returns:
        Shares summing to one. If every weight is zero, shares are equal.
    """
    costs = np.maximum(np.asarray(costs, dtype=float), MIN_COST)
    weights = np.asarray(weights, dtype=float)
    if costs.size == 0:
        return costs
    raw = weights * np.power(costs, exponent)
    total = float(raw.sum())
    if total <= 0.0 or not np.isfinite(total):
        return np.full(costs.shape, 1.0 / costs.size)
    return raw / total


class Technology(BaseModel):
    """A technology producing the sector good from market inputs.

    Attributes:
        name: Technology identifier
        non_energy_cost: Cost per unit output not tied to any market
        inputs: Input coefficients per unit output, keyed by good
        share_weight: Logit share weight
    """

    name: str = Field(..., min_length=1, description="Technology identifier")
    non_energy_cost: float = Field(default=0.0, ge=0.0, description="Non-energy cost")
    inputs: dict[str, float] = Field(
        default_factory=dict, description="Input coefficients by good"
    )
    share_weight: float = Field(default=1.0, ge=0.0, description="Logit share weight")

    model_config = {"frozen": False, "extra": "forbid"}

    @field_validator("inputs")
    @classmethod
    def validate_inputs(cls, v: dict[str, float]) -> dict[str, float]:  # noqa: N805
        """Input coefficients must be non-negative."""
        negative = [good for good, coef in v.items() if coef < 0.0]
        if negative:
            msg = f"Input coefficients must be non-negative: {negative}"
            raise ValueError(msg)
        return v

    def cost(self, markets: MarketSet, region: str) -> float:
        """Unit cost at current input prices."""
        input_cost = sum(
            coef * markets.get_price(good, region) for good, coef in self.inputs.items()
        )
        return self.non_energy_cost + input_cost

    def add_input_demands(self, markets: MarketSet, region: str, output: float) -> None:
        """Add the input requirements of ``output`` to the input markets."""
        for good, coef in self.inputs.items():
            markets.get_market(good, region).add_to_demand(coef * output)


class Subsector(BaseModel):
    """A group of competing technologies.

    Attributes:
        name: Subsector identifier
        technologies: Owned technologies
        logit_exponent: Exponent of the technology logit
        share_weight: Logit share weight within the sector
    """

    name: str = Field(..., min_length=1, description="Subsector identifier")
    technologies: list[Technology] = Field(..., min_length=1)
    logit_exponent: float = Field(default=-3.0, description="Technology logit exponent")
    share_weight: float = Field(default=1.0, ge=0.0, description="Logit share weight")

    model_config = {"frozen": False, "extra": "forbid"}

    def calc_prices(self, markets: MarketSet, region: str) -> tuple[float, np.ndarray]:
        """Return the subsector price and the technology shares."""
        costs = np.array([tech.cost(markets, region) for tech in self.technologies])
        weights = np.array([tech.share_weight for tech in self.technologies])
        shares = logit_shares(costs, weights, self.logit_exponent)
        return float(np.dot(shares, costs)), shares

    def distribute_output(
        self, markets: MarketSet, region: str, output: float, shares: np.ndarray
    ) -> None:
        for tech, share in zip(self.technologies, shares):
            tech.add_input_demands(markets, region, output * float(share))


@register_node("sector")
class Sector(Node):
    """Supply sector selling ``good`` in its region.

    Output is ``base_output * scaler * (market price / sector price) **
    supply_elasticity``.

    Attributes:
        good: Good produced by the sector
        subsectors: Owned subsectors
        logit_exponent: Exponent of the subsector logit
        base_output: Output when market price equals sector price
        supply_elasticity: Response of output to the price ratio
    """

    kind: str = "sector"
    good: str = Field(..., min_length=1, description="Output good")
    subsectors: list[Subsector] = Field(..., min_length=1)
    logit_exponent: float = Field(default=-3.0, description="Subsector logit exponent")
    base_output: float = Field(default=1.0, ge=0.0, description="Reference output")
    supply_elasticity: float = Field(default=1.0, ge=0.0, description="Supply elasticity")

    _last: dict[str, Any] = PrivateAttr(default_factory=dict)

    def market_keys(self) -> list[MarketKey]:
        keys: list[MarketKey] = [(self.good, self.region)]
        for subsector in self.subsectors:
            for tech in subsector.technologies:
                keys.extend((good, self.region) for good in tech.inputs)
        return list(dict.fromkeys(keys))

    def calc(self, markets: MarketSet, period: int) -> None:
        """Aggregate prices bottom-up, then distribute output top-down."""
        sub_prices: list[float] = []
        tech_shares: list[np.ndarray] = []
        for subsector in self.subsectors:
            price, shares = subsector.calc_prices(markets, self.region)
            sub_prices.append(price)
            tech_shares.append(shares)

        prices = np.array(sub_prices)
        weights = np.array([sub.share_weight for sub in self.subsectors])
        sub_shares = logit_shares(prices, weights, self.logit_exponent)
        sector_price = max(float(np.dot(sub_shares, prices)), MIN_COST)

        market = markets.get_market(self.good, self.region)
        ratio = max(market.price, 0.0) / sector_price
        output = self.base_output * self.scaler(period) * ratio**self.supply_elasticity
        market.add_to_supply(output)

        for subsector, share, shares in zip(self.subsectors, sub_shares, tech_shares):
            subsector.distribute_output(markets, self.region, output * float(share), shares)

        self._last = {
            "price": sector_price,
            "output": output,
            "subsector_shares": dict(
                zip((s.name for s in self.subsectors), sub_shares.tolist())
            ),
        }

    @property
    def last_results(self) -> dict[str, Any]:
        """Price, output and shares from the most recent calculation."""
        return dict(self._last)
