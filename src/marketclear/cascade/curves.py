"""Final demands, resource supplies and linear curves.

These nodes contribute a single quantity to a single market. Elastic
curves are constant-elasticity in the market's own price; linear curves
may depend on any number of market prices.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from marketclear.cascade.base import Node, register_node
from marketclear.core.market import MarketKey
from marketclear.core.marketplace import MarketSet

# Prices are floored here before a negative elasticity is applied.
MIN_PRICE = 1e-6


class ElasticCurve(Node):
    """Quantity ``base_quantity * scaler * (price / base_price) ** elasticity``."""

    good: str = Field(..., min_length=1, description="Traded good")
    base_quantity: float = Field(..., ge=0.0, description="Quantity at base price")
    base_price: float = Field(default=1.0, gt=0.0, description="Reference price")
    elasticity: float = Field(default=0.0, description="Own-price elasticity")

    def market_keys(self) -> list[MarketKey]:
        return [(self.good, self.region)]

    def quantity(self, price: float, period: int) -> float:
        floor = MIN_PRICE if self.elasticity < 0.0 else 0.0
        ratio = max(price, floor) / self.base_price
        return self.base_quantity * self.scaler(period) * ratio**self.elasticity


@register_node("final_demand")
class FinalDemand(ElasticCurve):
    """Price-elastic final demand for a good."""

    kind: str = "final_demand"
    elasticity: float = Field(default=-0.5, le=0.0, description="Price elasticity")

    def calc(self, markets: MarketSet, period: int) -> None:
        market = markets.get_market(self.good, self.region)
        market.add_to_demand(self.quantity(market.price, period))


@register_node("resource")
class ResourceSupply(ElasticCurve):
    """Price-elastic supply of a primary resource."""

    kind: str = "resource"
    elasticity: float = Field(default=1.0, ge=0.0, description="Supply elasticity")

    def calc(self, markets: MarketSet, period: int) -> None:
        market = markets.get_market(self.good, self.region)
        market.add_to_supply(self.quantity(market.price, period))


class PriceTerm(BaseModel):
    """One ``slope * price`` term of a linear curve."""

    good: str = Field(..., min_length=1)
    region: str = Field(..., min_length=1)
    slope: float = Field(...)

    model_config = {"frozen": True, "extra": "forbid"}


class LinearCurve(Node):
    """Quantity ``intercept + sum(slope * price)``, floored at zero.

    Attributes:
        good: Market the quantity is added to
        intercept: Quantity at zero prices
        terms: Price terms, possibly referencing other markets
        allow_negative_quantity: Skip the floor at zero
    """

    good: str = Field(..., min_length=1, description="Traded good")
    intercept: float = Field(default=0.0, description="Quantity at zero prices")
    terms: list[PriceTerm] = Field(default_factory=list, description="Price terms")
    allow_negative_quantity: bool = Field(default=False)

    def market_keys(self) -> list[MarketKey]:
        keys: list[MarketKey] = [(self.good, self.region)]
        keys.extend((term.good, term.region) for term in self.terms)
        return list(dict.fromkeys(keys))

    def quantity(self, markets: MarketSet, period: int) -> float:
        value = self.intercept + sum(
            term.slope * markets.get_price(term.good, term.region) for term in self.terms
        )
        if not self.allow_negative_quantity:
            value = max(value, 0.0)
        return value * self.scaler(period)


@register_node("linear_supply")
class LinearSupply(LinearCurve):
    kind: str = "linear_supply"

    def calc(self, markets: MarketSet, period: int) -> None:
        markets.get_market(self.good, self.region).add_to_supply(
            self.quantity(markets, period)
        )


@register_node("linear_demand")
class LinearDemand(LinearCurve):
    kind: str = "linear_demand"

    def calc(self, markets: MarketSet, period: int) -> None:
        markets.get_market(self.good, self.region).add_to_demand(
            self.quantity(markets, period)
        )
