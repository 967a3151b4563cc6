"""Market set: the mapping from (good, region) to Market.

The MarketSet provides lookup by name, ordered iteration and price mutation
for every market in the simulation.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

import numpy as np
import pandas as pd

from marketclear.core.errors import MarketNotFoundError
from marketclear.core.market import Market, MarketKey


class MarketSet:
    """Manages all markets of a simulation.

    Markets keep their insertion order, which is also the order of every
    price vector produced by this set.

    Example:
        >>> markets = MarketSet()
        >>> markets.add_market("electricity", "USA", price=10.0)
        >>> markets.set_price("electricity", "USA", 12.0)
        >>> markets.get_price("electricity", "USA")
        12.0
    """

    def __init__(self) -> None:
        """Initialize empty market set."""
        self._markets: dict[MarketKey, Market] = {}

    def add(self, market: Market) -> Market:
        """Add an existing market record.

        Raises:
            ValueError: If a market with the same key already exists
        """
        if market.key in self._markets:
            msg = f"Market '{market.good}' in region '{market.region}' already exists"
            raise ValueError(msg)
        self._markets[market.key] = market
        return market

    def add_market(self, good: str, region: str, **kwargs: Any) -> Market:
        """Create and add a market.

        Args:
            good: Good name
            region: Region name
            **kwargs: Additional Market fields (price, fixed, ...)

        Returns:
            The new Market
        """
        return self.add(Market(good=good, region=region, **kwargs))

    def has_market(self, good: str, region: str) -> bool:
        """Check whether a market exists."""
        return (good, region) in self._markets

    def get_market(self, good: str, region: str) -> Market:
        """Get a market by name.

        Raises:
            MarketNotFoundError: If the market does not exist
        """
        try:
            return self._markets[(good, region)]
        except KeyError:
            raise MarketNotFoundError(good, region) from None

    def __getitem__(self, key: MarketKey) -> Market:
        """Get market by (good, region) key using bracket notation."""
        good, region = key
        return self.get_market(good, region)

    def __contains__(self, key: object) -> bool:
        """Check if a (good, region) key exists."""
        return key in self._markets

    def __iter__(self) -> Iterator[Market]:
        """Iterate over markets in insertion order."""
        return iter(self._markets.values())

    def __len__(self) -> int:
        return len(self._markets)

    def keys(self) -> list[MarketKey]:
        """Return market keys in order."""
        return list(self._markets.keys())

    def get_price(self, good: str, region: str) -> float:
        return self.get_market(good, region).price

    def set_price(self, good: str, region: str, price: float) -> None:
        """Set the price of a named market without recalculating."""
        self.get_market(good, region).set_price(price)

    def set_prices(self, prices: Mapping[MarketKey, float]) -> None:
        """Set several prices at once, keyed by (good, region)."""
        for (good, region), price in prices.items():
            self.set_price(good, region, price)

    def clear_quantities(self) -> None:
        """Zero supply and demand in every market."""
        for market in self._markets.values():
            market.clear_quantities()

    def price_vector(self) -> np.ndarray:
        """Return all prices as an array in market order."""
        return np.array([m.price for m in self._markets.values()], dtype=float)

    def set_price_vector(self, prices: Iterable[float]) -> None:
        """Set all prices from an array in market order.

        Raises:
            ValueError: If the vector length does not match the market count
        """
        values = np.asarray(list(prices), dtype=float)
        if values.shape != (len(self._markets),):
            msg = f"Expected {len(self._markets)} prices, got {values.shape[0]}"
            raise ValueError(msg)
        for market, price in zip(self._markets.values(), values):
            market.set_price(float(price))

    def supplies(self) -> dict[MarketKey, float]:
        return {key: m.supply for key, m in self._markets.items()}

    def demands(self) -> dict[MarketKey, float]:
        return {key: m.demand for key, m in self._markets.items()}

    def store_prices(self, period: int) -> None:
        """Store the current price of every market for ``period``."""
        for market in self._markets.values():
            market.store_price(period)

    def restore_prices(self, period: int) -> None:
        """Reset prices to the values stored for ``period``.

        Markets without a stored price for the period keep their price.
        """
        for market in self._markets.values():
            if period in market.stored_prices:
                market.set_price(market.stored_prices[period])

    def to_frame(self, floor: float = 1e-4) -> pd.DataFrame:
        """Return market state as a DataFrame indexed by (good, region)."""
        rows = []
        for market in self._markets.values():
            row = market.to_dict()
            row["relative_excess_demand"] = market.relative_excess_demand(floor)
            rows.append(row)
        frame = pd.DataFrame(
            rows,
            columns=[
                "good",
                "region",
                "price",
                "supply",
                "demand",
                "excess_demand",
                "relative_excess_demand",
                "fixed",
            ],
        )
        return frame.set_index(["good", "region"])

    def summary(self) -> dict[str, Any]:
        """Return summary statistics of all markets."""
        return {
            "total_markets": len(self._markets),
            "fixed_markets": sum(1 for m in self._markets.values() if m.fixed),
            "regions": sorted({m.region for m in self._markets.values()}),
        }

    def __repr__(self) -> str:
        """String representation."""
        return f"MarketSet({len(self._markets)} markets)"
