"""Calculation graph: turns a price vector into supply and demand.

The graph is the black box the solver calls every iteration. A call to
``calc`` is blocking and complete: every node has been recomputed before
any excess demand can be read.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from marketclear.cascade.base import Node, get_registry
from marketclear.core.errors import MarketNotFoundError
from marketclear.core.market import MarketKey
from marketclear.core.marketplace import MarketSet

logger = logging.getLogger(__name__)


class CalculationGraph:
    """All producers and consumers of a simulation.

    Attributes:
        markets: Market set the nodes trade in
        nodes: Nodes in evaluation order

    Example:
        >>> graph = CalculationGraph(markets)
        >>> graph.add_node(FinalDemand(name="d", region="USA", good="x", base_quantity=5))
        >>> supply, demand = graph.evaluate({("x", "USA"): 2.0}, period=1)
    """

    def __init__(self, markets: MarketSet, nodes: Iterable[Node] | None = None) -> None:
        self.markets = markets
        self.nodes: list[Node] = []
        for node in nodes or []:
            self.add_node(node)

    def add_node(self, node: Node) -> Node:
        """Add a node after checking that its markets exist.

        Raises:
            MarketNotFoundError: If the node references an unknown market
        """
        self._check_markets(node)
        self.nodes.append(node)
        return node

    def add_node_from_config(self, payload: Mapping[str, Any]) -> Node:
        """Create a node from a ``{"kind": ..., **fields}`` mapping."""
        fields = dict(payload)
        kind = fields.pop("kind", None)
        if kind is None:
            msg = f"Node definition is missing 'kind': {payload}"
            raise ValueError(msg)
        return self.add_node(get_registry().create(str(kind), **fields))

    def _check_markets(self, node: Node) -> None:
        for good, region in node.market_keys():
            if not self.markets.has_market(good, region):
                raise MarketNotFoundError(good, region)

    def validate(self) -> bool:
        """Check that every market referenced by a node exists.

        Raises:
            MarketNotFoundError: If a node references an unknown market
        """
        for node in self.nodes:
            self._check_markets(node)
        return True

    def init_calc(self, period: int) -> None:
        """Run once-per-period initializations on every node."""
        for node in self.nodes:
            node.init_calc(self.markets, period)

    def calc(self, period: int) -> None:
        """Recompute supply and demand in every market from current prices."""
        self.markets.clear_quantities()
        for node in self.nodes:
            node.calc(self.markets, period)

    def evaluate(
        self, prices: Mapping[MarketKey, float], period: int
    ) -> tuple[dict[MarketKey, float], dict[MarketKey, float]]:
        """Set prices, calculate, and return (supply, demand) by market key."""
        self.markets.set_prices(prices)
        self.calc(period)
        return self.markets.supplies(), self.markets.demands()

    def __len__(self) -> int:
        return len(self.nodes)

    def __repr__(self) -> str:
        """String representation."""
        return f"CalculationGraph({len(self.nodes)} nodes, {len(self.markets)} markets)"
