"""Node base classes for the calculation graph.

Nodes are the producers and consumers of the simulation. Each node reads
market prices and adds its supply or demand to markets; it never reads
another node's quantities, so a calculation pass does not depend on node
order.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from marketclear.core.market import MarketKey
from marketclear.core.marketplace import MarketSet


class Node(BaseModel, ABC):
    """Base class for calculation-graph nodes.

    Attributes:
        name: Node identifier
        region: Region whose markets the node trades in
        period_scalers: Multiplier applied to quantities per period
    """

    kind: str = Field(default="", description="Registered node kind")
    name: str = Field(..., min_length=1, description="Node identifier")
    region: str = Field(..., min_length=1, description="Region name")
    period_scalers: dict[int, float] = Field(
        default_factory=dict, description="Quantity multiplier per period"
    )

    model_config = {"frozen": False, "extra": "forbid"}

    def scaler(self, period: int) -> float:
        """Quantity multiplier for ``period`` (1.0 when not configured)."""
        return self.period_scalers.get(period, 1.0)

    @abstractmethod
    def market_keys(self) -> list[MarketKey]:
        """Return every market the node reads or writes."""
        ...

    def init_calc(self, markets: MarketSet, period: int) -> None:
        """Perform initializations needed once per period."""
        return None

    @abstractmethod
    def calc(self, markets: MarketSet, period: int) -> None:
        """Add this node's supply and demand given current prices."""
        ...

    def __repr__(self) -> str:
        """String representation."""
        return f"{self.__class__.__name__} {self.name} ({self.region})"


class NodeRegistry:
    """Registry for node classes, keyed by kind name.

    Example:
        >>> registry = NodeRegistry()
        >>> registry.register("final_demand", FinalDemand)
        >>> node = registry.create("final_demand", name="d", region="USA", good="x")
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._nodes: dict[str, type[Node]] = {}

    def register(self, kind: str, node_class: type[Node]) -> None:
        """Register a node class under ``kind``.

        Raises:
            ValueError: If the kind is already registered
        """
        if kind in self._nodes:
            msg = f"Node kind '{kind}' is already registered"
            raise ValueError(msg)
        self._nodes[kind] = node_class

    def get(self, kind: str) -> type[Node]:
        """Get a node class by kind.

        Raises:
            KeyError: If the kind is not registered
        """
        if kind not in self._nodes:
            msg = f"Node kind '{kind}' not found in registry"
            raise KeyError(msg)
        return self._nodes[kind]

    def list_kinds(self) -> list[str]:
        """Return list of registered node kinds."""
        return list(self._nodes.keys())

    def create(self, kind: str, **kwargs: Any) -> Node:
        """Create a node instance of the given kind."""
        node_class = self.get(kind)
        return node_class(kind=kind, **kwargs)

    def __contains__(self, kind: str) -> bool:
        """Check if a kind is registered."""
        return kind in self._nodes


# Global registry instance
_global_registry: NodeRegistry | None = None


def get_registry() -> NodeRegistry:
    """Get the global node registry."""
    global _global_registry
    if _global_registry is None:
        _global_registry = NodeRegistry()
    return _global_registry


def register_node(kind: str):
    """Decorator to register a node class under ``kind``.

    Example:
        >>> @register_node("final_demand")
        ... class FinalDemand(Node):
        ...     pass
    """

    def _decorator(node_class: type[Node]) -> type[Node]:
        get_registry().register(kind, node_class)
        return node_class

    return _decorator
