"""Calculation cascade for marketclear.

Nodes are the producers and consumers that turn prices into supply and
demand:
- Sector → Subsector → Technology supply cascade
- FinalDemand and ResourceSupply constant-elasticity curves
- LinearSupply and LinearDemand curves with cross-price terms
"""

from marketclear.cascade.base import Node, NodeRegistry, get_registry, register_node
from marketclear.cascade.curves import (
    FinalDemand,
    LinearDemand,
    LinearSupply,
    PriceTerm,
    ResourceSupply,
)
from marketclear.cascade.graph import CalculationGraph
from marketclear.cascade.sector import Sector, Subsector, Technology, logit_shares

__all__ = [
    "Node",
    "NodeRegistry",
    "get_registry",
    "register_node",
    "CalculationGraph",
    # Supply cascade
    "Sector",
    "Subsector",
    "Technology",
    "logit_shares",
    # Curves
    "FinalDemand",
    "ResourceSupply",
    "LinearSupply",
    "LinearDemand",
    "PriceTerm",
]
