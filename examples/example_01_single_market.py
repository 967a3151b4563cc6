"""Example 1: Clearing a Single Market

This example demonstrates how to:
1. Create markets and a calculation graph in code
2. Solve one period with bisection
3. Inspect the iteration trail and the final market table
"""

from marketclear import CalculationGraph, MarketSet, Solver, SolverConfig
from marketclear.cascade import LinearDemand, LinearSupply, PriceTerm


def main():
    """Solve supply = p, demand = 10 - p."""
    print("=" * 70)
    print("Example 1: Clearing a Single Market")
    print("=" * 70)

    markets = MarketSet()
    markets.add_market("wheat", "EU", price=1.0, bracket=(0.0, 10.0))

    graph = CalculationGraph(markets)
    graph.add_node(
        LinearSupply(
            name="farms",
            region="EU",
            good="wheat",
            terms=[PriceTerm(good="wheat", region="EU", slope=1.0)],
        )
    )
    graph.add_node(
        LinearDemand(
            name="consumers",
            region="EU",
            good="wheat",
            intercept=10.0,
            terms=[PriceTerm(good="wheat", region="EU", slope=-1.0)],
        )
    )
    print(f"\n{graph}")

    config = SolverConfig(
        solution_tolerance=1e-6,
        ed_solution_floor=1e-6,
        components=[{"name": "bisect_all", "max_iterations": 30}],
    )
    solution = Solver(markets, graph, config).solve(period=1)

    print("\n" + "-" * 70)
    print("Solution")
    print("-" * 70)
    print(f"Success: {solution.success}")
    print(f"Price of wheat: {solution.price('wheat', 'EU'):.6f}")
    print(f"Calculations: {solution.calcs}")
    print("\nIterations:")
    print(solution.iterations_frame().to_string(index=False))
    print("\nMarkets:")
    print(solution.markets_frame().to_string())


if __name__ == "__main__":
    main()
