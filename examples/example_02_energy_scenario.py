"""Example 2: Multi-Period Energy Scenario

This example demonstrates how to:
1. Load a scenario (markets, sectors, solver settings) from YAML
2. Solve several periods, carrying prices forward
3. Summarize results with pandas
"""

from pathlib import Path

from marketclear import format_solution_summary, load_scenario


def main():
    """Run the one-region electricity scenario."""
    print("=" * 70)
    print("Example 2: Multi-Period Energy Scenario")
    print("=" * 70)

    config_path = Path(__file__).parent / "configs" / "energy_one_region.yaml"
    scenario = load_scenario(config_path)
    print(f"\nLoaded scenario '{scenario.name}': {scenario.graph}")

    result = scenario.run()

    print("\n" + "-" * 70)
    print("Results")
    print("-" * 70)
    for solution in result.periods:
        print(format_solution_summary(solution))
    print(format_solution_summary(result))

    prices = result.markets_frame()["price"].unstack("period")
    print("\nPrices by period:")
    print(prices.to_string())

    electricity = scenario.graph.nodes[0]
    print(f"\nGeneration shares in the last period: {electricity.last_results['subsector_shares']}")


if __name__ == "__main__":
    main()
