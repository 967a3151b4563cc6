#!/usr/bin/env python3
"""
Run a market-clearing scenario.

Loads a scenario YAML file (markets, calculation-graph nodes and solver
settings), solves every period and prints a summary per period.

Usage:
    python run_scenario.py --config examples/configs/energy_one_region.yaml
    python run_scenario.py --config scenario.yaml --periods 1 2 3
    python run_scenario.py --config scenario.yaml --save-report output/report.json
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from marketclear.config import load_scenario_config, solver_config_from_dict
from marketclear.core.errors import MarketClearError, SolverFailureError
from marketclear.reporting import format_solution_summary
from marketclear.scenario import build_scenario


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def main():
    parser = argparse.ArgumentParser(
        description="Solve a market-clearing scenario",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Solve the periods listed in the config
  python run_scenario.py --config scenario.yaml

  # Override periods and tolerance
  python run_scenario.py --config scenario.yaml --periods 1 2 --tolerance 1e-6

  # Save a JSON report
  python run_scenario.py --config scenario.yaml --save-report output/report.json
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to scenario YAML file",
    )
    parser.add_argument(
        "--periods",
        type=int,
        nargs="+",
        default=None,
        help="Periods to solve (default: periods listed in the config)",
    )
    parser.add_argument(
        "--tolerance",
        type=float,
        default=None,
        help="Override the relative solution tolerance",
    )
    parser.add_argument(
        "--halt-on-failure",
        action="store_true",
        help="Stop at the first period that fails to solve",
    )
    parser.add_argument(
        "--save-report",
        type=Path,
        default=None,
        help="Save scenario report to JSON file",
    )
    parser.add_argument(
        "--show-markets",
        action="store_true",
        help="Print the final market table of every period",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args()

    setup_logging(args.verbose)

    if not args.config.exists():
        print(f"Error: config file not found: {args.config}")
        return 1

    try:
        config = load_scenario_config(args.config)
        solver_updates = {}
        if args.tolerance is not None:
            solver_updates["solution_tolerance"] = args.tolerance
        if args.halt_on_failure:
            solver_updates["halt_on_failure"] = True
        if solver_updates:
            solver = solver_config_from_dict(
                {**config.solver.model_dump(), **solver_updates}
            )
            config = config.model_copy(update={"solver": solver})
        scenario = build_scenario(config)
    except MarketClearError as exc:
        print(f"Error: {exc}")
        return 1

    print("=" * 70)
    print(f"SCENARIO: {scenario.name}")
    print("=" * 70)

    try:
        result = scenario.run(args.periods)
    except SolverFailureError as exc:
        print(f"✗ {exc}")
        return 1

    for solution in result.periods:
        print(format_solution_summary(solution))
        if args.show_markets:
            print(solution.markets_frame().to_string())
            print()

    print(format_solution_summary(result))

    if args.save_report:
        result.save_json(args.save_report)
        print(f"Saved report: {args.save_report}")

    return 0 if result.success else 2


if __name__ == "__main__":
    sys.exit(main())
