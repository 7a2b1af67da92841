#!/usr/bin/env python3
"""
CLI for scripted practice sessions.

Usage:
    python -m dooriq.simulator                          # all built-in scenarios
    python -m dooriq.simulator --scenario happy_path -v
    python -m dooriq.simulator --script my_calls.yaml --json -o report.json
    python -m dooriq.simulator --backend llm            # homeowner replies from vLLM
"""

import argparse
import sys

from dooriq.personas import PersonaType
from dooriq.reply_generator import create_reply_generator
from dooriq.simulator.report import ReportGenerator
from dooriq.simulator.runner import SCENARIOS_FILE, SimulationRunner, create_demo_service, load_scenarios


def create_parser():
    """Create and return the argument parser."""
    parser = argparse.ArgumentParser(
        description="Run scripted door-to-door practice sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m dooriq.simulator --list
  python -m dooriq.simulator --scenario happy_path --verbose
  python -m dooriq.simulator --persona safety_focused -o report.txt
        """
    )

    parser.add_argument(
        "--script",
        default=str(SCENARIOS_FILE),
        help="Scenario YAML file (default: built-in scenarios)"
    )

    parser.add_argument(
        "--scenario", "-s",
        default="all",
        help="Scenario name to run (default: all)"
    )

    parser.add_argument(
        "--persona",
        choices=[t.value for t in PersonaType],
        help="Override the persona of every scenario"
    )

    parser.add_argument(
        "--backend",
        choices=["scripted", "llm"],
        default="scripted",
        help="Homeowner reply backend (default: scripted)"
    )

    parser.add_argument(
        "--parallel", "-p",
        type=int,
        default=1,
        help="Parallel threads (default: 1)"
    )

    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for random persona picks"
    )

    parser.add_argument(
        "--output", "-o",
        help="Write the report to this file"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="JSON report instead of text"
    )

    parser.add_argument(
        "--no-dialogues",
        action="store_true",
        help="Leave transcripts out of the text report"
    )

    parser.add_argument(
        "--list",
        action="store_true",
        help="List scenarios and exit"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Print every turn"
    )

    return parser


def main(argv=None) -> int:
    args = create_parser().parse_args(argv)

    try:
        scenarios = load_scenarios(args.script)
    except (OSError, ValueError) as e:
        print(f"ERROR: cannot load scenarios: {e}", file=sys.stderr)
        return 1

    if args.list:
        for name, scenario in scenarios.items():
            print(f"{name:20} {scenario.persona:18} {scenario.description}")
        return 0

    if args.scenario != "all":
        if args.scenario not in scenarios:
            print(f"ERROR: scenario '{args.scenario}' not found", file=sys.stderr)
            print("Available scenarios:", file=sys.stderr)
            for name in scenarios:
                print(f"  - {name}", file=sys.stderr)
            return 1
        selected = [scenarios[args.scenario]]
    else:
        selected = list(scenarios.values())

    service = create_demo_service(create_reply_generator(args.backend))
    runner = SimulationRunner(service=service, verbose=args.verbose, seed=args.seed)

    def progress(done: int, total: int) -> None:
        if not args.json:
            print(f"\rScenarios: {done}/{total}", end="", flush=True)

    results = runner.run_batch(
        selected,
        parallel=args.parallel,
        persona_override=args.persona,
        progress_callback=progress,
    )
    if not args.json:
        print()

    generator = ReportGenerator()
    if args.json:
        report = generator.generate_json_report(results)
    else:
        report = generator.generate_full_report(results, include_dialogues=not args.no_dialogues)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(report)
        print(f"Report saved to {args.output}")
    else:
        print(report)

    return 1 if any(r.errors for r in results) else 0


if __name__ == "__main__":
    sys.exit(main())
