"""
Simulation reports.

Text report with:
- summary (scores, pass / partial / fail)
- per-scenario rubric and conversation metrics
- full transcripts (optional)

JSON report: the same data as a list of result dicts.
"""

import json
from collections import Counter
from datetime import datetime
from typing import List

from dooriq.simulator.runner import SimulationResult
from dooriq.yaml_config.constants import RUBRIC_CATEGORIES


class ReportGenerator:
    """Renders SimulationResult lists"""

    def generate_full_report(self, results: List[SimulationResult], include_dialogues: bool = True) -> str:
        if not results:
            return "No results to report"

        report = []
        report.append("=" * 72)
        report.append("PRACTICE SIMULATION REPORT")
        report.append(f"Date: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        report.append("=" * 72)
        report.append("")
        report.append(self._section_summary(results))

        for result in results:
            report.append(self._section_scenario(result, include_dialogues))

        return "\n".join(report)

    def _section_summary(self, results: List[SimulationResult]) -> str:
        graded = [r for r in results if not r.errors]
        lines = ["SUMMARY", "-" * 72, f"Scenarios: {len(results)} (errors: {len(results) - len(graded)})"]
        if graded:
            avg = sum(r.score for r in graded) / len(graded)
            counts = Counter(r.result for r in graded)
            lines.append(f"Average score: {avg:.1f}")
            lines.append(
                f"Pass: {counts.get('pass', 0)}  Partial: {counts.get('partial', 0)}  Fail: {counts.get('fail', 0)}"
            )
        lines.append("")
        return "\n".join(lines)

    def _section_scenario(self, result: SimulationResult, include_dialogues: bool) -> str:
        lines = [f"SCENARIO: {result.scenario} (persona: {result.persona})", "-" * 72]

        if result.errors:
            lines.extend(f"  ERROR: {err}" for err in result.errors)
            lines.append("")
            return "\n".join(lines)

        lines.append(f"  Score: {result.score} ({result.result}), outcome: {result.outcome}")
        breakdown = result.evaluation.get("rubric_breakdown", {})
        lines.append("  Rubric: " + ", ".join(f"{name}={breakdown.get(name, 0)}" for name in RUBRIC_CATEGORIES))
        lines.append("  States: " + " -> ".join(result.states_visited))
        if result.unused_steps:
            lines.append(f"  Ended early, {result.unused_steps} scripted step(s) not used")

        m = result.metrics
        lines.append(
            f"  Turns: {m.get('totalTurns', 0)}, avg length: {m.get('avgTurnLength', 0)} words, "
            f"talk ratio: {m.get('talkRatioRep', 0)}, questions: {m.get('questionRate', 0)}, "
            f"fillers/100: {m.get('fillersPer100', 0)}"
        )

        for bullet in result.evaluation.get("feedback_bullets", []):
            lines.append(f"  + {bullet}")
        for missed in result.evaluation.get("missed_opportunities", []):
            lines.append(f"  - {missed}")

        if include_dialogues:
            lines.append("")
            for turn in result.turns:
                lines.append(f"    REP: {turn['rep']}")
                lines.append(f"    HOMEOWNER [{turn['state']}]: {turn['prospect']}")

        lines.append("")
        return "\n".join(lines)

    @staticmethod
    def generate_json_report(results: List[SimulationResult]) -> str:
        return json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False)
