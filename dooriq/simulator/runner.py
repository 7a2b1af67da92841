"""
Scenario runner.

Plays scripted rep turns through SimulationService and collects the results.
"""

import random
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from dooriq.attempt_store import InMemoryAttemptStore
from dooriq.errors import SimulationError
from dooriq.logger import logger
from dooriq.reply_generator import ReplyGenerator, ScriptedReplyGenerator
from dooriq.session_lock import SessionLockManager
from dooriq.simulation import SimulationService


SCENARIOS_FILE = Path(__file__).parent / "scenarios.yaml"


@dataclass
class Scenario:
    """A scripted rep side of a conversation."""
    name: str
    persona: str
    steps: List[str]
    description: str = ""

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "Scenario":
        steps = [str(s) for s in data.get("steps") or [] if str(s).strip()]
        if not steps:
            raise ValueError(f"Scenario '{name}' has no steps")
        return cls(
            name=name,
            persona=data.get("persona", "random"),
            steps=steps,
            description=data.get("description", ""),
        )


def load_scenarios(filepath: Optional[Path] = None) -> Dict[str, Scenario]:
    """Scenarios keyed by name, in file order."""
    filepath = Path(filepath or SCENARIOS_FILE)
    with open(filepath, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return {name: Scenario.from_dict(name, body) for name, body in data.items()}


@dataclass
class SimulationResult:
    """Outcome of one scripted session"""
    scenario: str
    persona: str
    attempt_id: str = ""
    turns: List[Dict[str, Any]] = field(default_factory=list)
    states_visited: List[str] = field(default_factory=list)
    evaluation: Dict[str, Any] = field(default_factory=dict)
    metrics: Dict[str, Any] = field(default_factory=dict)
    outcome: str = ""
    duration_seconds: float = 0.0
    unused_steps: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def score(self) -> int:
        return int(self.evaluation.get("score", 0))

    @property
    def result(self) -> str:
        return self.evaluation.get("result", "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario": self.scenario,
            "persona": self.persona,
            "attemptId": self.attempt_id,
            "turns": self.turns,
            "statesVisited": self.states_visited,
            "eval": self.evaluation,
            "metrics": self.metrics,
            "outcome": self.outcome,
            "durationSeconds": round(self.duration_seconds, 3),
            "unusedSteps": self.unused_steps,
            "errors": self.errors,
        }


def create_demo_service(reply_generator: Optional[ReplyGenerator] = None) -> SimulationService:
    """Service with an in-memory store and the scripted homeowner."""
    return SimulationService(
        store=InMemoryAttemptStore(),
        reply_generator=reply_generator or ScriptedReplyGenerator(),
        lock_manager=SessionLockManager(lock_dir=tempfile.mkdtemp(prefix="dooriq_sim_locks_")),
    )


class SimulationRunner:
    """Runs scenarios through one SimulationService"""

    def __init__(
        self,
        service: Optional[SimulationService] = None,
        verbose: bool = False,
        seed: Optional[int] = None,
    ):
        """
        Args:
            service: Service to drive (demo service by default)
            verbose: Print every turn
            seed: Seed for "random" persona picks
        """
        self.service = service or create_demo_service()
        self.verbose = verbose
        self._rng = random.Random(seed) if seed is not None else None

    def run_scenario(self, scenario: Scenario, persona_override: Optional[str] = None) -> SimulationResult:
        persona_type = persona_override or scenario.persona
        result = SimulationResult(scenario=scenario.name, persona=persona_type)
        started_at = time.time()

        try:
            started = self.service.start(f"simulator:{scenario.name}", persona_type, rng=self._rng)
            result.attempt_id = started["attemptId"]
            result.persona = started["persona"]["type"]
            result.states_visited.append(started["state"])

            for index, utterance in enumerate(scenario.steps):
                step = self.service.step(result.attempt_id, utterance)
                result.turns.append({
                    "rep": utterance,
                    "prospect": step["prospectReply"],
                    "state": step["state"],
                    "liveMetrics": step["liveMetrics"],
                })
                if step["state"] != result.states_visited[-1]:
                    result.states_visited.append(step["state"])
                if self.verbose:
                    print(f"  [{step['state']}] REP: {utterance}")
                    print(f"  [{step['state']}] HOMEOWNER: {step['prospectReply']}")
                if step["terminal"]:
                    result.unused_steps = len(scenario.steps) - index - 1
                    break

            ended = self.service.end(result.attempt_id)
            result.evaluation = ended["eval"]
            result.metrics = ended["metrics"]
            result.outcome = ended["attempt"]["outcome"]
        except SimulationError as e:
            logger.error("Scenario failed", scenario=scenario.name, error=e.message)
            result.errors.append(f"{e.code}: {e.message}")

        result.duration_seconds = time.time() - started_at
        return result

    def run_batch(
        self,
        scenarios: List[Scenario],
        parallel: int = 1,
        persona_override: Optional[str] = None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ) -> List[SimulationResult]:
        """
        Run several scenarios, optionally in parallel threads.

        Results keep the order of `scenarios`.
        """
        results: List[Optional[SimulationResult]] = [None] * len(scenarios)

        if parallel <= 1:
            for i, scenario in enumerate(scenarios):
                results[i] = self.run_scenario(scenario, persona_override)
                if progress_callback:
                    progress_callback(i + 1, len(scenarios))
            return results

        with ThreadPoolExecutor(max_workers=parallel) as executor:
            futures = {
                executor.submit(self.run_scenario, scenario, persona_override): i
                for i, scenario in enumerate(scenarios)
            }
            done = 0
            for future in as_completed(futures):
                results[futures[future]] = future.result()
                done += 1
                if progress_callback:
                    progress_callback(done, len(scenarios))
        return results
