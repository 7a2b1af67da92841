"""
Session Evaluator - final grade of a practice session.

The rubric is the last live-metrics snapshot: four categories of 0..25 that
sum to the 0..100 score. Result cut-offs come from settings.evaluation:

    score >= pass_threshold      → pass
    score >= partial_threshold   → partial
    otherwise                    → fail

A session ended before any turn still gets a complete (all-zero) evaluation.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from dooriq.logger import logger
from dooriq.settings import settings
from dooriq.signals import SignalDetector, detector as default_detector
from dooriq.turn_evaluator import LiveMetrics, TurnEvaluator, clip_metric
from dooriq.yaml_config.constants import (
    COACHING_LATE_CTA,
    COACHING_LATE_DISCOVERY,
    COACHING_MISSED,
    COACHING_STRENGTHS,
    RUBRIC_CATEGORIES,
)


class EvaluationResult(Enum):
    PASS = "pass"
    PARTIAL = "partial"
    FAIL = "fail"


@dataclass(frozen=True)
class Evaluation:
    """
    Attributes:
        score: 0..100, equal to the rubric sum
        result: pass / partial / fail
        rubric_breakdown: discovery / value / objection / cta → 0..25
        feedback_bullets: What went well
        missed_opportunities: What to do next time
    """
    score: int
    result: EvaluationResult
    rubric_breakdown: Dict[str, int] = field(default_factory=dict)
    feedback_bullets: List[str] = field(default_factory=list)
    missed_opportunities: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "result": self.result.value,
            "rubric_breakdown": dict(self.rubric_breakdown),
            "feedback_bullets": list(self.feedback_bullets),
            "missed_opportunities": list(self.missed_opportunities),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Evaluation":
        return cls(
            score=int(data["score"]),
            result=EvaluationResult(data["result"]),
            rubric_breakdown={k: int(v) for k, v in (data.get("rubric_breakdown") or {}).items()},
            feedback_bullets=list(data.get("feedback_bullets") or []),
            missed_opportunities=list(data.get("missed_opportunities") or []),
        )


class SessionEvaluator:
    """
    Aggregates the live-metrics trajectory into a final Evaluation.

    Usage:
        evaluation = SessionEvaluator().evaluate(messages, metrics_history)
    """

    # First turn (1-based) after which discovery credit counts as late
    LATE_DISCOVERY_TURN = 4

    def __init__(
        self,
        pass_threshold: Optional[int] = None,
        partial_threshold: Optional[int] = None,
        strength_threshold: Optional[int] = None,
        weakness_threshold: Optional[int] = None,
        turn_evaluator: Optional[TurnEvaluator] = None,
        signal_detector: Optional[SignalDetector] = None,
    ):
        ev = settings.evaluation
        self.pass_threshold = pass_threshold if pass_threshold is not None else ev.pass_threshold
        self.partial_threshold = partial_threshold if partial_threshold is not None else ev.partial_threshold
        self.strength_threshold = strength_threshold if strength_threshold is not None else ev.strength_threshold
        self.weakness_threshold = weakness_threshold if weakness_threshold is not None else ev.weakness_threshold
        self._turn_evaluator = turn_evaluator or TurnEvaluator()
        self._detector = signal_detector or default_detector

    def classify(self, score: int) -> EvaluationResult:
        if score >= self.pass_threshold:
            return EvaluationResult.PASS
        if score >= self.partial_threshold:
            return EvaluationResult.PARTIAL
        return EvaluationResult.FAIL

    def _final_metrics(
        self,
        messages: Sequence[Mapping[str, Any]],
        metrics_history: Sequence[LiveMetrics],
    ) -> LiveMetrics:
        if metrics_history:
            return metrics_history[-1]
        if any(m.get("role") == "rep" for m in messages):
            # History lost or never recorded: recompute from the transcript
            return self._turn_evaluator.evaluate(messages, "")
        return LiveMetrics()

    def evaluate(
        self,
        messages: Sequence[Mapping[str, Any]],
        metrics_history: Sequence[LiveMetrics],
    ) -> Evaluation:
        """
        Grade a session.

        Args:
            messages: Full message log
            metrics_history: LiveMetrics per accepted turn, in order

        Returns:
            Evaluation
        """
        final = self._final_metrics(messages, metrics_history)
        rubric = {name: clip_metric(getattr(final, name)) for name in RUBRIC_CATEGORIES}
        score = sum(rubric.values())

        feedback = [
            COACHING_STRENGTHS[name]
            for name in RUBRIC_CATEGORIES
            if rubric[name] >= self.strength_threshold and COACHING_STRENGTHS.get(name)
        ]
        missed = [
            COACHING_MISSED[name]
            for name in RUBRIC_CATEGORIES
            if rubric[name] < self.weakness_threshold and COACHING_MISSED.get(name)
        ]
        missed.extend(self._trajectory_notes(messages, metrics_history, rubric))

        evaluation = Evaluation(
            score=score,
            result=self.classify(score),
            rubric_breakdown=rubric,
            feedback_bullets=feedback,
            missed_opportunities=list(dict.fromkeys(missed)),
        )
        logger.metric("session_score", score, result=evaluation.result.value, turns=len(metrics_history))
        return evaluation

    def _trajectory_notes(
        self,
        messages: Sequence[Mapping[str, Any]],
        history: Sequence[LiveMetrics],
        rubric: Dict[str, int],
    ) -> List[str]:
        notes: List[str] = []
        if not history:
            return notes

        first_discovery = next(
            (i for i, m in enumerate(history, start=1) if m.discovery > 0),
            None,
        )
        if first_discovery is not None and first_discovery > self.LATE_DISCOVERY_TURN:
            notes.append(COACHING_LATE_DISCOVERY)

        # The cta metric is cumulative and clipped, so look at the utterances
        rep_texts = [m.get("text") or "" for m in messages if m.get("role") == "rep"]
        if len(rep_texts) >= 3 and rubric["cta"] >= self.weakness_threshold:
            tail = rep_texts[-max(1, len(rep_texts) // 3):]
            if not any(self._detector.matches("scheduling", text) for text in tail):
                notes.append(COACHING_LATE_CTA)

        return [note for note in notes if note]
