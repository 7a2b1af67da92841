"""
Turn Evaluator - live coaching metrics recomputed on every rep turn.

Four dimensions, each clipped to METRIC_CEILING (25):

    discovery  - questions asked (open-ended count more)
    value      - distinct value themes stated
    objection  - homeowner objections handled (ack/clarify/address/confirm);
                 an ignored objection, or a price the rep quotes, earns nothing
    cta        - calls to action proposed, concrete times, trial closes

Metrics are a pure function of the whole conversation so far. Repeated
identical utterances add nothing.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from dooriq.objection_handler import ObjectionCaseScore, ObjectionHandler
from dooriq.signals import SignalDetector, detector as default_detector, normalize_text, word_count
from dooriq.yaml_config.constants import (
    MAX_SUGGESTIONS,
    METRIC_CEILING,
    MONOLOGUE_WORDS,
    RUBRIC_CATEGORIES,
    SUGGESTIONS,
    get_weight,
)


def clip_metric(value: float, ceiling: int = METRIC_CEILING) -> int:
    return int(max(0, min(ceiling, round(value))))


@dataclass
class LiveMetrics:
    """
    Running scores shown to the rep during the session.

    Attributes:
        discovery: 0..25
        value: 0..25
        objection: 0..25
        cta: 0..25
        suggestions: 0..3 actionable tips
    """
    discovery: int = 0
    value: int = 0
    objection: int = 0
    cta: int = 0
    suggestions: List[str] = field(default_factory=list)

    def scores(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in RUBRIC_CATEGORIES}

    @property
    def total(self) -> int:
        return sum(self.scores().values())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = self.scores()
        data["suggestions"] = list(self.suggestions)
        return data

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "LiveMetrics":
        data = data or {}
        return cls(
            discovery=clip_metric(data.get("discovery", 0)),
            value=clip_metric(data.get("value", 0)),
            objection=clip_metric(data.get("objection", 0)),
            cta=clip_metric(data.get("cta", 0)),
            suggestions=list(data.get("suggestions") or []),
        )


class TurnEvaluator:
    """
    Computes LiveMetrics from conversation history.

    Usage:
        evaluator = TurnEvaluator()
        metrics = evaluator.evaluate(history, "What kind of pests have you noticed?")
    """

    def __init__(
        self,
        signal_detector: Optional[SignalDetector] = None,
        objection_handler: Optional[ObjectionHandler] = None,
        ceiling: int = METRIC_CEILING,
    ):
        self._detector = signal_detector or default_detector
        self._objections = objection_handler or ObjectionHandler(signal_detector=self._detector)
        self.ceiling = ceiling

    # =========================================================================
    # Public API
    # =========================================================================

    def evaluate(self, history: Sequence[Mapping[str, Any]], rep_utterance: str) -> LiveMetrics:
        """
        Metrics for the conversation including the newest rep utterance.

        Args:
            history: Prior messages [{"role": "rep"|"prospect", "text": ...}]
            rep_utterance: Newest rep utterance (may be empty)

        Returns:
            LiveMetrics
        """
        conversation = [
            {"role": m.get("role", ""), "text": m.get("text") or ""}
            for m in history
        ]
        if isinstance(rep_utterance, str) and rep_utterance.strip():
            conversation.append({"role": "rep", "text": rep_utterance})

        rep_texts = [m["text"] for m in conversation if m["role"] == "rep"]
        unique_rep = self._unique(rep_texts)
        cases = self._objections.analyze(conversation, raised_by="prospect")

        metrics = LiveMetrics(
            discovery=self._score_discovery(unique_rep),
            value=self._score_value(unique_rep),
            objection=self._score_objection(cases),
            cta=self._score_cta(unique_rep),
        )
        metrics.suggestions = self._suggestions(
            metrics,
            rep_turns=len(rep_texts),
            cases=cases,
            latest=rep_texts[-1] if rep_texts else "",
        )
        return metrics

    # =========================================================================
    # Dimensions
    # =========================================================================

    @staticmethod
    def _unique(texts: Sequence[str]) -> List[str]:
        seen = set()
        unique = []
        for text in texts:
            key = normalize_text(text)
            if key and key not in seen:
                seen.add(key)
                unique.append(text)
        return unique

    def _score_discovery(self, rep_texts: Sequence[str]) -> int:
        seen = set()
        points = 0
        for text in rep_texts:
            for question in self._detector.split_questions(text):
                key = normalize_text(question)
                if key in seen:
                    continue
                seen.add(key)
                if self._detector.is_open_question(question):
                    points += get_weight("discovery_open_question", 6)
                else:
                    points += get_weight("discovery_closed_question", 3)
                if self._detector.matches("problem_topics", question):
                    points += get_weight("discovery_topic_bonus", 2)
        return clip_metric(points, self.ceiling)

    def _score_value(self, rep_texts: Sequence[str]) -> int:
        themes = set()
        for text in rep_texts:
            themes |= self._detector.themes(text)
        return clip_metric(len(themes) * get_weight("value_theme", 5), self.ceiling)

    def _score_objection(self, cases: Sequence[ObjectionCaseScore]) -> int:
        engaged = get_weight("objection_engaged", 5)
        step = get_weight("objection_step", 5)
        # Engagement credit needs an acknowledgement
        points = sum(
            step * case.steps_completed + (engaged if case.steps.get("ack") else 0)
            for case in cases
        )
        return clip_metric(points, self.ceiling)

    def _score_cta(self, rep_texts: Sequence[str]) -> int:
        points = 0
        for text in rep_texts:
            if self._detector.matches("scheduling", text):
                points += get_weight("cta_proposal", 8)
                if self._detector.matches("concrete_time", text):
                    points += get_weight("cta_concrete_time", 4)
            elif self._detector.matches("trial_close", text):
                points += get_weight("trial_close", 3)
        return clip_metric(points, self.ceiling)

    # =========================================================================
    # Suggestions
    # =========================================================================

    def _suggestions(
        self,
        metrics: LiveMetrics,
        rep_turns: int,
        cases: Sequence[ObjectionCaseScore],
        latest: str,
    ) -> List[str]:
        tips: List[str] = []

        rule = SUGGESTIONS.get("low_discovery", {})
        if rep_turns >= rule.get("min_rep_turns", 4) and metrics.discovery < rule.get("below", 10):
            tips.append(rule.get("text", ""))

        rule = SUGGESTIONS.get("unresolved_objection", {})
        open_case = cases[-1] if cases else None
        if open_case and not open_case.resolved:
            tip = self._objections.get_tip(open_case.episode.objection_type)
            tips.append(tip or rule.get("text", ""))

        rule = SUGGESTIONS.get("low_value", {})
        if rep_turns >= rule.get("min_rep_turns", 3) and metrics.value < rule.get("below", 8):
            tips.append(rule.get("text", ""))

        rule = SUGGESTIONS.get("no_cta", {})
        if rep_turns >= rule.get("min_rep_turns", 6) and metrics.cta == 0:
            tips.append(rule.get("text", ""))

        rule = SUGGESTIONS.get("monologue", {})
        if latest and word_count(latest) > MONOLOGUE_WORDS and "?" not in latest:
            tips.append(rule.get("text", ""))

        return [tip for tip in tips if tip][:MAX_SUGGESTIONS]
