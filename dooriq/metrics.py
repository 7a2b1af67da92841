"""
Conversation metrics for a finished practice session.

Usage:
    from dooriq.metrics import ConversationMetrics

    metrics = ConversationMetrics(messages, started_at, ended_at)
    summary = metrics.get_summary()
"""

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from dooriq.signals import SignalDetector, detector as default_detector, word_count


class ConversationOutcome(Enum):
    """How the conversation reached TERMINAL"""
    ACCEPTED = "accepted"            # homeowner agreed to the close
    REJECTED = "rejected"            # homeowner shut the door
    FAREWELL = "farewell"            # rep wrapped up after closing
    CLOSE_EXHAUSTED = "close_exhausted"  # close phase ran out of turns
    MAX_TURNS = "max_turns"          # hit the turn limit
    ENDED_BY_REP = "ended_by_rep"    # explicit end request

    @classmethod
    def from_reason(cls, reason: Optional[str]) -> "ConversationOutcome":
        return {
            "prospect_accepted": cls.ACCEPTED,
            "prospect_rejected": cls.REJECTED,
            "farewell": cls.FAREWELL,
            "close_max_turns": cls.CLOSE_EXHAUSTED,
            "max_turns": cls.MAX_TURNS,
        }.get(reason or "", cls.ENDED_BY_REP)


class ConversationMetrics:
    """
    Session-level metrics computed from the message log.

    Collects:
    - total messages and rep turns
    - duration
    - average turn length (words)
    - rep talk ratio, question rate, fillers per 100 words
    """

    def __init__(
        self,
        messages: Sequence[Mapping[str, Any]],
        started_at: float,
        ended_at: Optional[float] = None,
        signal_detector: Optional[SignalDetector] = None,
    ):
        self.messages = list(messages)
        self.started_at = started_at
        self.ended_at = ended_at
        self._detector = signal_detector or default_detector

    def _texts(self, role: Optional[str] = None) -> List[str]:
        return [
            m.get("text") or ""
            for m in self.messages
            if role is None or m.get("role") == role
        ]

    def get_duration_seconds(self) -> int:
        """Whole seconds from start to end (or to the last message)."""
        end = self.ended_at
        if end is None:
            timestamps = [m.get("timestamp") for m in self.messages if m.get("timestamp")]
            end = max(timestamps) if timestamps else self.started_at
        return max(0, int(round(end - self.started_at)))

    def get_average_turn_length(self) -> float:
        texts = self._texts()
        if not texts:
            return 0.0
        return round(sum(word_count(t) for t in texts) / len(texts), 1)

    def get_talk_ratio(self) -> float:
        rep_words = sum(word_count(t) for t in self._texts("rep"))
        prospect_words = sum(word_count(t) for t in self._texts("prospect"))
        total = rep_words + prospect_words
        if total == 0:
            return 0.0
        return round(rep_words / total, 2)

    def get_question_rate(self) -> float:
        rep_texts = self._texts("rep")
        if not rep_texts:
            return 0.0
        asked = sum(1 for t in rep_texts if "?" in t)
        return round(asked / len(rep_texts), 2)

    def get_fillers_per_100(self) -> float:
        rep_texts = self._texts("rep")
        words = sum(word_count(t) for t in rep_texts)
        if words == 0:
            return 0.0
        fillers = sum(self._detector.count("fillers", t) for t in rep_texts)
        return round(fillers / words * 100, 2)

    def get_summary(self) -> Dict[str, Any]:
        """
        Returns:
            Wire-ready dict (camelCase keys)
        """
        return {
            "totalTurns": len(self.messages),
            "repTurns": len(self._texts("rep")),
            "duration": self.get_duration_seconds(),
            "avgTurnLength": self.get_average_turn_length(),
            "talkRatioRep": self.get_talk_ratio(),
            "questionRate": self.get_question_rate(),
            "fillersPer100": self.get_fillers_per_100(),
        }
