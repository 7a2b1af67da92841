"""
Persona mood: how much the homeowner trusts the rep and cares about the offer.

Trust (-10..10) and interest (0..10) move with each rep utterance and shape
the tone of the simulated replies.
"""

import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from dooriq.personas import Persona
from dooriq.signals import SignalDetector, detector as default_detector, word_count

TRUST_RANGE = (-10, 10)
INTEREST_RANGE = (0, 10)

_STOPWORDS = {"the", "and", "with", "for", "from", "wants", "want", "into", "on", "in", "all", "day"}


def _clip(value: int, bounds) -> int:
    low, high = bounds
    return max(low, min(high, value))


def _pain_keywords(persona: Persona) -> set:
    words = set()
    for pain in persona.pain:
        for word in re.findall(r"[a-z']+", pain.lower()):
            if len(word) > 3 and word not in _STOPWORDS:
                words.add(word.strip("'").rstrip("s"))
    return words


@dataclass(frozen=True)
class PersonaMood:
    """
    Attributes:
        trust: -10 (hostile) .. 10 (trusting)
        interest: 0 (no interest) .. 10 (ready to buy)
        turns: Rep utterances seen so far
    """
    trust: int = 0
    interest: int = 0
    turns: int = 0

    @classmethod
    def initial(cls, persona: Persona) -> "PersonaMood":
        return cls(
            trust=_clip(persona.initial_trust, TRUST_RANGE),
            interest=_clip(persona.initial_interest, INTEREST_RANGE),
            turns=0,
        )

    def to_dict(self) -> Dict[str, int]:
        return {"trust": self.trust, "interest": self.interest, "turns": self.turns}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PersonaMood":
        data = data or {}
        return cls(
            trust=int(data.get("trust", 0)),
            interest=int(data.get("interest", 0)),
            turns=int(data.get("turns", 0)),
        )

    def behavioral_context(self) -> str:
        """Prompt fragment describing how the homeowner should act now."""
        parts = [f"Trust level: {self.trust}/10, interest level: {self.interest}/10."]

        if self.trust < -5:
            parts.append("VERY SKEPTICAL: be defensive, ask for credentials, mention bad experiences.")
        elif self.trust < 0:
            parts.append("SKEPTICAL: be cautious and make the rep earn your attention.")
        elif self.trust > 5:
            parts.append("TRUSTING: be open, share concerns readily, ask helpful questions.")

        if self.interest < 3:
            parts.append("LOW INTEREST: lean on objections, say you don't really need this.")
        elif self.interest > 7:
            parts.append("HIGH INTEREST: ask about details and move toward a decision.")

        if self.turns > 8:
            parts.append("GETTING IMPATIENT: mention you have other things to do.")

        return " ".join(parts)


class MoodTracker:
    """Updates PersonaMood from rep utterances."""

    def __init__(self, signal_detector: Optional[SignalDetector] = None):
        self._detector = signal_detector or default_detector

    def update(
        self,
        mood: PersonaMood,
        persona: Persona,
        rep_utterance: str,
        last_prospect_reply: str = "",
    ) -> PersonaMood:
        """
        Apply one rep utterance to the mood.

        Args:
            mood: Current mood
            persona: Session persona
            rep_utterance: Newest rep utterance
            last_prospect_reply: Previous prospect message (for ignored questions)

        Returns:
            New PersonaMood
        """
        text = (rep_utterance or "").lower()
        themes = self._detector.themes(text)
        trust = mood.trust
        interest = mood.interest

        # Trust builders
        if "local_proof" in themes:
            trust += 2
        if "guarantee" in themes:
            trust += 1
        if "safety" in themes:
            trust += 1
        if re.search(r"free inspection|no obligation", text):
            trust += 1

        # Trust damage
        if self._detector.matches("pressure", text):
            trust -= 2
        if self._ignored_safety_question(last_prospect_reply, text):
            trust -= 1
        if word_count(text) > 40 and "?" not in text:
            trust -= 1

        # Interest
        pain_words = _pain_keywords(persona)
        if pain_words and any(re.search(rf"\b{re.escape(word)}", text) for word in pain_words):
            interest += 2
        if "prevention" in themes and persona.pain:
            interest += 1
        if self._detector.matches("generic_pitch", text):
            interest -= 1

        return replace(
            mood,
            trust=_clip(trust, TRUST_RANGE),
            interest=_clip(interest, INTEREST_RANGE),
            turns=mood.turns + 1,
        )

    @staticmethod
    def _ignored_safety_question(last_prospect_reply: str, rep_text: str) -> bool:
        last = (last_prospect_reply or "").lower()
        if "?" not in last:
            return False
        if "safe" in last or "chemical" in last:
            return "safe" not in rep_text and "epa" not in rep_text
        return False
