"""
Signal detection for rep and prospect utterances.

Lightweight regex signals that drive state transitions and live metrics.
Vocabularies come from yaml_config/constants.yaml.

Usage:
    from dooriq.signals import detector

    signals = detector.detect("Hi, I'm with SafeGuard, do you have a minute?")
    if signals.has("introduction"):
        ...
"""

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Pattern

from dooriq.yaml_config.constants import SIGNAL_PATTERNS, VALUE_THEMES

_WORD_RE = re.compile(r"[A-Za-z0-9'’-]+")
_WS_RE = re.compile(r"\s+")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")


def normalize_text(text: str) -> str:
    """Lowercase, collapse whitespace, drop trailing punctuation."""
    return _WS_RE.sub(" ", (text or "").lower()).strip(" .!?,")


def word_count(text: str) -> int:
    return len(_WORD_RE.findall(text or ""))


@dataclass(frozen=True)
class UtteranceSignals:
    """
    Signals detected in one utterance.

    Attributes:
        names: Signal categories that matched (introduction, scheduling, ...)
        value_themes: Value themes mentioned (safety, guarantee, ...)
        questions: Question sentences found in the utterance
        open_questions: Subset of questions that are open-ended
    """
    names: FrozenSet[str] = frozenset()
    value_themes: FrozenSet[str] = frozenset()
    questions: List[str] = field(default_factory=list)
    open_questions: List[str] = field(default_factory=list)

    def has(self, name: str) -> bool:
        return name in self.names

    @property
    def is_question(self) -> bool:
        return bool(self.questions)

    @property
    def is_empty(self) -> bool:
        return not self.names and not self.value_themes and not self.questions


class SignalDetector:
    """Compiled signal vocabularies."""

    def __init__(
        self,
        patterns: Dict[str, List[str]] = None,
        value_themes: Dict[str, List[str]] = None,
    ):
        patterns = SIGNAL_PATTERNS if patterns is None else patterns
        value_themes = VALUE_THEMES if value_themes is None else value_themes

        self._patterns: Dict[str, List[Pattern]] = {
            name: [re.compile(p, re.IGNORECASE) for p in regexes]
            for name, regexes in patterns.items()
        }
        self._themes: Dict[str, List[Pattern]] = {
            theme: [re.compile(p, re.IGNORECASE) for p in regexes]
            for theme, regexes in value_themes.items()
        }

    def matches(self, name: str, text: str) -> bool:
        """True if any pattern of category `name` matches."""
        return any(p.search(text) for p in self._patterns.get(name, []))

    def count(self, name: str, text: str) -> int:
        """Number of non-overlapping hits for category `name`."""
        return sum(len(p.findall(text)) for p in self._patterns.get(name, []))

    def themes(self, text: str) -> FrozenSet[str]:
        return frozenset(
            theme for theme, regexes in self._themes.items()
            if any(p.search(text) for p in regexes)
        )

    def split_questions(self, text: str) -> List[str]:
        """Sentences of the utterance that end with a question mark."""
        sentences = _SENTENCE_SPLIT_RE.split((text or "").strip())
        return [s.strip() for s in sentences if s.strip().endswith("?")]

    def is_open_question(self, question: str) -> bool:
        return self.matches("open_question_starters", question)

    def detect(self, text: str) -> UtteranceSignals:
        """Detect all signal categories in `text`. Never raises on odd input."""
        if not isinstance(text, str) or not text.strip():
            return UtteranceSignals()

        names = frozenset(
            name for name in self._patterns
            if name not in ("open_question_starters", "closed_question_starters")
            and self.matches(name, text)
        )
        questions = self.split_questions(text)
        open_questions = [q for q in questions if self.is_open_question(q)]

        return UtteranceSignals(
            names=names,
            value_themes=self.themes(text),
            questions=questions,
            open_questions=open_questions,
        )


detector = SignalDetector()
