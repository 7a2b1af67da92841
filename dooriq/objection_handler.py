"""
Objection handling analysis for practice conversations.

Detects homeowner objections and checks how the rep handled each one with
the four-step loop:

    Acknowledge → Clarify → Address → Confirm

Usage:
    from dooriq.objection_handler import ObjectionHandler, ObjectionType

    handler = ObjectionHandler()
    objection = handler.detect_objection("That's more than I expected")

    if objection:
        tip = handler.get_tip(objection)
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Sequence
from enum import Enum

from dooriq.signals import SignalDetector, detector as default_detector
from dooriq.yaml_config.constants import OBJECTION_WINDOW_REP_TURNS


class ObjectionType(Enum):
    """
    Homeowner objection types.

    Order matters: detection returns the first type that matches.
    """
    PRICE = "price"                          # too expensive, budget
    TIMING = "timing"                        # busy, come back later
    SPOUSE = "spouse"                        # need to ask my husband
    THINK_ABOUT_IT = "think_about_it"        # polite stall
    COMPETITOR = "competitor"                # already have a company
    DIY_PREFERENCE = "diy_preference"        # spray it myself
    BAD_EXPERIENCE = "bad_experience"        # last company was awful
    CHEMICALS_KIDS_PETS = "chemicals_kids_pets"  # is it safe for the dog
    PESTS_NOT_BAD = "pests_not_bad"          # we don't really have bugs
    NOT_INTERESTED = "not_interested"        # flat rejection


HANDLING_STEPS = ("ack", "clarify", "address", "confirm")


@dataclass
class ObjectionEpisode:
    """
    One objection raised during the conversation.

    Attributes:
        objection_type: Detected type
        message_index: Index of the message that raised it
        raised_by: "rep" or "prospect"
        text: The raising utterance
    """
    objection_type: ObjectionType
    message_index: int
    raised_by: str
    text: str


@dataclass
class ObjectionCaseScore:
    """
    How the rep handled one objection episode.

    Attributes:
        episode: The objection episode
        steps: ack/clarify/address/confirm -> bool
        rep_turns_in_window: Rep utterances considered
    """
    episode: ObjectionEpisode
    steps: Dict[str, bool] = field(default_factory=dict)
    rep_turns_in_window: int = 0

    @property
    def steps_completed(self) -> int:
        return sum(1 for done in self.steps.values() if done)

    @property
    def resolved(self) -> bool:
        """Acknowledged and answered."""
        return bool(self.steps.get("ack")) and bool(self.steps.get("address"))


class ObjectionHandler:
    """
    Objection detection and four-step handling check.

    Principles:
    1. Detect the objection type in any message
    2. Look at the rep's next few utterances (the handling window)
    3. Credit each of ack / clarify / address / confirm at most once
    """

    OBJECTION_PATTERNS: Dict[ObjectionType, List[str]] = {
        ObjectionType.PRICE: [
            r"too expensive",
            r"\bpric(e|ey|ing)\b",
            r"\bcosts?\b",
            r"costs? too much",
            r"that'?s a lot",
            r"more than (i|we) (expected|thought|wanted)",
            r"can'?t afford",
            r"\bbudget\b",
            r"\$\s?\d+",
            r"too much",
        ],
        ObjectionType.TIMING: [
            r"not a good time",
            r"\bbusy\b",
            r"come back (later|another)",
            r"another day",
            r"heading out",
            r"nap time",
        ],
        ObjectionType.SPOUSE: [
            r"(need to|gotta|have to) (ask|check with|talk to) (my|the) (husband|wife|spouse|partner)",
            r"check with my",
        ],
        ObjectionType.THINK_ABOUT_IT: [
            r"think about it",
            r"need to think",
            r"let me think",
            r"sleep on it",
            r"consider it",
        ],
        ObjectionType.COMPETITOR: [
            r"(we have|already (with|have)|using) (another|a different|a) (company|service|provider|guy)",
            r"\b(orkin|terminix|aptive|moxie)\b",
        ],
        ObjectionType.DIY_PREFERENCE: [
            r"do it myself",
            r"\bdiy\b",
            r"buy my own",
            r"home depot",
            r"\blowes\b",
            r"spray (it )?myself",
            r"handle it myself",
        ],
        ObjectionType.BAD_EXPERIENCE: [
            r"last company",
            r"bad experience",
            r"had someone (before|out)",
            r"used to have",
        ],
        ObjectionType.CHEMICALS_KIDS_PETS: [
            r"\bchemicals?\b",
            r"\btoxic\b",
            r"\bpoison",
            r"safe for (the )?(kids|children|bab(y|ies)|dog|cat|pets?)",
            r"allerg(y|ies)",
            r"asthma",
        ],
        ObjectionType.PESTS_NOT_BAD: [
            r"don'?t (see|have) (many|any|much)",
            r"haven'?t seen",
            r"not that bad",
            r"\brarely\b",
        ],
        ObjectionType.NOT_INTERESTED: [
            r"not interested",
            r"no thanks",
            r"we'?re good",
        ],
    }

    # One-line coaching per type, used by live suggestions
    HANDLING_TIPS: Dict[ObjectionType, str] = {
        ObjectionType.PRICE: "Break the price down per month and tie it back to the problem they described.",
        ObjectionType.TIMING: "Respect their time: offer a quick free inspection at a time that suits them.",
        ObjectionType.SPOUSE: "Ask what their partner would want to know and offer to cover it now.",
        ObjectionType.THINK_ABOUT_IT: "Ask what specifically they'd need to think over.",
        ObjectionType.COMPETITOR: "Ask what they like about their current service before comparing.",
        ObjectionType.DIY_PREFERENCE: "Explain why store-bought sprays only give temporary relief.",
        ObjectionType.BAD_EXPERIENCE: "Acknowledge it and explain what you do differently.",
        ObjectionType.CHEMICALS_KIDS_PETS: "Explain the safety of the products and re-entry times for kids and pets.",
        ObjectionType.PESTS_NOT_BAD: "Talk about prevention and what neighbors are seeing this season.",
        ObjectionType.NOT_INTERESTED: "Ask one light question to find out what's behind the no.",
    }

    STEP_SIGNALS: Dict[str, str] = {
        "ack": "acknowledgement",
        "clarify": "clarify",
        "address": "address",
        "confirm": "confirm",
    }

    def __init__(
        self,
        signal_detector: Optional[SignalDetector] = None,
        window_rep_turns: int = None,
    ):
        self._detector = signal_detector or default_detector
        self._window = window_rep_turns or OBJECTION_WINDOW_REP_TURNS
        self._compiled: Dict[ObjectionType, List[Pattern]] = {
            otype: [re.compile(p, re.IGNORECASE) for p in patterns]
            for otype, patterns in self.OBJECTION_PATTERNS.items()
        }

    def detect_objection(self, text: str) -> Optional[ObjectionType]:
        """
        Detect the objection type in a message.

        Args:
            text: Utterance text

        Returns:
            ObjectionType or None
        """
        if not text:
            return None
        for otype, patterns in self._compiled.items():
            if any(p.search(text) for p in patterns):
                return otype
        return None

    def find_episodes(self, messages: Sequence[Dict[str, str]]) -> List[ObjectionEpisode]:
        """
        Objection episodes in message order.

        Consecutive repeats of the same type from the same speaker are merged
        so a prospect repeating "too expensive" is one episode.

        Args:
            messages: [{"role": "rep"|"prospect", "text": ...}, ...]
        """
        episodes: List[ObjectionEpisode] = []
        for index, message in enumerate(messages):
            otype = self.detect_objection(message.get("text", ""))
            if otype is None:
                continue
            role = message.get("role", "prospect")
            last = episodes[-1] if episodes else None
            if last and last.objection_type == otype and last.raised_by == role:
                rep_between = sum(
                    1 for m in messages[last.message_index + 1:index]
                    if m.get("role") == "rep"
                )
                if rep_between <= 1:
                    continue
            episodes.append(ObjectionEpisode(
                objection_type=otype,
                message_index=index,
                raised_by=role,
                text=message.get("text", ""),
            ))
        return episodes

    def score_episode(
        self,
        episode: ObjectionEpisode,
        messages: Sequence[Dict[str, str]],
    ) -> ObjectionCaseScore:
        """
        Check the four handling steps in the rep's utterances after the episode.

        Args:
            episode: Objection episode
            messages: Full conversation

        Returns:
            ObjectionCaseScore
        """
        window: List[str] = []
        for message in messages[episode.message_index + 1:]:
            if message.get("role") != "rep":
                continue
            window.append(message.get("text", ""))
            if len(window) >= self._window:
                break

        joined = " ".join(window)
        steps = {
            step: bool(joined) and self._detector.matches(signal, joined)
            for step, signal in self.STEP_SIGNALS.items()
        }
        return ObjectionCaseScore(
            episode=episode,
            steps=steps,
            rep_turns_in_window=len(window),
        )

    def analyze(
        self,
        messages: Sequence[Dict[str, str]],
        raised_by: Optional[str] = None,
    ) -> List[ObjectionCaseScore]:
        """
        Score objection episodes in the conversation.

        Args:
            messages: Full conversation
            raised_by: Only score episodes raised by this role ("prospect" / "rep")
        """
        return [
            self.score_episode(ep, messages)
            for ep in self.find_episodes(messages)
            if raised_by is None or ep.raised_by == raised_by
        ]

    def get_tip(self, objection_type: ObjectionType) -> str:
        return self.HANDLING_TIPS.get(objection_type, "")
