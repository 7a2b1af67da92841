"""
Homeowner personas for practice sessions.

Each persona type maps to one fixed trait template from
yaml_config/personas.yaml. "random" picks one of the types uniformly.

Usage:
    from dooriq.personas import PersonaGenerator

    persona = PersonaGenerator().generate("skeptical")
    persona.to_dict()
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from dooriq.logger import logger


PERSONAS_FILE = Path(__file__).parent / "yaml_config" / "personas.yaml"


class PersonaType(Enum):
    """Selectable persona types ("random" resolves to one of the others)."""
    RANDOM = "random"
    SKEPTICAL = "skeptical"
    INTERESTED = "interested"
    BUDGET_CONSCIOUS = "budget_conscious"
    SAFETY_FOCUSED = "safety_focused"

    @classmethod
    def concrete(cls) -> List["PersonaType"]:
        return [t for t in cls if t is not cls.RANDOM]

    @classmethod
    def parse(cls, value: Optional[str]) -> "PersonaType":
        """
        Parse a loose persona type string.

        "Budget-Conscious", "budget conscious" and "BUDGET_CONSCIOUS" are all
        accepted. Unknown values resolve to RANDOM.
        """
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
        for member in cls:
            if member.value == key:
                return member
        logger.warning("Unknown persona type, falling back to random", persona_type=value)
        return cls.RANDOM


@dataclass(frozen=True)
class Persona:
    """
    Simulated homeowner profile, fixed for the lifetime of an attempt.

    Attributes:
        company: Household / account label
        vertical: Business vertical
        role: Who answers the door
        pain: Pain points the rep can uncover
        budget: Budget range (None when unknown)
        urgency: low / medium / high
        persona_type: Resolved persona type value
        objections: Objections this homeowner tends to raise
        hidden_goal: What would make them buy (never shown to the rep)
        initial_trust: Starting trust level (-10..10)
        initial_interest: Starting interest level (0..10)
        opening_line: What they say when they open the door
    """
    company: str
    vertical: str
    role: str
    pain: Tuple[str, ...]
    budget: Optional[str]
    urgency: str
    persona_type: str = PersonaType.SKEPTICAL.value
    objections: Tuple[str, ...] = field(default_factory=tuple)
    hidden_goal: str = ""
    initial_trust: int = 0
    initial_interest: int = 0
    opening_line: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Wire form sent to the client."""
        return {
            "company": self.company,
            "vertical": self.vertical,
            "role": self.role,
            "pain": list(self.pain),
            "budget": self.budget,
            "urgency": self.urgency,
            "type": self.persona_type,
            "objections": list(self.objections),
        }

    def to_snapshot(self) -> Dict[str, Any]:
        """Full form for persistence."""
        data = self.to_dict()
        data.update({
            "hidden_goal": self.hidden_goal,
            "initial_trust": self.initial_trust,
            "initial_interest": self.initial_interest,
            "opening_line": self.opening_line,
        })
        return data

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> "Persona":
        return cls(
            company=data["company"],
            vertical=data["vertical"],
            role=data["role"],
            pain=tuple(data.get("pain") or ()),
            budget=data.get("budget"),
            urgency=data.get("urgency", "medium"),
            persona_type=data.get("type", PersonaType.SKEPTICAL.value),
            objections=tuple(data.get("objections") or ()),
            hidden_goal=data.get("hidden_goal", ""),
            initial_trust=int(data.get("initial_trust", 0)),
            initial_interest=int(data.get("initial_interest", 0)),
            opening_line=data.get("opening_line", ""),
        )


def load_templates(filepath: Path = None) -> Dict[str, Dict[str, Any]]:
    """Persona templates keyed by persona type value."""
    filepath = filepath or PERSONAS_FILE
    with open(filepath, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


class PersonaGenerator:
    """
    Builds personas from templates.

    No external state: the same concrete type always yields an equal persona.
    """

    def __init__(self, templates: Dict[str, Dict[str, Any]] = None):
        self._templates = templates if templates is not None else load_templates()
        missing = [t.value for t in PersonaType.concrete() if t.value not in self._templates]
        if missing:
            raise ValueError(f"Persona templates missing for: {', '.join(missing)}")

    def resolve_type(self, persona_type: Optional[str], rng: Optional[random.Random] = None) -> PersonaType:
        """Resolve "random" / unknown values to a concrete type."""
        parsed = PersonaType.parse(persona_type)
        if parsed is PersonaType.RANDOM:
            chooser = rng or random
            parsed = chooser.choice(PersonaType.concrete())
        return parsed

    def generate(self, persona_type: Optional[str] = "random", rng: Optional[random.Random] = None) -> Persona:
        """
        Create a persona for a practice session.

        Args:
            persona_type: Persona type string; unknown values behave like "random"
            rng: Optional Random instance for reproducible "random" picks

        Returns:
            Persona
        """
        resolved = self.resolve_type(persona_type, rng=rng)
        template = self._templates[resolved.value]
        return Persona(
            company=template["company"],
            vertical=template["vertical"],
            role=template["role"],
            pain=tuple(template.get("pain") or ()),
            budget=template.get("budget"),
            urgency=template.get("urgency", "medium"),
            persona_type=resolved.value,
            objections=tuple(template.get("objections") or ()),
            hidden_goal=template.get("hidden_goal", ""),
            initial_trust=int(template.get("initial_trust", 0)),
            initial_interest=int(template.get("initial_interest", 0)),
            opening_line=template.get("opening_line", ""),
        )
