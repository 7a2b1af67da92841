"""
Attempt - one practice session and its full history.

An attempt is persisted as a JSON snapshot (see attempt_store.py).
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from dooriq.persona_mood import PersonaMood
from dooriq.personas import Persona
from dooriq.session_evaluator import Evaluation
from dooriq.state_machine import ConversationState, StateContext
from dooriq.turn_evaluator import LiveMetrics


ROLE_REP = "rep"
ROLE_PROSPECT = "prospect"


def new_attempt_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class Message:
    """
    Attributes:
        role: "rep" or "prospect"
        text: Utterance text
        timestamp: Epoch seconds
        state: State after the turn (prospect messages only)
    """
    role: str
    text: str
    timestamp: float
    state: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"role": self.role, "text": self.text, "timestamp": self.timestamp}
        if self.state is not None:
            data["state"] = self.state
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=data["role"],
            text=data.get("text", ""),
            timestamp=float(data.get("timestamp", 0.0)),
            state=data.get("state"),
        )


@dataclass
class Attempt:
    """
    Mutable session record owned by the simulation service.

    Invariants kept by SimulationService:
    - turn_count grows by exactly 1 per accepted step
    - messages only grow
    - nothing is accepted once state is TERMINAL
    - evaluation is written once
    """
    attempt_id: str
    user_id: str
    persona: Persona
    context: StateContext = field(default_factory=StateContext)
    turn_count: int = 0
    messages: List[Message] = field(default_factory=list)
    metrics_history: List[LiveMetrics] = field(default_factory=list)
    mood: PersonaMood = field(default_factory=PersonaMood)
    last_step: Optional[Dict[str, Any]] = None
    created_at: float = field(default_factory=time.time)
    ended_at: Optional[float] = None
    end_reason: Optional[str] = None
    evaluation: Optional[Evaluation] = None
    version: int = 0

    @property
    def state(self) -> ConversationState:
        return self.context.state

    @property
    def is_terminal(self) -> bool:
        return self.context.state.is_terminal

    @property
    def live_metrics(self) -> LiveMetrics:
        return self.metrics_history[-1] if self.metrics_history else LiveMetrics()

    def history(self) -> List[Dict[str, Any]]:
        """Messages as plain dicts for the evaluators and the reply generator."""
        return [m.to_dict() for m in self.messages]

    def last_prospect_text(self) -> str:
        for message in reversed(self.messages):
            if message.role == ROLE_PROSPECT:
                return message.text
        return ""

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "user_id": self.user_id,
            "persona": self.persona.to_snapshot(),
            "context": self.context.to_dict(),
            "turn_count": self.turn_count,
            "messages": [m.to_dict() for m in self.messages],
            "metrics_history": [m.to_dict() for m in self.metrics_history],
            "mood": self.mood.to_dict(),
            "last_step": self.last_step,
            "created_at": self.created_at,
            "ended_at": self.ended_at,
            "end_reason": self.end_reason,
            "evaluation": self.evaluation.to_dict() if self.evaluation else None,
            "version": self.version,
        }

    @classmethod
    def from_snapshot(cls, data: Dict[str, Any]) -> "Attempt":
        evaluation = data.get("evaluation")
        return cls(
            attempt_id=data["attempt_id"],
            user_id=data.get("user_id", ""),
            persona=Persona.from_snapshot(data["persona"]),
            context=StateContext.from_dict(data.get("context")),
            turn_count=int(data.get("turn_count", 0)),
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            metrics_history=[LiveMetrics.from_dict(m) for m in data.get("metrics_history") or []],
            mood=PersonaMood.from_dict(data.get("mood")),
            last_step=data.get("last_step"),
            created_at=float(data.get("created_at", 0.0)),
            ended_at=data.get("ended_at"),
            end_reason=data.get("end_reason"),
            evaluation=Evaluation.from_dict(evaluation) if evaluation else None,
            version=int(data.get("version", 0)),
        )

    def to_public_dict(self) -> Dict[str, Any]:
        """Wire form for GET /api/sim/{attemptId}."""
        return {
            "attemptId": self.attempt_id,
            "userId": self.user_id,
            "persona": self.persona.to_dict(),
            "state": self.state.value,
            "turnCount": self.turn_count,
            "messages": [m.to_dict() for m in self.messages],
            "liveMetrics": self.live_metrics.to_dict(),
            "mood": self.mood.to_dict(),
            "createdAt": self.created_at,
            "endedAt": self.ended_at,
            "eval": self.evaluation.to_dict() if self.evaluation else None,
        }
