"""
State Machine - conversational phases of a practice session.

    OPENING → {DISCOVERY | VALUE | OBJECTION} → CLOSE → TERMINAL

- OBJECTION is reachable from any non-terminal state on an objection signal
  and resumes the interrupted phase once the rep handles it
- an explicit end request forces TERMINAL from any state
- TERMINAL is absorbing; nothing ever transitions back to OPENING
- unrecognised text holds the current state (turn thresholds still apply)

Transitions are pure: the machine takes a StateContext and returns a
TransitionResult, the caller persists the new context.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

from dooriq.settings import settings
from dooriq.signals import SignalDetector, UtteranceSignals, detector as default_detector


class ConversationState(Enum):
    OPENING = "OPENING"
    DISCOVERY = "DISCOVERY"
    VALUE = "VALUE"
    OBJECTION = "OBJECTION"
    CLOSE = "CLOSE"
    TERMINAL = "TERMINAL"

    @classmethod
    def parse(cls, value: Any) -> "ConversationState":
        if isinstance(value, cls):
            return value
        return cls(str(value).upper())

    @property
    def is_terminal(self) -> bool:
        return self is ConversationState.TERMINAL


# Phases the conversation moves forward through (OBJECTION is a detour)
PHASE_ORDER = {
    ConversationState.OPENING: 0,
    ConversationState.DISCOVERY: 1,
    ConversationState.VALUE: 2,
    ConversationState.CLOSE: 3,
    ConversationState.TERMINAL: 4,
}


@dataclass(frozen=True)
class StateContext:
    """
    Persisted state of the machine for one attempt.

    Attributes:
        state: Current state
        turns_in_state: Accepted turns that ended in the current state
        resume_state: Phase to resume after an objection is handled
    """
    state: ConversationState = ConversationState.OPENING
    turns_in_state: int = 0
    resume_state: Optional[ConversationState] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "turns_in_state": self.turns_in_state,
            "resume_state": self.resume_state.value if self.resume_state else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StateContext":
        data = data or {}
        resume = data.get("resume_state")
        return cls(
            state=ConversationState.parse(data.get("state", ConversationState.OPENING.value)),
            turns_in_state=int(data.get("turns_in_state", 0)),
            resume_state=ConversationState.parse(resume) if resume else None,
        )


@dataclass(frozen=True)
class TransitionResult:
    """
    Attributes:
        previous: State before the transition
        context: New machine context
        reason: Short machine-readable reason (for logs and traces)
    """
    previous: ConversationState
    context: StateContext
    reason: str

    @property
    def state(self) -> ConversationState:
        return self.context.state

    @property
    def changed(self) -> bool:
        return self.previous is not self.context.state

    @property
    def terminal(self) -> bool:
        return self.context.state.is_terminal


@dataclass(frozen=True)
class StateMachineConfig:
    max_turns: int = 20
    opening_max_turns: int = 2
    discovery_max_turns: int = 4
    value_max_turns: int = 3
    objection_max_turns: int = 3
    close_max_turns: int = 3
    close_turn_threshold: int = 10

    @classmethod
    def from_settings(cls) -> "StateMachineConfig":
        sim = settings.simulation
        return cls(
            max_turns=sim.max_turns,
            opening_max_turns=sim.opening_max_turns,
            discovery_max_turns=sim.discovery_max_turns,
            value_max_turns=sim.value_max_turns,
            objection_max_turns=sim.objection_max_turns,
            close_max_turns=sim.close_max_turns,
            close_turn_threshold=sim.close_turn_threshold,
        )


class ConversationStateMachine:
    """
    Phase transitions for a practice conversation.

    Usage:
        machine = ConversationStateMachine()
        result = machine.transition(StateContext(), "Hi, do you have a minute?", turn_count=1)
        result.state  # ConversationState.DISCOVERY
    """

    def __init__(
        self,
        config: Optional[StateMachineConfig] = None,
        signal_detector: Optional[SignalDetector] = None,
    ):
        self.config = config or StateMachineConfig.from_settings()
        self._detector = signal_detector or default_detector

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _hold(context: StateContext, reason: str) -> TransitionResult:
        return TransitionResult(
            previous=context.state,
            context=replace(context, turns_in_state=context.turns_in_state + 1),
            reason=reason,
        )

    @staticmethod
    def _move(
        context: StateContext,
        target: ConversationState,
        reason: str,
        resume_state: Optional[ConversationState] = None,
    ) -> TransitionResult:
        if target is ConversationState.OPENING:
            raise ValueError("Transitions never target OPENING")
        if target is context.state:
            return ConversationStateMachine._hold(context, reason)
        return TransitionResult(
            previous=context.state,
            context=StateContext(state=target, turns_in_state=1, resume_state=resume_state),
            reason=reason,
        )

    @staticmethod
    def _resume_target(context: StateContext) -> ConversationState:
        resume = context.resume_state or ConversationState.DISCOVERY
        if PHASE_ORDER.get(resume, 0) < PHASE_ORDER[ConversationState.DISCOVERY]:
            return ConversationState.DISCOVERY
        return resume

    def _is_objection(self, signals: UtteranceSignals) -> bool:
        return signals.has("objection_triggers")

    def _is_handling(self, signals: UtteranceSignals) -> bool:
        return (
            signals.has("acknowledgement")
            or signals.has("address")
            or signals.has("confirm")
            or bool(signals.value_themes)
        )

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(
        self,
        context: StateContext,
        utterance: Any,
        turn_count: int,
        end_requested: bool = False,
    ) -> TransitionResult:
        """
        Advance on one accepted rep turn.

        Args:
            context: Current machine context
            utterance: Rep utterance (non-string input is treated as empty)
            turn_count: Turn count including this turn
            end_requested: Caller asked to end the session

        Returns:
            TransitionResult
        """
        cfg = self.config
        state = context.state

        if state.is_terminal:
            return TransitionResult(previous=state, context=context, reason="terminal")
        if end_requested:
            return self._move(context, ConversationState.TERMINAL, "end_requested")
        if turn_count >= cfg.max_turns:
            return self._move(context, ConversationState.TERMINAL, "max_turns")

        text = utterance if isinstance(utterance, str) else ""
        signals = self._detector.detect(text)
        held_turns = context.turns_in_state + 1

        if state is ConversationState.OBJECTION:
            result = self._from_objection(context, signals, held_turns)
        elif self._is_objection(signals):
            resume = state if state is not ConversationState.OPENING else ConversationState.DISCOVERY
            result = self._move(context, ConversationState.OBJECTION, "objection_signal", resume_state=resume)
        elif state is ConversationState.OPENING:
            result = self._from_opening(context, signals, held_turns)
        elif state is ConversationState.DISCOVERY:
            result = self._from_discovery(context, signals, held_turns)
        elif state is ConversationState.VALUE:
            result = self._from_value(context, signals, held_turns)
        else:
            result = self._from_close(context, signals, held_turns)

        # Pacing: late conversations get pushed toward the close
        if (
            result.state in (ConversationState.DISCOVERY, ConversationState.VALUE)
            and turn_count >= cfg.close_turn_threshold
        ):
            return self._move(context, ConversationState.CLOSE, "close_turn_threshold")

        return result

    def _from_opening(self, context, signals: UtteranceSignals, held_turns: int) -> TransitionResult:
        if signals.value_themes:
            return self._move(context, ConversationState.VALUE, "value_statement")
        if signals.has("introduction") or signals.is_question or not signals.is_empty:
            return self._move(context, ConversationState.DISCOVERY, "opening_complete")
        if held_turns >= self.config.opening_max_turns:
            return self._move(context, ConversationState.DISCOVERY, "opening_max_turns")
        return self._hold(context, "no_signal")

    def _from_discovery(self, context, signals: UtteranceSignals, held_turns: int) -> TransitionResult:
        if signals.has("scheduling"):
            return self._move(context, ConversationState.CLOSE, "scheduling_signal")
        if signals.value_themes:
            return self._move(context, ConversationState.VALUE, "value_statement")
        if held_turns >= self.config.discovery_max_turns:
            return self._move(context, ConversationState.VALUE, "discovery_max_turns")
        return self._hold(context, "discovery_continues")

    def _from_value(self, context, signals: UtteranceSignals, held_turns: int) -> TransitionResult:
        if signals.has("scheduling"):
            return self._move(context, ConversationState.CLOSE, "scheduling_signal")
        if held_turns >= self.config.value_max_turns:
            return self._move(context, ConversationState.CLOSE, "value_max_turns")
        return self._hold(context, "value_continues")

    def _from_objection(self, context, signals: UtteranceSignals, held_turns: int) -> TransitionResult:
        if signals.has("scheduling"):
            return self._move(context, ConversationState.CLOSE, "scheduling_signal")
        if self._is_handling(signals):
            return self._move(context, self._resume_target(context), "objection_handled")
        if held_turns >= self.config.objection_max_turns:
            return self._move(context, self._resume_target(context), "objection_max_turns")
        return self._hold(context, "objection_open")

    def _from_close(self, context, signals: UtteranceSignals, held_turns: int) -> TransitionResult:
        if signals.has("farewell"):
            return self._move(context, ConversationState.TERMINAL, "farewell")
        if held_turns >= self.config.close_max_turns:
            return self._move(context, ConversationState.TERMINAL, "close_max_turns")
        return self._hold(context, "close_continues")

    def after_reply(self, context: StateContext, prospect_reply: Any, turn_count: int) -> TransitionResult:
        """
        Post-reply decision: the homeowner's answer can end the conversation.

        Acceptance while closing, or a hard rejection after the first turn,
        moves to TERMINAL. Otherwise the context is returned unchanged.
        """
        state = context.state
        if state.is_terminal:
            return TransitionResult(previous=state, context=context, reason="terminal")

        text = prospect_reply if isinstance(prospect_reply, str) else ""
        if state is ConversationState.CLOSE and self._detector.matches("prospect_acceptance", text):
            return self._move(context, ConversationState.TERMINAL, "prospect_accepted")
        if turn_count >= 2 and self._detector.matches("prospect_rejection", text):
            return self._move(context, ConversationState.TERMINAL, "prospect_rejected")
        return TransitionResult(previous=state, context=context, reason="reply_no_change")
