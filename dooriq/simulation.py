"""
Simulation Service - start / step / end for practice attempts.

Each call loads one attempt from the store, works on it under the
per-attempt lock and saves it back with an optimistic version check.

Usage:
    service = SimulationService(store=InMemoryAttemptStore(),
                                reply_generator=ScriptedReplyGenerator())
    started = service.start("user-1", "skeptical")
    service.step(started["attemptId"], "Hi, I'm with SafeGuard Pest Control, do you have a minute?")
    result = service.end(started["attemptId"])
"""

from __future__ import annotations

import random
import re
import time
from typing import Any, Callable, Dict, Optional

from dooriq.attempt import Attempt, Message, ROLE_PROSPECT, ROLE_REP, new_attempt_id
from dooriq.attempt_store import AttemptStore, create_attempt_store
from dooriq.errors import InvalidInputError, TerminalStateError
from dooriq.logger import logger
from dooriq.metrics import ConversationMetrics, ConversationOutcome
from dooriq.persona_mood import MoodTracker, PersonaMood
from dooriq.personas import PersonaGenerator
from dooriq.reply_generator import ReplyGenerator, create_reply_generator
from dooriq.session_evaluator import SessionEvaluator
from dooriq.session_lock import SessionLockManager
from dooriq.settings import settings
from dooriq.state_machine import ConversationStateMachine, TransitionResult
from dooriq.turn_evaluator import TurnEvaluator


ATTEMPT_ID_RE = re.compile(r"^[0-9a-f]{32}$")


class SimulationService:
    """Orchestrates persona, state machine, evaluators and reply generation."""

    def __init__(
        self,
        store: Optional[AttemptStore] = None,
        reply_generator: Optional[ReplyGenerator] = None,
        lock_manager: Optional[SessionLockManager] = None,
        persona_generator: Optional[PersonaGenerator] = None,
        state_machine: Optional[ConversationStateMachine] = None,
        turn_evaluator: Optional[TurnEvaluator] = None,
        session_evaluator: Optional[SessionEvaluator] = None,
        mood_tracker: Optional[MoodTracker] = None,
        duplicate_window_seconds: Optional[float] = None,
        max_utterance_chars: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store or create_attempt_store()
        self.reply_generator = reply_generator or create_reply_generator()
        self.locks = lock_manager or SessionLockManager()
        self.personas = persona_generator or PersonaGenerator()
        self.state_machine = state_machine or ConversationStateMachine()
        self.turn_evaluator = turn_evaluator or TurnEvaluator()
        self.session_evaluator = session_evaluator or SessionEvaluator(turn_evaluator=self.turn_evaluator)
        self.mood_tracker = mood_tracker or MoodTracker()

        sim = settings.simulation
        self.duplicate_window_seconds = (
            duplicate_window_seconds if duplicate_window_seconds is not None
            else sim.duplicate_window_seconds
        )
        self.max_utterance_chars = max_utterance_chars or sim.max_utterance_chars
        self._clock = clock

    # =========================================================================
    # Validation
    # =========================================================================

    @staticmethod
    def _validate_attempt_id(attempt_id: Any) -> str:
        if not isinstance(attempt_id, str) or not ATTEMPT_ID_RE.match(attempt_id):
            raise InvalidInputError("attemptId must be a 32-character hex string")
        return attempt_id

    def _validate_utterance(self, rep_utterance: Any) -> str:
        if not isinstance(rep_utterance, str):
            raise InvalidInputError("repUtterance must be a string")
        text = rep_utterance.strip()
        if not text:
            raise InvalidInputError("repUtterance must not be empty")
        if len(text) > self.max_utterance_chars:
            raise InvalidInputError(
                f"repUtterance exceeds {self.max_utterance_chars} characters"
            )
        return text

    # =========================================================================
    # start
    # =========================================================================

    def start(
        self,
        user_id: Optional[str],
        persona_type: Optional[str] = "random",
        rng: Optional[random.Random] = None,
    ) -> Dict[str, Any]:
        """
        Create an attempt in OPENING.

        Returns:
            {"attemptId", "persona", "state"}
        """
        if user_id is not None and not isinstance(user_id, str):
            raise InvalidInputError("userId must be a string")

        persona = self.personas.generate(persona_type, rng=rng)
        attempt = Attempt(
            attempt_id=new_attempt_id(),
            user_id=(user_id or "").strip() or "anonymous",
            persona=persona,
            mood=PersonaMood.initial(persona),
            created_at=self._clock(),
        )
        self.store.create(attempt)

        logger.set_attempt(attempt.attempt_id)
        try:
            logger.event(
                "simulation_started",
                user_id=attempt.user_id,
                persona_type=persona.persona_type,
            )
        finally:
            logger.clear_attempt()

        return {
            "attemptId": attempt.attempt_id,
            "persona": persona.to_dict(),
            "state": attempt.state.value,
        }

    # =========================================================================
    # step
    # =========================================================================

    def _replay(self, attempt: Attempt, utterance: str, request_id: Optional[str]) -> Optional[Dict[str, Any]]:
        """Cached response when this step repeats the last accepted one."""
        last = attempt.last_step
        if not last:
            return None
        if request_id:
            if last.get("requestId") == request_id:
                return last["response"]
            return None
        same_text = last.get("utterance") == utterance
        recent = self._clock() - float(last.get("at", 0.0)) <= self.duplicate_window_seconds
        if same_text and recent:
            return last["response"]
        return None

    def _log_transition(self, result: TransitionResult, turn_count: int) -> None:
        if result.changed:
            logger.event(
                "state_transition",
                from_state=result.previous.value,
                to_state=result.state.value,
                reason=result.reason,
                turn=turn_count,
            )

    def step(self, attempt_id: str, rep_utterance: str, request_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Apply one rep utterance.

        Returns:
            {"prospectReply", "state", "liveMetrics", "terminal"}

        Raises:
            InvalidInputError: Malformed id or utterance (nothing is changed)
            AttemptNotFoundError: Unknown attempt
            TerminalStateError: Attempt already TERMINAL
            StaleAttemptError: Concurrent write won the race
        """
        attempt_id = self._validate_attempt_id(attempt_id)
        utterance = self._validate_utterance(rep_utterance)

        logger.set_attempt(attempt_id)
        try:
            with self.locks.lock(attempt_id):
                attempt = self.store.get(attempt_id)

                cached = self._replay(attempt, utterance, request_id)
                if cached is not None:
                    logger.event("duplicate_step", turn=attempt.turn_count, request_id=request_id)
                    return cached

                if attempt.is_terminal:
                    raise TerminalStateError(attempt_id)

                return self._apply_step(attempt, utterance, request_id)
        finally:
            logger.clear_attempt()

    def _apply_step(self, attempt: Attempt, utterance: str, request_id: Optional[str]) -> Dict[str, Any]:
        turn_count = attempt.turn_count + 1
        history = attempt.history()

        transition = self.state_machine.transition(attempt.context, utterance, turn_count)
        self._log_transition(transition, turn_count)

        mood = self.mood_tracker.update(
            attempt.mood, attempt.persona, utterance, attempt.last_prospect_text()
        )
        metrics = self.turn_evaluator.evaluate(history, utterance)

        now = self._clock()
        rep_message = Message(role=ROLE_REP, text=utterance, timestamp=now)
        reply = self.reply_generator.generate_reply(
            attempt.persona,
            transition.state,
            history + [rep_message.to_dict()],
            mood,
        )

        after = self.state_machine.after_reply(transition.context, reply, turn_count)
        self._log_transition(after, turn_count)

        if after.terminal:
            attempt.end_reason = after.reason if after.changed else transition.reason

        attempt.context = after.context
        attempt.turn_count = turn_count
        attempt.mood = mood
        attempt.messages.append(rep_message)
        attempt.messages.append(
            Message(role=ROLE_PROSPECT, text=reply, timestamp=self._clock(), state=after.state.value)
        )
        attempt.metrics_history.append(metrics)

        response = {
            "prospectReply": reply,
            "state": after.state.value,
            "liveMetrics": metrics.to_dict(),
            "terminal": after.terminal,
        }
        attempt.last_step = {
            "requestId": request_id,
            "utterance": utterance,
            "at": now,
            "turnCount": turn_count,
            "response": response,
        }
        self.store.save(attempt, expected_version=attempt.version)

        logger.debug(
            "Step accepted",
            turn=turn_count,
            state=after.state.value,
            total=metrics.total,
        )
        return response

    # =========================================================================
    # end
    # =========================================================================

    def end(self, attempt_id: str) -> Dict[str, Any]:
        """
        Finish the attempt and grade it. Calling end again returns the
        stored evaluation unchanged.

        Returns:
            {"eval", "metrics", "attempt"}
        """
        attempt_id = self._validate_attempt_id(attempt_id)

        logger.set_attempt(attempt_id)
        try:
            with self.locks.lock(attempt_id):
                attempt = self.store.get(attempt_id)
                if attempt.evaluation is None:
                    self._finish(attempt)
                return self._end_response(attempt)
        finally:
            logger.clear_attempt()

    def _finish(self, attempt: Attempt) -> None:
        if not attempt.is_terminal:
            result = self.state_machine.transition(
                attempt.context, "", attempt.turn_count, end_requested=True
            )
            self._log_transition(result, attempt.turn_count)
            attempt.context = result.context
            attempt.end_reason = result.reason

        attempt.evaluation = self.session_evaluator.evaluate(attempt.history(), attempt.metrics_history)
        attempt.ended_at = self._clock()
        self.store.save(attempt, expected_version=attempt.version)

        logger.event(
            "simulation_ended",
            turns=attempt.turn_count,
            score=attempt.evaluation.score,
            result=attempt.evaluation.result.value,
            outcome=ConversationOutcome.from_reason(attempt.end_reason).value,
        )

    @staticmethod
    def _end_response(attempt: Attempt) -> Dict[str, Any]:
        metrics = ConversationMetrics(attempt.history(), attempt.created_at, attempt.ended_at)
        return {
            "eval": attempt.evaluation.to_dict(),
            "metrics": metrics.get_summary(),
            "attempt": {
                "attemptId": attempt.attempt_id,
                "turnCount": attempt.turn_count,
                "state": attempt.state.value,
                "outcome": ConversationOutcome.from_reason(attempt.end_reason).value,
            },
        }

    # =========================================================================
    # read
    # =========================================================================

    def get(self, attempt_id: str) -> Dict[str, Any]:
        """Attempt snapshot in wire form."""
        attempt_id = self._validate_attempt_id(attempt_id)
        return self.store.get(attempt_id).to_public_dict()
