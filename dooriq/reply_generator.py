"""
Reply Generator - next homeowner utterance.

Includes:
- ReplyGenerator: protocol the simulation depends on
- LLMReplyGenerator: assembles the prompt and calls the LLM
- ScriptedReplyGenerator: deterministic replies for demo mode and tests
- SafeDict: safe placeholder substitution in templates

The generator never raises to the caller: any failure turns into the
neutral fallback reply so the conversation can continue.
"""

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from dooriq.errors import UpstreamError
from dooriq.llm import VLLMClient
from dooriq.logger import logger
from dooriq.persona_mood import PersonaMood
from dooriq.personas import Persona
from dooriq.settings import settings
from dooriq.state_machine import ConversationState
from dooriq.yaml_config.constants import SCRIPTED_REPLIES, STATE_GUIDANCE, SYSTEM_PROMPT


# =============================================================================
# SAFE TEMPLATE SUBSTITUTION
# =============================================================================

class SafeDict(dict):
    """
    Dict for template.format_map() that renders missing keys as "".

    Usage:
        "Hello {name}, {pain}".format_map(SafeDict({"name": "Sam"}))
        # "Hello Sam, "
    """

    def __missing__(self, key: str) -> str:
        logger.debug(f"SafeDict: missing key '{key}', returning empty string")
        return ""


def persona_variables(persona: Persona) -> Dict[str, str]:
    """Template variables describing a persona."""
    pain = list(persona.pain)
    return {
        "company": persona.company,
        "vertical": persona.vertical,
        "role": persona.role,
        "pain": ", ".join(pain) or "nothing specific",
        "pain_first": pain[0] if pain else "the usual bugs",
        "pain_last": pain[-1] if pain else "the usual bugs",
        "budget": persona.budget or "not sure",
        "urgency": persona.urgency,
        "objections": "; ".join(persona.objections) or "none in particular",
        "hidden_goal": persona.hidden_goal,
        "opening_line": persona.opening_line or "Hi, can I help you?",
    }


class ReplyGenerator(Protocol):
    """Produces the next prospect utterance."""

    def generate_reply(
        self,
        persona: Persona,
        state: ConversationState,
        history: Sequence[Mapping[str, Any]],
        mood: PersonaMood,
    ) -> str:
        ...


# =============================================================================
# LLM
# =============================================================================

class LLMReplyGenerator:
    """
    Prompt assembly + LLM call.

    Usage:
        generator = LLMReplyGenerator()
        reply = generator.generate_reply(persona, ConversationState.DISCOVERY, history, mood)
    """

    def __init__(
        self,
        llm: Optional[VLLMClient] = None,
        history_window: Optional[int] = None,
        fallback_reply: Optional[str] = None,
    ):
        self.fallback_reply = fallback_reply or settings.simulation.fallback_reply
        self.llm = llm or VLLMClient(fallback_reply=self.fallback_reply)
        self.history_window = history_window or settings.simulation.history_window

    def build_system_prompt(self, persona: Persona, state: ConversationState, mood: PersonaMood) -> str:
        variables = persona_variables(persona)
        variables.update({
            "state": state.value,
            "guidance": STATE_GUIDANCE.get(state.value, ""),
            "mood": mood.behavioral_context(),
        })
        return SYSTEM_PROMPT.format_map(SafeDict(variables)).strip()

    def build_messages(
        self,
        persona: Persona,
        state: ConversationState,
        history: Sequence[Mapping[str, Any]],
        mood: PersonaMood,
    ) -> List[Dict[str, str]]:
        """
        Chat messages for the LLM: system prompt + the last history_window turns.

        The rep speaks as "user", the homeowner as "assistant".
        """
        messages = [{"role": "system", "content": self.build_system_prompt(persona, state, mood)}]
        for message in list(history)[-self.history_window:]:
            text = (message.get("text") or "").strip()
            if not text:
                continue
            role = "user" if message.get("role") == "rep" else "assistant"
            messages.append({"role": role, "content": text})
        return messages

    def generate_reply(
        self,
        persona: Persona,
        state: ConversationState,
        history: Sequence[Mapping[str, Any]],
        mood: PersonaMood,
    ) -> str:
        messages = self.build_messages(persona, state, history, mood)
        if settings.get_nested("logging.log_prompts", False):
            logger.debug("Reply prompt", state=state.value, prompt=messages[0]["content"])

        try:
            reply = self.llm.generate(messages, state=state.value, allow_fallback=False)
        except UpstreamError as e:
            logger.event("reply_fallback", state=state.value, reason=e.code)
            return self.fallback_reply
        except Exception as e:
            logger.event("reply_fallback", state=state.value, reason=type(e).__name__)
            return self.fallback_reply

        reply = (reply or "").strip()
        if not reply:
            logger.event("reply_fallback", state=state.value, reason="empty_reply")
            return self.fallback_reply
        return reply


# =============================================================================
# SCRIPTED
# =============================================================================

class ScriptedReplyGenerator:
    """
    Deterministic homeowner: the reply depends only on persona, state,
    mood and how many messages came before.

    Used for demo mode (simulation.reply_backend: scripted), the CLI
    simulator and tests.
    """

    # Mood levels that make the scripted homeowner warm up / agree
    WARM_INTEREST = 5
    ACCEPT_TRUST = 0
    ACCEPT_INTEREST = 5

    def __init__(self, lines: Optional[Dict[str, Any]] = None):
        self.lines = lines if lines is not None else SCRIPTED_REPLIES

    @staticmethod
    def _pick(options: Sequence[str], index: int) -> str:
        if not options:
            return ""
        return options[index % len(options)]

    def _options(self, state: ConversationState, mood: PersonaMood) -> List[str]:
        entry = self.lines.get(state.value, [])
        if isinstance(entry, list):
            return entry
        if state is ConversationState.VALUE:
            return entry.get("warm" if mood.interest >= self.WARM_INTEREST else "cold", [])
        if state is ConversationState.CLOSE:
            accepts = mood.trust >= self.ACCEPT_TRUST and mood.interest >= self.ACCEPT_INTEREST
            return entry.get("accept" if accepts else "hesitate", [])
        return []

    def generate_reply(
        self,
        persona: Persona,
        state: ConversationState,
        history: Sequence[Mapping[str, Any]],
        mood: PersonaMood,
    ) -> str:
        rep_turns = sum(1 for m in history if m.get("role") == "rep")
        index = max(0, rep_turns - 1)

        variables = persona_variables(persona)
        if persona.objections:
            variables["objection"] = self._pick(persona.objections, index)

        template = self._pick(self._options(state, mood), index)
        reply = template.format_map(SafeDict(variables)).strip()
        return reply or settings.simulation.fallback_reply


def create_reply_generator(backend: Optional[str] = None) -> ReplyGenerator:
    """Reply generator for the configured backend (llm | scripted)."""
    backend = backend or settings.simulation.reply_backend
    if backend == "scripted":
        return ScriptedReplyGenerator()
    if backend == "llm":
        return LLMReplyGenerator()
    raise ValueError(f"Unknown reply backend: {backend}")
