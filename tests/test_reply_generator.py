"""
Tests for homeowner reply generation.
"""

import pytest

from dooriq.errors import UpstreamError
from dooriq.persona_mood import PersonaMood
from dooriq.personas import PersonaType
from dooriq.reply_generator import (
    LLMReplyGenerator,
    SafeDict,
    ScriptedReplyGenerator,
    create_reply_generator,
    persona_variables,
)
from dooriq.signals import detector
from dooriq.state_machine import ConversationState


def _history(*texts):
    """Alternating rep / prospect messages, starting with the rep."""
    roles = ["rep", "prospect"]
    return [{"role": roles[i % 2], "text": text} for i, text in enumerate(texts)]


class TestSafeDict:

    def test_missing_key_renders_empty(self):
        assert "Hello {name}, {pain}".format_map(SafeDict({"name": "Sam"})) == "Hello Sam, "

    def test_persona_variables(self, skeptical_persona):
        variables = persona_variables(skeptical_persona)
        assert variables["pain_first"] == "ants in the kitchen"
        assert variables["pain_last"] == "spiders in the basement"
        assert variables["budget"] == "$100-300/month"
        assert variables["opening_line"] == skeptical_persona.opening_line


class TestLLMReplyGenerator:
    """Prompt assembly and fallback"""

    def test_reply_from_llm(self, mock_llm, skeptical_persona):
        generator = LLMReplyGenerator(llm=mock_llm, history_window=8, fallback_reply="I see.")
        mood = PersonaMood.initial(skeptical_persona)
        reply = generator.generate_reply(
            skeptical_persona, ConversationState.OPENING, _history("Hi, do you have a minute?"), mood
        )
        assert reply == "Okay... what's this about?"

        messages = mock_llm.generate.call_args[0][0]
        assert mock_llm.generate.call_args[1]["allow_fallback"] is False
        assert mock_llm.generate.call_args[1]["state"] == "OPENING"
        assert messages[0]["role"] == "system"
        assert messages[-1] == {"role": "user", "content": "Hi, do you have a minute?"}

    def test_system_prompt_describes_persona_and_phase(self, mock_llm, skeptical_persona):
        generator = LLMReplyGenerator(llm=mock_llm)
        prompt = generator.build_system_prompt(
            skeptical_persona, ConversationState.OBJECTION, PersonaMood(trust=-6, interest=2)
        )
        assert "Skeptical Homeowner" in prompt
        assert "ants in the kitchen" in prompt
        assert "CONVERSATION PHASE: OBJECTION" in prompt
        assert "VERY SKEPTICAL" in prompt
        assert "{" not in prompt

    def test_history_window(self, mock_llm, skeptical_persona):
        generator = LLMReplyGenerator(llm=mock_llm, history_window=8)
        history = _history(*[f"message {i}" for i in range(12)])
        messages = generator.build_messages(
            skeptical_persona, ConversationState.DISCOVERY, history, PersonaMood()
        )
        assert len(messages) == 9
        assert messages[1]["content"] == "message 4"
        assert messages[1]["role"] == "user"
        assert messages[2]["role"] == "assistant"

    @pytest.mark.parametrize("side_effect", [
        UpstreamError("all attempts failed"),
        RuntimeError("connection refused"),
    ])
    def test_failure_falls_back(self, mock_llm, skeptical_persona, side_effect):
        mock_llm.generate.side_effect = side_effect
        generator = LLMReplyGenerator(llm=mock_llm, fallback_reply="I see.")
        reply = generator.generate_reply(
            skeptical_persona, ConversationState.VALUE, _history("We use a pet-safe treatment."), PersonaMood()
        )
        assert reply == "I see."

    def test_blank_reply_falls_back(self, mock_llm, skeptical_persona):
        mock_llm.generate.return_value = "   "
        generator = LLMReplyGenerator(llm=mock_llm, fallback_reply="I see.")
        reply = generator.generate_reply(
            skeptical_persona, ConversationState.VALUE, _history("Hello?"), PersonaMood()
        )
        assert reply == "I see."


class TestScriptedReplyGenerator:
    """Deterministic homeowner"""

    def test_opening_uses_persona_line(self, scripted_generator, skeptical_persona):
        reply = scripted_generator.generate_reply(
            skeptical_persona, ConversationState.OPENING, _history("Hi there!"), PersonaMood()
        )
        assert reply == skeptical_persona.opening_line

    def test_discovery_mentions_pain(self, scripted_generator, skeptical_persona):
        reply = scripted_generator.generate_reply(
            skeptical_persona, ConversationState.DISCOVERY, _history("What pests do you see?"), PersonaMood()
        )
        assert "ants in the kitchen" in reply

    def test_objection_uses_persona_objection(self, scripted_generator, skeptical_persona):
        reply = scripted_generator.generate_reply(
            skeptical_persona, ConversationState.OBJECTION, _history("It's $99 a month."), PersonaMood()
        )
        assert reply == skeptical_persona.objections[0]

    def test_close_accepts_when_warm(self, scripted_generator, skeptical_persona):
        reply = scripted_generator.generate_reply(
            skeptical_persona, ConversationState.CLOSE, _history("Can I put you down for Tuesday?"),
            PersonaMood(trust=2, interest=6),
        )
        assert reply == "Okay, that works for me."
        assert detector.matches("prospect_acceptance", reply)

    def test_close_hesitates_when_cold(self, scripted_generator, skeptical_persona):
        reply = scripted_generator.generate_reply(
            skeptical_persona, ConversationState.CLOSE, _history("Can I put you down for Tuesday?"),
            PersonaMood(trust=-4, interest=3),
        )
        assert reply == "I'm still on the fence."
        assert not detector.matches("prospect_acceptance", reply)

    def test_deterministic(self, scripted_generator, skeptical_persona):
        history = _history("Hi", "Hello", "What pests?")
        first = scripted_generator.generate_reply(
            skeptical_persona, ConversationState.DISCOVERY, history, PersonaMood()
        )
        second = scripted_generator.generate_reply(
            skeptical_persona, ConversationState.DISCOVERY, history, PersonaMood()
        )
        assert first == second

    def test_never_ends_conversation_outside_close(self, scripted_generator, persona_generator):
        open_states = [s for s in ConversationState if s not in (ConversationState.CLOSE, ConversationState.TERMINAL)]
        moods = [PersonaMood(trust=-8, interest=0), PersonaMood(trust=8, interest=9)]
        for persona_type in PersonaType.concrete():
            persona = persona_generator.generate(persona_type.value)
            for state in open_states:
                for turns in range(1, 5):
                    history = _history(*["Hello"] * (turns * 2 - 1))
                    for mood in moods:
                        reply = scripted_generator.generate_reply(persona, state, history, mood)
                        assert reply
                        assert not detector.matches("prospect_acceptance", reply), reply
                        assert not detector.matches("prospect_rejection", reply), reply

    def test_empty_template_falls_back(self, skeptical_persona):
        generator = ScriptedReplyGenerator(lines={})
        reply = generator.generate_reply(
            skeptical_persona, ConversationState.VALUE, _history("Hi"), PersonaMood()
        )
        assert reply == "I see."


class TestFactory:

    def test_scripted(self):
        assert isinstance(create_reply_generator("scripted"), ScriptedReplyGenerator)

    def test_llm(self):
        assert isinstance(create_reply_generator("llm"), LLMReplyGenerator)

    def test_unknown(self):
        with pytest.raises(ValueError):
            create_reply_generator("telepathy")
