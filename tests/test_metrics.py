"""
Tests for end-of-session conversation metrics.
"""

from dooriq.metrics import ConversationMetrics, ConversationOutcome


def _messages():
    return [
        {"role": "rep", "text": "Um, hi there, do you have a minute?", "timestamp": 100.0},
        {"role": "prospect", "text": "Sure, what is it?", "timestamp": 105.0},
        {"role": "rep", "text": "We treat ants.", "timestamp": 110.0},
        {"role": "prospect", "text": "Okay.", "timestamp": 112.0},
    ]


class TestConversationMetrics:
    """Summary values"""

    def test_summary(self):
        summary = ConversationMetrics(_messages(), started_at=100.0, ended_at=130.0).get_summary()
        assert summary == {
            "totalTurns": 4,
            "repTurns": 2,
            "duration": 30,
            "avgTurnLength": 4.0,
            "talkRatioRep": 0.69,
            "questionRate": 0.5,
            "fillersPer100": 9.09,
        }

    def test_duration_falls_back_to_last_message(self):
        metrics = ConversationMetrics(_messages(), started_at=100.0)
        assert metrics.get_duration_seconds() == 12

    def test_empty_conversation(self):
        summary = ConversationMetrics([], started_at=50.0).get_summary()
        assert summary["totalTurns"] == 0
        assert summary["duration"] == 0
        assert summary["avgTurnLength"] == 0.0
        assert summary["talkRatioRep"] == 0.0
        assert summary["fillersPer100"] == 0.0


class TestConversationOutcome:
    """End reason mapping"""

    def test_from_reason(self):
        assert ConversationOutcome.from_reason("prospect_accepted") is ConversationOutcome.ACCEPTED
        assert ConversationOutcome.from_reason("prospect_rejected") is ConversationOutcome.REJECTED
        assert ConversationOutcome.from_reason("max_turns") is ConversationOutcome.MAX_TURNS
        assert ConversationOutcome.from_reason("end_requested") is ConversationOutcome.ENDED_BY_REP
        assert ConversationOutcome.from_reason(None) is ConversationOutcome.ENDED_BY_REP
