"""
Tests for persona mood tracking.
"""

from dooriq.persona_mood import MoodTracker, PersonaMood


class TestPersonaMood:
    """Mood value object"""

    def test_initial_from_persona(self, skeptical_persona):
        mood = PersonaMood.initial(skeptical_persona)
        assert (mood.trust, mood.interest, mood.turns) == (-4, 3, 0)

    def test_dict_round_trip(self):
        mood = PersonaMood(trust=3, interest=7, turns=2)
        assert PersonaMood.from_dict(mood.to_dict()) == mood
        assert PersonaMood.from_dict(None) == PersonaMood()

    def test_behavioral_context(self):
        assert "VERY SKEPTICAL" in PersonaMood(trust=-8, interest=5).behavioral_context()
        assert "TRUSTING" in PersonaMood(trust=8, interest=5).behavioral_context()
        assert "HIGH INTEREST" in PersonaMood(trust=0, interest=9).behavioral_context()
        assert "IMPATIENT" in PersonaMood(trust=0, interest=5, turns=10).behavioral_context()


class TestMoodTracker:
    """Mood updates from rep utterances"""

    def test_local_proof_and_guarantee_build_trust(self, skeptical_persona):
        mood = PersonaMood.initial(skeptical_persona)
        updated = MoodTracker().update(
            mood, skeptical_persona, "A lot of neighbors on this street use us, and it's guaranteed."
        )
        assert updated.trust == mood.trust + 3
        assert updated.turns == 1

    def test_pressure_costs_trust(self, skeptical_persona):
        mood = PersonaMood.initial(skeptical_persona)
        updated = MoodTracker().update(mood, skeptical_persona, "Sign today, it's today only!")
        assert updated.trust == mood.trust - 2

    def test_pain_point_raises_interest(self, skeptical_persona):
        mood = PersonaMood.initial(skeptical_persona)
        updated = MoodTracker().update(mood, skeptical_persona, "Have you seen ants in the kitchen?")
        assert updated.interest == mood.interest + 2

    def test_pain_match_needs_word_start(self, skeptical_persona):
        mood = PersonaMood.initial(skeptical_persona)
        updated = MoodTracker().update(mood, skeptical_persona, "I want to help.")
        assert updated.interest == mood.interest

    def test_values_are_clipped(self, skeptical_persona):
        mood = PersonaMood(trust=10, interest=10)
        updated = MoodTracker().update(
            mood, skeptical_persona, "Neighbors on this street love it, it's guaranteed and pet-friendly, ants in the kitchen gone."
        )
        assert updated.trust == 10
        assert updated.interest == 10

    def test_ignored_safety_question(self, skeptical_persona):
        mood = PersonaMood(trust=0, interest=5)
        updated = MoodTracker().update(
            mood, skeptical_persona, "We can start next week.", last_prospect_reply="Is it safe for the dog?"
        )
        assert updated.trust == -1
