"""
Tests for live turn metrics.
"""

from dooriq.objection_handler import ObjectionHandler, ObjectionType
from dooriq.turn_evaluator import LiveMetrics, TurnEvaluator
from dooriq.yaml_config.constants import SUGGESTIONS


def rep(text):
    return {"role": "rep", "text": text}


def prospect(text):
    return {"role": "prospect", "text": text}


class TestDimensions:
    """discovery / value / objection / cta"""

    def test_empty_conversation(self):
        metrics = TurnEvaluator().evaluate([], "")
        assert metrics.scores() == {"discovery": 0, "value": 0, "objection": 0, "cta": 0}
        assert metrics.suggestions == []

    def test_closed_question_with_topic(self):
        metrics = TurnEvaluator().evaluate([], "Hi, I'm with SafeGuard Pest Control, do you have a minute?")
        assert metrics.discovery == 5

    def test_open_question_with_topic(self):
        metrics = TurnEvaluator().evaluate([], "What kind of pests have you noticed?")
        assert metrics.discovery == 8

    def test_repeated_utterance_adds_nothing(self):
        question = "What kind of pests have you noticed?"
        history = [rep(question), prospect("Ants mostly.")]
        assert TurnEvaluator().evaluate(history, question).discovery == 8

    def test_value_counts_distinct_themes(self):
        metrics = TurnEvaluator().evaluate(
            [], "We use pet-friendly products, it's guaranteed, and a lot of neighbors use us."
        )
        assert metrics.value == 15
        assert metrics.discovery == 0

    def test_fully_handled_objection(self):
        history = [rep("Hi there, do you have a minute?"), prospect("That's more than I expected.")]
        metrics = TurnEvaluator().evaluate(
            history, "I totally understand. What part feels high? What we can do is a payment plan. Does that help?"
        )
        assert metrics.objection == 25

    def test_ignored_objection_scores_nothing(self):
        metrics = TurnEvaluator().evaluate([prospect("That's too expensive.")], "Okay.")
        assert metrics.objection == 0

    def test_handled_without_acknowledgement(self):
        history = [rep("Hi there, do you have a minute?"), prospect("That's too expensive.")]
        metrics = TurnEvaluator().evaluate(history, "What we can do is a payment plan. Does that help?")
        assert metrics.objection == 10

    def test_rep_quoting_price_is_not_an_objection(self):
        metrics = TurnEvaluator().evaluate([], "Our plan costs $40 per month.")
        assert metrics.objection == 0
        assert metrics.suggestions == []

    def test_rep_voiced_objection_then_homeowner_objection(self):
        history = [
            rep("That's more than I expected, I know. I hear that a lot."),
            prospect("That's more than I expected to pay."),
        ]
        evaluator = TurnEvaluator()
        assert evaluator.evaluate([], history[0]["text"]).objection == 0

        metrics = evaluator.evaluate(
            history,
            "What we can do is break it down to a monthly plan with free re-treatments. Does that help?",
        )
        assert metrics.objection == 10

    def test_cta_with_concrete_time(self):
        metrics = TurnEvaluator().evaluate([], "Can I get you on the schedule for tomorrow at 3pm?")
        assert metrics.cta == 12

    def test_trial_close(self):
        assert TurnEvaluator().evaluate([], "Does that sound good?").cta == 3

    def test_scores_are_clipped(self):
        history = []
        for i in range(10):
            history.append(rep(f"What kind of pests do you see in room {i}?"))
            history.append(prospect("Some."))
        metrics = TurnEvaluator().evaluate(history, "")
        assert metrics.discovery == 25
        assert all(0 <= v <= 25 for v in metrics.scores().values())


class TestSuggestions:
    """Coaching suggestions"""

    def test_low_discovery_and_value(self):
        history = [
            rep("We do pest control."), prospect("Okay."),
            rep("We are local."), prospect("Okay."),
            rep("We are great."), prospect("Okay."),
        ]
        metrics = TurnEvaluator().evaluate(history, "We spray.")
        assert metrics.suggestions == [
            SUGGESTIONS["low_discovery"]["text"],
            SUGGESTIONS["low_value"]["text"],
        ]

    def test_ignored_objections_keep_the_tip(self):
        history = [
            prospect("That's too expensive."),
            rep("We come every quarter."),
            prospect("I need to think about it."),
        ]
        metrics = TurnEvaluator().evaluate(history, "We treat the whole yard.")
        assert metrics.objection == 0
        assert metrics.suggestions == [ObjectionHandler.HANDLING_TIPS[ObjectionType.THINK_ABOUT_IT]]

    def test_capped_at_three_in_priority_order(self):
        history = [prospect("That's too expensive.")]
        for text in ["We do pest control.", "We treat homes.", "We come quarterly.",
                     "We spray outside.", "We spray inside."]:
            history.append(rep(text))
            history.append(prospect("Hm."))
        monologue = "So basically " + "we treat the whole house " * 15
        metrics = TurnEvaluator().evaluate(history, monologue)
        assert len(metrics.suggestions) == 3
        assert metrics.suggestions[0] == SUGGESTIONS["low_discovery"]["text"]
        assert metrics.suggestions[1] == ObjectionHandler.HANDLING_TIPS[ObjectionType.PRICE]
        assert metrics.suggestions[2] == SUGGESTIONS["low_value"]["text"]


class TestLiveMetrics:
    """LiveMetrics helpers"""

    def test_from_dict_clips(self):
        metrics = LiveMetrics.from_dict({"discovery": 40, "value": -3, "suggestions": ["x"]})
        assert metrics.discovery == 25
        assert metrics.value == 0
        assert metrics.objection == 0
        assert metrics.suggestions == ["x"]

    def test_total(self):
        assert LiveMetrics(discovery=5, value=10, objection=0, cta=8).total == 23
