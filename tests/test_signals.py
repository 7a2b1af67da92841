"""
Tests for signal detection.
"""

from dooriq.signals import SignalDetector, detector, normalize_text, word_count


class TestTextHelpers:
    """normalize_text / word_count"""

    def test_normalize_collapses_case_and_whitespace(self):
        assert normalize_text("  Hello   World?! ") == "hello world"

    def test_normalize_none(self):
        assert normalize_text(None) == ""

    def test_word_count_keeps_contractions_and_hyphens(self):
        assert word_count("I'm with SafeGuard Pest-Control") == 4

    def test_word_count_empty(self):
        assert word_count("") == 0


class TestSignalDetector:
    """Category detection"""

    def test_introduction_with_closed_question(self):
        signals = detector.detect("Hi, I'm with SafeGuard Pest Control, do you have a minute?")
        assert signals.has("introduction")
        assert signals.is_question
        assert len(signals.questions) == 1
        assert signals.open_questions == []

    def test_open_question(self):
        signals = detector.detect("What kind of pests have you noticed?")
        assert signals.open_questions == ["What kind of pests have you noticed?"]
        assert signals.has("problem_topics")

    def test_value_themes(self):
        themes = detector.themes("We use a pet-friendly treatment and it's guaranteed.")
        assert themes == frozenset({"safety", "guarantee"})

    def test_scheduling_and_concrete_time(self):
        text = "Can I get you on the schedule for tomorrow?"
        assert detector.matches("scheduling", text)
        assert detector.matches("concrete_time", text)

    def test_split_questions_only_keeps_questions(self):
        questions = detector.split_questions("I get it. What part worries you most? We can help.")
        assert questions == ["What part worries you most?"]

    def test_filler_count(self):
        assert detector.count("fillers", "um so like, you know, it's um great") == 4

    def test_empty_and_non_string_input(self):
        assert detector.detect("").is_empty
        assert detector.detect("   ").is_empty
        assert detector.detect(None).is_empty
        assert detector.detect(42).is_empty

    def test_question_starters_not_reported_as_signals(self):
        signals = detector.detect("How often do you see them?")
        assert not signals.has("open_question_starters")
        assert not signals.has("closed_question_starters")
        assert signals.open_questions

    def test_custom_vocabulary(self):
        custom = SignalDetector(patterns={"greeting": [r"\bhowdy\b"]}, value_themes={})
        assert custom.matches("greeting", "Howdy neighbor")
        assert not custom.matches("missing_category", "Howdy")
        assert custom.themes("anything") == frozenset()
