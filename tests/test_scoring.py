"""Tests for the importance scorer."""

from memory.scoring import ImportanceScorer
from retrieval.lexicon import ClinicalLexicon
from schemas.memory import Role, Message, PinCandidate, ClinicalCategory, UrgencyLevel


class TestImportanceScorer:
    """Test deterministic keyword scoring."""

    def setup_method(self):
        """Set up test fixtures."""
        self.scorer = ImportanceScorer(ClinicalLexicon())

    def test_acknowledgements_score_low(self):
        """Test that routine acknowledgements get the low fixed score."""
        assert self.scorer.score("ok", Role.USER) == 0.2
        assert self.scorer.score("Thanks!", Role.USER) == 0.2

    def test_plain_text_scores_base(self):
        """Test base score for neutral text."""
        assert self.scorer.score("The weather is nice.", Role.USER) == 0.5

    def test_question_bonus(self):
        """Test that questions score higher."""
        assert self.scorer.score("What time is it", Role.USER) == 0.7

    def test_assistant_bonus(self):
        """Test the small assistant role bonus."""
        assert self.scorer.score("The weather is nice.", Role.ASSISTANT) == 0.55

    def test_clinical_user_message(self):
        """Test symptom weight plus clinical user bonus."""
        assert self.scorer.score("I have a headache", Role.USER) == 0.8

    def test_long_message_bonus(self):
        """Test the long message bonus."""
        assert self.scorer.score("word " * 50, Role.USER) == 0.6

    def test_urgency_bonus_from_signals(self):
        """Test that detected urgency raises the score."""
        candidate = PinCandidate(
            content="x",
            clinical_category=ClinicalCategory.SYMPTOM,
            urgency_level=UrgencyLevel.ELEVATED,
        )

        assert self.scorer.score("The weather is nice.", Role.USER, signals=candidate) == 0.6

    def test_score_is_clamped(self):
        """Test that scores never exceed 1.0."""
        text = "Mom is in crisis, she is suicidal and depressed, her medication is not working, what do I do?"

        assert self.scorer.score(text, Role.USER) == 1.0

    def test_score_is_deterministic(self):
        """Test that identical input produces identical scores."""
        text = "Dad has been dizzy since he started the new pills."

        assert self.scorer.score(text, Role.USER) == self.scorer.score(text, Role.USER)

    def test_summary_score_floor_and_mean(self):
        """Test summary weighting from covered messages."""
        low = [
            Message(id=1, session_id="s", role=Role.USER, text="ok", importance_score=0.2),
            Message(id=2, session_id="s", role=Role.ASSISTANT, text="sure", importance_score=0.4),
        ]
        high = [
            Message(id=3, session_id="s", role=Role.USER, text="x", importance_score=0.8),
            Message(id=4, session_id="s", role=Role.ASSISTANT, text="y", importance_score=1.0),
        ]

        assert self.scorer.score_summary(low) == 0.5
        assert self.scorer.score_summary(high) == 0.9
