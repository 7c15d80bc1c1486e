"""Tests for the ground-truth router."""

import pytest
from datetime import date

from agents.router import GroundTruthRouter
from agents.subject_resolver import SubjectResolver
from errors import StoreUnavailableError
from schemas.memory import Session
from schemas.responses import QueryDomain, RouteOutcome, SubjectSource

from conftest import TODAY


class TestGroundTruthRouter:
    """Test classification, structured answers and clarification."""

    @pytest.fixture(autouse=True)
    def setup(self, fact_store):
        """Set up test fixtures."""
        self.fact_store = fact_store
        self.router = GroundTruthRouter(
            fact_store=fact_store,
            resolver=SubjectResolver(fact_store),
            clock=lambda: TODAY
        )

    def test_structured_classification(self):
        """Test record questions are classified into their domain."""
        cases = {
            "What medications is Aurora taking?": QueryDomain.MEDICATIONS,
            "Does she have appointments?": QueryDomain.APPOINTMENTS,
            "How has her blood pressure been this week?": QueryDomain.VITALS,
            "Show me Basilio's glucose readings": QueryDomain.VITALS,
        }

        for utterance, domain in cases.items():
            assert self.router.classify(utterance) == domain, utterance

    def test_measurement_words_classify_as_vitals(self):
        """Test that every supported measurement word reaches the vitals domain."""
        cases = {
            "What is Aurora's oxygen level?": "oxygen",
            "What is Aurora's spo2?": "oxygen",
            "What was Aurora's sugar this morning?": "glucose",
            "What was her temp yesterday?": "temperature",
        }

        for utterance, measurement_type in cases.items():
            assert self.router.classify(utterance) == QueryDomain.VITALS, utterance
            assert self.router.parse_measurement_type(utterance) == measurement_type, utterance

    def test_oxygen_question_answered_from_records(self):
        """Test that a vitals type with no readings gets an explicit empty answer."""
        decision = self.router.route(None, "What is Aurora's oxygen level?")

        assert decision.outcome == RouteOutcome.STRUCTURED
        assert decision.answer.facts_used == []
        assert "NO oxygen saturation readings recorded" in decision.answer.rendered_text

    def test_statements_and_advice_fall_through(self):
        """Test that statements, advice and mixed questions go to conversation."""
        utterances = [
            "She took her pills and then felt dizzy.",
            "Should she take her medication with food?",
            "Does she have appointments or new medications?",
            "I'm exhausted today.",
        ]

        for utterance in utterances:
            assert self.router.classify(utterance) == QueryDomain.GENERAL, utterance

    def test_medications_answered_from_records(self):
        """Test a literal medication answer with every row."""
        decision = self.router.route(None, "What medications is Aurora taking?")

        assert decision.outcome == RouteOutcome.STRUCTURED
        assert decision.answer.subject_id == "aurora"
        assert decision.answer.answered_from_store is True
        assert "**2 active medications**" in decision.answer.rendered_text
        assert "Donepezil" in decision.answer.rendered_text
        assert "Vitamin D3" not in decision.answer.rendered_text
        assert [row["name"] for row in decision.answer.facts_used] == ["Donepezil", "Lisinopril"]

    def test_empty_result_is_stated(self):
        """Test that no rows produce an explicit empty answer."""
        decision = self.router.route(None, "Does Basilio have any appointments coming up?")

        assert decision.outcome == RouteOutcome.STRUCTURED
        assert decision.answer.facts_used == []
        assert "NO upcoming appointments scheduled" in decision.answer.rendered_text

    def test_pronoun_uses_session_patient(self):
        """Test that a pronoun resolves through the session link."""
        session = Session(id="s1", patient_id="aurora")

        decision = self.router.route(session, "How has her blood pressure been this week?")

        assert decision.subject.source == SubjectSource.SESSION
        assert decision.subject.used_pronoun is True
        assert len(decision.answer.facts_used) == 1
        assert "Blood pressure 132/84 mmHg" in decision.answer.rendered_text
        assert "for this week" in decision.answer.rendered_text

    def test_unresolved_subject_asks_for_clarification(self):
        """Test that an unlinked pronoun never guesses between patients."""
        decision = self.router.route(Session(id="s1"), "Does she have appointments?")

        assert decision.outcome == RouteOutcome.CLARIFICATION
        assert decision.answer is None
        assert decision.clarification.candidates == ["Aurora", "Basilio"]
        assert decision.clarification.rendered_text == "Whose appointments should I check: Aurora or Basilio?"

    def test_vitals_default_range_and_type(self):
        """Test the 30 day default window and measurement filter."""
        decision = self.router.route(None, "Show me Basilio's glucose readings")

        assert len(decision.answer.facts_used) == 1
        assert "Blood glucose 142 mg/dL (Before breakfast)" in decision.answer.rendered_text
        assert "the last 30 days" in decision.answer.rendered_text

    def test_conversational_turn_reports_named_subject(self):
        """Test that conversation still reports an explicitly named patient."""
        decision = self.router.route(None, "I'm worried about Aurora, she seemed confused this morning.")

        assert decision.outcome == RouteOutcome.CONVERSATIONAL
        assert decision.subject.patient_id == "aurora"
        assert decision.subject.source == SubjectSource.EXPLICIT

    def test_parse_date_range(self):
        """Test date range phrases."""
        this_week = self.router.parse_date_range("this week")
        last_days = self.router.parse_date_range("over the last 7 days")
        last_weeks = self.router.parse_date_range("past 2 weeks")
        default = self.router.parse_date_range("recently")

        assert this_week.start == date(2026, 3, 9)
        assert last_days.start == date(2026, 3, 3)
        assert last_days.label == "the last 7 days"
        assert last_weeks.start == date(2026, 2, 24)
        assert default.start == date(2026, 2, 8)
        assert default.end == TODAY

    def test_parse_measurement_type(self):
        """Test measurement type extraction."""
        assert self.router.parse_measurement_type("her bp lately") == "blood_pressure"
        assert self.router.parse_measurement_type("blood sugar") == "glucose"
        assert self.router.parse_measurement_type("pulse") == "heart_rate"
        assert self.router.parse_measurement_type("all vitals") is None

    def test_store_failure_on_structured_path(self, broken_fact_store):
        """Test that a failed read surfaces instead of producing an answer."""
        router = GroundTruthRouter(
            fact_store=broken_fact_store,
            resolver=SubjectResolver(broken_fact_store),
            clock=lambda: TODAY
        )

        with pytest.raises(StoreUnavailableError):
            router.route(None, "What medications is Aurora taking?")

    def test_store_failure_on_conversation_path_is_ignored(self, broken_fact_store):
        """Test that conversation continues when subject linkage cannot read records."""
        router = GroundTruthRouter(fact_store=broken_fact_store, resolver=SubjectResolver(broken_fact_store))

        decision = router.route(None, "I'm worried about Aurora.")

        assert decision.outcome == RouteOutcome.CONVERSATIONAL
        assert decision.subject.resolved is False
