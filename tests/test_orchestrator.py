"""Tests for the turn orchestrator."""

import pytest

from errors import GenerationError, StoreUnavailableError
from orchestrator import ConversationOrchestrator
from schemas.memory import Role
from schemas.responses import RouteOutcome

from conftest import TODAY, FakeLLMClient, add_exchange


class TestConversationOrchestrator:
    """Test routing, persistence and memory post-processing per turn."""

    @pytest.fixture(autouse=True)
    def setup(self, settings, memory_store, fact_store):
        """Set up test fixtures."""
        self.settings = settings
        self.memory_store = memory_store
        self.fact_store = fact_store
        self.llm = FakeLLMClient()

    def make_orchestrator(self, llm_client="default", fact_store=None, **overrides):
        settings = self.settings.model_copy(update=overrides)
        return ConversationOrchestrator(
            settings=settings,
            memory_store=self.memory_store,
            fact_store=fact_store or self.fact_store,
            llm_client=self.llm if llm_client == "default" else llm_client,
            clock=lambda: TODAY
        )

    def test_structured_empty_answer_without_model(self):
        """Test that a record question with no rows never reaches the model."""
        orchestrator = self.make_orchestrator()

        result = orchestrator.handle_turn("s1", "Does Basilio have any appointments coming up?")

        assert result.outcome == RouteOutcome.STRUCTURED
        assert result.answered_from_store is True
        assert "NO upcoming appointments scheduled" in result.reply
        assert result.structured_answer.facts_used == []
        assert self.llm.calls == 0

        history = orchestrator.get_history("s1")
        assert [h["role"] for h in history] == ["user", "assistant"]
        assert history[1]["model_id"] == "ground-truth"
        assert self.memory_store.get_session_patient("s1") == "basilio"

    def test_pronoun_follows_earlier_turn(self):
        """Test that a named patient carries over to a later pronoun question."""
        orchestrator = self.make_orchestrator()

        first = orchestrator.handle_turn("s1", "I'm worried about Aurora, she seemed confused this morning.")
        second = orchestrator.handle_turn("s1", "Does she have any appointments coming up?")

        assert first.outcome == RouteOutcome.CONVERSATIONAL
        assert first.pins_created == 1
        assert self.memory_store.get_pins("s1")[0].patient_id == "aurora"

        assert second.outcome == RouteOutcome.STRUCTURED
        assert second.structured_answer.subject_id == "aurora"
        assert len(second.structured_answer.facts_used) == 2
        assert second.reply.startswith("Aurora has **2 upcoming appointments**")
        assert self.llm.calls == 1

    def test_conversational_context_contents(self):
        """Test that the model sees directives, pins and the new utterance last."""
        orchestrator = self.make_orchestrator()
        orchestrator.handle_turn("s1", "Mom has been dizzy since Tuesday.")

        orchestrator.handle_turn("s1", "We are going for a walk later.")

        sent = self.llm.chat_calls[-1]
        assert sent[-1].role == "user"
        assert sent[-1].content == "We are going for a walk later."
        assert any(m.role == "system" and m.content.startswith("Pinned fact") for m in sent)
        assert any("Mom has been dizzy since Tuesday." == m.content for m in sent if m.role == "user")

    def test_clarification_turn(self):
        """Test that an unresolved subject produces a persisted clarification."""
        orchestrator = self.make_orchestrator()

        result = orchestrator.handle_turn("s1", "Does she have appointments?")

        assert result.outcome == RouteOutcome.CLARIFICATION
        assert result.answered_from_store is False
        assert result.reply == "Whose appointments should I check: Aurora or Basilio?"
        assert self.memory_store.get_message_count("s1") == 2
        assert self.llm.calls == 0

    def test_store_failure_surfaces_without_persisting(self, broken_fact_store):
        """Test that a record read failure is an error, not an answer."""
        orchestrator = self.make_orchestrator(fact_store=broken_fact_store)

        with pytest.raises(StoreUnavailableError):
            orchestrator.handle_turn("s1", "What medications is Aurora taking?")

        assert self.llm.calls == 0
        assert self.memory_store.get_message_count("s1") == 0

    def test_generation_failure(self):
        """Test that a model failure raises and persists no assistant reply."""
        self.llm.fail = True
        orchestrator = self.make_orchestrator()

        with pytest.raises(GenerationError) as exc_info:
            orchestrator.handle_turn("s1", "We are going for a walk later.")

        assert exc_info.value.retryable is True
        messages = self.memory_store.get_all_messages("s1")
        assert [m.role for m in messages] == [Role.USER]

    def test_no_model_configured(self):
        """Test that structured answers work without a model but conversation does not."""
        orchestrator = self.make_orchestrator(llm_client=None)

        structured = orchestrator.handle_turn("s1", "What medications is Aurora taking?")

        assert structured.outcome == RouteOutcome.STRUCTURED
        with pytest.raises(GenerationError):
            orchestrator.handle_turn("s1", "We are going for a walk later.")

    def test_empty_text_rejected(self):
        """Test input validation."""
        orchestrator = self.make_orchestrator()

        with pytest.raises(ValueError):
            orchestrator.handle_turn("s1", "   ")

    def test_stream_turn(self):
        """Test streamed deltas and persistence after completion."""
        orchestrator = self.make_orchestrator()

        events = list(orchestrator.stream_turn("s1", "We are going for a walk later."))

        assert "".join(e.delta for e in events) == self.llm.reply
        assert events[-1].done is True
        assert events[-1].result.reply == self.llm.reply
        assert events[-1].result.token_usage == 20
        assert self.memory_store.get_message_count("s1") == 2

    def test_stream_structured_turn(self):
        """Test that a streamed record question yields the literal answer once."""
        orchestrator = self.make_orchestrator()

        events = list(orchestrator.stream_turn("s1", "What medications is Aurora taking?"))

        assert len(events) == 2
        assert events[0].delta.startswith("Aurora has **2 active medications**")
        assert events[1].result.answered_from_store is True
        assert self.llm.calls == 0

    def test_cancelled_stream_keeps_only_user_message(self):
        """Test that closing the stream early persists no assistant reply."""
        orchestrator = self.make_orchestrator()
        stream = orchestrator.stream_turn("s1", "We are going for a walk later.")

        first = next(stream)
        stream.close()

        assert first.delta
        messages = self.memory_store.get_all_messages("s1")
        assert [m.role for m in messages] == [Role.USER]
        assert len(orchestrator.locks) == 0

    def test_summary_created_outside_window(self):
        """Test that crossing the threshold compresses everything before the window."""
        self.llm.reply = "We talked about the garden and the grocery run this week."
        self.memory_store.ensure_session("s1")
        add_exchange(self.memory_store, "s1", 9)
        orchestrator = self.make_orchestrator(buffer_size=4, summary_threshold=8)

        result = orchestrator.handle_turn("s1", "We are going for a walk later.")

        summaries = self.memory_store.get_summaries("s1")
        assert result.summary_created is True
        assert len(summaries) == 1
        assert summaries[0].message_count == self.memory_store.get_message_count("s1") - 4
        assert orchestrator.memory_stats("s1").unaccounted_messages == 0

    def test_every_message_stays_accounted_for(self):
        """Test that each message is in a summary or the buffer after every turn."""
        orchestrator = self.make_orchestrator(buffer_size=6, summary_threshold=4)

        for i in range(12):
            orchestrator.handle_turn("s1", f"We spent day {i} working in the garden.")
            assert self.memory_store.unaccounted_message_ids("s1", buffer_size=6) == []

        assert len(self.memory_store.get_summaries("s1")) > 1

    def test_rescore_session(self):
        """Test that unscored messages are backfilled."""
        orchestrator = self.make_orchestrator()
        self.memory_store.ensure_session("s1")
        add_exchange(self.memory_store, "s1", 3)

        assert orchestrator.rescore_session("s1") == 3
        assert self.memory_store.get_unscored_messages("s1") == []

    def test_pin_fact_uses_session_patient(self):
        """Test manual pins attach to the linked patient."""
        orchestrator = self.make_orchestrator()
        orchestrator.link_patient("s1", "aurora")

        pin = orchestrator.pin_fact("s1", "Allergic to penicillin")

        assert pin.patient_id == "aurora"
        assert self.memory_store.get_pins("s1", patient_id="aurora")[0].id == pin.id
