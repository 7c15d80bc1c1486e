"""Context assembly for LLM calls under a token budget."""

import math
import logging
from typing import List, Optional

from .sqlite_store import SQLiteMemoryStore
from .buffer import RollingBuffer
from config.settings import Settings
from schemas.context import ContextEntry, BudgetReport, ContextPayload
from schemas.memory import ConversationSummary, SemanticPin, Message

logger = logging.getLogger(__name__)


GROUND_TRUTH_DIRECTIVE = (
    "Medication, appointment and vitals details come from the care records. "
    "Do not state specific doses, dates or readings that are not in this conversation; "
    "suggest asking directly so the records can be checked."
)


class ContextAssembler:
    """Builds the ordered, bounded context handed to the model."""

    def __init__(
        self,
        store: SQLiteMemoryStore,
        buffer: RollingBuffer,
        settings: Optional[Settings] = None
    ):
        """
        Initialize context assembler.

        Args:
            store: Memory store
            buffer: Rolling buffer for the verbatim tail
            settings: Budget and selection limits
        """
        self.store = store
        self.buffer = buffer
        self.settings = settings or Settings()

    def estimate_tokens(self, text: str) -> int:
        """Approximate token count from character length."""
        return math.ceil(len(text) / self.settings.chars_per_token)

    def assemble(
        self,
        session_id: str,
        token_budget: Optional[int] = None,
        directives: Optional[List[str]] = None
    ) -> ContextPayload:
        """
        Assemble context for a session.

        Order: summaries (chronological), pins (most important first), buffer
        messages (chronological, verbatim), then system directives. Must be
        called before the current user message is persisted.

        Args:
            session_id: Session ID
            token_budget: Override for settings.context_token_budget
            directives: System directives appended last (persona, rules)

        Returns:
            ContextPayload with entries and budget report
        """
        budget = token_budget if token_budget is not None else self.settings.context_token_budget

        session = self.store.get_session(session_id)
        patient_id = session.patient_id if session else None

        summaries = self._select_summaries(session_id)
        pins = self.store.get_pins(
            session_id,
            patient_id=patient_id,
            limit=self.settings.max_context_pins
        )
        messages = self.buffer.window(session_id)
        directive_texts = [GROUND_TRUTH_DIRECTIVE] + list(directives or [])

        truncated = False
        while self._total_tokens(summaries, pins, messages, directive_texts) > budget:
            if pins:
                dropped = pins.pop()
                logger.debug(f"Context over budget: dropped pin {dropped.id}")
            elif summaries:
                dropped = summaries.pop(0)
                logger.debug(f"Context over budget: dropped summary {dropped.id}")
            elif len(messages) > self.settings.min_buffer_messages:
                dropped = messages.pop(0)
                logger.debug(f"Context over budget: dropped buffer message {dropped.id}")
            else:
                logger.warning(
                    f"Context for {session_id} exceeds budget {budget} with only the buffer tail left"
                )
                truncated = True
                break
            truncated = True

        entries = (
            [ContextEntry(role="system", text=self._format_summary(s)) for s in summaries]
            + [ContextEntry(role="system", text=self._format_pin(p)) for p in pins]
            + [ContextEntry(role=m.role.value, text=m.text) for m in messages]
            + [ContextEntry(role="system", text=d) for d in directive_texts]
        )
        tokens_used = sum(self.estimate_tokens(e.text) for e in entries)

        return ContextPayload(
            session_id=session_id,
            entries=entries,
            budget=BudgetReport(
                tokens_used=tokens_used,
                tokens_budget=budget,
                truncated=truncated,
            ),
            summary_ids=[s.id for s in summaries],
            pin_ids=[p.id for p in pins],
            message_ids=[m.id for m in messages],
        )

    def _select_summaries(self, session_id: str) -> List[ConversationSummary]:
        """Most important (then newest) summaries, returned oldest span first."""
        summaries = self.store.get_summaries(session_id)
        ranked = sorted(
            summaries,
            key=lambda s: (s.importance_score, s.end_message_id),
            reverse=True
        )[:self.settings.max_context_summaries]
        return sorted(ranked, key=lambda s: s.start_message_id)

    def _total_tokens(
        self,
        summaries: List[ConversationSummary],
        pins: List[SemanticPin],
        messages: List[Message],
        directives: List[str]
    ) -> int:
        texts = (
            [self._format_summary(s) for s in summaries]
            + [self._format_pin(p) for p in pins]
            + [m.text for m in messages]
            + directives
        )
        return sum(self.estimate_tokens(t) for t in texts)

    @staticmethod
    def _format_summary(summary: ConversationSummary) -> str:
        return (
            f"Previous conversation summary (messages {summary.start_message_id}-"
            f"{summary.end_message_id}): {summary.summary}"
        )

    @staticmethod
    def _format_pin(pin: SemanticPin) -> str:
        labels = [v.value for v in (pin.clinical_category, pin.urgency_level) if v is not None]
        prefix = f"Pinned fact [{', '.join(labels)}]" if labels else "Pinned fact"
        return f"{prefix}: {pin.content}"
