"""Summarization compressor for conversation history that leaves the buffer."""

import re
import uuid
import logging
from typing import List, Optional

from .sqlite_store import SQLiteMemoryStore
from .buffer import RollingBuffer
from .scoring import ImportanceScorer
from errors import SummarizationError
from llm.base_client import BaseLLMClient, Message as LLMMessage
from retrieval.lexicon import ClinicalLexicon
from schemas.memory import Role, Message, ConversationSummary

logger = logging.getLogger(__name__)


SUMMARY_SYSTEM_PROMPT = """You are a conversation summarizer for a caregiving health assistant. Summarize ONLY what was already said. Do not add advice or new content.

Preserve:
1. Topics discussed and how they connect to earlier ones
2. Decisions, commitments and follow-ups (appointments to book, doses to check)
3. People by name or relationship (patients, family members, doctors)
4. Symptoms, medications, moods and anything urgent

FORMAT: 1-3 plain sentences, no headings, no lists."""

INVALID_SUMMARY_PATTERNS = [
    re.compile(r"^(Here's|Here is|Certainly|Sure|Let me|I'll create|I can)", re.IGNORECASE),
    re.compile(r"```"),
    re.compile(r"^(Chapter|Scene|Act [IVX]+)", re.IGNORECASE),
]


class SummarizationCompressor:
    """
    Collapses the oldest uncompressed span outside the rolling buffer.

    Each run produces at most one summary whose range starts right after the
    last covered message and ends right before the buffer window, so every
    message is either in the window or in exactly one summary.
    """

    MAX_SUMMARY_CHARS = 500
    MAX_SOURCE_RATIO = 0.5
    MIN_WORD_OVERLAP = 0.05
    GENERATION_TEMPERATURE = 0.1
    GENERATION_MAX_TOKENS = 300

    def __init__(
        self,
        store: SQLiteMemoryStore,
        buffer: RollingBuffer,
        scorer: ImportanceScorer,
        lexicon: ClinicalLexicon,
        llm_client: Optional[BaseLLMClient] = None,
        threshold: int = 8
    ):
        """
        Initialize compressor.

        Args:
            store: Memory store
            buffer: Rolling buffer defining the live window
            scorer: Scorer used to weight new summaries
            lexicon: Lexicon for deterministic fallback topics
            llm_client: Optional LLM client for generated summaries
            threshold: Uncompressed message count that triggers compression
        """
        self.store = store
        self.buffer = buffer
        self.scorer = scorer
        self.lexicon = lexicon
        self.llm_client = llm_client
        self.threshold = threshold

    def pending_span(self, session_id: str) -> List[Message]:
        """Uncompressed messages strictly older than the buffer window."""
        window_start = self.buffer.window_start_id(session_id)
        if window_start is None:
            return []
        last_covered = self.store.get_last_covered_message_id(session_id)
        return self.store.get_messages_after(session_id, last_covered, before_id=window_start)

    def needs_summarization(self, session_id: str) -> bool:
        """
        Check whether the session should be compressed.

        True when uncompressed messages exceed the threshold and at least one
        of them has already left the buffer window.
        """
        last_covered = self.store.get_last_covered_message_id(session_id)
        uncompressed = self.store.get_messages_after(session_id, last_covered)
        if len(uncompressed) <= self.threshold:
            return False
        return bool(self.pending_span(session_id))

    def compress(
        self,
        session_id: str,
        allow_generation: bool = True,
        subject_name: Optional[str] = None
    ) -> Optional[ConversationSummary]:
        """
        Summarize the pending span if the threshold is crossed.

        Args:
            session_id: Session ID
            allow_generation: Use the LLM when available; False forces the
                deterministic summary (no model calls)
            subject_name: Name of the session's current subject, for the
                deterministic summary

        Returns:
            The new summary, or None when nothing was compressed. A failed
            generation also returns None so the next turn retries.
        """
        if not self.needs_summarization(session_id):
            return None

        span = self.pending_span(session_id)
        if not span:
            return None

        text = None
        if allow_generation and self.llm_client is not None:
            try:
                generated = self._generate(span)
            except SummarizationError as e:
                logger.error(f"Summary generation failed for {session_id}, will retry: {e}")
                return None

            if self.is_valid_summary(generated, span):
                text = generated
            else:
                logger.warning(f"Rejected generated summary for {session_id}: {generated[:100]}")

        if text is None:
            text = self.fallback_summary(span, subject_name=subject_name)

        summary = ConversationSummary(
            id=f"summary_{uuid.uuid4().hex}",
            session_id=session_id,
            summary=text,
            message_count=len(span),
            start_message_id=span[0].id,
            end_message_id=span[-1].id,
            importance_score=self.scorer.score_summary(span),
        )

        if not self.store.insert_summary(summary):
            return None

        self.store.update_session_recap(session_id, text)
        logger.info(
            f"Summarized messages {summary.start_message_id}-{summary.end_message_id} "
            f"({summary.message_count}) for session {session_id}"
        )
        return summary

    def _generate(self, span: List[Message]) -> str:
        """Generate a summary with the LLM."""
        conversation_text = "\n".join(
            f"{m.role.value.upper()}: {m.text}" for m in span
        )
        messages = [
            LLMMessage(role="system", content=SUMMARY_SYSTEM_PROMPT),
            LLMMessage(role="user", content=f"Summarize this conversation:\n\n{conversation_text}"),
        ]

        try:
            response = self.llm_client.chat(
                messages=messages,
                temperature=self.GENERATION_TEMPERATURE,
                max_tokens=self.GENERATION_MAX_TOKENS
            )
        except Exception as e:
            raise SummarizationError(f"LLM summary call failed: {e}") from e

        return (response.content or "").strip()

    def is_valid_summary(self, summary: str, span: List[Message]) -> bool:
        """
        Reject output that is not a summary of the span.

        Too long, longer than half the source, assistant-style preambles,
        code fences, or almost no vocabulary shared with the source.
        """
        if not summary:
            return False

        if len(summary) > self.MAX_SUMMARY_CHARS:
            return False

        source_length = sum(len(m.text) for m in span)
        if source_length and len(summary) / source_length > self.MAX_SOURCE_RATIO:
            return False

        for pattern in INVALID_SUMMARY_PATTERNS:
            if pattern.search(summary):
                return False

        summary_words = summary.lower().split()
        source_text = " ".join(m.text for m in span).lower()
        matching = sum(1 for w in summary_words if len(w) > 3 and w in source_text)
        if matching / len(summary_words) < self.MIN_WORD_OVERLAP:
            return False

        return True

    def fallback_summary(self, span: List[Message], subject_name: Optional[str] = None) -> str:
        """Deterministic summary built from counts, lexicon topics and the subject."""
        user_texts = [m.text for m in span if m.role == Role.USER]
        user_count = len(user_texts)
        assistant_count = sum(1 for m in span if m.role == Role.ASSISTANT)
        topics = self.lexicon.topics_for(user_texts)

        if topics:
            text = (
                f"Conversation with {len(span)} messages ({user_count} user, "
                f"{assistant_count} assistant) about: {', '.join(topics)}."
            )
        else:
            first = user_texts[0][:30] if user_texts else "N/A"
            last = user_texts[-1][:30] if user_texts else "N/A"
            text = (
                f'Conversation with {len(span)} messages. Started with: "{first}..." '
                f'Recent topic: "{last}..."'
            )

        if subject_name:
            text += f" Subject: {subject_name}."
        return text
