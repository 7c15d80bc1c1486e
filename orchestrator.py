"""Turn orchestrator for the conversation memory and ground-truth engine."""

import uuid
import logging
from datetime import date
from typing import Callable, Iterator, List, Optional, Tuple

from config.settings import Settings
from errors import GenerationError, StoreUnavailableError
from schemas.context import ContextPayload
from schemas.facts import Patient
from schemas.memory import Role, Message, Session, MemoryStats, SemanticPin, ClinicalCategory, UrgencyLevel
from schemas.responses import RouteOutcome, RouteDecision, SubjectSource, TurnResult, TurnEvent

# LLM components
from llm.factory import create_llm_client_from_settings
from llm.base_client import BaseLLMClient, Message as LLMMessage

# Memory components
from memory.sqlite_store import SQLiteMemoryStore
from memory.scoring import ImportanceScorer
from memory.buffer import RollingBuffer
from memory.pins import KeywordPinDetector, SemanticPinExtractor
from memory.summarizer import SummarizationCompressor
from memory.context_manager import ContextAssembler
from memory.locks import SessionLockRegistry

# Ground truth
from retrieval.fact_store import SQLiteFactStore
from retrieval.lexicon import ClinicalLexicon
from agents.subject_resolver import SubjectResolver
from agents.fact_composer import FactAnswerComposer
from agents.router import GroundTruthRouter

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are a warm, practical assistant for a family caregiver.
Use the conversation summaries and pinned facts to keep continuity with earlier turns.
Be concise, and suggest contacting a clinician or emergency services when something sounds urgent."""


class ConversationOrchestrator:
    """
    Processes one inbound turn end to end.

    Record questions are answered from the fact store and never reach the
    model. Everything else gets a bounded context assembled from summaries,
    pins and the rolling buffer, a model reply, and memory post-processing.
    """

    GROUND_TRUTH_MODEL_ID = "ground-truth"

    def __init__(
        self,
        settings: Optional[Settings] = None,
        memory_store: Optional[SQLiteMemoryStore] = None,
        fact_store: Optional[SQLiteFactStore] = None,
        llm_client: Optional[BaseLLMClient] = None,
        clock: Callable[[], date] = date.today
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Application settings
            memory_store: Memory store (default: SQLite at settings.db_path)
            fact_store: Fact store (default: SQLite at settings.get_facts_db_path())
            llm_client: LLM client (default: created from settings, None without API key)
            clock: Returns today's date
        """
        self.settings = settings or Settings()

        self.memory_store = memory_store or SQLiteMemoryStore(db_path=self.settings.db_path)
        self.fact_store = fact_store or SQLiteFactStore(db_path=self.settings.get_facts_db_path())
        self.llm_client = llm_client if llm_client is not None else create_llm_client_from_settings(self.settings)

        self.lexicon = ClinicalLexicon(self.settings.lexicon_path)
        self._init_memory()
        self._init_router(clock)

        self.locks = SessionLockRegistry()

    def _init_memory(self):
        """Initialize memory components."""
        self.scorer = ImportanceScorer(self.lexicon)
        self.buffer = RollingBuffer(self.memory_store, size=self.settings.buffer_size)
        self.pin_extractor = SemanticPinExtractor(
            store=self.memory_store,
            detector=KeywordPinDetector(self.lexicon),
            scorer=self.scorer,
            promotion_threshold=self.settings.pin_promotion_threshold
        )
        self.compressor = SummarizationCompressor(
            store=self.memory_store,
            buffer=self.buffer,
            scorer=self.scorer,
            lexicon=self.lexicon,
            llm_client=self.llm_client,
            threshold=self.settings.summary_threshold
        )
        self.assembler = ContextAssembler(self.memory_store, self.buffer, self.settings)
        if self.settings.summary_threshold >= self.settings.buffer_size:
            logger.warning(
                f"summary_threshold ({self.settings.summary_threshold}) >= buffer_size "
                f"({self.settings.buffer_size}): messages can leave the buffer before they are summarized"
            )
        logger.info(f"Memory initialized: {self.memory_store.db_path}")

    def _init_router(self, clock: Callable[[], date]):
        """Initialize ground-truth router."""
        self.resolver = SubjectResolver(
            self.fact_store,
            default_patient_id=self.settings.default_patient_id
        )
        self.router = GroundTruthRouter(
            fact_store=self.fact_store,
            resolver=self.resolver,
            composer=FactAnswerComposer(),
            clock=clock
        )

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def handle_turn(
        self,
        session_id: str,
        text: str,
        persona_id: Optional[str] = None,
        directives: Optional[List[str]] = None
    ) -> TurnResult:
        """
        Process a user turn and return the complete reply.

        Args:
            session_id: Session ID (created on first use)
            text: User utterance
            persona_id: Active persona for new sessions
            directives: Extra system directives for the model

        Returns:
            TurnResult

        Raises:
            StoreUnavailableError: Records or memory could not be read or written
            GenerationError: The model failed on a conversational turn
        """
        self._validate_text(text)

        with self.locks.hold(session_id):
            session = self.memory_store.ensure_session(session_id, persona_id=persona_id, model=self._model_name())
            decision = self.router.route(session, text)

            if decision.outcome != RouteOutcome.CONVERSATIONAL:
                return self._answer_from_records(session, text, decision)

            self._require_llm()
            payload = self.assembler.assemble(session_id, directives=self._directives(directives))
            user_message = self._persist_user_message(session, text, decision)

            try:
                response = self.llm_client.chat(
                    messages=self._build_llm_messages(payload, text),
                    temperature=self.settings.temperature,
                    max_tokens=self.settings.max_tokens,
                    stop=self.settings.stop_sequences or None
                )
            except Exception as e:
                logger.error(f"Generation failed for session {session_id}: {e}")
                raise GenerationError(
                    f"Model invocation failed: {e}",
                    user_message="I could not generate a reply right now. Please try again."
                ) from e

            return self._complete_conversational_turn(
                session, decision, user_message, payload, response.content, response.usage
            )

    def stream_turn(
        self,
        session_id: str,
        text: str,
        persona_id: Optional[str] = None,
        directives: Optional[List[str]] = None
    ) -> Iterator[TurnEvent]:
        """
        Process a user turn, yielding text deltas and a final done event.

        The assistant message is persisted and post-processed only after the
        full reply is known. Closing the generator early persists nothing for
        the assistant.
        """
        self._validate_text(text)

        with self.locks.hold(session_id):
            session = self.memory_store.ensure_session(session_id, persona_id=persona_id, model=self._model_name())
            decision = self.router.route(session, text)

            if decision.outcome != RouteOutcome.CONVERSATIONAL:
                result = self._answer_from_records(session, text, decision)
                yield TurnEvent(delta=result.reply)
                yield TurnEvent(done=True, result=result)
                return

            self._require_llm()
            payload = self.assembler.assemble(session_id, directives=self._directives(directives))
            user_message = self._persist_user_message(session, text, decision)

            parts: List[str] = []
            usage = None
            try:
                for chunk in self.llm_client.stream(
                    messages=self._build_llm_messages(payload, text),
                    temperature=self.settings.temperature,
                    max_tokens=self.settings.max_tokens,
                    stop=self.settings.stop_sequences or None
                ):
                    if chunk.delta:
                        parts.append(chunk.delta)
                        yield TurnEvent(delta=chunk.delta)
                    if chunk.done:
                        usage = chunk.usage
                        break
            except GeneratorExit:
                logger.info(f"Stream cancelled for session {session_id}; reply not persisted")
                raise
            except Exception as e:
                logger.error(f"Streaming generation failed for session {session_id}: {e}")
                raise GenerationError(
                    f"Model streaming failed: {e}",
                    user_message="I could not generate a reply right now. Please try again."
                ) from e

            result = self._complete_conversational_turn(
                session, decision, user_message, payload, "".join(parts), usage
            )
            yield TurnEvent(done=True, result=result)

    def _answer_from_records(self, session: Session, text: str, decision: RouteDecision) -> TurnResult:
        """Persist a store-derived answer (or clarification) without the model."""
        if decision.outcome == RouteOutcome.STRUCTURED:
            reply = decision.answer.rendered_text
        else:
            reply = decision.clarification.rendered_text

        user_message = self._persist_user_message(session, text, decision)
        assistant_message = self.memory_store.add_message(
            session.id,
            Role.ASSISTANT,
            reply,
            model_id=self.GROUND_TRUTH_MODEL_ID,
            token_count=self.assembler.estimate_tokens(reply)
        )

        patient_id, patient_name = self._current_subject(session, decision)
        summary_created, pins_created = self._post_process(
            session.id,
            [user_message, assistant_message],
            patient_id=patient_id,
            subject_name=patient_name,
            allow_generation=False
        )

        return TurnResult(
            session_id=session.id,
            outcome=decision.outcome,
            reply=reply,
            answered_from_store=decision.outcome == RouteOutcome.STRUCTURED,
            structured_answer=decision.answer,
            model_id=self.GROUND_TRUTH_MODEL_ID,
            user_message_id=user_message.id,
            assistant_message_id=assistant_message.id,
            summary_created=summary_created,
            pins_created=pins_created,
        )

    def _complete_conversational_turn(
        self,
        session: Session,
        decision: RouteDecision,
        user_message: Message,
        payload: ContextPayload,
        reply: str,
        usage: Optional[dict]
    ) -> TurnResult:
        """Persist the complete reply and run memory post-processing."""
        reply = (reply or "").strip()
        if not reply:
            raise GenerationError(
                "Model returned an empty reply",
                user_message="I could not generate a reply right now. Please try again."
            )

        completion_tokens = (usage or {}).get("completion_tokens")
        assistant_message = self.memory_store.add_message(
            session.id,
            Role.ASSISTANT,
            reply,
            model_id=self._model_name(),
            token_count=completion_tokens or self.assembler.estimate_tokens(reply)
        )

        patient_id, patient_name = self._current_subject(session, decision)
        summary_created, pins_created = self._post_process(
            session.id,
            [user_message, assistant_message],
            patient_id=patient_id,
            subject_name=patient_name,
            allow_generation=True
        )

        return TurnResult(
            session_id=session.id,
            outcome=RouteOutcome.CONVERSATIONAL,
            reply=reply,
            answered_from_store=False,
            budget=payload.budget,
            model_id=self._model_name(),
            token_usage=(usage or {}).get("total_tokens"),
            user_message_id=user_message.id,
            assistant_message_id=assistant_message.id,
            summary_created=summary_created,
            pins_created=pins_created,
        )

    def _persist_user_message(self, session: Session, text: str, decision: RouteDecision) -> Message:
        """Persist the user message, linking a newly named subject in the same write."""
        linked = None
        if decision.subject.resolved and decision.subject.source == SubjectSource.EXPLICIT:
            linked = decision.subject.patient_id
            if linked != session.patient_id:
                logger.info(f"Session {session.id} now about patient {linked}")

        return self.memory_store.add_message(
            session.id,
            Role.USER,
            text,
            token_count=self.assembler.estimate_tokens(text),
            patient_id=linked
        )

    def _post_process(
        self,
        session_id: str,
        new_messages: List[Message],
        patient_id: Optional[str],
        subject_name: Optional[str],
        allow_generation: bool
    ) -> Tuple[bool, int]:
        """
        Score, extract pins, then compress. Failures are logged, never raised.

        Returns:
            (summary_created, pins_created)
        """
        try:
            self._score_unscored(session_id)
        except Exception as e:
            logger.error(f"Scoring failed for session {session_id}, will backfill next turn: {e}")

        pins_created = 0
        for message in new_messages:
            try:
                if self.pin_extractor.extract(message, patient_id=patient_id):
                    pins_created += 1
            except Exception as e:
                logger.error(f"Pin extraction failed for message {message.id}: {e}")

        try:
            summary = self.compressor.compress(
                session_id,
                allow_generation=allow_generation,
                subject_name=subject_name
            )
        except Exception as e:
            logger.error(f"Summarization failed for session {session_id}: {e}")
            summary = None

        return summary is not None, pins_created

    def _score_unscored(self, session_id: str) -> int:
        messages = self.memory_store.get_unscored_messages(session_id)
        for message in messages:
            signals = self.pin_extractor.detect(message)
            score = self.scorer.score_message(message, signals=signals)
            self.memory_store.update_message_importance(message.id, score)
        return len(messages)

    def _current_subject(self, session: Session, decision: RouteDecision) -> Tuple[Optional[str], Optional[str]]:
        """Subject the turn is about: the resolved one, else the session's link."""
        if decision.subject.resolved:
            return decision.subject.patient_id, decision.subject.patient_name
        if session.patient_id:
            patient = self._safe_get_patient(session.patient_id)
            return session.patient_id, patient.name if patient else None
        return None, None

    def _safe_get_patient(self, patient_id: str) -> Optional[Patient]:
        try:
            return self.fact_store.get_patient(patient_id)
        except StoreUnavailableError as e:
            logger.warning(f"Could not look up patient {patient_id}: {e}")
            return None

    def _build_llm_messages(self, payload: ContextPayload, text: str) -> List[LLMMessage]:
        messages = [LLMMessage(role=entry.role, content=entry.text) for entry in payload.entries]
        messages.append(LLMMessage(role="user", content=text))
        return messages

    def _directives(self, directives: Optional[List[str]]) -> List[str]:
        return [SYSTEM_PROMPT] + list(directives or [])

    def _require_llm(self):
        if self.llm_client is None:
            raise GenerationError(
                "No LLM client configured",
                user_message="Conversation is unavailable: no language model is configured."
            )

    def _model_name(self) -> Optional[str]:
        return self.llm_client.get_model_name() if self.llm_client else None

    @staticmethod
    def _validate_text(text: str):
        if not text or not text.strip():
            raise ValueError("Turn text cannot be empty")

    # ------------------------------------------------------------------
    # Session utilities
    # ------------------------------------------------------------------

    def ensure_session(self, session_id: Optional[str] = None, persona_id: Optional[str] = None) -> Session:
        """Get or create a session; a new id is generated when none is given."""
        session_id = session_id or str(uuid.uuid4())
        session = self.memory_store.ensure_session(session_id, persona_id=persona_id, model=self._model_name())
        logger.info(f"Session ready: {session.id}")
        return session

    def link_patient(self, session_id: str, patient_id: Optional[str]):
        """Set the session's subject (the application changed conversation focus)."""
        with self.locks.hold(session_id):
            self.memory_store.ensure_session(session_id)
            self.memory_store.set_session_patient(session_id, patient_id)

    def pin_fact(
        self,
        session_id: str,
        content: str,
        importance_score: float = 0.8,
        clinical_category: Optional[ClinicalCategory] = None,
        urgency_level: Optional[UrgencyLevel] = None
    ) -> SemanticPin:
        """Pin a fact manually for the session's current subject."""
        with self.locks.hold(session_id):
            session = self.memory_store.ensure_session(session_id)
            return self.pin_extractor.create_manual_pin(
                session_id,
                content,
                importance_score=importance_score,
                clinical_category=clinical_category,
                urgency_level=urgency_level,
                patient_id=session.patient_id
            )

    def get_history(self, session_id: str) -> List[dict]:
        """Get conversation history for display."""
        return [
            {
                "id": m.id,
                "role": m.role.value,
                "content": m.text,
                "model_id": m.model_id,
                "importance_score": m.importance_score,
                "timestamp": m.created_at,
            }
            for m in self.memory_store.get_all_messages(session_id)
        ]

    def memory_stats(self, session_id: str) -> MemoryStats:
        """Memory statistics, including messages the tiers fail to account for."""
        return self.memory_store.get_stats(session_id, buffer_size=self.settings.buffer_size)

    def rescore_session(self, session_id: str) -> int:
        """Backfill importance scores for unscored messages. Returns the count scored."""
        with self.locks.hold(session_id):
            count = self._score_unscored(session_id)
        logger.info(f"Scored {count} messages for session {session_id}")
        return count

