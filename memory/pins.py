"""Semantic pin detection and promotion."""

import re
import uuid
import logging
from abc import ABC, abstractmethod
from typing import Optional, List, Tuple

from .sqlite_store import SQLiteMemoryStore
from .scoring import ImportanceScorer
from retrieval.lexicon import ClinicalLexicon
from schemas.memory import (
    Role,
    PinType,
    UrgencyLevel,
    ClinicalCategory,
    Message,
    SemanticPin,
    PinCandidate,
)

logger = logging.getLogger(__name__)

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")


class PinDetector(ABC):
    """Finds a durable fact worth pinning in a piece of text."""

    @abstractmethod
    def detect(self, text: str) -> Optional[PinCandidate]:
        """
        Detect a pin candidate.

        Args:
            text: Message text

        Returns:
            PinCandidate, or None when the text carries no signal
        """
        pass


class KeywordPinDetector(PinDetector):
    """Lexicon-driven detector for symptoms, medications, moods and urgency."""

    MAX_CONTENT_CHARS = 240

    def __init__(self, lexicon: ClinicalLexicon):
        self.lexicon = lexicon

    def detect(self, text: str) -> Optional[PinCandidate]:
        sentences = [
            s.strip() for s in _SENTENCE_SPLIT.split(text)
            if s.strip() and self._is_eligible(s.strip())
        ]
        if not sentences:
            return None

        best: Optional[Tuple[int, str]] = None
        category_hits: dict[str, List[str]] = {}
        for sentence in sentences:
            sentence_lower = sentence.lower()
            hit_count = 0
            for group in self.lexicon.pin_categories:
                hits = group.find(sentence_lower)
                if hits:
                    category_hits.setdefault(group.name, []).extend(hits)
                    hit_count += len(hits)
            if hit_count and (best is None or hit_count > best[0]):
                best = (hit_count, sentence)

        if best is None:
            return None

        # First category in lexicon order wins
        category_name = next(
            group.name for group in self.lexicon.pin_categories
            if group.name in category_hits
        )

        eligible_lower = " ".join(sentences).lower()
        if self.lexicon.urgent.matches(eligible_lower):
            urgency = UrgencyLevel.URGENT
        elif self.lexicon.elevated.matches(eligible_lower):
            urgency = UrgencyLevel.ELEVATED
        else:
            urgency = UrgencyLevel.ROUTINE

        matched = []
        for hits in category_hits.values():
            for keyword in hits:
                if keyword not in matched:
                    matched.append(keyword)

        return PinCandidate(
            content=self._trim(best[1]),
            clinical_category=ClinicalCategory(category_name),
            urgency_level=urgency,
            matched_keywords=matched,
        )

    def _is_eligible(self, sentence: str) -> bool:
        # Questions are not facts unless they carry urgent or elevated language
        if not sentence.endswith("?"):
            return True
        sentence_lower = sentence.lower()
        return self.lexicon.urgent.matches(sentence_lower) or self.lexicon.elevated.matches(sentence_lower)

    def _trim(self, sentence: str) -> str:
        if len(sentence) <= self.MAX_CONTENT_CHARS:
            return sentence
        return sentence[:self.MAX_CONTENT_CHARS - 3].rstrip() + "..."


class SemanticPinExtractor:
    """
    Promotes detected candidates to persisted pins.

    A candidate becomes a pin when its importance reaches the promotion
    threshold or when it is urgent. Pins are never removed by buffer rotation
    or summarization.
    """

    def __init__(
        self,
        store: SQLiteMemoryStore,
        detector: PinDetector,
        scorer: ImportanceScorer,
        promotion_threshold: float = 0.6,
        roles: Tuple[Role, ...] = (Role.USER,)
    ):
        """
        Initialize extractor.

        Args:
            store: Memory store
            detector: Pluggable pin detector
            scorer: Importance scorer
            promotion_threshold: Minimum importance for promotion
            roles: Message roles that are scanned for pins
        """
        self.store = store
        self.detector = detector
        self.scorer = scorer
        self.promotion_threshold = promotion_threshold
        self.roles = roles

    def detect(self, message: Message) -> Optional[PinCandidate]:
        """Run the detector on a message of a scanned role."""
        if message.role not in self.roles:
            return None
        return self.detector.detect(message.text)

    def extract(
        self,
        message: Message,
        patient_id: Optional[str] = None
    ) -> Optional[SemanticPin]:
        """
        Evaluate a message and persist a pin if it qualifies.

        Args:
            message: Newly stored message. Only roles in ``self.roles`` are
                scanned, which by default excludes assistant replies
            patient_id: Subject the session is currently about

        Returns:
            The created pin, or None
        """
        candidate = self.detect(message)
        if candidate is None:
            return None

        importance = self.scorer.score_message(message, signals=candidate)
        urgent = candidate.urgency_level == UrgencyLevel.URGENT
        if importance < self.promotion_threshold and not urgent:
            logger.debug(
                f"Pin candidate below threshold ({importance} < {self.promotion_threshold}): "
                f"{candidate.content[:60]}"
            )
            return None

        if self.store.has_pin_content(message.session_id, candidate.content):
            logger.debug(f"Pin already exists for session {message.session_id}")
            return None

        pin = SemanticPin(
            id=f"pin_{uuid.uuid4().hex}",
            session_id=message.session_id,
            content=candidate.content,
            source_message_id=message.id,
            importance_score=importance,
            pin_type=PinType.AUTO,
            clinical_category=candidate.clinical_category,
            urgency_level=candidate.urgency_level,
            patient_id=patient_id,
        )
        self.store.insert_pin(pin)
        logger.info(
            f"Pinned {candidate.clinical_category.value} fact "
            f"({candidate.urgency_level.value}, {importance}) for session {message.session_id}"
        )
        return pin

    def create_manual_pin(
        self,
        session_id: str,
        content: str,
        importance_score: float = 0.8,
        pin_type: PinType = PinType.MANUAL,
        clinical_category: Optional[ClinicalCategory] = None,
        urgency_level: Optional[UrgencyLevel] = None,
        patient_id: Optional[str] = None,
        source_message_id: Optional[int] = None
    ) -> SemanticPin:
        """
        Pin a fact explicitly, bypassing detection and the promotion threshold.

        Returns:
            Created SemanticPin
        """
        if not content or not content.strip():
            raise ValueError("Pin content cannot be empty")
        if not 0.0 <= importance_score <= 1.0:
            raise ValueError("Importance score must be between 0 and 1")

        pin = SemanticPin(
            id=f"pin_{uuid.uuid4().hex}",
            session_id=session_id,
            content=content.strip(),
            source_message_id=source_message_id,
            importance_score=importance_score,
            pin_type=pin_type,
            clinical_category=clinical_category,
            urgency_level=urgency_level,
            patient_id=patient_id,
        )
        return self.store.insert_pin(pin)
