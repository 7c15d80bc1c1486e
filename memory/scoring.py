"""Importance scoring for stored messages."""

import logging
from typing import Optional, List

from retrieval.lexicon import ClinicalLexicon
from schemas.memory import Role, Message, PinCandidate

logger = logging.getLogger(__name__)


class ImportanceScorer:
    """
    Deterministic keyword scorer.

    Base 0.5, plus the weight of every lexicon group the text hits, plus
    small bonuses for long messages, assistant replies, clinical user
    messages and urgency. Routine acknowledgements score low.
    """

    BASE_SCORE = 0.5
    ACKNOWLEDGEMENT_SCORE = 0.2
    LONG_MESSAGE_CHARS = 200
    LONG_MESSAGE_BONUS = 0.1
    ASSISTANT_BONUS = 0.05
    CLINICAL_USER_BONUS = 0.1
    SUMMARY_FLOOR = 0.5

    def __init__(self, lexicon: ClinicalLexicon):
        """
        Initialize scorer.

        Args:
            lexicon: Keyword lexicon with weighted scoring groups
        """
        self.lexicon = lexicon

    def score(
        self,
        text: str,
        role: Role,
        signals: Optional[PinCandidate] = None
    ) -> float:
        """
        Score a message.

        Args:
            text: Message text
            role: Message role
            signals: Pin candidate detected in the text, if any

        Returns:
            Importance in [0, 1]
        """
        if self.lexicon.is_acknowledgement(text):
            return self.ACKNOWLEDGEMENT_SCORE

        text_lower = text.lower()
        score = self.BASE_SCORE
        clinical = False

        for group in self.lexicon.scoring_groups:
            if group.matches(text_lower):
                score += group.weight
                clinical = clinical or group.clinical

        if len(text) > self.LONG_MESSAGE_CHARS:
            score += self.LONG_MESSAGE_BONUS

        if Role(role) == Role.ASSISTANT:
            score += self.ASSISTANT_BONUS
        elif Role(role) == Role.USER and clinical:
            score += self.CLINICAL_USER_BONUS

        if signals is not None:
            score += self.lexicon.urgency_bonus.get(signals.urgency_level.value, 0.0)

        return round(min(1.0, max(0.0, score)), 4)

    def score_message(self, message: Message, signals: Optional[PinCandidate] = None) -> float:
        """Score a stored message."""
        return self.score(message.text, message.role, signals)

    def score_summary(self, messages: List[Message]) -> float:
        """
        Weight a summary by the messages it replaces.

        Uses stored scores where present and scores the rest on the fly.
        """
        if not messages:
            return self.SUMMARY_FLOOR

        scores = [
            m.importance_score if m.importance_score is not None else self.score_message(m)
            for m in messages
        ]
        mean = sum(scores) / len(scores)
        return round(max(self.SUMMARY_FLOOR, mean), 4)
