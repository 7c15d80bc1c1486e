"""Ground-truth router: answers structured questions from the records."""

import re
import logging
from datetime import date, timedelta
from typing import Callable, Optional

from errors import StoreUnavailableError
from retrieval.fact_store import SQLiteFactStore
from schemas.facts import Patient, DateRange
from schemas.memory import Session
from schemas.responses import (
    QueryDomain,
    RouteOutcome,
    RouteDecision,
    SubjectResolution,
    SubjectSource,
    StructuredAnswer,
    ClarificationNeeded,
)
from .subject_resolver import SubjectResolver
from .fact_composer import FactAnswerComposer

logger = logging.getLogger(__name__)


class GroundTruthRouter:
    """Classifies utterances and answers record questions without the model."""

    DEFAULT_VITALS_DAYS = 30

    def __init__(
        self,
        fact_store: SQLiteFactStore,
        resolver: SubjectResolver,
        composer: Optional[FactAnswerComposer] = None,
        clock: Callable[[], date] = date.today
    ):
        """
        Initialize router with classification rules.

        Args:
            fact_store: Structured fact store
            resolver: Subject resolver
            composer: Literal answer renderer
            clock: Returns today's date (upcoming appointments, vitals ranges)
        """
        self.fact_store = fact_store
        self.resolver = resolver
        self.composer = composer or FactAnswerComposer()
        self.clock = clock

        self.domain_patterns = {
            QueryDomain.MEDICATIONS: [
                r"\b(medications?|medicines?|meds|drugs?|prescriptions?|rx|pills?|tablets?|doses?|dosages?)\b",
                r"\b(taking|prescribed|pharmacy)\b",
                r"\brx\s*numbers?\b",
                r"\bwhat\b.*\btakes?\b",
            ],
            QueryDomain.APPOINTMENTS: [
                r"\b(appointments?|doctor visits?|check-?ups?|scheduled)\b",
                r"\b(see|visit)\b.*\bdoctor\b",
            ],
            QueryDomain.VITALS: [
                r"\b(vitals?|glucose|blood sugar|sugar|oxygen|o2|spo2|temp|weight|blood pressure|bp|heart rate|pulse|temperature)\b",
                r"\b(measurements?|readings?|health metrics?)\b",
            ],
        }
        self.request_pattern = re.compile(
            r"^(what|when|where|which|who|whose|how|does|do|did|is|are|was|were|has|have|had|"
            r"can|could|will|would|list|show|tell|give|check|remind|any)\b"
        )
        # Advice-seeking questions mention a domain but need a conversation
        self.advice_pattern = re.compile(
            r"\b(why|should|side effects?|safe|interact\w*|feel\w*|worried|worry|help|normal)\b"
        )
        self.filler_pattern = re.compile(r"^((please|hey|hi|ok|okay|so|and|also|um)[,\s]+)+")

        self.measurement_patterns = [
            ("blood_pressure", r"\b(blood pressure|bp)\b"),
            ("glucose", r"\b(glucose|blood sugar|sugar)\b"),
            ("heart_rate", r"\b(heart rate|pulse)\b"),
            ("weight", r"\bweight\b"),
            ("temperature", r"\b(temperature|temp)\b"),
            ("oxygen", r"\b(oxygen|o2|spo2)\b"),
        ]

    def classify(self, utterance: str) -> QueryDomain:
        """
        Classify an utterance into a structured domain or GENERAL.

        Structured only for questions or requests matching exactly one domain.
        """
        text_lower = utterance.lower().strip()

        if not self._is_request(text_lower):
            return QueryDomain.GENERAL
        if self.advice_pattern.search(text_lower):
            return QueryDomain.GENERAL

        matched = [
            domain for domain, patterns in self.domain_patterns.items()
            if any(re.search(p, text_lower) for p in patterns)
        ]
        if len(matched) != 1:
            if len(matched) > 1:
                logger.debug(f"Ambiguous domains {[d.value for d in matched]}, routing to conversation")
            return QueryDomain.GENERAL
        return matched[0]

    def route(self, session: Optional[Session], utterance: str) -> RouteDecision:
        """
        Route an utterance.

        Args:
            session: Current session (its linked patient resolves pronouns)
            utterance: Raw user text

        Returns:
            RouteDecision with a structured answer, a clarification, or a
            conversational fall-through

        Raises:
            StoreUnavailableError: If the records cannot be read on the
                structured path
        """
        domain = self.classify(utterance)
        session_patient_id = session.patient_id if session else None

        if domain == QueryDomain.GENERAL:
            return RouteDecision(
                outcome=RouteOutcome.CONVERSATIONAL,
                domain=domain,
                subject=self._named_subject(utterance),
            )

        subject = self.resolver.resolve(utterance, session_patient_id)
        patient = self.fact_store.get_patient(subject.patient_id) if subject.resolved else None
        if patient is None:
            logger.info(f"Subject unresolved for {domain.value} question")
            return RouteDecision(
                outcome=RouteOutcome.CLARIFICATION,
                domain=domain,
                subject=subject,
                clarification=ClarificationNeeded(
                    domain=domain,
                    rendered_text=self.composer.compose_clarification(domain, subject.candidates),
                    candidates=subject.candidates,
                ),
            )

        answer = self._answer(domain, patient, utterance)
        logger.info(
            f"Answered {domain.value} question for {patient.id} from records "
            f"({len(answer.facts_used)} rows, subject via {subject.source.value})"
        )
        return RouteDecision(
            outcome=RouteOutcome.STRUCTURED,
            domain=domain,
            subject=subject,
            answer=answer,
        )

    def _answer(self, domain: QueryDomain, patient: Patient, utterance: str) -> StructuredAnswer:
        """Fetch rows for the domain and render them."""
        if domain == QueryDomain.MEDICATIONS:
            rows = self.fact_store.list_medications(patient.id)
            text = self.composer.compose_medications(patient, rows)
        elif domain == QueryDomain.APPOINTMENTS:
            rows = self.fact_store.list_appointments(patient.id, start_date=self.clock())
            text = self.composer.compose_appointments(patient, rows)
        elif domain == QueryDomain.VITALS:
            date_range = self.parse_date_range(utterance)
            measurement_type = self.parse_measurement_type(utterance)
            rows = self.fact_store.list_vitals(
                patient.id,
                date_range=date_range,
                measurement_type=measurement_type
            )
            text = self.composer.compose_vitals(patient, rows, date_range, measurement_type)
        else:
            raise ValueError(f"No structured answer for domain {domain}")

        return StructuredAnswer(
            domain=domain,
            subject_id=patient.id,
            subject_name=patient.name,
            facts_used=[row.model_dump() for row in rows],
            rendered_text=text,
        )

    def _named_subject(self, utterance: str) -> SubjectResolution:
        """Patient explicitly named in a conversational turn, for session linkage."""
        try:
            patients = self.fact_store.list_patients()
        except StoreUnavailableError as e:
            logger.warning(f"Skipping subject linkage, records unavailable: {e}")
            return SubjectResolution()

        named = self.resolver.find_explicit(utterance.lower(), patients)
        if len(named) != 1:
            return SubjectResolution()
        return SubjectResolution(
            patient_id=named[0].id,
            patient_name=named[0].name,
            source=SubjectSource.EXPLICIT,
        )

    def _is_request(self, text_lower: str) -> bool:
        if text_lower.endswith("?"):
            return True
        stripped = self.filler_pattern.sub("", text_lower)
        return bool(self.request_pattern.match(stripped))

    def parse_date_range(self, utterance: str) -> DateRange:
        """Date range named in a vitals question, defaulting to the last 30 days."""
        text_lower = utterance.lower()
        today = self.clock()

        if re.search(r"\btoday\b", text_lower):
            return DateRange(start=today, end=today, label="today")
        if re.search(r"\byesterday\b", text_lower):
            day = today - timedelta(days=1)
            return DateRange(start=day, end=day, label="yesterday")
        if re.search(r"\bthis week\b", text_lower):
            return DateRange(start=today - timedelta(days=today.weekday()), end=today, label="this week")
        if re.search(r"\bthis month\b", text_lower):
            return DateRange(start=today.replace(day=1), end=today, label="this month")

        match = re.search(r"\b(?:last|past)\s+(\d+)\s+(day|week)s?\b", text_lower)
        if match:
            count = int(match.group(1))
            days = count * 7 if match.group(2) == "week" else count
            unit = match.group(2) + ("s" if count != 1 else "")
            return DateRange(start=today - timedelta(days=days), end=today, label=f"the last {count} {unit}")

        if re.search(r"\b(last|past) week\b", text_lower):
            return DateRange(start=today - timedelta(days=7), end=today, label="the last 7 days")
        if re.search(r"\b(last|past) month\b", text_lower):
            return DateRange(start=today - timedelta(days=30), end=today, label="the last 30 days")

        return DateRange(
            start=today - timedelta(days=self.DEFAULT_VITALS_DAYS),
            end=today,
            label=f"the last {self.DEFAULT_VITALS_DAYS} days",
        )

    def parse_measurement_type(self, utterance: str) -> Optional[str]:
        """Measurement type named in a vitals question, None for all types."""
        text_lower = utterance.lower()
        for measurement_type, pattern in self.measurement_patterns:
            if re.search(pattern, text_lower):
                return measurement_type
        return None
