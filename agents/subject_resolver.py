"""Subject resolution: which patient an utterance is about."""

import re
import logging
from typing import List, Optional

from rapidfuzz import fuzz, process

from retrieval.fact_store import SQLiteFactStore
from schemas.facts import Patient
from schemas.responses import SubjectResolution, SubjectSource

logger = logging.getLogger(__name__)


class SubjectResolver:
    """Resolves names, relationship words and pronouns to a patient id."""

    FUZZY_CUTOFF = 85
    MIN_FUZZY_TOKEN_LENGTH = 4

    RELATIONSHIP_WORDS = {
        "mom": "mother",
        "mother": "mother",
        "mama": "mother",
        "mum": "mother",
        "dad": "father",
        "father": "father",
        "papa": "father",
        "grandma": "grandmother",
        "grandmother": "grandmother",
        "grandpa": "grandfather",
        "grandfather": "grandfather",
        "husband": "husband",
        "wife": "wife",
    }

    PRONOUN_PATTERN = re.compile(r"\b(she|her|hers|he|him|his|they|them|their)\b")

    def __init__(self, fact_store: SQLiteFactStore, default_patient_id: Optional[str] = None):
        """
        Initialize resolver.

        Args:
            fact_store: Fact store used to list patients
            default_patient_id: Subject used when nothing else resolves
        """
        self.fact_store = fact_store
        self.default_patient_id = default_patient_id

    def resolve(self, utterance: str, session_patient_id: Optional[str] = None) -> SubjectResolution:
        """
        Resolve the subject of an utterance.

        Order: explicit name or relationship word, then the session's linked
        patient (pronouns or no reference), then the configured default or
        the only active patient.

        Args:
            utterance: Raw user text
            session_patient_id: Patient currently linked to the session

        Returns:
            SubjectResolution (patient_id is None when unresolved)
        """
        text_lower = utterance.lower()
        patients = self.fact_store.list_patients()
        used_pronoun = bool(self.PRONOUN_PATTERN.search(text_lower))

        explicit = self.find_explicit(text_lower, patients)
        if len(explicit) == 1:
            patient = explicit[0]
            return SubjectResolution(
                patient_id=patient.id,
                patient_name=patient.name,
                source=SubjectSource.EXPLICIT,
                used_pronoun=used_pronoun,
            )
        if len(explicit) > 1:
            logger.info(f"Ambiguous subject: {[p.name for p in explicit]}")
            return SubjectResolution(
                used_pronoun=used_pronoun,
                candidates=[p.name for p in explicit],
            )

        by_id = {p.id: p for p in patients}

        if session_patient_id and session_patient_id in by_id:
            patient = by_id[session_patient_id]
            return SubjectResolution(
                patient_id=patient.id,
                patient_name=patient.name,
                source=SubjectSource.SESSION,
                used_pronoun=used_pronoun,
            )

        if self.default_patient_id and self.default_patient_id in by_id:
            patient = by_id[self.default_patient_id]
        elif len(patients) == 1:
            patient = patients[0]
        else:
            return SubjectResolution(
                used_pronoun=used_pronoun,
                candidates=[p.name for p in patients],
            )

        return SubjectResolution(
            patient_id=patient.id,
            patient_name=patient.name,
            source=SubjectSource.DEFAULT,
            used_pronoun=used_pronoun,
        )

    def find_explicit(self, text_lower: str, patients: List[Patient]) -> List[Patient]:
        """Patients named (exactly or fuzzily) or referred to by relationship."""
        tokens = [self._strip_possessive(t) for t in re.findall(r"[a-z][a-z']*", text_lower)]
        matched: List[Patient] = []

        for patient in patients:
            if self._names_patient(tokens, patient) and patient not in matched:
                matched.append(patient)

        relations = {self.RELATIONSHIP_WORDS[t] for t in tokens if t in self.RELATIONSHIP_WORDS}
        for patient in patients:
            relationship = (patient.relationship or "").lower()
            if relationship in relations and patient not in matched:
                matched.append(patient)

        return matched

    def _names_patient(self, tokens: List[str], patient: Patient) -> bool:
        name_parts = [p for p in re.findall(r"[a-z']+", patient.name.lower()) if p]
        if not name_parts:
            return False

        for token in tokens:
            if token in name_parts:
                return True
            if len(token) < self.MIN_FUZZY_TOKEN_LENGTH:
                continue
            match = process.extractOne(
                token,
                name_parts,
                scorer=fuzz.ratio,
                score_cutoff=self.FUZZY_CUTOFF
            )
            if match is not None:
                return True
        return False

    @staticmethod
    def _strip_possessive(token: str) -> str:
        if token.endswith("'s"):
            return token[:-2]
        return token.rstrip("'")
