"""Tests for subject resolution."""

import sqlite3
import pytest

from agents.subject_resolver import SubjectResolver
from retrieval.fact_store import SQLiteFactStore
from schemas.responses import SubjectSource
from utils.seed_demo_data import create_fact_tables


class TestSubjectResolver:
    """Test names, relationship words, pronouns and fallbacks."""

    @pytest.fixture(autouse=True)
    def setup(self, fact_store):
        """Set up test fixtures."""
        self.fact_store = fact_store
        self.resolver = SubjectResolver(fact_store)

    def test_exact_name(self):
        """Test an exact first name."""
        result = self.resolver.resolve("what is aurora taking")

        assert result.patient_id == "aurora"
        assert result.source == SubjectSource.EXPLICIT

    def test_possessive_name(self):
        """Test a possessive name form."""
        result = self.resolver.resolve("Show me Basilio's readings")

        assert result.patient_id == "basilio"

    def test_misspelled_name(self):
        """Test fuzzy matching on a close misspelling."""
        result = self.resolver.resolve("Does Auroa have appointments?")

        assert result.patient_id == "aurora"

    def test_short_tokens_are_not_fuzzy_matched(self):
        """Test that short words never fuzzily match a name."""
        assert self.resolver.find_explicit("are you ok", self.fact_store.list_patients()) == []

    def test_relationship_word(self):
        """Test relationship words resolve to the matching patient."""
        assert self.resolver.resolve("What does mom take?").patient_id == "aurora"
        assert self.resolver.resolve("my dad's pills").patient_id == "basilio"

    def test_pronoun_uses_session_link(self):
        """Test that a pronoun resolves to the session's linked patient."""
        result = self.resolver.resolve("Does she have appointments?", session_patient_id="aurora")

        assert result.patient_id == "aurora"
        assert result.source == SubjectSource.SESSION
        assert result.used_pronoun is True

    def test_explicit_name_overrides_session_link(self):
        """Test that naming someone else wins over the link."""
        result = self.resolver.resolve("What about Basilio?", session_patient_id="aurora")

        assert result.patient_id == "basilio"
        assert result.source == SubjectSource.EXPLICIT

    def test_unknown_session_patient_is_ignored(self):
        """Test that a stale link to an inactive patient does not resolve."""
        result = self.resolver.resolve("Does she have appointments?", session_patient_id="ghost")

        assert result.resolved is False
        assert result.candidates == ["Aurora", "Basilio"]

    def test_default_patient(self):
        """Test the configured default subject."""
        resolver = SubjectResolver(self.fact_store, default_patient_id="basilio")

        result = resolver.resolve("Any appointments?")

        assert result.patient_id == "basilio"
        assert result.source == SubjectSource.DEFAULT

    def test_two_names_are_ambiguous(self):
        """Test that naming both patients does not pick one."""
        result = self.resolver.resolve("What are Aurora and Basilio taking?", session_patient_id="aurora")

        assert result.resolved is False
        assert result.candidates == ["Aurora", "Basilio"]

    def test_sole_patient_fallback(self, tmp_path):
        """Test that a household with one patient needs no reference."""
        db_path = str(tmp_path / "single.db")
        conn = sqlite3.connect(db_path)
        create_fact_tables(conn)
        conn.execute(
            "INSERT INTO patients (id, name, relationship) VALUES (?, ?, ?)",
            ("celia", "Celia Moreno", "grandmother")
        )
        conn.commit()
        conn.close()
        resolver = SubjectResolver(SQLiteFactStore(db_path=db_path))

        result = resolver.resolve("Any appointments coming up?")

        assert result.patient_id == "celia"
        assert result.source == SubjectSource.DEFAULT
        assert resolver.resolve("How is grandma doing?").source == SubjectSource.EXPLICIT
