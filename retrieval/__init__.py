"""Retrieval layer for care records and the clinical lexicon."""

from .fact_store import SQLiteFactStore
from .lexicon import ClinicalLexicon

__all__ = ["SQLiteFactStore", "ClinicalLexicon"]
