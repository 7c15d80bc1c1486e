"""Memory system: persistence, scoring, pins, summaries and context assembly."""

from .sqlite_store import SQLiteMemoryStore
from .scoring import ImportanceScorer
from .buffer import RollingBuffer
from .pins import PinDetector, KeywordPinDetector, SemanticPinExtractor
from .summarizer import SummarizationCompressor
from .context_manager import ContextAssembler
from .locks import SessionLockRegistry

__all__ = [
    "SQLiteMemoryStore",
    "ImportanceScorer",
    "RollingBuffer",
    "PinDetector",
    "KeywordPinDetector",
    "SemanticPinExtractor",
    "SummarizationCompressor",
    "ContextAssembler",
    "SessionLockRegistry",
]
