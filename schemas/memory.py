"""Conversation memory schemas: sessions, messages, summaries and pins."""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class Role(str, Enum):
    """Author of a message."""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class PinType(str, Enum):
    """How a pin came to exist."""
    MANUAL = "manual"
    AUTO = "auto"
    CODE = "code"
    CONCEPT = "concept"
    SYSTEM = "system"


class UrgencyLevel(str, Enum):
    """Urgency tier attached to clinical pins."""
    ROUTINE = "routine"
    ELEVATED = "elevated"
    URGENT = "urgent"


class ClinicalCategory(str, Enum):
    """Clinical category of an extracted fact."""
    SYMPTOM = "symptom"
    MEDICATION = "medication"
    MOOD = "mood"
    URGENCY = "urgency"
    APPOINTMENT = "appointment"
    VITALS = "vitals"


class Session(BaseModel):
    """One conversation thread."""
    id: str
    patient_id: Optional[str] = None  # Linked subject for pronoun resolution
    persona_id: Optional[str] = None
    model: Optional[str] = None
    recap: Optional[str] = None
    saved: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Message(BaseModel):
    """A single persisted turn. Append-only."""
    id: int
    session_id: str
    role: Role
    text: str
    model_id: Optional[str] = None
    token_count: int = 0
    importance_score: Optional[float] = None  # None until scored
    created_at: datetime = Field(default_factory=datetime.now)


class ConversationSummary(BaseModel):
    """Compressed, immutable span of messages [start_message_id, end_message_id]."""
    id: str
    session_id: str
    summary: str
    message_count: int
    start_message_id: int
    end_message_id: int
    importance_score: float = 0.7
    created_at: datetime = Field(default_factory=datetime.now)


class SemanticPin(BaseModel):
    """Durable extracted fact that survives buffer eviction and summarization."""
    id: str
    session_id: str
    content: str
    source_message_id: Optional[int] = None  # Weak reference
    importance_score: float = 0.8
    pin_type: PinType = PinType.AUTO
    clinical_category: Optional[ClinicalCategory] = None
    urgency_level: Optional[UrgencyLevel] = None
    patient_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class PinCandidate(BaseModel):
    """Positive signal found by a pin detector, before promotion."""
    content: str
    clinical_category: ClinicalCategory
    urgency_level: UrgencyLevel = UrgencyLevel.ROUTINE
    matched_keywords: list[str] = Field(default_factory=list)


class MemoryStats(BaseModel):
    """Per-session memory statistics."""
    session_id: str
    total_messages: int = 0
    total_summaries: int = 0
    total_pins: int = 0
    oldest_message: Optional[datetime] = None
    newest_message: Optional[datetime] = None
    average_importance_score: Optional[float] = None
    unaccounted_messages: int = 0
