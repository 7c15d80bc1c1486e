"""Router and turn result schemas."""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field
from .context import BudgetReport


class QueryDomain(str, Enum):
    """Classification of an inbound utterance."""
    MEDICATIONS = "medications"
    APPOINTMENTS = "appointments"
    VITALS = "vitals"
    GENERAL = "general"


class RouteOutcome(str, Enum):
    """Which path a turn took."""
    STRUCTURED = "structured"
    CLARIFICATION = "clarification"
    CONVERSATIONAL = "conversational"


class SubjectSource(str, Enum):
    """Where a resolved subject came from."""
    EXPLICIT = "explicit"
    SESSION = "session"
    DEFAULT = "default"


class SubjectResolution(BaseModel):
    """Result of resolving who an utterance is about."""
    patient_id: Optional[str] = None
    patient_name: Optional[str] = None
    source: Optional[SubjectSource] = None
    used_pronoun: bool = False
    candidates: list[str] = Field(default_factory=list)  # Competing names when ambiguous

    @property
    def resolved(self) -> bool:
        return self.patient_id is not None


class StructuredAnswer(BaseModel):
    """Store-derived answer. The model was not involved."""
    answered_from_store: bool = True
    domain: QueryDomain
    subject_id: str
    subject_name: str
    facts_used: list[dict[str, Any]] = Field(default_factory=list)
    rendered_text: str


class ClarificationNeeded(BaseModel):
    """Structured question whose subject could not be resolved."""
    domain: QueryDomain
    rendered_text: str
    candidates: list[str] = Field(default_factory=list)


class RouteDecision(BaseModel):
    """Output from the ground-truth router."""
    outcome: RouteOutcome
    domain: QueryDomain
    subject: SubjectResolution = Field(default_factory=SubjectResolution)
    answer: Optional[StructuredAnswer] = None
    clarification: Optional[ClarificationNeeded] = None


class TurnResult(BaseModel):
    """Final result of one processed turn."""
    session_id: str
    outcome: RouteOutcome
    reply: str
    answered_from_store: bool = False
    structured_answer: Optional[StructuredAnswer] = None
    budget: Optional[BudgetReport] = None
    model_id: Optional[str] = None
    token_usage: Optional[int] = None
    user_message_id: Optional[int] = None
    assistant_message_id: Optional[int] = None
    summary_created: bool = False
    pins_created: int = 0


class TurnEvent(BaseModel):
    """Streaming event: a text delta, or the terminal event carrying the result."""
    delta: str = ""
    done: bool = False
    result: Optional[TurnResult] = None
