"""Pydantic schemas for the memory and ground-truth engine."""

from .memory import (
    Role,
    PinType,
    UrgencyLevel,
    ClinicalCategory,
    Session,
    Message,
    ConversationSummary,
    SemanticPin,
    PinCandidate,
    MemoryStats,
)
from .facts import Patient, Medication, Appointment, VitalReading, DateRange
from .context import ContextEntry, BudgetReport, ContextPayload
from .responses import (
    QueryDomain,
    RouteOutcome,
    SubjectSource,
    SubjectResolution,
    StructuredAnswer,
    ClarificationNeeded,
    RouteDecision,
    TurnResult,
    TurnEvent,
)

__all__ = [
    "Role",
    "PinType",
    "UrgencyLevel",
    "ClinicalCategory",
    "Session",
    "Message",
    "ConversationSummary",
    "SemanticPin",
    "PinCandidate",
    "MemoryStats",
    "Patient",
    "Medication",
    "Appointment",
    "VitalReading",
    "DateRange",
    "ContextEntry",
    "BudgetReport",
    "ContextPayload",
    "QueryDomain",
    "RouteOutcome",
    "SubjectSource",
    "SubjectResolution",
    "StructuredAnswer",
    "ClarificationNeeded",
    "RouteDecision",
    "TurnResult",
    "TurnEvent",
]
