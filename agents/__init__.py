"""Agents for ground-truth routing of record questions."""

from .router import GroundTruthRouter
from .subject_resolver import SubjectResolver
from .fact_composer import FactAnswerComposer

__all__ = [
    "GroundTruthRouter",
    "SubjectResolver",
    "FactAnswerComposer",
]
