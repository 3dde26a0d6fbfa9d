"""
Domain models (pydantic) shared by the engine components
"""
from .rubric import (
    RubricLevel,
    RubricConfig,
    DEFAULT_RUBRIC,
    NodeKind,
    HierarchyNode,
    SkillHierarchy,
)
from .grade import GradeEntry, Grade, GradeSetState, GradeSetStatus, GradeSetResult
from .credential import Credential, CredentialType
from .incident import SafetyClassification, SafetyIncident, ScreeningResult, SelfEvaluationResult
from .aggregate import (
    AggregateScope,
    AggregateStat,
    ScopeKind,
    SkillProgress,
    SchoolSummary,
    StudentSkillProgress,
)
from .events import (
    GradeSubmitted,
    GradeEdited,
    CredentialIssued,
    IncidentRaised,
    GradeEvent,
    DomainEvent,
)

__all__ = [
    "RubricLevel",
    "RubricConfig",
    "DEFAULT_RUBRIC",
    "NodeKind",
    "HierarchyNode",
    "SkillHierarchy",
    "GradeEntry",
    "Grade",
    "GradeSetState",
    "GradeSetStatus",
    "GradeSetResult",
    "Credential",
    "CredentialType",
    "SafetyClassification",
    "SafetyIncident",
    "ScreeningResult",
    "SelfEvaluationResult",
    "AggregateScope",
    "AggregateStat",
    "ScopeKind",
    "SkillProgress",
    "SchoolSummary",
    "StudentSkillProgress",
    "GradeSubmitted",
    "GradeEdited",
    "CredentialIssued",
    "IncidentRaised",
    "GradeEvent",
    "DomainEvent",
]
