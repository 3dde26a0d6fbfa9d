"""
Domain exceptions for the grading engine

Taxonomy:
- ValidationError: bad input, rejected synchronously, never persisted
- ConflictError: lock / state conflicts, retry after the other operation ends
- DataIntegrityError: malformed skill hierarchy (logged, never propagated by
  credential evaluation)
- DependencyError: persistence or classifier unavailable (retryable)

The API layer maps these to HTTP responses (see api/exceptions.py).
"""
from typing import Any, Dict, Optional


class GradingEngineError(Exception):
    """Base class for every error raised by the engine"""

    error_code = "GRADING_ENGINE_ERROR"
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


# =============================================================================
# Validation
# =============================================================================


class ValidationError(GradingEngineError):
    error_code = "VALIDATION_ERROR"


class EmptyGradeSetError(ValidationError):
    error_code = "EMPTY_GRADE_SET"

    def __init__(self, submission_id: str):
        super().__init__(
            f"Grade set for submission '{submission_id}' is empty",
            {"submission_id": submission_id},
        )


class UnknownSkillError(ValidationError):
    error_code = "UNKNOWN_COMPONENT_SKILL"

    def __init__(self, submission_id: str, component_skill_ids):
        skill_ids = sorted(component_skill_ids)
        super().__init__(
            f"Component skills {skill_ids} are not configured for the assessment of submission '{submission_id}'",
            {"submission_id": submission_id, "component_skill_ids": skill_ids},
        )


class DuplicateSkillError(ValidationError):
    error_code = "DUPLICATE_COMPONENT_SKILL"

    def __init__(self, submission_id: str, component_skill_id: str):
        super().__init__(
            f"Component skill '{component_skill_id}' appears more than once in the grade set",
            {"submission_id": submission_id, "component_skill_id": component_skill_id},
        )


class InvalidRubricLevelError(ValidationError):
    error_code = "INVALID_RUBRIC_LEVEL"

    def __init__(self, value: Any):
        super().__init__(
            f"Invalid rubric level: '{value}'. Expected one of: emerging, developing, proficient, applying",
            {"value": str(value)},
        )


class SubmissionNotFoundError(ValidationError):
    error_code = "SUBMISSION_NOT_FOUND"

    def __init__(self, submission_id: str):
        super().__init__(f"Submission '{submission_id}' not found", {"submission_id": submission_id})


class ScopeNotFoundError(ValidationError):
    error_code = "SCOPE_NOT_FOUND"

    def __init__(self, scope_kind: str, scope_id: Optional[str]):
        super().__init__(
            f"Unknown {scope_kind} '{scope_id}'",
            {"scope_kind": scope_kind, "scope_id": scope_id},
        )


class IncidentNotFoundError(ValidationError):
    error_code = "INCIDENT_NOT_FOUND"

    def __init__(self, incident_id: str):
        super().__init__(f"Safety incident '{incident_id}' not found", {"incident_id": incident_id})


# =============================================================================
# Conflicts
# =============================================================================


class ConflictError(GradingEngineError):
    error_code = "CONFLICT"


class AlreadyGradedError(ConflictError):
    error_code = "ALREADY_GRADED"

    def __init__(self, submission_id: str):
        super().__init__(
            f"Submission '{submission_id}' is already graded and locked",
            {"submission_id": submission_id},
        )


class AlreadyEditingError(ConflictError):
    error_code = "ALREADY_EDITING"

    def __init__(self, submission_id: str, editing_skill_id: str):
        super().__init__(
            f"Submission '{submission_id}' already has skill '{editing_skill_id}' in edit",
            {"submission_id": submission_id, "editing_skill_id": editing_skill_id},
        )


class NotLockedError(ConflictError):
    error_code = "NOT_LOCKED"

    def __init__(self, submission_id: str, state: str):
        super().__init__(
            f"Submission '{submission_id}' is not locked (state: {state})",
            {"submission_id": submission_id, "state": state},
        )


class NotEditingError(ConflictError):
    error_code = "NOT_EDITING"

    def __init__(self, submission_id: str, component_skill_id: str):
        super().__init__(
            f"Skill '{component_skill_id}' of submission '{submission_id}' is not in edit",
            {"submission_id": submission_id, "component_skill_id": component_skill_id},
        )


class ConcurrentModificationError(ConflictError):
    error_code = "CONCURRENT_MODIFICATION"

    def __init__(self, submission_id: str, expected_version: int):
        super().__init__(
            f"Grade set of submission '{submission_id}' was modified concurrently",
            {"submission_id": submission_id, "expected_version": expected_version},
        )


# =============================================================================
# Data integrity
# =============================================================================


class DataIntegrityError(GradingEngineError):
    error_code = "DATA_INTEGRITY"


class HierarchyIntegrityError(DataIntegrityError):
    error_code = "MALFORMED_HIERARCHY"

    def __init__(self, node_kind: str, node_id: str, problem: str):
        super().__init__(
            f"Malformed hierarchy at {node_kind} '{node_id}': {problem}",
            {"node_kind": node_kind, "node_id": node_id, "problem": problem},
        )


# =============================================================================
# Dependencies
# =============================================================================


class DependencyError(GradingEngineError):
    error_code = "DEPENDENCY_UNAVAILABLE"
    retryable = True


class PersistenceError(DependencyError):
    error_code = "PERSISTENCE_UNAVAILABLE"

    def __init__(self, operation: str, details: Optional[str] = None):
        super().__init__(
            f"Database operation failed: {operation}",
            {"operation": operation, "details": details},
        )


class ClassifierUnavailableError(DependencyError):
    error_code = "CLASSIFIER_UNAVAILABLE"

    def __init__(self, reason: str):
        super().__init__(f"Safety classifier unavailable: {reason}", {"reason": reason})
