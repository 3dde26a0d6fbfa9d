"""
Domain events

Closed set of tagged variants with fixed fields. Each carries a literal
``kind`` so that serialized events can be routed without inspecting the
Python type.
"""
from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from ..core.constants import utc_now
from .credential import CredentialType
from .rubric import RubricLevel


class _Event(BaseModel):
    occurred_at: datetime = Field(default_factory=utc_now)

    class Config:
        frozen = True


class GradeSubmitted(_Event):
    kind: Literal["grade_submitted"] = "grade_submitted"
    submission_id: str
    student_id: str
    component_skill_id: str
    rubric_level: RubricLevel
    graded_by: Optional[str] = None


class GradeEdited(_Event):
    kind: Literal["grade_edited"] = "grade_edited"
    submission_id: str
    student_id: str
    component_skill_id: str
    previous_level: RubricLevel
    rubric_level: RubricLevel
    graded_by: Optional[str] = None


class CredentialIssued(_Event):
    kind: Literal["credential_issued"] = "credential_issued"
    credential_id: str
    student_id: str
    credential_type: CredentialType
    scope_id: str
    title: str


class IncidentRaised(_Event):
    kind: Literal["incident_raised"] = "incident_raised"
    incident_id: str
    student_id: str
    incident_type: str
    severity: str
    teacher_id: Optional[str] = None


GradeEvent = Union[GradeSubmitted, GradeEdited]
DomainEvent = Union[GradeSubmitted, GradeEdited, CredentialIssued, IncidentRaised]
