"""
Grade domain models

``GradeEntry`` is the caller's input for one component skill; ``Grade`` is
the persisted evaluation returned by the Grade Store.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .rubric import RubricLevel


class GradeSetState(str, Enum):
    """Per-submission locking state; UNGRADED means no grade set row exists"""

    UNGRADED = "ungraded"
    LOCKED = "locked"
    EDITING = "editing"


class GradeEntry(BaseModel):
    """One (component skill, rubric level, feedback) item of a grading pass"""

    component_skill_id: str
    rubric_level: RubricLevel
    feedback: Optional[str] = None

    @field_validator("rubric_level", mode="before")
    @classmethod
    def _parse_level(cls, value):
        return RubricLevel.parse(value)


class Grade(BaseModel):
    """Rubric evaluation of one (submission, component skill) pair"""

    id: str
    submission_id: str
    student_id: str
    component_skill_id: str
    rubric_level: RubricLevel
    score: float
    feedback: Optional[str] = None
    graded_by: Optional[str] = None
    graded_at: datetime
    locked: bool = True

    class Config:
        from_attributes = True

    @field_validator("rubric_level", mode="before")
    @classmethod
    def _parse_level(cls, value):
        return RubricLevel.parse(value)


class GradeSetStatus(BaseModel):
    """Locking state of a submission's grade set"""

    submission_id: str
    state: GradeSetState
    editing_skill_id: Optional[str] = None
    version: int = 0
    locked_at: Optional[datetime] = None
    graded_by: Optional[str] = None
    ai_assisted: bool = False
    source_document_ref: Optional[str] = None


class GradeSetResult(BaseModel):
    """Effective grade set returned by ``submit_grades``"""

    submission_id: str
    student_id: str
    state: GradeSetState
    grades: List[Grade] = Field(default_factory=list)


class QuestionFeedback(BaseModel):
    """AI feedback for one question of a submission (not stored)"""

    submission_id: str
    question_index: int
    rubric_level: Optional[RubricLevel] = None
    feedback: str
    fallback: bool = False


class SubmissionFeedback(BaseModel):
    """Overall feedback stored on a graded submission"""

    submission_id: str
    feedback: str
    ai_generated: bool = True
    fallback: bool = False
