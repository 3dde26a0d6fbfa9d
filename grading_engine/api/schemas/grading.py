"""
Request bodies for grading, self-evaluation and incident endpoints

Rubric levels are accepted as labels ("emerging") or ordinals (1-4); the
engine validates them.
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class GradeEntryRequest(BaseModel):
    component_skill_id: str
    rubric_level: Union[str, int]
    feedback: Optional[str] = None


class SubmitGradesRequest(BaseModel):
    graded_by: str = Field(..., description="Teacher id")
    grades: List[GradeEntryRequest] = Field(default_factory=list)
    ai_assisted: bool = False
    source_document_ref: Optional[str] = None


class QuestionFeedbackRequest(BaseModel):
    question_index: int
    rubric_level: Optional[Union[str, int]] = None


class SaveEditRequest(BaseModel):
    edited_by: str
    rubric_level: Union[str, int]
    feedback: Optional[str] = None


class SelfEvaluationRequest(BaseModel):
    student_id: str
    self_assessed_level: Union[str, int]
    justification: str
    component_skill_id: Optional[str] = None
    assessment_id: Optional[str] = None
    examples: Optional[str] = None
    conversation_history: List[Dict[str, Any]] = Field(default_factory=list)


class ReportIncidentRequest(BaseModel):
    student_id: str
    teacher_id: str
    incident_type: str
    message: str
    severity: str = "medium"
    assessment_id: Optional[str] = None
    component_skill_id: Optional[str] = None


class ResolveIncidentRequest(BaseModel):
    resolved_by: str
    resolution_notes: Optional[str] = None


class UpdateIncidentStatusRequest(BaseModel):
    status: str
