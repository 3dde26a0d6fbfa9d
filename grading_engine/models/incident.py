"""
Safety screening models
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SafetyClassification(BaseModel):
    """Result returned by a safety classifier"""

    is_risky: bool
    category: Optional[str] = None
    severity: str = "medium"
    confidence: Optional[float] = None


class SafetyIncident(BaseModel):
    id: str
    student_id: str
    teacher_id: Optional[str] = None
    assessment_id: Optional[str] = None
    component_skill_id: Optional[str] = None
    incident_type: str
    message: str
    conversation_history: List[Dict[str, Any]] = Field(default_factory=list)
    severity: str
    status: str = "open"
    resolved: bool = False
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolution_notes: Optional[str] = None
    detected_by: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScreeningResult(BaseModel):
    """
    Outcome of one ``screen`` call.

    ``classifier_failed`` is True when the fail-open path ran; in that case
    ``incident`` is the "screening-unavailable" incident (when it could be
    persisted).
    """

    is_risky: bool
    classifier_failed: bool = False
    classification: Optional[SafetyClassification] = None
    incident: Optional[SafetyIncident] = None
    notified_teacher_ids: List[str] = Field(default_factory=list)


class SelfEvaluationResult(BaseModel):
    """Persisted self-evaluation plus the outcome of its review"""

    id: str
    student_id: str
    assessment_id: Optional[str] = None
    component_skill_id: Optional[str] = None
    self_assessed_level: str
    ai_improvement_feedback: Optional[str] = None
    has_risky_content: bool = False
    teacher_notified: bool = False
    screening: ScreeningResult
