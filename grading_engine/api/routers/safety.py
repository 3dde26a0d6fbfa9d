"""
Router for self-evaluations and safety incidents

A self-evaluation is always accepted once valid: screening and AI feedback
cannot reject it. Incidents are reviewed and resolved by staff.
"""
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query, status

from ...core.engine import GradingEngine
from ...models.incident import SafetyIncident, SelfEvaluationResult
from ..deps import get_grading_engine
from ..schemas.common import APIResponse
from ..schemas.grading import (
    ReportIncidentRequest,
    ResolveIncidentRequest,
    SelfEvaluationRequest,
    UpdateIncidentStatusRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Safety"])


@router.post(
    "/self-evaluations",
    response_model=APIResponse[SelfEvaluationResult],
    status_code=status.HTTP_201_CREATED,
    summary="Submit a self-evaluation",
)
async def submit_self_evaluation(body: SelfEvaluationRequest, engine: GradingEngine = Depends(get_grading_engine)):
    result = await engine.self_evaluations.submit(
        student_id=body.student_id,
        self_assessed_level=body.self_assessed_level,
        justification=body.justification,
        component_skill_id=body.component_skill_id,
        assessment_id=body.assessment_id,
        examples=body.examples,
        conversation_history=body.conversation_history,
    )
    return APIResponse(message="Self-evaluation submitted", data=result)


@router.get(
    "/safety-incidents",
    response_model=APIResponse[List[SafetyIncident]],
    summary="Open safety incidents",
)
def list_open_incidents(
    student_id: Optional[str] = Query(None),
    teacher_id: Optional[str] = Query(None),
    severity: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    engine: GradingEngine = Depends(get_grading_engine),
):
    incidents = engine.screening.list_open_incidents(
        student_id=student_id, teacher_id=teacher_id, severity=severity, limit=limit, offset=offset
    )
    return APIResponse(data=incidents)


@router.post(
    "/safety-incidents",
    response_model=APIResponse[SafetyIncident],
    status_code=status.HTTP_201_CREATED,
    summary="Report an incident manually",
)
def report_incident(body: ReportIncidentRequest, engine: GradingEngine = Depends(get_grading_engine)):
    incident = engine.screening.report_incident(
        student_id=body.student_id,
        teacher_id=body.teacher_id,
        incident_type=body.incident_type,
        message=body.message,
        severity=body.severity,
        assessment_id=body.assessment_id,
        component_skill_id=body.component_skill_id,
    )
    return APIResponse(message="Incident reported", data=incident)


@router.patch(
    "/safety-incidents/{incident_id}/status",
    response_model=APIResponse[SafetyIncident],
    summary="Change an incident's status",
)
def update_incident_status(
    incident_id: str,
    body: UpdateIncidentStatusRequest,
    engine: GradingEngine = Depends(get_grading_engine),
):
    return APIResponse(data=engine.screening.update_status(incident_id, body.status))


@router.post(
    "/safety-incidents/{incident_id}/resolve",
    response_model=APIResponse[SafetyIncident],
    summary="Resolve an incident",
)
def resolve_incident(
    incident_id: str,
    body: ResolveIncidentRequest,
    engine: GradingEngine = Depends(get_grading_engine),
):
    incident = engine.screening.resolve_incident(
        incident_id, resolved_by=body.resolved_by, resolution_notes=body.resolution_notes
    )
    return APIResponse(message="Incident resolved", data=incident)
