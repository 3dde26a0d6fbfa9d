"""
Router for the grading lock state machine

    POST   /submissions/{id}/grades                    grade and lock
    GET    /submissions/{id}/grades                    grades + lock state
    POST   /submissions/{id}/grades/{skill_id}/edit    Locked → Editing
    PUT    /submissions/{id}/grades/{skill_id}/edit    save, Editing → Locked
    DELETE /submissions/{id}/grades/{skill_id}/edit    cancel, Editing → Locked
    POST   /submissions/{id}/feedback                  AI feedback, stored on the submission
    POST   /submissions/{id}/question-feedback         AI feedback for one question
"""
from typing import List
import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ...core.engine import GradingEngine
from ...models.grade import Grade, GradeSetResult, GradeSetStatus, QuestionFeedback, SubmissionFeedback
from ..deps import get_grading_engine
from ..schemas.common import APIResponse
from ..schemas.grading import QuestionFeedbackRequest, SaveEditRequest, SubmitGradesRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/submissions", tags=["Grading"])


class SubmissionGradesResponse(BaseModel):
    status: GradeSetStatus
    grades: List[Grade]


@router.post(
    "/{submission_id}/grades",
    response_model=APIResponse[GradeSetResult],
    status_code=status.HTTP_201_CREATED,
    summary="Grade a submission",
)
def submit_grades(
    submission_id: str,
    body: SubmitGradesRequest,
    engine: GradingEngine = Depends(get_grading_engine),
):
    result = engine.grade_store.submit_grades(
        submission_id,
        [entry.model_dump() for entry in body.grades],
        graded_by=body.graded_by,
        ai_assisted=body.ai_assisted,
        source_document_ref=body.source_document_ref,
    )
    return APIResponse(success=True, message="Submission graded and locked", data=result)


@router.get(
    "/{submission_id}/grades",
    response_model=APIResponse[SubmissionGradesResponse],
    summary="Grades and lock state of a submission",
)
def get_grades(submission_id: str, engine: GradingEngine = Depends(get_grading_engine)):
    return APIResponse(
        data=SubmissionGradesResponse(
            status=engine.grade_store.get_state(submission_id),
            grades=engine.grade_store.get_grades(submission_id),
        )
    )


@router.post(
    "/{submission_id}/grades/{component_skill_id}/edit",
    response_model=APIResponse[Grade],
    summary="Unlock one grade for editing",
)
def begin_edit(submission_id: str, component_skill_id: str, engine: GradingEngine = Depends(get_grading_engine)):
    grade = engine.grade_store.begin_edit(submission_id, component_skill_id)
    return APIResponse(message="Grade unlocked for editing", data=grade)


@router.put(
    "/{submission_id}/grades/{component_skill_id}/edit",
    response_model=APIResponse[Grade],
    summary="Save the grade being edited",
)
def save_edit(
    submission_id: str,
    component_skill_id: str,
    body: SaveEditRequest,
    engine: GradingEngine = Depends(get_grading_engine),
):
    grade = engine.grade_store.save_edit(
        submission_id,
        component_skill_id,
        new_level=body.rubric_level,
        new_feedback=body.feedback,
        edited_by=body.edited_by,
    )
    return APIResponse(message="Grade saved and locked", data=grade)


@router.delete(
    "/{submission_id}/grades/{component_skill_id}/edit",
    response_model=APIResponse[Grade],
    summary="Discard the edit in progress",
)
def cancel_edit(submission_id: str, component_skill_id: str, engine: GradingEngine = Depends(get_grading_engine)):
    grade = engine.grade_store.cancel_edit(submission_id, component_skill_id)
    return APIResponse(message="Edit cancelled", data=grade)


@router.post(
    "/{submission_id}/feedback",
    response_model=APIResponse[SubmissionFeedback],
    summary="Generate and store AI feedback for a graded submission",
)
async def generate_submission_feedback(submission_id: str, engine: GradingEngine = Depends(get_grading_engine)):
    result = await engine.submission_feedback.generate_submission_feedback(submission_id)
    message = "AI feedback unavailable, fallback text stored" if result.fallback else "AI feedback stored"
    return APIResponse(message=message, data=result)


@router.post(
    "/{submission_id}/question-feedback",
    response_model=APIResponse[QuestionFeedback],
    summary="Draft AI feedback for one question",
)
async def generate_question_feedback(
    submission_id: str,
    body: QuestionFeedbackRequest,
    engine: GradingEngine = Depends(get_grading_engine),
):
    result = await engine.submission_feedback.generate_question_feedback(
        submission_id, body.question_index, rubric_level=body.rubric_level
    )
    return APIResponse(data=result)
