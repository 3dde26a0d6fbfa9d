"""
AI-assisted feedback for graded submissions

Two operations on top of the AI Feedback Service:

- question feedback: draft text for one question of a submission, returned
  to the teacher and not stored
- submission feedback: overall text built from the locked grades, stored on
  the submission and flagged as AI generated

A provider failure never fails the request; the fixed fallback text is
returned (and stored) instead.
"""
from typing import Any, List, Optional, Union
import logging
import re

from ..database.repositories import AssessmentRepository, SubmissionRepository
from ..database.models import AssessmentDB, SubmissionDB
from ..models.grade import GradeSetState, QuestionFeedback, SubmissionFeedback
from ..models.rubric import RubricLevel, SkillHierarchy
from ..services.ai_feedback import AIFeedbackService
from .cache import sanitize_for_logs
from .constants import AI_FEEDBACK_FALLBACK
from .exceptions import HierarchyIntegrityError, NotLockedError, SubmissionNotFoundError, ValidationError
from .grade_store import GradeStore

logger = logging.getLogger(__name__)

MAX_PROMPT_TEXT = 5000

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f-\x9f]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_for_prompt(value: Any) -> str:
    """Strip control characters, collapse whitespace and cap the length"""
    if not isinstance(value, str):
        return ""
    text = _WHITESPACE.sub(" ", _CONTROL_CHARS.sub(" ", value)).strip()
    return text[:MAX_PROMPT_TEXT]


def question_records(questions: Any) -> List[dict]:
    if not isinstance(questions, list):
        return []
    return [question for question in questions if isinstance(question, dict)]


def response_for_question(responses: Any, question_index: int) -> str:
    """Answer text for a question; responses are a list or keyed by index"""
    if isinstance(responses, list):
        item = responses[question_index] if question_index < len(responses) else None
    elif isinstance(responses, dict):
        item = responses.get(str(question_index), responses.get(question_index))
    else:
        item = None
    if isinstance(item, dict):
        item = item.get("answer")
    return item if isinstance(item, str) else ""


class SubmissionFeedbackService:
    def __init__(
        self,
        submission_repo: SubmissionRepository,
        assessment_repo: AssessmentRepository,
        grade_store: GradeStore,
        feedback_service: AIFeedbackService,
        hierarchy: Optional[SkillHierarchy] = None,
    ):
        self.submission_repo = submission_repo
        self.assessment_repo = assessment_repo
        self.grade_store = grade_store
        self.feedback_service = feedback_service
        self.hierarchy = hierarchy

    async def generate_question_feedback(
        self,
        submission_id: str,
        question_index: int,
        rubric_level: Optional[Union[str, int, RubricLevel]] = None,
    ) -> QuestionFeedback:
        """
        Draft feedback for one question of a submission.

        Raises:
            SubmissionNotFoundError: unknown submission
            ValidationError: bad rubric level, question index out of range,
                or an empty question or answer
        """
        level = None if rubric_level is None else RubricLevel.parse(rubric_level)
        submission = self._require_submission(submission_id)
        assessment = self._assessment_of(submission)

        questions = question_records(assessment.questions)
        if question_index < 0 or question_index >= len(questions):
            raise ValidationError(
                "Invalid question index",
                {"submission_id": submission_id, "question_index": question_index, "questions": len(questions)},
            )

        question = questions[question_index]
        question_text = sanitize_for_prompt(question.get("text"))
        answer = sanitize_for_prompt(response_for_question(submission.responses, question_index))
        if not question_text or not answer:
            raise ValidationError(
                "Question and response cannot be empty",
                {"submission_id": submission_id, "question_index": question_index},
            )

        feedback = await self.feedback_service.generate_question_feedback(
            question_text,
            answer,
            rubric_criteria=sanitize_for_prompt(question.get("rubric_criteria")) or None,
            sample_answer=sanitize_for_prompt(question.get("sample_answer")) or None,
            rubric_level=None if level is None else level.label,
        )
        logger.info(
            "Question feedback generated",
            extra={
                "submission_id": submission_id,
                "question_index": question_index,
                "feedback": sanitize_for_logs(feedback),
            },
        )
        return QuestionFeedback(
            submission_id=submission_id,
            question_index=question_index,
            rubric_level=level,
            feedback=feedback,
            fallback=feedback == AI_FEEDBACK_FALLBACK,
        )

    async def generate_submission_feedback(self, submission_id: str) -> SubmissionFeedback:
        """
        Generate overall feedback from the submission's grades and store it.

        Raises:
            SubmissionNotFoundError: unknown submission
            NotLockedError: the submission has not been graded yet
            PersistenceError: the feedback could not be stored
        """
        submission = self._require_submission(submission_id)
        status = self.grade_store.get_state(submission_id)
        if status.state == GradeSetState.UNGRADED:
            raise NotLockedError(submission_id, status.state.value)

        assessment = self._assessment_of(submission)
        grade_lines = [
            f"{self._skill_name(grade.component_skill_id)}: {grade.rubric_level.display_name} "
            f"(score {grade.score:g})"
            for grade in self.grade_store.get_grades(submission_id)
        ]
        responses = [
            sanitize_for_prompt(response_for_question(submission.responses, index))
            for index in range(len(question_records(assessment.questions)))
        ]

        feedback = await self.feedback_service.generate_submission_feedback(
            assessment.title, [text for text in responses if text], grade_lines
        )
        self.submission_repo.record_feedback(submission_id, feedback, ai_generated=True)

        fallback = feedback == AI_FEEDBACK_FALLBACK
        logger.info(
            "Submission feedback stored",
            extra={"submission_id": submission_id, "fallback": fallback, "feedback": sanitize_for_logs(feedback)},
        )
        return SubmissionFeedback(submission_id=submission_id, feedback=feedback, ai_generated=True, fallback=fallback)

    def _require_submission(self, submission_id: str) -> SubmissionDB:
        submission = self.submission_repo.get_by_id(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(submission_id)
        return submission

    def _assessment_of(self, submission: SubmissionDB) -> AssessmentDB:
        assessment = self.assessment_repo.get_by_id(submission.assessment_id)
        if assessment is None:
            raise ValidationError(
                "Submission has no assessment",
                {"submission_id": submission.id, "assessment_id": submission.assessment_id},
            )
        return assessment

    def _skill_name(self, skill_id: str) -> str:
        if self.hierarchy is None:
            return skill_id
        try:
            return self.hierarchy.skill(skill_id).name
        except HierarchyIntegrityError:
            return skill_id
