"""
Self-evaluation intake

A student's self-assessment (level + justification + examples) is stored
first, then AI improvement feedback and safety screening run concurrently.
Neither step can reject the submission.
"""
from typing import Any, Dict, List, Optional
import asyncio
import logging

from ..database.repositories import SelfEvaluationRepository
from ..models.incident import SelfEvaluationResult
from ..models.rubric import RubricLevel, SkillHierarchy
from ..services.ai_feedback import AIFeedbackService
from .cache import sanitize_for_logs
from .exceptions import ValidationError
from .safety_screening import SafetyScreeningEngine

logger = logging.getLogger(__name__)

RISKY_CONTENT_FEEDBACK = "Please speak with your teacher about your response."


class SelfEvaluationIntake:
    def __init__(
        self,
        self_evaluation_repo: SelfEvaluationRepository,
        screening_engine: SafetyScreeningEngine,
        feedback_service: AIFeedbackService,
        hierarchy: Optional[SkillHierarchy] = None,
    ):
        self.self_evaluation_repo = self_evaluation_repo
        self.screening_engine = screening_engine
        self.feedback_service = feedback_service
        self.hierarchy = hierarchy

    async def submit(
        self,
        student_id: str,
        self_assessed_level,
        justification: str,
        component_skill_id: Optional[str] = None,
        assessment_id: Optional[str] = None,
        examples: Optional[str] = None,
        conversation_history: Optional[List[Dict[str, Any]]] = None,
    ) -> SelfEvaluationResult:
        """
        Store and review a self-evaluation.

        Raises:
            ValidationError: bad level or empty justification
            PersistenceError: the self-evaluation itself could not be stored
        """
        level = RubricLevel.parse(self_assessed_level)
        if not justification or not justification.strip():
            raise ValidationError("Justification must not be empty", {"student_id": student_id})

        row = self.self_evaluation_repo.create(
            student_id=student_id,
            self_assessed_level=level,
            justification=justification,
            assessment_id=assessment_id,
            component_skill_id=component_skill_id,
            examples=examples,
        )
        logger.info(
            "Self-evaluation received",
            extra={
                "self_evaluation_id": row.id,
                "student_id": student_id,
                "component_skill_id": component_skill_id,
                "justification": sanitize_for_logs(justification),
            },
        )

        skill_name, rubric_levels = self._skill_context(component_skill_id)
        text = justification if not examples else f"{justification}\n{examples}"
        feedback, screening = await asyncio.gather(
            self.feedback_service.generate_self_evaluation_feedback(
                component_skill_name=skill_name,
                rubric_levels=rubric_levels,
                self_assessed_level=level.label,
                justification=justification,
                examples=examples,
            ),
            self.screening_engine.screen(
                student_id=student_id,
                assessment_id=assessment_id,
                component_skill_id=component_skill_id,
                text=text,
                conversation_history=conversation_history,
            ),
        )
        if screening.is_risky:
            feedback = RISKY_CONTENT_FEEDBACK
        teacher_notified = bool(screening.notified_teacher_ids)

        try:
            self.self_evaluation_repo.record_review(
                row.id,
                ai_improvement_feedback=feedback,
                has_risky_content=screening.is_risky,
                teacher_notified=teacher_notified,
            )
        except Exception:
            logger.error(
                "Failed to record self-evaluation review",
                exc_info=True,
                extra={"self_evaluation_id": row.id},
            )

        return SelfEvaluationResult(
            id=row.id,
            student_id=student_id,
            assessment_id=assessment_id,
            component_skill_id=component_skill_id,
            self_assessed_level=level.label,
            ai_improvement_feedback=feedback,
            has_risky_content=screening.is_risky,
            teacher_notified=teacher_notified,
            screening=screening,
        )

    def _skill_context(self, component_skill_id: Optional[str]):
        if self.hierarchy is None or component_skill_id is None or not self.hierarchy.has_skill(component_skill_id):
            return "this skill", {}
        skill = self.hierarchy.skill(component_skill_id)
        return skill.name, dict(skill.rubric_levels)
