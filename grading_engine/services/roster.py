"""
Roster collaborator

The engine never owns identity data; it asks a ``RosterProvider`` for
enrollment counts and for the teachers to notify about a student.
"""
from typing import List, Optional, Protocol
import logging

from ..database.repositories import AssessmentRepository, UserRepository

logger = logging.getLogger(__name__)


class RosterProvider(Protocol):
    def total_students(self, school_id: Optional[str] = None, grade_level: Optional[str] = None) -> int:
        ...

    def student_ids(self, school_id: Optional[str] = None, grade_level: Optional[str] = None) -> List[str]:
        ...

    def teachers_to_notify(self, student_id: str, assessment_id: Optional[str] = None) -> List[str]:
        ...


class DatabaseRosterProvider:
    """Roster backed by the ``users`` and ``assessments`` tables"""

    def __init__(self, user_repo: UserRepository, assessment_repo: AssessmentRepository):
        self.user_repo = user_repo
        self.assessment_repo = assessment_repo

    def total_students(self, school_id: Optional[str] = None, grade_level: Optional[str] = None) -> int:
        return self.user_repo.count_students(school_id=school_id, grade_level=grade_level)

    def student_ids(self, school_id: Optional[str] = None, grade_level: Optional[str] = None) -> List[str]:
        return self.user_repo.get_student_ids(school_id=school_id, grade_level=grade_level)

    def teachers_to_notify(self, student_id: str, assessment_id: Optional[str] = None) -> List[str]:
        """
        The assessment's teacher when known, otherwise every teacher of the
        student's school.
        """
        if assessment_id is not None:
            assessment = self.assessment_repo.get_by_id(assessment_id)
            if assessment is not None and assessment.teacher_id:
                return [assessment.teacher_id]

        student = self.user_repo.get_by_id(student_id)
        if student is None or not student.school_id:
            logger.warning(
                "No teacher found to notify",
                extra={"student_id": student_id, "assessment_id": assessment_id},
            )
            return []
        return self.user_repo.get_teacher_ids(student.school_id)
