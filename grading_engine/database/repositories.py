"""
Repository pattern for database operations

Provides:
- HierarchyRepository: Learner outcomes, competencies, component skills
- UserRepository: Roster lookups (students, teachers)
- AssessmentRepository / SubmissionRepository: What gets graded
- GradeRepository: Grades and the per-submission grade set (locking state)
- CredentialRepository: Stickers, badges, plaques
- SelfEvaluationRepository / SafetyIncidentRepository: Safety screening
- NotificationRepository: In-app notifications

TRANSACTION MANAGEMENT:
----------------------
Simple creates commit immediately. Methods documented as "no commit" are
building blocks of a larger unit of work and must run inside the
transaction context manager:

    from grading_engine.database.transaction import transaction

    with transaction(db, "Submit grade set"):
        grades.add_grade_set(submission_id, graded_by)
        for entry in entries:
            grades.add_grade(...)

Grade set transitions are compare-and-swap updates on ``GradeSetDB.version``;
they return False instead of raising when the expected version was stale.
"""
from typing import Dict, Iterable, List, Optional, Set, Tuple
from uuid import uuid4

from sqlalchemy import desc, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from ..core.constants import utc_now
from ..models.rubric import RubricLevel, SkillHierarchy
from .models import (
    AssessmentDB,
    CompetencyDB,
    ComponentSkillDB,
    CredentialDB,
    GradeDB,
    GradeSetDB,
    LearnerOutcomeDB,
    NotificationDB,
    SafetyIncidentDB,
    SelfEvaluationDB,
    SubmissionDB,
    UserDB,
)

logger = logging.getLogger(__name__)


def _level_label(level) -> str:
    """Storage label of a rubric level (accepts enum, label or int)"""
    return RubricLevel.parse(level).label


class HierarchyRepository:
    """Repository for the LearnerOutcome → Competency → ComponentSkill tree"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def create_outcome(self, name: str, description: Optional[str] = None, id: Optional[str] = None) -> LearnerOutcomeDB:
        outcome = LearnerOutcomeDB(id=id or str(uuid4()), name=name, description=description)
        self.db.add(outcome)
        self.db.commit()
        return outcome

    def create_competency(
        self,
        name: str,
        learner_outcome_id: Optional[str],
        category: Optional[str] = None,
        description: Optional[str] = None,
        id: Optional[str] = None,
    ) -> CompetencyDB:
        competency = CompetencyDB(
            id=id or str(uuid4()),
            name=name,
            learner_outcome_id=learner_outcome_id,
            category=category,
            description=description,
        )
        self.db.add(competency)
        self.db.commit()
        return competency

    def create_skill(
        self,
        name: str,
        competency_id: Optional[str],
        rubric_levels: Optional[Dict[str, str]] = None,
        id: Optional[str] = None,
    ) -> ComponentSkillDB:
        skill = ComponentSkillDB(
            id=id or str(uuid4()),
            name=name,
            competency_id=competency_id,
            rubric_levels=rubric_levels or {},
        )
        self.db.add(skill)
        self.db.commit()
        return skill

    def load_hierarchy(self) -> SkillHierarchy:
        """
        Load the whole tree into an immutable SkillHierarchy.

        Three flat queries; dangling parent ids are preserved so that the
        credential engine can report them as data-integrity problems.
        """
        outcomes = self.db.execute(select(LearnerOutcomeDB.id, LearnerOutcomeDB.name)).all()
        competencies = self.db.execute(
            select(CompetencyDB.id, CompetencyDB.name, CompetencyDB.learner_outcome_id)
        ).all()
        skills = self.db.execute(
            select(
                ComponentSkillDB.id,
                ComponentSkillDB.name,
                ComponentSkillDB.competency_id,
                ComponentSkillDB.rubric_levels,
            )
        ).all()

        hierarchy = SkillHierarchy.build(
            outcomes=[(row.id, row.name) for row in outcomes],
            competencies=[(row.id, row.name, row.learner_outcome_id) for row in competencies],
            skills=[(row.id, row.name, row.competency_id) for row in skills],
            skill_rubrics={row.id: row.rubric_levels or {} for row in skills},
        )
        logger.info(
            "Skill hierarchy loaded",
            extra={"outcomes": len(outcomes), "competencies": len(competencies), "skills": len(skills)},
        )
        return hierarchy


class UserRepository:
    """Repository for roster lookups"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        username: str,
        role: str = "student",
        school_id: Optional[str] = None,
        grade_level: Optional[str] = None,
        id: Optional[str] = None,
    ) -> UserDB:
        user = UserDB(
            id=id or str(uuid4()),
            username=username,
            role=role,
            school_id=school_id,
            grade_level=grade_level,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def get_by_id(self, user_id: str) -> Optional[UserDB]:
        return self.db.get(UserDB, user_id)

    def _students(self, school_id: Optional[str], grade_level: Optional[str]):
        query = self.db.query(UserDB).filter(UserDB.role == "student", UserDB.is_active == True)  # noqa: E712
        if school_id is not None:
            query = query.filter(UserDB.school_id == school_id)
        if grade_level is not None:
            query = query.filter(UserDB.grade_level == grade_level)
        return query

    def count_students(self, school_id: Optional[str] = None, grade_level: Optional[str] = None) -> int:
        return self._students(school_id, grade_level).count()

    def get_student_ids(self, school_id: Optional[str] = None, grade_level: Optional[str] = None) -> List[str]:
        return [user.id for user in self._students(school_id, grade_level).order_by(UserDB.id).all()]

    def get_teacher_ids(self, school_id: str) -> List[str]:
        rows = (
            self.db.query(UserDB.id)
            .filter(UserDB.role == "teacher", UserDB.school_id == school_id, UserDB.is_active == True)  # noqa: E712
            .order_by(UserDB.id)
            .all()
        )
        return [row.id for row in rows]


class AssessmentRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        title: str,
        component_skill_ids: Iterable[str],
        teacher_id: Optional[str] = None,
        questions: Optional[list] = None,
        source_document_ref: Optional[str] = None,
        id: Optional[str] = None,
    ) -> AssessmentDB:
        assessment = AssessmentDB(
            id=id or str(uuid4()),
            title=title,
            teacher_id=teacher_id,
            component_skill_ids=list(component_skill_ids),
            questions=questions or [],
            source_document_ref=source_document_ref,
        )
        self.db.add(assessment)
        self.db.commit()
        return assessment

    def get_by_id(self, assessment_id: str) -> Optional[AssessmentDB]:
        return self.db.get(AssessmentDB, assessment_id)


class SubmissionRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        assessment_id: str,
        student_id: str,
        responses: Optional[dict] = None,
        is_self_evaluation: bool = False,
        self_evaluation_data: Optional[dict] = None,
        id: Optional[str] = None,
    ) -> SubmissionDB:
        submission = SubmissionDB(
            id=id or str(uuid4()),
            assessment_id=assessment_id,
            student_id=student_id,
            responses=responses or {},
            is_self_evaluation=is_self_evaluation,
            self_evaluation_data=self_evaluation_data,
        )
        self.db.add(submission)
        self.db.commit()
        return submission

    def get_by_id(self, submission_id: str) -> Optional[SubmissionDB]:
        return self.db.get(SubmissionDB, submission_id)

    def mark_graded(self, submission_id: str) -> None:
        """Stamp grading metadata (no commit)"""
        self.db.execute(
            update(SubmissionDB)
            .where(SubmissionDB.id == submission_id)
            .values(graded_at=utc_now(), updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

    def record_feedback(self, submission_id: str, feedback: str, ai_generated: bool = False) -> None:
        """Store overall feedback on a submission"""
        try:
            self.db.execute(
                update(SubmissionDB)
                .where(SubmissionDB.id == submission_id)
                .values(feedback=feedback, ai_generated_feedback=ai_generated, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to store feedback for submission {submission_id}: {e}")
            raise


class GradeRepository:
    """
    Repository for grades and grade sets.

    The GradeSetDB primary key guarantees at most one first-time grading per
    submission; every later state change goes through ``compare_and_set``.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    # ---- grade set --------------------------------------------------------

    def get_grade_set(self, submission_id: str) -> Optional[GradeSetDB]:
        """Fresh read of the grade set, bypassing the identity map"""
        stmt = (
            select(GradeSetDB)
            .where(GradeSetDB.submission_id == submission_id)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def add_grade_set(
        self,
        submission_id: str,
        graded_by: Optional[str],
        ai_assisted: bool = False,
        source_document_ref: Optional[str] = None,
    ) -> GradeSetDB:
        """Insert a Locked grade set (no commit)"""
        grade_set = GradeSetDB(
            submission_id=submission_id,
            state="locked",
            editing_skill_id=None,
            version=1,
            graded_by=graded_by,
            locked_at=utc_now(),
            ai_assisted=ai_assisted,
            source_document_ref=source_document_ref,
        )
        self.db.add(grade_set)
        return grade_set

    def compare_and_set(
        self,
        submission_id: str,
        expected_version: int,
        state: str,
        editing_skill_id: Optional[str] = None,
    ) -> bool:
        """
        Move the grade set to ``state`` if it is still at ``expected_version``.

        Runs ``UPDATE ... WHERE version = :expected`` (no commit).

        Returns:
            True if this caller won, False if the version had moved on
        """
        values = {
            "state": state,
            "editing_skill_id": editing_skill_id,
            "version": expected_version + 1,
            "updated_at": utc_now(),
        }
        if state == "locked":
            values["locked_at"] = utc_now()
        result = self.db.execute(
            update(GradeSetDB)
            .where(GradeSetDB.submission_id == submission_id, GradeSetDB.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ---- grades -----------------------------------------------------------

    def add_grade(
        self,
        submission_id: str,
        student_id: str,
        component_skill_id: str,
        rubric_level,
        feedback: Optional[str],
        graded_by: Optional[str],
    ) -> GradeDB:
        """Insert one locked grade (no commit)"""
        level = RubricLevel.parse(rubric_level)
        grade = GradeDB(
            id=str(uuid4()),
            submission_id=submission_id,
            student_id=student_id,
            component_skill_id=component_skill_id,
            rubric_level=level.label,
            score=level.score,
            feedback=feedback,
            graded_by=graded_by,
            graded_at=utc_now(),
            locked=True,
        )
        self.db.add(grade)
        return grade

    def set_locked(self, submission_id: str, component_skill_id: str, locked: bool) -> None:
        """Flip the per-grade lock flag (no commit)"""
        self.db.execute(
            update(GradeDB)
            .where(GradeDB.submission_id == submission_id, GradeDB.component_skill_id == component_skill_id)
            .values(locked=locked)
            .execution_options(synchronize_session=False)
        )

    def overwrite_grade(
        self,
        submission_id: str,
        component_skill_id: str,
        rubric_level,
        feedback: Optional[str],
        graded_by: Optional[str],
    ) -> int:
        """Replace level / feedback of an existing grade and re-lock it (no commit)"""
        level = RubricLevel.parse(rubric_level)
        result = self.db.execute(
            update(GradeDB)
            .where(GradeDB.submission_id == submission_id, GradeDB.component_skill_id == component_skill_id)
            .values(
                rubric_level=level.label,
                score=level.score,
                feedback=feedback,
                graded_by=graded_by,
                graded_at=utc_now(),
                locked=True,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def get_grade(self, submission_id: str, component_skill_id: str) -> Optional[GradeDB]:
        stmt = (
            select(GradeDB)
            .where(GradeDB.submission_id == submission_id, GradeDB.component_skill_id == component_skill_id)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_submission(self, submission_id: str) -> List[GradeDB]:
        stmt = (
            select(GradeDB)
            .where(GradeDB.submission_id == submission_id)
            .order_by(GradeDB.component_skill_id)
            .execution_options(populate_existing=True)
        )
        return list(self.db.execute(stmt).scalars().all())

    def get_current_grade(self, student_id: str, component_skill_id: str) -> Optional[GradeDB]:
        """Most recently graded grade of a student for a skill (ties broken by id)"""
        stmt = (
            select(GradeDB)
            .where(GradeDB.student_id == student_id, GradeDB.component_skill_id == component_skill_id)
            .order_by(desc(GradeDB.graded_at), desc(GradeDB.id))
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_current_grades(
        self,
        component_skill_ids: Iterable[str],
        student_ids: Optional[Iterable[str]] = None,
    ) -> Dict[Tuple[str, str], GradeDB]:
        """
        Current grade per (student, skill) for a set of skills.

        Args:
            component_skill_ids: Skills to read
            student_ids: Restrict to these students (None = everyone)

        Returns:
            {(student_id, component_skill_id): GradeDB}
        """
        skill_ids = list(component_skill_ids)
        if not skill_ids:
            return {}
        stmt = select(GradeDB).where(GradeDB.component_skill_id.in_(skill_ids))
        if student_ids is not None:
            student_ids = list(student_ids)
            if not student_ids:
                return {}
            stmt = stmt.where(GradeDB.student_id.in_(student_ids))
        # Ascending order: later rows overwrite earlier ones
        stmt = stmt.order_by(GradeDB.graded_at, GradeDB.id).execution_options(populate_existing=True)

        current: Dict[Tuple[str, str], GradeDB] = {}
        for grade in self.db.execute(stmt).scalars():
            current[(grade.student_id, grade.component_skill_id)] = grade
        return current

    def get_history(
        self,
        component_skill_ids: Optional[Iterable[str]] = None,
        student_id: Optional[str] = None,
        student_ids: Optional[Iterable[str]] = None,
    ) -> List[GradeDB]:
        """All grades (not only current ones) in grading order"""
        stmt = select(GradeDB)
        if component_skill_ids is not None:
            stmt = stmt.where(GradeDB.component_skill_id.in_(list(component_skill_ids)))
        if student_id is not None:
            stmt = stmt.where(GradeDB.student_id == student_id)
        if student_ids is not None:
            stmt = stmt.where(GradeDB.student_id.in_(list(student_ids)))
        stmt = stmt.order_by(GradeDB.graded_at, GradeDB.id)
        return list(self.db.execute(stmt).scalars().all())


class CredentialRepository:
    """
    Repository for credentials.

    ``try_create`` relies on the (student, type, scope) unique constraint:
    when two writers race, exactly one insert succeeds and the loser gets the
    winner's row back.
    """

    def __init__(self, db_session: Session):
        self.db = db_session

    def get(self, student_id: str, credential_type: str, scope_id: str) -> Optional[CredentialDB]:
        stmt = (
            select(CredentialDB)
            .where(
                CredentialDB.student_id == student_id,
                CredentialDB.credential_type == credential_type,
                CredentialDB.scope_id == scope_id,
            )
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def try_create(
        self,
        student_id: str,
        credential_type: str,
        scope_id: str,
        title: str,
        description: Optional[str] = None,
        icon_url: Optional[str] = None,
        rubric_level=None,
        awarded_by: Optional[str] = None,
        approved_by: Optional[str] = None,
    ) -> Tuple[CredentialDB, bool]:
        """
        Insert a credential unless one already exists for the scope.

        Returns:
            (credential, created). ``created`` is False when another writer
            got there first; the returned row is then the existing one.
        """
        credential = CredentialDB(
            id=str(uuid4()),
            student_id=student_id,
            credential_type=credential_type,
            scope_id=scope_id,
            component_skill_id=scope_id if credential_type == "sticker" else None,
            competency_id=scope_id if credential_type == "badge" else None,
            learner_outcome_id=scope_id if credential_type == "plaque" else None,
            title=title,
            description=description,
            icon_url=icon_url,
            rubric_level=None if rubric_level is None else _level_label(rubric_level),
            awarded_at=utc_now(),
            awarded_by=awarded_by,
            approved_by=approved_by,
        )
        try:
            self.db.add(credential)
            self.db.commit()
            return credential, True
        except IntegrityError:
            self.db.rollback()
            existing = self.get(student_id, credential_type, scope_id)
            if existing is None:
                # Constraint other than uniqueness
                raise
            logger.info(
                "Credential already issued by a concurrent writer",
                extra={"student_id": student_id, "credential_type": credential_type, "scope_id": scope_id},
            )
            return existing, False

    def upgrade_sticker(
        self,
        credential_id: str,
        expected_level,
        new_level,
        title: str,
        description: Optional[str],
        icon_url: Optional[str],
    ) -> bool:
        """
        Raise a sticker's recorded level if it is still at ``expected_level``.

        Returns:
            True if updated, False if another writer changed it first
        """
        try:
            result = self.db.execute(
                update(CredentialDB)
                .where(
                    CredentialDB.id == credential_id,
                    CredentialDB.rubric_level == _level_label(expected_level),
                )
                .values(
                    rubric_level=_level_label(new_level),
                    title=title,
                    description=description,
                    icon_url=icon_url,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
            return result.rowcount == 1
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to upgrade sticker {credential_id}: {e}")
            raise

    def get_by_student(self, student_id: str, credential_type: Optional[str] = None) -> List[CredentialDB]:
        stmt = select(CredentialDB).where(CredentialDB.student_id == student_id)
        if credential_type is not None:
            stmt = stmt.where(CredentialDB.credential_type == credential_type)
        stmt = stmt.order_by(CredentialDB.awarded_at, CredentialDB.id).execution_options(populate_existing=True)
        return list(self.db.execute(stmt).scalars().all())

    def get_scope_ids(self, student_id: str, credential_type: str) -> Set[str]:
        rows = self.db.execute(
            select(CredentialDB.scope_id).where(
                CredentialDB.student_id == student_id,
                CredentialDB.credential_type == credential_type,
            )
        ).all()
        return {row.scope_id for row in rows}


class SelfEvaluationRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        student_id: str,
        self_assessed_level,
        justification: str,
        assessment_id: Optional[str] = None,
        component_skill_id: Optional[str] = None,
        examples: Optional[str] = None,
    ) -> SelfEvaluationDB:
        evaluation = SelfEvaluationDB(
            id=str(uuid4()),
            student_id=student_id,
            assessment_id=assessment_id,
            component_skill_id=component_skill_id,
            self_assessed_level=_level_label(self_assessed_level),
            justification=justification,
            examples=examples,
        )
        try:
            self.db.add(evaluation)
            self.db.commit()
            return evaluation
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create self-evaluation: {e}", extra={"student_id": student_id})
            raise

    def get_by_id(self, evaluation_id: str) -> Optional[SelfEvaluationDB]:
        return self.db.get(SelfEvaluationDB, evaluation_id)

    def record_review(
        self,
        evaluation_id: str,
        ai_improvement_feedback: Optional[str],
        has_risky_content: bool,
        teacher_notified: bool,
    ) -> Optional[SelfEvaluationDB]:
        evaluation = self.get_by_id(evaluation_id)
        if evaluation is None:
            return None
        try:
            evaluation.ai_improvement_feedback = ai_improvement_feedback
            evaluation.has_risky_content = has_risky_content
            evaluation.teacher_notified = teacher_notified
            evaluation.updated_at = utc_now()
            self.db.commit()
            return evaluation
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update self-evaluation {evaluation_id}: {e}")
            raise


class SafetyIncidentRepository:
    """Repository for safety incidents"""

    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        student_id: str,
        incident_type: str,
        message: str,
        severity: str,
        teacher_id: Optional[str] = None,
        assessment_id: Optional[str] = None,
        component_skill_id: Optional[str] = None,
        conversation_history: Optional[list] = None,
        detected_by: Optional[str] = None,
    ) -> SafetyIncidentDB:
        incident = SafetyIncidentDB(
            id=str(uuid4()),
            student_id=student_id,
            teacher_id=teacher_id,
            assessment_id=assessment_id,
            component_skill_id=component_skill_id,
            incident_type=incident_type,
            message=message,
            conversation_history=conversation_history or [],
            severity=severity,
            status="open",
            resolved=False,
            detected_by=detected_by,
        )
        try:
            self.db.add(incident)
            self.db.commit()
            return incident
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create safety incident: {e}", extra={
                "student_id": student_id,
                "incident_type": incident_type,
                "severity": severity,
            })
            raise

    def get_by_id(self, incident_id: str) -> Optional[SafetyIncidentDB]:
        return self.db.get(SafetyIncidentDB, incident_id)

    def get_open(
        self,
        student_id: Optional[str] = None,
        teacher_id: Optional[str] = None,
        severity: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[SafetyIncidentDB]:
        """Unresolved incidents, newest first"""
        query = self.db.query(SafetyIncidentDB).filter(SafetyIncidentDB.resolved == False)  # noqa: E712
        if student_id is not None:
            query = query.filter(SafetyIncidentDB.student_id == student_id)
        if teacher_id is not None:
            query = query.filter(SafetyIncidentDB.teacher_id == teacher_id)
        if severity is not None:
            query = query.filter(SafetyIncidentDB.severity == severity)
        return (
            query.order_by(desc(SafetyIncidentDB.created_at), SafetyIncidentDB.id)
            .limit(limit)
            .offset(offset)
            .all()
        )

    def get_by_student(self, student_id: str, incident_type: Optional[str] = None) -> List[SafetyIncidentDB]:
        query = self.db.query(SafetyIncidentDB).filter(SafetyIncidentDB.student_id == student_id)
        if incident_type is not None:
            query = query.filter(SafetyIncidentDB.incident_type == incident_type)
        return query.order_by(SafetyIncidentDB.created_at, SafetyIncidentDB.id).all()

    def update_status(self, incident_id: str, status: str) -> Optional[SafetyIncidentDB]:
        """Change workflow status under a row lock"""
        try:
            stmt = select(SafetyIncidentDB).where(SafetyIncidentDB.id == incident_id).with_for_update()
            incident = self.db.execute(stmt).scalar_one_or_none()
            if incident is None:
                return None
            incident.status = status
            incident.updated_at = utc_now()
            self.db.commit()
            return incident
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to update incident {incident_id}: {e}")
            raise

    def resolve(self, incident_id: str, resolved_by: Optional[str], resolution_notes: Optional[str]) -> Optional[SafetyIncidentDB]:
        """
        Mark an incident as resolved.

        Pessimistic lock (SELECT ... FOR UPDATE) so that two reviewers do
        not overwrite each other's notes.
        """
        try:
            stmt = select(SafetyIncidentDB).where(SafetyIncidentDB.id == incident_id).with_for_update()
            incident = self.db.execute(stmt).scalar_one_or_none()
            if incident is None:
                return None
            incident.resolved = True
            incident.status = "resolved"
            incident.resolved_at = utc_now()
            incident.resolved_by = resolved_by
            incident.resolution_notes = resolution_notes
            incident.updated_at = utc_now()
            self.db.commit()
            return incident
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to resolve incident {incident_id}: {e}")
            raise


class NotificationRepository:
    def __init__(self, db_session: Session):
        self.db = db_session

    def create(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        details: Optional[dict] = None,
        priority: str = "medium",
    ) -> NotificationDB:
        notification = NotificationDB(
            id=str(uuid4()),
            user_id=user_id,
            notification_type=notification_type,
            title=title,
            message=message,
            details=details or {},
            priority=priority,
        )
        try:
            self.db.add(notification)
            self.db.commit()
            return notification
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create notification: {e}", extra={"user_id": user_id})
            raise
