"""
Grade Store - rubric grades per (submission, component skill) under a
per-submission locking discipline

State machine of a submission's grade set:

    Ungraded --submit_grades--> Locked --begin_edit(skill)--> Editing(skill)
                                  ^                                |
                                  +------ save_edit / cancel_edit -+

There is no path back to Ungraded. The first transition relies on the
GradeSetDB primary key (one row per submission); every later one is a
compare-and-swap on ``GradeSetDB.version``, so two concurrent callers can
never both win.
"""
from typing import Iterable, List, Optional, Union
import logging

from sqlalchemy.exc import IntegrityError

from ..database.repositories import AssessmentRepository, GradeRepository, SubmissionRepository
from ..database.transaction import transaction
from ..models.events import GradeEdited, GradeSubmitted
from ..models.grade import Grade, GradeEntry, GradeSetResult, GradeSetState, GradeSetStatus
from ..models.rubric import RubricLevel
from .cache import sanitize_for_logs
from .event_bus import EventBus
from .exceptions import (
    AlreadyEditingError,
    AlreadyGradedError,
    ConcurrentModificationError,
    ConflictError,
    DuplicateSkillError,
    EmptyGradeSetError,
    NotEditingError,
    NotLockedError,
    PersistenceError,
    SubmissionNotFoundError,
    UnknownSkillError,
)
from . import metrics

logger = logging.getLogger(__name__)

EntryInput = Union[GradeEntry, dict, tuple]


def _to_entry(entry: EntryInput) -> GradeEntry:
    """Accept GradeEntry, a dict, or a (skill_id, level[, feedback]) tuple"""
    if isinstance(entry, GradeEntry):
        return entry
    if isinstance(entry, dict):
        return GradeEntry(
            component_skill_id=entry["component_skill_id"],
            rubric_level=RubricLevel.parse(entry["rubric_level"]),
            feedback=entry.get("feedback"),
        )
    skill_id, level, *rest = entry
    return GradeEntry(
        component_skill_id=skill_id,
        rubric_level=RubricLevel.parse(level),
        feedback=rest[0] if rest else None,
    )


class GradeStore:
    """
    Persists grades and enforces the lock state machine.

    Events are published only after the surrounding transaction committed,
    so subscribers always read the grades they are told about.
    """

    def __init__(
        self,
        grade_repo: GradeRepository,
        submission_repo: SubmissionRepository,
        assessment_repo: AssessmentRepository,
        event_bus: Optional[EventBus] = None,
    ):
        self.grade_repo = grade_repo
        self.submission_repo = submission_repo
        self.assessment_repo = assessment_repo
        self.event_bus = event_bus
        self.db = grade_repo.db

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def submit_grades(
        self,
        submission_id: str,
        entries: Iterable[EntryInput],
        graded_by: Optional[str],
        ai_assisted: bool = False,
        source_document_ref: Optional[str] = None,
    ) -> GradeSetResult:
        """
        Grade an ungraded submission and lock it.

        Args:
            submission_id: Submission to grade
            entries: Complete list of (component skill, rubric level, feedback)
            graded_by: Actor id
            ai_assisted: Grades were drafted by AI and confirmed by the teacher
            source_document_ref: Opaque blob reference of the source PDF

        Returns:
            The effective grade set (state Locked)

        Raises:
            ValidationError: empty set, unknown / duplicate skill, bad level,
                unknown submission
            AlreadyGradedError: submission already graded (Locked or Editing)
            PersistenceError: store failure; nothing was written
        """
        parsed = [_to_entry(entry) for entry in entries]
        if not parsed:
            raise EmptyGradeSetError(submission_id)

        seen = set()
        for entry in parsed:
            if entry.component_skill_id in seen:
                raise DuplicateSkillError(submission_id, entry.component_skill_id)
            seen.add(entry.component_skill_id)

        submission = self.submission_repo.get_by_id(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(submission_id)

        assessment = self.assessment_repo.get_by_id(submission.assessment_id)
        configured = set(assessment.component_skill_ids or []) if assessment else set()
        unknown = seen - configured
        if unknown:
            raise UnknownSkillError(submission_id, unknown)

        if self.grade_repo.get_grade_set(submission_id) is not None:
            self._conflict(AlreadyGradedError(submission_id))

        try:
            with transaction(self.db, "Submit grade set"):
                self.grade_repo.add_grade_set(
                    submission_id,
                    graded_by=graded_by,
                    ai_assisted=ai_assisted,
                    source_document_ref=source_document_ref,
                )
                for entry in parsed:
                    self.grade_repo.add_grade(
                        submission_id=submission_id,
                        student_id=submission.student_id,
                        component_skill_id=entry.component_skill_id,
                        rubric_level=entry.rubric_level,
                        feedback=entry.feedback,
                        graded_by=graded_by,
                    )
                self.submission_repo.mark_graded(submission_id)
        except IntegrityError as e:
            # Lost the race on the grade set primary key
            if self.grade_repo.get_grade_set(submission_id) is not None:
                self._conflict(AlreadyGradedError(submission_id))
            raise PersistenceError("Submit grade set", str(e)) from e

        grades = self.get_grades(submission_id)
        metrics.grades_submitted_total.inc(len(grades))
        logger.info(
            "Grade set submitted and locked",
            extra={
                "submission_id": submission_id,
                "student_id": submission.student_id,
                "graded_by": graded_by,
                "skill_count": len(grades),
                "ai_assisted": ai_assisted,
            },
        )

        self._publish(
            GradeSubmitted(
                submission_id=submission_id,
                student_id=grade.student_id,
                component_skill_id=grade.component_skill_id,
                rubric_level=grade.rubric_level,
                graded_by=graded_by,
            )
            for grade in grades
        )
        return GradeSetResult(
            submission_id=submission_id,
            student_id=submission.student_id,
            state=GradeSetState.LOCKED,
            grades=grades,
        )

    def begin_edit(self, submission_id: str, component_skill_id: str) -> Grade:
        """
        Unlock one skill of a locked grade set for editing.

        Returns:
            The current grade of that skill

        Raises:
            NotLockedError: submission has not been graded
            AlreadyEditingError: a skill (this one or another) is already in edit
            UnknownSkillError: the skill is not part of the grade set
            ConcurrentModificationError: lost a race with another transition
        """
        grade_set = self._require_grade_set(submission_id)
        if grade_set.state == GradeSetState.EDITING.value:
            self._conflict(AlreadyEditingError(submission_id, grade_set.editing_skill_id))
        if self.grade_repo.get_grade(submission_id, component_skill_id) is None:
            raise UnknownSkillError(submission_id, [component_skill_id])

        with transaction(self.db, "Begin grade edit"):
            won = self.grade_repo.compare_and_set(
                submission_id,
                expected_version=grade_set.version,
                state=GradeSetState.EDITING.value,
                editing_skill_id=component_skill_id,
            )
            if won:
                self.grade_repo.set_locked(submission_id, component_skill_id, False)
        if not won:
            self._lost_race(submission_id, grade_set.version)

        metrics.grade_edits_total.labels(outcome="begun").inc()
        logger.info(
            "Grade unlocked for edit",
            extra={"submission_id": submission_id, "component_skill_id": component_skill_id},
        )
        return Grade.model_validate(self.grade_repo.get_grade(submission_id, component_skill_id))

    def save_edit(
        self,
        submission_id: str,
        component_skill_id: str,
        new_level,
        new_feedback: Optional[str],
        edited_by: Optional[str],
    ) -> Grade:
        """
        Overwrite the grade in edit and re-lock the grade set.

        Raises:
            InvalidRubricLevelError: ``new_level`` is not a rubric level
            NotEditingError: this skill is not the one in edit
            ConcurrentModificationError: lost a race with another transition
        """
        level = RubricLevel.parse(new_level)
        grade_set = self._require_editing(submission_id, component_skill_id)
        previous = self.grade_repo.get_grade(submission_id, component_skill_id)
        previous_level = RubricLevel.parse(previous.rubric_level)

        with transaction(self.db, "Save grade edit"):
            won = self.grade_repo.compare_and_set(
                submission_id,
                expected_version=grade_set.version,
                state=GradeSetState.LOCKED.value,
            )
            if won:
                self.grade_repo.overwrite_grade(
                    submission_id,
                    component_skill_id,
                    rubric_level=level,
                    feedback=new_feedback,
                    graded_by=edited_by,
                )
        if not won:
            self._lost_race(submission_id, grade_set.version)

        grade = Grade.model_validate(self.grade_repo.get_grade(submission_id, component_skill_id))
        metrics.grade_edits_total.labels(outcome="saved").inc()
        logger.info(
            "Grade edit saved and re-locked",
            extra={
                "submission_id": submission_id,
                "component_skill_id": component_skill_id,
                "previous_level": previous_level.label,
                "rubric_level": level.label,
                "edited_by": edited_by,
                "feedback": sanitize_for_logs(new_feedback),
            },
        )
        self._publish([
            GradeEdited(
                submission_id=submission_id,
                student_id=grade.student_id,
                component_skill_id=component_skill_id,
                previous_level=previous_level,
                rubric_level=level,
                graded_by=edited_by,
            )
        ])
        return grade

    def cancel_edit(self, submission_id: str, component_skill_id: str) -> Grade:
        """Discard the edit and re-lock; emits nothing"""
        grade_set = self._require_editing(submission_id, component_skill_id)

        with transaction(self.db, "Cancel grade edit"):
            won = self.grade_repo.compare_and_set(
                submission_id,
                expected_version=grade_set.version,
                state=GradeSetState.LOCKED.value,
            )
            if won:
                self.grade_repo.set_locked(submission_id, component_skill_id, True)
        if not won:
            self._lost_race(submission_id, grade_set.version)

        metrics.grade_edits_total.labels(outcome="cancelled").inc()
        logger.info(
            "Grade edit cancelled",
            extra={"submission_id": submission_id, "component_skill_id": component_skill_id},
        )
        return Grade.model_validate(self.grade_repo.get_grade(submission_id, component_skill_id))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_grades(self, submission_id: str) -> List[Grade]:
        return [Grade.model_validate(row) for row in self.grade_repo.get_by_submission(submission_id)]

    def get_state(self, submission_id: str) -> GradeSetStatus:
        """Locking state; UNGRADED when the submission has no grade set yet"""
        grade_set = self.grade_repo.get_grade_set(submission_id)
        if grade_set is None:
            if self.submission_repo.get_by_id(submission_id) is None:
                raise SubmissionNotFoundError(submission_id)
            return GradeSetStatus(submission_id=submission_id, state=GradeSetState.UNGRADED)
        return GradeSetStatus(
            submission_id=submission_id,
            state=GradeSetState(grade_set.state),
            editing_skill_id=grade_set.editing_skill_id,
            version=grade_set.version,
            locked_at=grade_set.locked_at,
            graded_by=grade_set.graded_by,
            ai_assisted=grade_set.ai_assisted,
            source_document_ref=grade_set.source_document_ref,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_grade_set(self, submission_id: str):
        grade_set = self.grade_repo.get_grade_set(submission_id)
        if grade_set is None:
            if self.submission_repo.get_by_id(submission_id) is None:
                raise SubmissionNotFoundError(submission_id)
            self._conflict(NotLockedError(submission_id, GradeSetState.UNGRADED.value))
        return grade_set

    def _require_editing(self, submission_id: str, component_skill_id: str):
        grade_set = self.grade_repo.get_grade_set(submission_id)
        if grade_set is None:
            if self.submission_repo.get_by_id(submission_id) is None:
                raise SubmissionNotFoundError(submission_id)
            self._conflict(NotEditingError(submission_id, component_skill_id))
        if grade_set.state != GradeSetState.EDITING.value or grade_set.editing_skill_id != component_skill_id:
            self._conflict(NotEditingError(submission_id, component_skill_id))
        return grade_set

    def _lost_race(self, submission_id: str, expected_version: int) -> None:
        current = self.grade_repo.get_grade_set(submission_id)
        if current is not None and current.state == GradeSetState.EDITING.value:
            self._conflict(AlreadyEditingError(submission_id, current.editing_skill_id))
        self._conflict(ConcurrentModificationError(submission_id, expected_version))

    def _conflict(self, error: ConflictError) -> None:
        metrics.grading_conflicts_total.labels(reason=error.error_code).inc()
        logger.warning(error.message, extra=error.details)
        raise error

    def _publish(self, events) -> None:
        if self.event_bus is None:
            return
        for event in events:
            self.event_bus.publish(event)
