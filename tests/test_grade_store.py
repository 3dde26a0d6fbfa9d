"""
Test: Grade Store lock state machine - submit, begin/save/cancel edit,
validation and concurrent submission.
"""
import threading

import pytest

from grading_engine.core.exceptions import (
    AlreadyEditingError,
    AlreadyGradedError,
    ConflictError,
    DuplicateSkillError,
    EmptyGradeSetError,
    InvalidRubricLevelError,
    NotEditingError,
    NotLockedError,
    SubmissionNotFoundError,
    UnknownSkillError,
    ValidationError,
)
from grading_engine.core.grade_store import GradeStore
from grading_engine.database.repositories import AssessmentRepository, GradeRepository, SubmissionRepository
from grading_engine.models.events import GradeEdited, GradeSubmitted
from grading_engine.models.grade import GradeEntry, GradeSetState
from grading_engine.models.rubric import RubricLevel

from .conftest import ASSESSMENT, TEACHER

FULL_SET = [
    {"component_skill_id": "S1", "rubric_level": "proficient", "feedback": "Clear problem statement"},
    {"component_skill_id": "S2", "rubric_level": "developing"},
    ("S3", 4, "Thoughtful reflection"),
]


@pytest.fixture
def recorded(engine):
    events = []
    engine.event_bus.subscribe(GradeSubmitted, events.append)
    engine.event_bus.subscribe(GradeEdited, events.append)
    return events


@pytest.fixture
def graded(engine, make_submission):
    submission_id = make_submission("student-1")
    engine.grade_store.submit_grades(submission_id, FULL_SET, graded_by=TEACHER)
    return submission_id


class TestSubmitGrades:
    def test_submit_locks_and_persists(self, engine, make_submission, recorded):
        submission_id = make_submission("student-1")
        assert engine.grade_store.get_state(submission_id).state == GradeSetState.UNGRADED

        result = engine.grade_store.submit_grades(submission_id, FULL_SET, graded_by=TEACHER, ai_assisted=True)

        assert result.state == GradeSetState.LOCKED
        assert result.student_id == "student-1"
        levels = {grade.component_skill_id: grade.rubric_level for grade in result.grades}
        assert levels == {"S1": RubricLevel.PROFICIENT, "S2": RubricLevel.DEVELOPING, "S3": RubricLevel.APPLYING}
        assert all(grade.locked for grade in result.grades)

        status = engine.grade_store.get_state(submission_id)
        assert status.state == GradeSetState.LOCKED
        assert status.editing_skill_id is None
        assert status.ai_assisted is True
        assert [event.component_skill_id for event in recorded] == ["S1", "S2", "S3"]

    def test_grade_entry_models_are_accepted(self, engine, make_submission):
        submission_id = make_submission("student-2")
        result = engine.grade_store.submit_grades(
            submission_id, [GradeEntry(component_skill_id="S1", rubric_level="emerging")], graded_by=TEACHER
        )
        assert result.grades[0].score == 1.0

    def test_double_submit_is_rejected_without_duplicates(self, engine, graded, recorded):
        with pytest.raises(AlreadyGradedError) as exc_info:
            engine.grade_store.submit_grades(graded, FULL_SET, graded_by=TEACHER)

        assert isinstance(exc_info.value, ConflictError)
        assert not isinstance(exc_info.value, ValidationError)
        assert len(GradeRepository(engine.db).get_by_submission(graded)) == 3
        assert recorded == []

    def test_resubmit_while_editing_is_rejected(self, engine, graded):
        engine.grade_store.begin_edit(graded, "S1")
        with pytest.raises(AlreadyGradedError):
            engine.grade_store.submit_grades(graded, FULL_SET, graded_by=TEACHER)

    def test_empty_set(self, engine, make_submission):
        with pytest.raises(EmptyGradeSetError):
            engine.grade_store.submit_grades(make_submission(), [], graded_by=TEACHER)

    def test_duplicate_skill(self, engine, make_submission):
        entries = [("S1", "proficient"), ("S1", "applying")]
        with pytest.raises(DuplicateSkillError):
            engine.grade_store.submit_grades(make_submission(), entries, graded_by=TEACHER)

    def test_skill_not_configured_for_assessment(self, db, engine):
        AssessmentRepository(db).create(title="Short quiz", component_skill_ids=["S1"], id="assessment-2")
        submission_id = SubmissionRepository(db).create(assessment_id="assessment-2", student_id="student-1").id

        with pytest.raises(UnknownSkillError):
            engine.grade_store.submit_grades(submission_id, [("S2", "proficient")], graded_by=TEACHER)
        assert engine.grade_store.get_state(submission_id).state == GradeSetState.UNGRADED

    def test_invalid_level(self, engine, make_submission):
        with pytest.raises(InvalidRubricLevelError):
            engine.grade_store.submit_grades(make_submission(), [("S1", "excellent")], graded_by=TEACHER)

    def test_unknown_submission(self, engine):
        with pytest.raises(SubmissionNotFoundError):
            engine.grade_store.submit_grades("missing", [("S1", "proficient")], graded_by=TEACHER)
        with pytest.raises(SubmissionNotFoundError):
            engine.grade_store.get_state("missing")


class TestEditWorkflow:
    def test_begin_edit_unlocks_one_skill(self, engine, graded):
        grade = engine.grade_store.begin_edit(graded, "S1")

        assert grade.component_skill_id == "S1"
        assert grade.locked is False
        status = engine.grade_store.get_state(graded)
        assert status.state == GradeSetState.EDITING
        assert status.editing_skill_id == "S1"

    def test_second_edit_is_rejected_while_editing(self, engine, graded):
        engine.grade_store.begin_edit(graded, "S1")
        with pytest.raises(AlreadyEditingError):
            engine.grade_store.begin_edit(graded, "S2")
        with pytest.raises(AlreadyEditingError):
            engine.grade_store.begin_edit(graded, "S1")

    def test_save_edit_relocks_and_allows_another_edit(self, engine, graded, recorded):
        engine.grade_store.begin_edit(graded, "S2")
        saved = engine.grade_store.save_edit(graded, "S2", "applying", "Much better iteration", edited_by=TEACHER)

        assert saved.rubric_level == RubricLevel.APPLYING
        assert saved.feedback == "Much better iteration"
        assert saved.locked is True
        status = engine.grade_store.get_state(graded)
        assert status.state == GradeSetState.LOCKED
        assert status.editing_skill_id is None

        edited = [event for event in recorded if isinstance(event, GradeEdited)]
        assert len(edited) == 1
        assert edited[0].previous_level == RubricLevel.DEVELOPING
        assert edited[0].rubric_level == RubricLevel.APPLYING

        other = engine.grade_store.begin_edit(graded, "S3")
        assert other.component_skill_id == "S3"

    def test_cancel_edit_keeps_grade_and_emits_nothing(self, engine, graded, recorded):
        engine.grade_store.begin_edit(graded, "S1")
        grade = engine.grade_store.cancel_edit(graded, "S1")

        assert grade.rubric_level == RubricLevel.PROFICIENT
        assert grade.locked is True
        assert engine.grade_store.get_state(graded).state == GradeSetState.LOCKED
        assert recorded == []

    def test_save_edit_for_other_skill_is_rejected(self, engine, graded):
        engine.grade_store.begin_edit(graded, "S1")
        with pytest.raises(NotEditingError):
            engine.grade_store.save_edit(graded, "S2", "applying", None, edited_by=TEACHER)

    def test_save_edit_when_locked_is_rejected(self, engine, graded):
        with pytest.raises(NotEditingError):
            engine.grade_store.save_edit(graded, "S1", "applying", None, edited_by=TEACHER)
        with pytest.raises(NotEditingError):
            engine.grade_store.cancel_edit(graded, "S1")

    def test_invalid_level_leaves_edit_open(self, engine, graded):
        engine.grade_store.begin_edit(graded, "S1")
        with pytest.raises(InvalidRubricLevelError):
            engine.grade_store.save_edit(graded, "S1", "expert", None, edited_by=TEACHER)
        assert engine.grade_store.get_state(graded).state == GradeSetState.EDITING

    def test_begin_edit_on_ungraded_submission(self, engine, make_submission):
        with pytest.raises(NotLockedError):
            engine.grade_store.begin_edit(make_submission(), "S1")

    def test_begin_edit_on_skill_outside_grade_set(self, engine, make_submission):
        submission_id = make_submission()
        engine.grade_store.submit_grades(submission_id, [("S1", "proficient")], graded_by=TEACHER)
        with pytest.raises(UnknownSkillError):
            engine.grade_store.begin_edit(submission_id, "S2")

    def test_stale_version_loses_compare_and_set(self, engine, graded):
        repo = GradeRepository(engine.db)
        version = repo.get_grade_set(graded).version
        engine.grade_store.begin_edit(graded, "S1")

        assert repo.compare_and_set(graded, expected_version=version, state="editing", editing_skill_id="S2") is False
        engine.db.rollback()
        assert repo.get_grade_set(graded).editing_skill_id == "S1"


class TestConcurrentSubmission:
    def test_only_one_concurrent_submit_wins(self, file_db_config):
        setup = file_db_config.new_session()
        submission_id = SubmissionRepository(setup).create(assessment_id=ASSESSMENT, student_id="student-1").id
        setup.close()

        workers = 6
        barrier = threading.Barrier(workers)
        outcomes = []
        lock = threading.Lock()

        def submit(level):
            session = file_db_config.new_session()
            store = GradeStore(GradeRepository(session), SubmissionRepository(session), AssessmentRepository(session))
            barrier.wait()
            try:
                store.submit_grades(submission_id, [("S1", level), ("S2", level)], graded_by=TEACHER)
                result = "won"
            except ConflictError:
                result = "conflict"
            finally:
                session.close()
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=submit, args=(1 + index % 4,)) for index in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("won") == 1
        assert outcomes.count("conflict") == workers - 1

        check = file_db_config.new_session()
        try:
            assert len(GradeRepository(check).get_by_submission(submission_id)) == 2
        finally:
            check.close()
