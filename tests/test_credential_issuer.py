"""
Test: Credential issuance - sticker → badge → plaque cascade, idempotence,
monotonic awards and concurrent issuance.
"""
import logging
import threading

import pytest

from grading_engine.core.credential_issuer import CredentialIssuer
from grading_engine.core.engine import GradingEngine
from grading_engine.core.grade_store import GradeStore
from grading_engine.database.models import NotificationDB
from grading_engine.database.repositories import (
    AssessmentRepository,
    CredentialRepository,
    GradeRepository,
    HierarchyRepository,
    SubmissionRepository,
)
from grading_engine.models.credential import CredentialType
from grading_engine.models.rubric import RubricLevel, SkillHierarchy

from .conftest import ASSESSMENT, TEACHER


def _issued(sink):
    return [(event.credential_type.value, event.scope_id) for event in sink.of_kind("credential_issued")]


def _plain_grade_store(db):
    """Grade store without an event bus: grades land, nothing reacts"""
    return GradeStore(GradeRepository(db), SubmissionRepository(db), AssessmentRepository(db))


class TestCascade:
    def test_sticker_then_badge_on_completing_grade(self, engine, grade, sink):
        grade("student-1", "S1", "applying")
        assert _issued(sink) == [("sticker", "S1")]

        grade("student-1", "S2", "proficient")
        assert _issued(sink) == [("sticker", "S1"), ("sticker", "S2"), ("badge", "C1")]

        credentials = engine.credentials.list_credentials("student-1")
        assert len(credentials) == 3
        sticker = next(c for c in credentials if c.scope_id == "S1")
        assert sticker.title == "Applying Defines the problem"
        assert sticker.icon_url == "green"
        assert sticker.rubric_level == RubricLevel.APPLYING
        badge = next(c for c in credentials if c.credential_type == CredentialType.BADGE)
        assert badge.title == "Problem Solving Badge"
        assert badge.awarded_by == TEACHER

    def test_below_threshold_earns_nothing(self, engine, grade, sink):
        grade("student-1", "S1", "developing")
        assert _issued(sink) == []
        assert engine.credentials.list_credentials("student-1") == []

    def test_plaque_when_every_competency_is_complete(self, engine, grade, sink):
        grade("student-1", "S1", "proficient")
        grade("student-1", "S2", "proficient")
        grade("student-1", "S3", "applying")

        assert ("plaque", "O1") in _issued(sink)
        plaques = engine.credentials.list_credentials("student-1", CredentialType.PLAQUE)
        assert [p.title for p in plaques] == ["Critical Thinker Plaque"]
        assert plaques[0].icon_url == "platinum"
        assert engine.credentials.find_cascade_violations("student-1") == []

    def test_evaluate_is_idempotent(self, engine, grade):
        grade("student-1", "S1", "proficient")
        grade("student-1", "S2", "proficient")

        assert engine.credentials.evaluate("student-1", "S2") == []
        repo = CredentialRepository(engine.db)
        assert [c.scope_id for c in repo.get_by_student("student-1", "badge")] == ["C1"]
        assert sorted(c.scope_id for c in repo.get_by_student("student-1", "sticker")) == ["S1", "S2"]

    def test_other_students_are_independent(self, engine, grade):
        grade("student-1", "S1", "proficient")
        grade("student-2", "S2", "proficient")

        assert CredentialRepository(engine.db).get("student-1", "badge", "C1") is None
        assert CredentialRepository(engine.db).get("student-2", "badge", "C1") is None


class TestMonotonicAwards:
    def test_regrade_down_does_not_retract(self, engine, grade, sink):
        grade("student-1", "S1", "applying")
        grade("student-1", "S1", "developing")

        stickers = engine.credentials.list_credentials("student-1", CredentialType.STICKER)
        assert len(stickers) == 1
        assert stickers[0].rubric_level == RubricLevel.APPLYING

    def test_edit_down_does_not_retract(self, engine, make_submission):
        submission_id = make_submission("student-1")
        engine.grade_store.submit_grades(submission_id, [("S1", "proficient"), ("S2", "proficient")], graded_by=TEACHER)
        engine.grade_store.begin_edit(submission_id, "S2")
        engine.grade_store.save_edit(submission_id, "S2", "emerging", None, edited_by=TEACHER)

        assert CredentialRepository(engine.db).get("student-1", "badge", "C1") is not None
        assert engine.credentials.find_cascade_violations("student-1") == []

    def test_sticker_upgrades_in_place(self, engine, grade):
        grade("student-1", "S1", "proficient")
        first = CredentialRepository(engine.db).get("student-1", "sticker", "S1")
        assert first.icon_url == "blue"

        grade("student-1", "S1", "applying")

        stickers = engine.credentials.list_credentials("student-1", CredentialType.STICKER)
        assert len(stickers) == 1
        assert stickers[0].id == first.id
        assert stickers[0].rubric_level == RubricLevel.APPLYING
        assert stickers[0].title == "Applying Defines the problem"


class TestIntegrity:
    def test_malformed_hierarchy_is_logged_not_raised(self, db):
        _plain_grade_store(db).submit_grades(
            SubmissionRepository(db).create(assessment_id=ASSESSMENT, student_id="student-2").id,
            [("S1", "proficient")],
            graded_by=TEACHER,
        )
        broken = SkillHierarchy.build(outcomes=[], competencies=[], skills=[("S1", "Defines the problem", "C1")])
        issuer = CredentialIssuer(CredentialRepository(db), GradeRepository(db), broken)

        issued = issuer.evaluate("student-2", "S1")

        assert [(c.credential_type, c.scope_id) for c in issued] == [(CredentialType.STICKER, "S1")]
        assert CredentialRepository(db).get("student-2", "badge", "C1") is None

    def test_unknown_skill_issues_nothing(self, engine):
        assert engine.credentials.evaluate("student-1", "S404") == []

    def test_cascade_violation_is_reported(self, db, engine):
        CredentialRepository(db).try_create("student-3", "badge", "C1", title="Problem Solving Badge")
        violations = engine.credentials.find_cascade_violations("student-3")
        assert violations == ["badge C1 without sticker S1", "badge C1 without sticker S2"]

    def test_database_sink_notifies_student(self, db, hierarchy, make_submission):
        engine = GradingEngine(db, hierarchy)
        engine.grade_store.submit_grades(make_submission("student-4"), [("S1", "applying")], graded_by=TEACHER)

        notifications = db.query(NotificationDB).filter_by(user_id="student-4").all()
        assert [n.notification_type for n in notifications] == ["credential_issued"]
        assert notifications[0].message == "You earned: Applying Defines the problem"


class TestConcurrentIssuance:
    @pytest.mark.parametrize("workers", [8])
    def test_exactly_one_badge(self, file_db_config, workers, caplog):
        setup = file_db_config.new_session()
        try:
            submission_id = SubmissionRepository(setup).create(assessment_id=ASSESSMENT, student_id="student-1").id
            _plain_grade_store(setup).submit_grades(
                submission_id, [("S1", "proficient"), ("S2", "applying")], graded_by=TEACHER
            )
            hierarchy = HierarchyRepository(setup).load_hierarchy()
        finally:
            setup.close()

        barrier = threading.Barrier(workers)
        issued = []

        def evaluate(skill_id):
            session = file_db_config.new_session()
            try:
                issuer = CredentialIssuer(CredentialRepository(session), GradeRepository(session), hierarchy)
                barrier.wait()
                issued.extend(issuer.evaluate("student-1", skill_id))
            finally:
                session.close()

        threads = [threading.Thread(target=evaluate, args=("S1" if i % 2 else "S2",)) for i in range(workers)]
        with caplog.at_level(logging.WARNING, logger="grading_engine.core.credential_issuer"):
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        assert [record.getMessage() for record in caplog.records if record.levelno >= logging.ERROR] == []
        assert sorted((c.credential_type.value, c.scope_id) for c in issued) == [
            ("badge", "C1"),
            ("sticker", "S1"),
            ("sticker", "S2"),
        ]
        check = file_db_config.new_session()
        try:
            stored = CredentialRepository(check).get_by_student("student-1")
            assert sorted((c.credential_type, c.scope_id) for c in stored) == [
                ("badge", "C1"),
                ("sticker", "S1"),
                ("sticker", "S2"),
            ]
        finally:
            check.close()
