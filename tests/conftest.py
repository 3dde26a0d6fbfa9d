"""
Shared fixtures: an in-memory SQLite database seeded with a small skill
hierarchy, roster and assessment.

    O1 "Critical Thinker"
      C1 "Problem Solving"   S1 "Defines the problem", S2 "Tests solutions"
      C2 "Reflection"        S3 "Reflects on feedback"

No network calls; the LLM provider is the mock provider.
"""
import pytest
from sqlalchemy.pool import StaticPool

from grading_engine.core.cache import AggregateStatCache
from grading_engine.core.engine import GradingEngine
from grading_engine.database.config import DatabaseConfig
from grading_engine.database.repositories import (
    AssessmentRepository,
    HierarchyRepository,
    SubmissionRepository,
    UserRepository,
)
from grading_engine.llm.mock import MockLLMProvider
from grading_engine.services.safety_classifiers import KeywordSafetyClassifier

SCHOOL = "school-1"
TEACHER = "teacher-1"
STUDENTS = ["student-1", "student-2", "student-3", "student-4"]
ASSESSMENT = "assessment-1"


class RecordingSink:
    """Notification sink that keeps every delivered event"""

    def __init__(self):
        self.events = []

    def deliver(self, event):
        self.events.append(event)

    def of_kind(self, kind):
        return [event for event in self.events if event.kind == kind]


def seed(db):
    hierarchy = HierarchyRepository(db)
    hierarchy.create_outcome("Critical Thinker", id="O1")
    hierarchy.create_competency("Problem Solving", learner_outcome_id="O1", id="C1")
    hierarchy.create_competency("Reflection", learner_outcome_id="O1", id="C2")
    hierarchy.create_skill("Defines the problem", competency_id="C1", id="S1")
    hierarchy.create_skill("Tests solutions", competency_id="C1", id="S2")
    hierarchy.create_skill("Reflects on feedback", competency_id="C2", id="S3")

    users = UserRepository(db)
    users.create("teacher", role="teacher", school_id=SCHOOL, id=TEACHER)
    for index, student_id in enumerate(STUDENTS):
        users.create(f"student{index + 1}", role="student", school_id=SCHOOL, grade_level="7", id=student_id)
    users.create("student_other", role="student", school_id="school-2", grade_level="8", id="student-9")

    AssessmentRepository(db).create(
        title="Bridge design project",
        component_skill_ids=["S1", "S2", "S3"],
        teacher_id=TEACHER,
        id=ASSESSMENT,
    )


@pytest.fixture
def db_config():
    config = DatabaseConfig(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    config.create_all()
    yield config
    config.dispose()


@pytest.fixture
def file_db_config(tmp_path):
    """Seeded file database for tests that use one session per thread"""
    config = DatabaseConfig(f"sqlite:///{tmp_path / 'grading.db'}")
    config.create_all()
    session = config.new_session()
    try:
        seed(session)
    finally:
        session.close()
    yield config
    config.dispose()


@pytest.fixture
def db(db_config):
    session = db_config.new_session()
    seed(session)
    yield session
    session.close()


@pytest.fixture
def hierarchy(db):
    return HierarchyRepository(db).load_hierarchy()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def llm_provider():
    return MockLLMProvider()


@pytest.fixture
def engine(db, hierarchy, sink, llm_provider):
    return GradingEngine(
        db,
        hierarchy,
        stat_cache=AggregateStatCache(),
        classifier=KeywordSafetyClassifier(),
        llm_provider=llm_provider,
        notification_sink=sink,
    )


@pytest.fixture
def make_submission(db):
    """Factory: new submission of the seeded assessment for a student"""
    repo = SubmissionRepository(db)

    def _make(student_id="student-1", assessment_id=ASSESSMENT):
        return repo.create(assessment_id=assessment_id, student_id=student_id).id

    return _make


@pytest.fixture
def grade(engine, make_submission):
    """Factory: grade one skill for a student on a fresh submission"""

    def _grade(student_id, skill_id, level, graded_by=TEACHER):
        submission_id = make_submission(student_id)
        engine.grade_store.submit_grades(
            submission_id, [{"component_skill_id": skill_id, "rubric_level": level}], graded_by=graded_by
        )
        return submission_id

    return _grade
