"""
Test: REST adapter - routes, status codes and error envelopes.

The per-request engine is replaced with the in-memory test engine through
``dependency_overrides``; the lifespan (and its database setup) is not run.
"""
import pytest
from fastapi.testclient import TestClient

from grading_engine.api.app import API_PREFIX, create_app
from grading_engine.api.deps import get_grading_engine
from grading_engine.core.constants import AI_FEEDBACK_FALLBACK
from grading_engine.core.engine import GradingEngine
from grading_engine.database.models import SubmissionDB
from grading_engine.database.repositories import AssessmentRepository, SubmissionRepository
from grading_engine.llm.mock import MockLLMProvider

from .conftest import ASSESSMENT, SCHOOL, TEACHER


@pytest.fixture
def client(engine):
    app = create_app()
    app.dependency_overrides[get_grading_engine] = lambda: engine
    return TestClient(app)


@pytest.fixture
def submission_id(make_submission):
    return make_submission("student-1")


def _submit(client, submission_id, grades):
    return client.post(
        f"{API_PREFIX}/submissions/{submission_id}/grades",
        json={"graded_by": TEACHER, "grades": grades},
    )


class TestGradingRoutes:
    def test_submit_and_read_back(self, client, submission_id):
        response = _submit(
            client,
            submission_id,
            [{"component_skill_id": "S1", "rubric_level": "proficient"}, {"component_skill_id": "S2", "rubric_level": 4}],
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["state"] == "locked"

        response = client.get(f"{API_PREFIX}/submissions/{submission_id}/grades")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"]["state"] == "locked"
        assert sorted(grade["rubric_level"] for grade in data["grades"]) == [3, 4]

    def test_second_submit_is_conflict(self, client, submission_id):
        grades = [{"component_skill_id": "S1", "rubric_level": "proficient"}]
        assert _submit(client, submission_id, grades).status_code == 201

        response = _submit(client, submission_id, grades)
        assert response.status_code == 409
        assert response.json()["success"] is False
        assert response.json()["error"]["error_code"] == "ALREADY_GRADED"

    def test_validation_errors_are_400(self, client, submission_id):
        response = _submit(client, submission_id, [{"component_skill_id": "S1", "rubric_level": "excellent"}])
        assert response.status_code == 400
        assert response.json()["error"]["error_code"] == "INVALID_RUBRIC_LEVEL"

        assert _submit(client, submission_id, []).status_code == 400

    def test_unknown_submission_is_404(self, client):
        response = client.get(f"{API_PREFIX}/submissions/missing/grades")
        assert response.status_code == 404
        assert response.json()["error"]["details"] == {"submission_id": "missing"}

    def test_edit_workflow(self, client, submission_id):
        _submit(client, submission_id, [{"component_skill_id": "S1", "rubric_level": "developing"}])
        edit_url = f"{API_PREFIX}/submissions/{submission_id}/grades/S1/edit"

        response = client.post(edit_url)
        assert response.status_code == 200
        assert response.json()["data"]["locked"] is False
        assert client.post(edit_url).status_code == 409

        response = client.put(edit_url, json={"edited_by": TEACHER, "rubric_level": "applying", "feedback": "Revised"})
        assert response.status_code == 200
        assert response.json()["data"]["rubric_level"] == 4

        assert client.delete(edit_url).status_code == 409
        client.post(edit_url)
        assert client.delete(edit_url).json()["data"]["rubric_level"] == 4


class TestFeedbackRoutes:
    @pytest.fixture
    def answered(self, db):
        assessment = AssessmentRepository(db).create(
            title="Bridge design project",
            component_skill_ids=["S1"],
            teacher_id=TEACHER,
            questions=[{"text": "Why did your first bridge sag?"}],
        )
        return SubmissionRepository(db).create(
            assessment_id=assessment.id, student_id="student-1", responses=["The deck was too thin"]
        ).id

    @pytest.fixture
    def failing_client(self, db, hierarchy, sink):
        engine = GradingEngine(
            db, hierarchy, llm_provider=MockLLMProvider({"error": TimeoutError("llm down")}), notification_sink=sink
        )
        app = create_app()
        app.dependency_overrides[get_grading_engine] = lambda: engine
        return TestClient(app)

    def test_submission_feedback_is_stored(self, client, db, answered):
        _submit(client, answered, [{"component_skill_id": "S1", "rubric_level": "proficient"}])

        response = client.post(f"{API_PREFIX}/submissions/{answered}/feedback")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["fallback"] is False
        assert data["feedback"].startswith("Good progress.")
        stored = db.get(SubmissionDB, answered)
        db.refresh(stored)
        assert stored.feedback == data["feedback"]

    def test_submission_feedback_falls_back(self, failing_client, db, answered):
        _submit(failing_client, answered, [{"component_skill_id": "S1", "rubric_level": "proficient"}])

        response = failing_client.post(f"{API_PREFIX}/submissions/{answered}/feedback")

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["fallback"] is True
        assert body["data"]["feedback"] == AI_FEEDBACK_FALLBACK
        assert body["message"] == "AI feedback unavailable, fallback text stored"
        stored = db.get(SubmissionDB, answered)
        db.refresh(stored)
        assert stored.feedback == AI_FEEDBACK_FALLBACK

    def test_submission_feedback_requires_grades(self, client, answered):
        response = client.post(f"{API_PREFIX}/submissions/{answered}/feedback")
        assert response.status_code == 409
        assert response.json()["error"]["error_code"] == "NOT_LOCKED"

    def test_question_feedback(self, client, failing_client, answered):
        url = f"{API_PREFIX}/submissions/{answered}/question-feedback"

        response = client.post(url, json={"question_index": 0, "rubric_level": 2})
        assert response.status_code == 200
        assert response.json()["data"]["rubric_level"] == 2
        assert response.json()["data"]["fallback"] is False

        response = failing_client.post(url, json={"question_index": 0})
        assert response.json()["data"]["feedback"] == AI_FEEDBACK_FALLBACK
        assert response.json()["data"]["fallback"] is True

        assert client.post(url, json={"question_index": 5}).status_code == 400
        missing = client.post(f"{API_PREFIX}/submissions/missing/question-feedback", json={"question_index": 0})
        assert missing.status_code == 404


class TestAnalyticsRoutes:
    @pytest.fixture(autouse=True)
    def graded(self, grade):
        grade("student-1", "S1", "applying")
        grade("student-2", "S1", "emerging")
        grade("student-9", "S1", "emerging")

    def test_skill_stat_with_school_filter(self, client):
        response = client.get(f"{API_PREFIX}/analytics/skill/S1", params={"school_id": SCHOOL})
        assert response.status_code == 200
        stat = response.json()["data"]
        assert stat["students_assessed"] == 2
        assert stat["average_score"] == 2.5
        assert stat["pass_rate"] == 50.0

    def test_school_scope_uses_path_id(self, client):
        stat = client.get(f"{API_PREFIX}/analytics/school/{SCHOOL}").json()["data"]
        assert stat["scope"]["school_id"] == SCHOOL
        assert stat["total_students"] == 4

    def test_unknown_kind_and_scope(self, client):
        response = client.get(f"{API_PREFIX}/analytics/galaxy/S1")
        assert response.status_code == 400
        assert response.json()["error"]["error_code"] == "INVALID_SCOPE_KIND"
        assert client.get(f"{API_PREFIX}/analytics/competency/C404").status_code == 404

    def test_dashboards(self, client):
        rows = client.get(f"{API_PREFIX}/analytics/school/{SCHOOL}/skills").json()["data"]
        assert [row["skill_id"] for row in rows] == ["S1"]

        summary = client.get(f"{API_PREFIX}/analytics/school/{SCHOOL}/summary").json()["data"]
        assert summary["total_skills_assessed"] == 1

        progress = client.get(f"{API_PREFIX}/analytics/students/student-1/progress").json()["data"]
        assert progress[0]["component_skill_id"] == "S1"


class TestCredentialRoutes:
    def test_list_and_evaluate(self, client, grade):
        grade("student-1", "S1", "proficient")
        grade("student-1", "S2", "applying")

        response = client.get(f"{API_PREFIX}/students/student-1/credentials")
        assert response.status_code == 200
        assert {c["credential_type"] for c in response.json()["data"]} == {"sticker", "badge"}

        badges = client.get(f"{API_PREFIX}/students/student-1/credentials", params={"credential_type": "badge"})
        assert [c["scope_id"] for c in badges.json()["data"]] == ["C1"]

        response = client.post(f"{API_PREFIX}/students/student-1/credentials/evaluate/S2")
        assert response.status_code == 200
        assert response.json()["data"] == []


class TestSafetyRoutes:
    def test_self_evaluation_is_accepted(self, client):
        response = client.post(
            f"{API_PREFIX}/self-evaluations",
            json={
                "student_id": "student-1",
                "self_assessed_level": "developing",
                "justification": "I present well but my skill at testing needs work",
                "component_skill_id": "S2",
                "assessment_id": ASSESSMENT,
            },
        )
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["self_assessed_level"] == "developing"
        assert data["has_risky_content"] is False
        assert data["ai_improvement_feedback"].startswith("Good progress.")

    def test_empty_justification_is_400(self, client):
        response = client.post(
            f"{API_PREFIX}/self-evaluations",
            json={"student_id": "student-1", "self_assessed_level": 2, "justification": ""},
        )
        assert response.status_code == 400

    def test_incident_lifecycle(self, client):
        response = client.post(
            f"{API_PREFIX}/safety-incidents",
            json={
                "student_id": "student-2",
                "teacher_id": TEACHER,
                "incident_type": "bullying",
                "message": "Reported after recess",
                "severity": "high",
            },
        )
        assert response.status_code == 201
        incident_id = response.json()["data"]["id"]

        open_incidents = client.get(f"{API_PREFIX}/safety-incidents", params={"teacher_id": TEACHER}).json()["data"]
        assert [i["id"] for i in open_incidents] == [incident_id]

        response = client.patch(f"{API_PREFIX}/safety-incidents/{incident_id}/status", json={"status": "investigating"})
        assert response.json()["data"]["status"] == "investigating"
        assert client.patch(
            f"{API_PREFIX}/safety-incidents/{incident_id}/status", json={"status": "archived"}
        ).status_code == 400

        response = client.post(
            f"{API_PREFIX}/safety-incidents/{incident_id}/resolve",
            json={"resolved_by": TEACHER, "resolution_notes": "Counselor follow-up"},
        )
        assert response.status_code == 200
        assert response.json()["data"]["resolved"] is True
        assert client.get(f"{API_PREFIX}/safety-incidents").json()["data"] == []

    def test_resolve_unknown_incident_is_404(self, client):
        response = client.post(f"{API_PREFIX}/safety-incidents/missing/resolve", json={"resolved_by": TEACHER})
        assert response.status_code == 404


class TestMonitoringRoutes:
    def test_health(self, client):
        assert client.get("/health").json()["status"] == "ok"

    def test_metrics(self, client, grade):
        grade("student-1", "S1", "proficient")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "grading_engine_grades_submitted_total" in response.text
