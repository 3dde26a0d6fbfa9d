"""
Test: AI-assisted feedback on graded submissions - stored text, per-question
drafts and the fallback when the provider fails.
"""
import pytest

from grading_engine.core.constants import AI_FEEDBACK_FALLBACK
from grading_engine.core.engine import GradingEngine
from grading_engine.core.exceptions import NotLockedError, SubmissionNotFoundError, ValidationError
from grading_engine.core.submission_feedback import response_for_question, sanitize_for_prompt
from grading_engine.database.models import SubmissionDB
from grading_engine.database.repositories import AssessmentRepository, SubmissionRepository
from grading_engine.llm.mock import MockLLMProvider
from grading_engine.models.rubric import RubricLevel

from .conftest import TEACHER

QUESTIONS = [
    {"text": "Why did your first bridge sag?", "rubric_criteria": "Names the load path", "sample_answer": "Weak truss"},
    {"text": "How did you test the second design?"},
    {"text": "   "},
]


@pytest.fixture
def project_submission(db):
    """Submission of a three-question assessment; the third answer is missing"""
    assessment = AssessmentRepository(db).create(
        title="Bridge design project", component_skill_ids=["S1", "S2"], teacher_id=TEACHER, questions=QUESTIONS
    )
    return SubmissionRepository(db).create(
        assessment_id=assessment.id,
        student_id="student-1",
        responses={"0": "The deck\x00 was   too thin", "1": {"answer": "We loaded it with sandbags"}},
    ).id


def _lock(engine, submission_id):
    engine.grade_store.submit_grades(submission_id, [("S1", "developing"), ("S2", "proficient")], graded_by=TEACHER)


class TestPromptText:
    def test_sanitize(self):
        assert sanitize_for_prompt("a\x00b\n\n  c ") == "a b c"
        assert sanitize_for_prompt(None) == ""
        assert len(sanitize_for_prompt("x" * 6000)) == 5000

    def test_responses_as_list_or_mapping(self):
        assert response_for_question(["first", {"answer": "second"}], 1) == "second"
        assert response_for_question({"0": "first"}, 0) == "first"
        assert response_for_question(["first"], 3) == ""
        assert response_for_question(None, 0) == ""


class TestSubmissionFeedback:
    async def test_feedback_is_generated_and_stored(self, db, engine, llm_provider, project_submission):
        _lock(engine, project_submission)

        result = await engine.submission_feedback.generate_submission_feedback(project_submission)

        assert result.fallback is False
        assert result.feedback.startswith("Good progress.")
        stored = db.get(SubmissionDB, project_submission)
        db.refresh(stored)
        assert stored.feedback == result.feedback
        assert stored.ai_generated_feedback is True

        prompt = llm_provider.calls[-1][-1].content
        assert "Defines the problem: Developing (score 2)" in prompt
        assert "Tests solutions: Proficient (score 3)" in prompt
        assert "1. The deck was too thin" in prompt

    async def test_provider_failure_stores_fallback(self, db, hierarchy, sink, project_submission):
        engine = GradingEngine(
            db, hierarchy, llm_provider=MockLLMProvider({"error": TimeoutError("llm down")}), notification_sink=sink
        )
        _lock(engine, project_submission)

        result = await engine.submission_feedback.generate_submission_feedback(project_submission)

        assert result.fallback is True
        assert result.feedback == AI_FEEDBACK_FALLBACK
        stored = db.get(SubmissionDB, project_submission)
        db.refresh(stored)
        assert stored.feedback == AI_FEEDBACK_FALLBACK

    async def test_ungraded_submission_is_rejected(self, db, engine, llm_provider, project_submission):
        with pytest.raises(NotLockedError):
            await engine.submission_feedback.generate_submission_feedback(project_submission)
        assert llm_provider.calls == []
        assert db.get(SubmissionDB, project_submission).feedback is None

    async def test_unknown_submission(self, engine):
        with pytest.raises(SubmissionNotFoundError):
            await engine.submission_feedback.generate_submission_feedback("missing")


class TestQuestionFeedback:
    async def test_prompt_carries_question_context(self, engine, llm_provider, project_submission):
        result = await engine.submission_feedback.generate_question_feedback(project_submission, 0, "proficient")

        assert result.rubric_level == RubricLevel.PROFICIENT
        assert result.fallback is False
        prompt = llm_provider.calls[-1][-1].content
        assert "QUESTION: Why did your first bridge sag?" in prompt
        assert "STUDENT ANSWER: The deck was too thin" in prompt
        assert "RUBRIC CRITERIA: Names the load path" in prompt
        assert "CURRENT RUBRIC LEVEL: proficient" in prompt

    async def test_answer_object_and_no_level(self, engine, llm_provider, project_submission):
        result = await engine.submission_feedback.generate_question_feedback(project_submission, 1)

        assert result.rubric_level is None
        assert "STUDENT ANSWER: We loaded it with sandbags" in llm_provider.calls[-1][-1].content

    async def test_provider_failure_returns_fallback(self, db, hierarchy, project_submission):
        engine = GradingEngine(db, hierarchy, llm_provider=MockLLMProvider({"error": ConnectionError("refused")}))

        result = await engine.submission_feedback.generate_question_feedback(project_submission, 0)

        assert result.feedback == AI_FEEDBACK_FALLBACK
        assert result.fallback is True

    @pytest.mark.parametrize("index", [-1, 3, 2])
    async def test_bad_question_or_empty_text(self, engine, llm_provider, project_submission, index):
        with pytest.raises(ValidationError):
            await engine.submission_feedback.generate_question_feedback(project_submission, index)
        assert llm_provider.calls == []
