"""
Test: Aggregation Engine - skill / competency / outcome / school statistics,
stale marking and dashboards.
"""
import pytest

from grading_engine.core.aggregation import _trend
from grading_engine.core.cache import AggregateStatCache
from grading_engine.core.exceptions import ScopeNotFoundError
from grading_engine.models.aggregate import AggregateScope, AggregateStat, ScopeKind

from .conftest import SCHOOL, STUDENTS, TEACHER


@pytest.fixture
def mixed_levels(grade):
    """S1 graded [Emerging, Emerging, Proficient, Applying] across four students"""
    for student_id, level in zip(STUDENTS, ["emerging", "emerging", "proficient", "applying"]):
        grade(student_id, "S1", level)


class TestSkillStatistics:
    def test_struggling_and_excelling_counts(self, engine, mixed_levels):
        stat = engine.aggregation.get_stat(AggregateScope.skill("S1", school_id=SCHOOL))

        assert stat.students_assessed == 4
        assert stat.total_students == 4
        assert stat.observations == 4
        assert stat.average_score == 2.25
        assert stat.pass_rate == 50.0
        assert stat.struggling_students == 2
        assert stat.excelling_students == 1
        assert stat.rubric_distribution == {"emerging": 2, "developing": 0, "proficient": 1, "applying": 1}

    def test_ungraded_students_count_only_in_total(self, engine, grade):
        grade("student-1", "S2", "proficient")
        stat = engine.aggregation.get_stat(AggregateScope.skill("S2"))

        assert stat.students_assessed == 1
        assert stat.total_students == 5
        assert stat.average_score == 3.0

    def test_empty_scope(self, engine):
        stat = engine.aggregation.get_stat(AggregateScope.skill("S3"))
        assert stat.students_assessed == 0
        assert stat.average_score == 0.0
        assert stat.pass_rate == 0.0

    def test_latest_grade_is_current(self, engine, grade):
        grade("student-1", "S1", "emerging")
        grade("student-1", "S1", "applying")

        stat = engine.aggregation.get_stat(AggregateScope.skill("S1"))
        assert stat.observations == 1
        assert stat.average_score == 4.0

    def test_school_filter(self, engine, grade):
        grade("student-1", "S1", "applying")
        grade("student-9", "S1", "emerging")

        school_one = engine.aggregation.get_stat(AggregateScope.skill("S1", school_id=SCHOOL))
        everyone = engine.aggregation.get_stat(AggregateScope.skill("S1"))
        assert school_one.students_assessed == 1
        assert school_one.average_score == 4.0
        assert everyone.students_assessed == 2
        assert everyone.average_score == 2.5

    def test_recompute_is_idempotent(self, engine, mixed_levels):
        scope = AggregateScope.skill("S1")
        assert engine.aggregation.recompute(scope) == engine.aggregation.recompute(scope)

    def test_unknown_scope(self, engine):
        with pytest.raises(ScopeNotFoundError):
            engine.aggregation.get_stat(AggregateScope.competency("C404"))


class TestBroaderScopes:
    def test_competency_unions_skill_observations(self, engine, grade):
        grade("student-1", "S1", "proficient")
        grade("student-1", "S2", "applying")
        grade("student-2", "S1", "emerging")

        stat = engine.aggregation.get_stat(AggregateScope.competency("C1"))
        assert stat.observations == 3
        assert stat.students_assessed == 2
        assert stat.average_score == 2.67
        assert stat.pass_rate == 66.67

    def test_outcome_is_not_a_mean_of_means(self, engine, grade):
        grade("student-1", "S1", "applying")
        grade("student-2", "S1", "applying")
        grade("student-3", "S1", "applying")
        grade("student-1", "S3", "emerging")

        stat = engine.aggregation.get_stat(AggregateScope.outcome("O1"))
        # (4 + 4 + 4 + 1) / 4, not (4 + 1) / 2
        assert stat.average_score == 3.25
        assert stat.students_assessed == 3

    def test_school_scope_covers_every_skill(self, engine, grade):
        grade("student-1", "S1", "proficient")
        grade("student-2", "S3", "developing")

        stat = engine.aggregation.get_stat(AggregateScope.school(SCHOOL))
        assert stat.observations == 2
        assert stat.total_students == 4


class TestStaleMarking:
    def test_grade_event_marks_ancestors_stale(self, engine, grade):
        grade("student-1", "S1", "emerging")
        competency = AggregateScope.competency("C1")
        outcome = AggregateScope.outcome("O1")
        assert engine.aggregation.get_stat(competency).average_score == 1.0
        engine.aggregation.get_stat(outcome)
        assert not engine.aggregation.cache.is_stale(competency)

        grade("student-2", "S2", "applying")

        assert engine.aggregation.cache.is_stale(competency)
        assert engine.aggregation.cache.is_stale(outcome)
        assert not engine.aggregation.cache.is_stale(AggregateScope.skill("S2"))
        assert engine.aggregation.get_stat(competency).average_score == 2.5

    def test_edit_refreshes_statistics(self, engine, make_submission):
        submission_id = make_submission("student-1")
        engine.grade_store.submit_grades(submission_id, [("S1", "developing")], graded_by=TEACHER)
        assert engine.aggregation.get_stat(AggregateScope.skill("S1")).average_score == 2.0

        engine.grade_store.begin_edit(submission_id, "S1")
        engine.grade_store.save_edit(submission_id, "S1", "applying", None, edited_by=TEACHER)

        assert engine.aggregation.get_stat(AggregateScope.skill("S1")).average_score == 4.0

    def test_read_started_before_stale_mark_is_stored_stale(self):
        cache = AggregateStatCache()
        scope = AggregateScope.skill("S1")
        epoch = cache.epoch
        cache.mark_stale([(ScopeKind.SKILL, "S1")])

        cache.put(scope, AggregateStat(scope=scope), epoch)

        assert cache.is_stale(scope)
        assert cache.get(scope) is None

    def test_mark_stale_hits_every_filter_variant(self):
        cache = AggregateStatCache()
        plain = AggregateScope.skill("S1")
        filtered = AggregateScope.skill("S1", school_id=SCHOOL, grade_level="7")
        other = AggregateScope.skill("S2")
        for scope in (plain, filtered, other):
            cache.put(scope, AggregateStat(scope=scope), cache.epoch)

        assert cache.mark_stale([(ScopeKind.SKILL, "S1")]) == 2
        assert cache.is_stale(plain) and cache.is_stale(filtered)
        assert not cache.is_stale(other)


class TestDashboards:
    def test_school_skill_progress_weakest_first(self, engine, grade):
        grade("student-1", "S1", "applying")
        grade("student-2", "S2", "emerging")
        grade("student-3", "S3", "proficient")

        rows = engine.aggregation.school_skill_progress(school_id=SCHOOL)
        assert [row.skill_id for row in rows] == ["S2", "S3", "S1"]
        assert rows[0].competency_name == "Problem Solving"
        assert rows[0].learner_outcome_name == "Critical Thinker"

    def test_school_summary(self, engine, grade):
        grade("student-1", "S1", "applying")
        grade("student-2", "S2", "emerging")

        summary = engine.aggregation.school_summary(school_id=SCHOOL)
        assert summary.total_skills_assessed == 2
        assert summary.average_school_score == 2.5
        assert summary.skills_needing_attention == 1
        assert summary.excellent_performance == 1
        assert summary.students_assessed == 2
        assert summary.total_students == 4

    def test_student_progress_direction(self, engine, grade):
        grade("student-1", "S1", "emerging")
        grade("student-1", "S1", "proficient")
        grade("student-1", "S3", "applying")

        progress = {row.component_skill_id: row for row in engine.aggregation.student_progress("student-1")}
        assert progress["S1"].scores == [3.0, 1.0]
        assert progress["S1"].progress_direction == "improving"
        assert progress["S1"].average_score == 2.0
        assert progress["S3"].progress_direction == "stable"

    @pytest.mark.parametrize(
        "newest_first, expected",
        [
            ([4.0, 4.0, 1.0, 1.0], "improving"),
            ([1.0, 2.0, 4.0, 4.0], "declining"),
            ([3.0, 3.0, 3.0], "stable"),
            ([4.0], "stable"),
        ],
    )
    def test_trend(self, newest_first, expected):
        assert _trend(newest_first) == expected
