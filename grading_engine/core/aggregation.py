"""
Aggregation Engine - skill → competency → outcome → school statistics

Every statistic is derived from the current persisted grades:

- A student's current grade for a skill is the most recently graded one
  across the student's submissions (ties broken by grade id).
- At skill scope there is one observation per student. Broader scopes take
  the union of their descendant skills' observations, one per
  (student, skill); they are never a mean of child means.
- ``students_assessed`` counts distinct students; distribution, pass rate,
  struggling and excelling counts are taken over observations.

Grade events recompute the touched skill eagerly and mark every cached
variant of that skill and of its ancestors (competency, outcome, school)
stale; those are recomputed on the next ``get_stat``.
"""
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError

from ..database.repositories import GradeRepository
from ..models.aggregate import (
    AggregateScope,
    AggregateStat,
    SchoolSummary,
    ScopeKind,
    SkillProgress,
    StudentSkillProgress,
)
from ..models.events import GradeEdited, GradeSubmitted
from ..models.rubric import DEFAULT_RUBRIC, NodeKind, RubricConfig, RubricLevel, SkillHierarchy
from ..services.roster import RosterProvider
from .cache import AggregateStatCache
from .constants import EXCELLENT_AVERAGE, NEEDS_ATTENTION_AVERAGE, SCORE_DECIMALS, TREND_DELTA
from .event_bus import EventBus
from .exceptions import HierarchyIntegrityError, PersistenceError, ScopeNotFoundError
from . import metrics

logger = logging.getLogger(__name__)

_NODE_TO_SCOPE = {
    NodeKind.SKILL: ScopeKind.SKILL,
    NodeKind.COMPETENCY: ScopeKind.COMPETENCY,
    NodeKind.OUTCOME: ScopeKind.OUTCOME,
}
_SCOPE_TO_NODE = {scope: node for node, scope in _NODE_TO_SCOPE.items()}


def _mean(values) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


def _trend(scores_newest_first: List[float]) -> str:
    """Newer half vs older half of a grade history"""
    half = len(scores_newest_first) // 2
    recent, older = scores_newest_first[:half], scores_newest_first[half:]
    if not recent or not older:
        return "stable"
    delta = _mean(recent) - _mean(older)
    if delta > TREND_DELTA:
        return "improving"
    if delta < -TREND_DELTA:
        return "declining"
    return "stable"


class AggregationEngine:
    """
    Computes AggregateStat values and keeps the shared stat cache fresh.

    The cache is process-wide; an engine instance is cheap and is normally
    created per request around that request's repositories.
    """

    def __init__(
        self,
        grade_repo: GradeRepository,
        hierarchy: SkillHierarchy,
        roster: RosterProvider,
        cache: Optional[AggregateStatCache] = None,
        rubric: RubricConfig = DEFAULT_RUBRIC,
    ):
        self.grade_repo = grade_repo
        self.hierarchy = hierarchy
        self.roster = roster
        self.cache = cache if cache is not None else AggregateStatCache()
        self.rubric = rubric

    def subscribe(self, event_bus: EventBus) -> None:
        event_bus.subscribe(GradeSubmitted, self.on_grade_event)
        event_bus.subscribe(GradeEdited, self.on_grade_event)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def recompute(self, scope: AggregateScope) -> AggregateStat:
        """
        Recompute ``scope`` from persisted grades and cache the result.

        Raises:
            ScopeNotFoundError: scope id is not in the hierarchy
            PersistenceError: grades could not be read
        """
        epoch = self.cache.epoch
        try:
            stat = self._compute(scope)
        except SQLAlchemyError as e:
            logger.error(
                f"Aggregate recompute failed: {type(e).__name__}",
                exc_info=True,
                extra={"scope": scope.cache_key},
            )
            raise PersistenceError("Recompute aggregate", str(e)) from e
        self.cache.put(scope, stat, epoch)
        metrics.aggregate_recomputes_total.labels(scope_kind=scope.kind.value).inc()
        return stat

    def get_stat(self, scope: AggregateScope) -> AggregateStat:
        """Cached statistic, recomputed when missing or stale"""
        cached = self.cache.get(scope)
        if cached is not None:
            return cached
        return self.recompute(scope)

    def on_grade_event(self, event) -> None:
        """
        React to GradeSubmitted / GradeEdited.

        Failures are logged; the skill then stays stale and heals on the
        next read.
        """
        skill_id = event.component_skill_id
        targets: List[Tuple[ScopeKind, Optional[str]]] = [(ScopeKind.SKILL, skill_id)]
        targets.extend((_NODE_TO_SCOPE[kind], node_id) for kind, node_id in self.hierarchy.ancestors(skill_id))
        targets.append((ScopeKind.SCHOOL, None))
        self.cache.mark_stale(targets)

        try:
            self.recompute(AggregateScope.skill(skill_id))
        except Exception:
            logger.warning(
                "Eager skill recompute failed; statistic left stale",
                exc_info=True,
                extra={"component_skill_id": skill_id, "event": event.kind},
            )

    def _skill_ids_for(self, scope: AggregateScope) -> Tuple[str, ...]:
        if scope.kind == ScopeKind.SCHOOL:
            return self.hierarchy.skill_ids()
        try:
            return self.hierarchy.descendant_skills(_SCOPE_TO_NODE[scope.kind], scope.scope_id)
        except HierarchyIntegrityError:
            raise ScopeNotFoundError(scope.kind.value, scope.scope_id)

    def _student_filter(self, scope: AggregateScope) -> Optional[List[str]]:
        if scope.school_id is None and scope.grade_level is None:
            return None
        return self.roster.student_ids(school_id=scope.school_id, grade_level=scope.grade_level)

    def _compute(self, scope: AggregateScope) -> AggregateStat:
        skill_ids = self._skill_ids_for(scope)
        current = self.grade_repo.get_current_grades(skill_ids, self._student_filter(scope))
        total_students = self.roster.total_students(school_id=scope.school_id, grade_level=scope.grade_level)

        levels = [RubricLevel.parse(grade.rubric_level) for grade in current.values()]
        students = {student_id for student_id, _ in current}

        distribution = {level.label: 0 for level in RubricLevel}
        for level in levels:
            distribution[level.label] += 1

        passing = sum(1 for level in levels if self.rubric.is_passing(level))
        pass_rate = passing / len(levels) * 100 if levels else 0.0

        return AggregateStat(
            scope=scope,
            students_assessed=len(students),
            total_students=total_students,
            observations=len(levels),
            average_score=round(_mean(level.score for level in levels), SCORE_DECIMALS),
            rubric_distribution=distribution,
            pass_rate=round(pass_rate, SCORE_DECIMALS),
            struggling_students=sum(1 for level in levels if self.rubric.is_struggling(level)),
            excelling_students=sum(1 for level in levels if self.rubric.is_excelling(level)),
        )

    # ------------------------------------------------------------------
    # Dashboards
    # ------------------------------------------------------------------

    def school_skill_progress(
        self, school_id: Optional[str] = None, grade_level: Optional[str] = None
    ) -> List[SkillProgress]:
        """One row per assessed skill, weakest average first"""
        student_ids = None
        if school_id is not None or grade_level is not None:
            student_ids = self.roster.student_ids(school_id=school_id, grade_level=grade_level)

        history: Dict[str, List[Tuple[float, datetime]]] = defaultdict(list)
        for grade in self.grade_repo.get_history(self.hierarchy.skill_ids(), student_ids=student_ids):
            history[grade.component_skill_id].append((grade.score, grade.graded_at))

        rows = []
        for skill_id, graded in history.items():
            stat = self.get_stat(AggregateScope.skill(skill_id, school_id=school_id, grade_level=grade_level))
            if stat.observations == 0:
                continue
            newest_first = list(reversed(graded))
            names = self._ancestor_names(skill_id)
            rows.append(
                SkillProgress(
                    skill_id=skill_id,
                    skill_name=self.hierarchy.skill(skill_id).name,
                    competency_id=names.get(NodeKind.COMPETENCY, (None, None))[0],
                    competency_name=names.get(NodeKind.COMPETENCY, (None, None))[1],
                    learner_outcome_name=names.get(NodeKind.OUTCOME, (None, None))[1],
                    stat=stat,
                    trend=_trend([score for score, _ in newest_first]),
                    last_assessment_date=newest_first[0][1],
                )
            )
        rows.sort(key=lambda row: (row.stat.average_score, row.skill_name, row.skill_id))
        return rows

    def school_summary(self, school_id: Optional[str] = None, grade_level: Optional[str] = None) -> SchoolSummary:
        rows = self.school_skill_progress(school_id=school_id, grade_level=grade_level)
        school_stat = self.get_stat(AggregateScope.school(school_id, grade_level=grade_level))
        averages = [row.stat.average_score for row in rows]
        return SchoolSummary(
            total_skills_assessed=len(rows),
            average_school_score=round(_mean(averages), SCORE_DECIMALS),
            skills_needing_attention=sum(1 for avg in averages if avg < NEEDS_ATTENTION_AVERAGE),
            excellent_performance=sum(1 for avg in averages if avg >= EXCELLENT_AVERAGE),
            students_assessed=school_stat.students_assessed,
            total_students=school_stat.total_students,
        )

    def student_progress(self, student_id: str) -> List[StudentSkillProgress]:
        """Per-skill grade history of one student, sorted by competency then skill name"""
        history: Dict[str, list] = defaultdict(list)
        for grade in self.grade_repo.get_history(student_id=student_id):
            history[grade.component_skill_id].append(grade)

        results = []
        for skill_id, grades in history.items():
            newest_first = list(reversed(grades))
            scores = [grade.score for grade in newest_first]
            direction = "stable"
            if len(scores) > 1:
                if scores[0] > scores[1] + TREND_DELTA:
                    direction = "improving"
                elif scores[0] < scores[1] - TREND_DELTA:
                    direction = "declining"

            skill_name = self.hierarchy.skill(skill_id).name if self.hierarchy.has_skill(skill_id) else skill_id
            competency_id, competency_name = self._ancestor_names(skill_id).get(NodeKind.COMPETENCY, (None, None))

            results.append(
                StudentSkillProgress(
                    component_skill_id=skill_id,
                    component_skill_name=skill_name,
                    competency_id=competency_id,
                    competency_name=competency_name,
                    scores=scores,
                    average_score=round(_mean(scores), SCORE_DECIMALS),
                    last_score=scores[0],
                    progress_direction=direction,
                    last_updated=newest_first[0].graded_at,
                )
            )
        results.sort(key=lambda row: (row.competency_name or "", row.component_skill_name))
        return results

    def _ancestor_names(self, skill_id: str) -> Dict[NodeKind, Tuple[str, str]]:
        """{kind: (id, name)} for the levels above a skill that exist"""
        names = {}
        for kind, node_id in self.hierarchy.ancestors(skill_id):
            node = self.hierarchy.competency(node_id) if kind == NodeKind.COMPETENCY else self.hierarchy.outcome(node_id)
            names[kind] = (node.id, node.name)
        return names
