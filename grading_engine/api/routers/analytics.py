"""
Router for aggregate statistics and dashboards

    GET /analytics/{kind}/{scope_id}            skill | competency | outcome | school
    GET /analytics/school/{school_id}/skills    component-skill dashboard rows
    GET /analytics/school/{school_id}/summary   school summary cards
    GET /analytics/students/{student_id}/progress
"""
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query

from ...core.engine import GradingEngine
from ...models.aggregate import AggregateScope, AggregateStat, SchoolSummary, ScopeKind, SkillProgress, StudentSkillProgress
from ..deps import get_grading_engine
from ..exceptions import InvalidScopeKindError
from ..schemas.common import APIResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get(
    "/school/{school_id}/skills",
    response_model=APIResponse[List[SkillProgress]],
    summary="Component-skill progress for a school",
)
def school_skill_progress(
    school_id: str,
    grade_level: Optional[str] = Query(None),
    engine: GradingEngine = Depends(get_grading_engine),
):
    rows = engine.aggregation.school_skill_progress(school_id=school_id, grade_level=grade_level)
    return APIResponse(data=rows)


@router.get(
    "/school/{school_id}/summary",
    response_model=APIResponse[SchoolSummary],
    summary="School summary cards",
)
def school_summary(
    school_id: str,
    grade_level: Optional[str] = Query(None),
    engine: GradingEngine = Depends(get_grading_engine),
):
    return APIResponse(data=engine.aggregation.school_summary(school_id=school_id, grade_level=grade_level))


@router.get(
    "/students/{student_id}/progress",
    response_model=APIResponse[List[StudentSkillProgress]],
    summary="Per-skill grade history of a student",
)
def student_progress(student_id: str, engine: GradingEngine = Depends(get_grading_engine)):
    return APIResponse(data=engine.aggregation.student_progress(student_id))


@router.get(
    "/{kind}/{scope_id}",
    response_model=APIResponse[AggregateStat],
    summary="Aggregate statistic for a scope",
    description="For kind=school the path id is the school id.",
)
def get_stat(
    kind: str,
    scope_id: str,
    school_id: Optional[str] = Query(None, description="Restrict the roster to one school"),
    grade_level: Optional[str] = Query(None),
    engine: GradingEngine = Depends(get_grading_engine),
):
    try:
        scope_kind = ScopeKind(kind)
    except ValueError:
        raise InvalidScopeKindError(kind)

    if scope_kind is ScopeKind.SCHOOL:
        scope = AggregateScope.school(scope_id, grade_level=grade_level)
    else:
        scope = AggregateScope(kind=scope_kind, scope_id=scope_id, school_id=school_id, grade_level=grade_level)
    return APIResponse(data=engine.aggregation.get_stat(scope))
