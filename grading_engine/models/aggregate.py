"""
Aggregation models

``AggregateStat`` is a derived view and never a source of truth; it carries
no timestamps so that two recomputes over the same grades compare equal.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ScopeKind(str, Enum):
    SKILL = "skill"
    COMPETENCY = "competency"
    OUTCOME = "outcome"
    SCHOOL = "school"


class AggregateScope(BaseModel):
    """
    What to aggregate over.

    ``scope_id`` is the skill / competency / outcome id; it is ignored for
    SCHOOL scope (use ``school_id`` to restrict the roster instead).
    """

    kind: ScopeKind
    scope_id: Optional[str] = None
    grade_level: Optional[str] = None
    school_id: Optional[str] = None

    class Config:
        frozen = True

    @property
    def cache_key(self) -> str:
        return f"{self.kind.value}:{self.scope_id or '*'}:{self.school_id or '*'}:{self.grade_level or '*'}"

    @classmethod
    def skill(cls, skill_id: str, **filters) -> "AggregateScope":
        return cls(kind=ScopeKind.SKILL, scope_id=skill_id, **filters)

    @classmethod
    def competency(cls, competency_id: str, **filters) -> "AggregateScope":
        return cls(kind=ScopeKind.COMPETENCY, scope_id=competency_id, **filters)

    @classmethod
    def outcome(cls, outcome_id: str, **filters) -> "AggregateScope":
        return cls(kind=ScopeKind.OUTCOME, scope_id=outcome_id, **filters)

    @classmethod
    def school(cls, school_id: Optional[str] = None, **filters) -> "AggregateScope":
        return cls(kind=ScopeKind.SCHOOL, school_id=school_id, **filters)


class AggregateStat(BaseModel):
    scope: AggregateScope
    students_assessed: int = 0
    total_students: int = 0
    observations: int = 0
    average_score: float = 0.0
    rubric_distribution: Dict[str, int] = Field(default_factory=dict)
    pass_rate: float = 0.0
    struggling_students: int = 0
    excelling_students: int = 0


class SkillProgress(BaseModel):
    """One dashboard row of the school component-skill view"""

    skill_id: str
    skill_name: str
    competency_id: Optional[str] = None
    competency_name: Optional[str] = None
    learner_outcome_name: Optional[str] = None
    stat: AggregateStat
    trend: str = "stable"
    last_assessment_date: Optional[datetime] = None


class SchoolSummary(BaseModel):
    total_skills_assessed: int = 0
    average_school_score: float = 0.0
    skills_needing_attention: int = 0
    excellent_performance: int = 0
    students_assessed: int = 0
    total_students: int = 0


class StudentSkillProgress(BaseModel):
    """Per-skill history for one student, newest score first"""

    component_skill_id: str
    component_skill_name: str
    competency_id: Optional[str] = None
    competency_name: Optional[str] = None
    scores: List[float] = Field(default_factory=list)
    average_score: float = 0.0
    last_score: float = 0.0
    progress_direction: str = "stable"
    last_updated: Optional[datetime] = None
