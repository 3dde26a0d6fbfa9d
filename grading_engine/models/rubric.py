"""
Rubric model: the four ordered rubric levels, the rubric configuration and
the LearnerOutcome → Competency → ComponentSkill hierarchy.

Both ``RubricConfig`` and ``SkillHierarchy`` are immutable values. They are
loaded once (see ``HierarchyRepository.load_hierarchy``) and passed
explicitly to every engine component, so tests can build alternatives.
"""
from enum import Enum, IntEnum
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from ..core.exceptions import HierarchyIntegrityError, InvalidRubricLevelError


class RubricLevel(IntEnum):
    """Four-point mastery scale; the integer value is the numeric score"""

    EMERGING = 1
    DEVELOPING = 2
    PROFICIENT = 3
    APPLYING = 4

    @property
    def label(self) -> str:
        """Lowercase storage label ("proficient")"""
        return self.name.lower()

    @property
    def display_name(self) -> str:
        return self.name.capitalize()

    @property
    def score(self) -> float:
        return float(self.value)

    @classmethod
    def parse(cls, value) -> "RubricLevel":
        """
        Accepts a RubricLevel, its label (case-insensitive) or its integer value.

        Raises:
            InvalidRubricLevelError: value is not a rubric level
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise InvalidRubricLevelError(value)
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                raise InvalidRubricLevelError(value)
        raise InvalidRubricLevelError(value)


DEFAULT_STICKER_COLORS = {
    RubricLevel.EMERGING: "red",
    RubricLevel.DEVELOPING: "yellow",
    RubricLevel.PROFICIENT: "blue",
    RubricLevel.APPLYING: "green",
}


class RubricConfig(BaseModel):
    """
    Thresholds used by aggregation and credential issuance.

    Defaults:
        credential_threshold: Proficient (sticker / badge / plaque eligibility)
        pass_threshold: Proficient (passRate numerator)
        struggling_max_level: Emerging (struggling = Emerging only)
        excelling_level: Applying
    """

    credential_threshold: RubricLevel = RubricLevel.PROFICIENT
    pass_threshold: RubricLevel = RubricLevel.PROFICIENT
    struggling_max_level: RubricLevel = RubricLevel.EMERGING
    excelling_level: RubricLevel = RubricLevel.APPLYING
    sticker_colors: Dict[RubricLevel, str] = Field(default_factory=lambda: dict(DEFAULT_STICKER_COLORS))

    class Config:
        frozen = True

    def qualifies_for_credential(self, level: Optional[RubricLevel]) -> bool:
        return level is not None and level >= self.credential_threshold

    def is_passing(self, level: RubricLevel) -> bool:
        return level >= self.pass_threshold

    def is_struggling(self, level: RubricLevel) -> bool:
        return level <= self.struggling_max_level

    def is_excelling(self, level: RubricLevel) -> bool:
        return level >= self.excelling_level

    def sticker_color(self, level: RubricLevel) -> str:
        return self.sticker_colors.get(level, "blue")


DEFAULT_RUBRIC = RubricConfig()


# =============================================================================
# Skill hierarchy
# =============================================================================


class NodeKind(str, Enum):
    OUTCOME = "outcome"
    COMPETENCY = "competency"
    SKILL = "skill"


class HierarchyNode(BaseModel):
    """One node of the hierarchy arena; parent/children are ids, not objects"""

    id: str
    kind: NodeKind
    name: str
    parent_id: Optional[str] = None
    child_ids: Tuple[str, ...] = ()
    description: Optional[str] = None
    rubric_levels: Dict[str, str] = Field(default_factory=dict)

    class Config:
        frozen = True


class SkillHierarchy:
    """
    Indexed, immutable LearnerOutcome → Competency → ComponentSkill tree.

    Lookups are dictionary hits, so walking from a skill to its outcome is
    O(depth). Malformed rows (a skill whose competency is missing, a
    competency without outcome) are kept; the strict accessors
    (``competency_of``, ``outcome_of``) raise ``HierarchyIntegrityError`` for
    them, the lenient ones (``ancestors``) skip the missing levels.
    """

    def __init__(
        self,
        outcomes: Mapping[str, HierarchyNode],
        competencies: Mapping[str, HierarchyNode],
        skills: Mapping[str, HierarchyNode],
    ):
        self._outcomes = dict(outcomes)
        self._competencies = dict(competencies)
        self._skills = dict(skills)

    @classmethod
    def build(
        cls,
        outcomes: Iterable[Tuple[str, str]],
        competencies: Iterable[Tuple[str, str, Optional[str]]],
        skills: Iterable[Tuple[str, str, Optional[str]]],
        skill_rubrics: Optional[Mapping[str, Dict[str, str]]] = None,
    ) -> "SkillHierarchy":
        """
        Build the arena from flat rows.

        Args:
            outcomes: (outcome_id, name)
            competencies: (competency_id, name, outcome_id or None)
            skills: (skill_id, name, competency_id or None)
            skill_rubrics: Optional per-skill rubric level descriptions

        Returns:
            SkillHierarchy with child id tuples sorted for deterministic scans
        """
        skill_rubrics = skill_rubrics or {}
        outcome_rows = list(outcomes)
        competency_rows = list(competencies)
        skill_rows = list(skills)

        children: Dict[str, List[str]] = {}
        for competency_id, _, outcome_id in competency_rows:
            if outcome_id is not None:
                children.setdefault(outcome_id, []).append(competency_id)
        for skill_id, _, competency_id in skill_rows:
            if competency_id is not None:
                children.setdefault(competency_id, []).append(skill_id)

        outcome_nodes = {
            oid: HierarchyNode(
                id=oid, kind=NodeKind.OUTCOME, name=name, child_ids=tuple(sorted(children.get(oid, [])))
            )
            for oid, name in outcome_rows
        }
        competency_nodes = {
            cid: HierarchyNode(
                id=cid,
                kind=NodeKind.COMPETENCY,
                name=name,
                parent_id=oid,
                child_ids=tuple(sorted(children.get(cid, []))),
            )
            for cid, name, oid in competency_rows
        }
        skill_nodes = {
            sid: HierarchyNode(
                id=sid,
                kind=NodeKind.SKILL,
                name=name,
                parent_id=cid,
                rubric_levels=dict(skill_rubrics.get(sid, {})),
            )
            for sid, name, cid in skill_rows
        }
        return cls(outcome_nodes, competency_nodes, skill_nodes)

    # ---- strict accessors -------------------------------------------------

    def skill(self, skill_id: str) -> HierarchyNode:
        node = self._skills.get(skill_id)
        if node is None:
            raise HierarchyIntegrityError("skill", skill_id, "unknown component skill")
        return node

    def competency(self, competency_id: str) -> HierarchyNode:
        node = self._competencies.get(competency_id)
        if node is None:
            raise HierarchyIntegrityError("competency", competency_id, "unknown competency")
        return node

    def outcome(self, outcome_id: str) -> HierarchyNode:
        node = self._outcomes.get(outcome_id)
        if node is None:
            raise HierarchyIntegrityError("outcome", outcome_id, "unknown learner outcome")
        return node

    def competency_of(self, skill_id: str) -> HierarchyNode:
        skill = self.skill(skill_id)
        if skill.parent_id is None:
            raise HierarchyIntegrityError("skill", skill_id, "component skill has no competency")
        if skill.parent_id not in self._competencies:
            raise HierarchyIntegrityError(
                "skill", skill_id, f"competency '{skill.parent_id}' does not exist"
            )
        return self._competencies[skill.parent_id]

    def outcome_of(self, competency_id: str) -> HierarchyNode:
        competency = self.competency(competency_id)
        if competency.parent_id is None:
            raise HierarchyIntegrityError("competency", competency_id, "competency has no learner outcome")
        if competency.parent_id not in self._outcomes:
            raise HierarchyIntegrityError(
                "competency", competency_id, f"learner outcome '{competency.parent_id}' does not exist"
            )
        return self._outcomes[competency.parent_id]

    # ---- lenient accessors ------------------------------------------------

    def has_skill(self, skill_id: str) -> bool:
        return skill_id in self._skills

    def ancestors(self, skill_id: str) -> List[Tuple[NodeKind, str]]:
        """(kind, id) of the competency and outcome above a skill, skipping missing levels"""
        result: List[Tuple[NodeKind, str]] = []
        skill = self._skills.get(skill_id)
        if skill is None or skill.parent_id not in self._competencies:
            return result
        competency = self._competencies[skill.parent_id]
        result.append((NodeKind.COMPETENCY, competency.id))
        if competency.parent_id in self._outcomes:
            result.append((NodeKind.OUTCOME, competency.parent_id))
        return result

    def skill_ids(self) -> Tuple[str, ...]:
        return tuple(sorted(self._skills))

    def competency_ids(self) -> Tuple[str, ...]:
        return tuple(sorted(self._competencies))

    def skills_of_competency(self, competency_id: str) -> Tuple[str, ...]:
        return self.competency(competency_id).child_ids

    def competencies_of_outcome(self, outcome_id: str) -> Tuple[str, ...]:
        return self.outcome(outcome_id).child_ids

    def descendant_skills(self, kind: NodeKind, node_id: Optional[str] = None) -> Tuple[str, ...]:
        """Skill ids under a node (the whole tree is ``skill_ids()``)"""
        if kind == NodeKind.SKILL:
            return (self.skill(node_id).id,)
        if kind == NodeKind.COMPETENCY:
            return self.skills_of_competency(node_id)
        if kind == NodeKind.OUTCOME:
            skill_ids: List[str] = []
            for competency_id in self.competencies_of_outcome(node_id):
                skill_ids.extend(self.skills_of_competency(competency_id))
            return tuple(sorted(skill_ids))
        raise ValueError(f"Unsupported node kind: {kind}")

    def __len__(self) -> int:
        return len(self._skills)
