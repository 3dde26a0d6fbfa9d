"""
Credential Issuance Engine - sticker (skill) → badge (competency) →
plaque (learner outcome)

Eligibility is always a full re-scan of the student's current persisted
grades, never a counter, so replaying an event is harmless. Issuance is
strictly upward: a badge is inserted only after every sticker of its
competency exists, a plaque only after every badge of its outcome exists.

Credentials are never revoked. A higher re-grade upgrades an existing
sticker's level in place; a lower one changes nothing.
"""
from typing import List, Optional
import logging

from ..database.repositories import CredentialRepository, GradeRepository
from ..models.credential import Credential, CredentialType
from ..models.events import CredentialIssued, GradeEdited, GradeSubmitted
from ..models.rubric import DEFAULT_RUBRIC, RubricConfig, RubricLevel, SkillHierarchy
from .constants import BADGE_ICON, PLAQUE_ICON
from .event_bus import EventBus
from .exceptions import HierarchyIntegrityError
from . import metrics

logger = logging.getLogger(__name__)


class CredentialIssuer:
    """
    Re-scans thresholds after grade events and issues what was earned.

    ``evaluate`` never raises: data-integrity problems are logged as
    warnings, anything else as errors, and the credentials issued so far are
    returned.
    """

    def __init__(
        self,
        credential_repo: CredentialRepository,
        grade_repo: GradeRepository,
        hierarchy: SkillHierarchy,
        event_bus: Optional[EventBus] = None,
        rubric: RubricConfig = DEFAULT_RUBRIC,
    ):
        self.credential_repo = credential_repo
        self.grade_repo = grade_repo
        self.hierarchy = hierarchy
        self.event_bus = event_bus
        self.rubric = rubric

    def subscribe(self, event_bus: EventBus) -> None:
        event_bus.subscribe(GradeSubmitted, self.on_grade_event)
        event_bus.subscribe(GradeEdited, self.on_grade_event)

    def on_grade_event(self, event) -> None:
        self.evaluate(event.student_id, event.component_skill_id, awarded_by=event.graded_by)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, student_id: str, component_skill_id: str, awarded_by: Optional[str] = None) -> List[Credential]:
        """
        Issue every credential the student now qualifies for around one skill.

        Returns:
            Credentials newly issued (or upgraded) by this call
        """
        issued: List[Credential] = []
        try:
            self._evaluate(student_id, component_skill_id, awarded_by, issued)
        except HierarchyIntegrityError as e:
            metrics.credential_integrity_warnings_total.inc()
            logger.warning(
                f"Data integrity: credential scan skipped ({e.message})",
                extra={"student_id": student_id, "component_skill_id": component_skill_id, **e.details},
            )
        except Exception:
            logger.error(
                "Credential evaluation failed",
                exc_info=True,
                extra={"student_id": student_id, "component_skill_id": component_skill_id},
            )
        return issued

    def _evaluate(self, student_id: str, skill_id: str, awarded_by: Optional[str], issued: List[Credential]) -> None:
        self.hierarchy.skill(skill_id)

        current = self.grade_repo.get_current_grade(student_id, skill_id)
        if current is not None:
            level = RubricLevel.parse(current.rubric_level)
            if self.rubric.qualifies_for_credential(level):
                self._ensure_sticker(student_id, skill_id, level, awarded_by, issued)

        if self.credential_repo.get(student_id, CredentialType.STICKER.value, skill_id) is None:
            return

        competency = self.hierarchy.competency_of(skill_id)
        if not self._ensure_badge(student_id, competency.id, awarded_by, issued):
            return

        outcome = self.hierarchy.outcome_of(competency.id)
        self._ensure_plaque(student_id, outcome.id, awarded_by, issued)

    def _ensure_sticker(
        self,
        student_id: str,
        skill_id: str,
        level: RubricLevel,
        awarded_by: Optional[str],
        issued: List[Credential],
    ) -> None:
        skill = self.hierarchy.skill(skill_id)
        title = f"{level.display_name} {skill.name}"
        description = f"Achieved {level.label} level in {skill.name}"
        icon = self.rubric.sticker_color(level)

        existing = self.credential_repo.get(student_id, CredentialType.STICKER.value, skill_id)
        if existing is None:
            existing, created = self.credential_repo.try_create(
                student_id=student_id,
                credential_type=CredentialType.STICKER.value,
                scope_id=skill_id,
                title=title,
                description=description,
                icon_url=icon,
                rubric_level=level,
                awarded_by=awarded_by,
            )
            if created:
                self._issued(existing, issued)
                return

        existing_level = RubricLevel.parse(existing.rubric_level) if existing.rubric_level else None
        if existing_level is not None and level > existing_level:
            upgraded = self.credential_repo.upgrade_sticker(
                existing.id,
                expected_level=existing_level,
                new_level=level,
                title=title,
                description=description,
                icon_url=icon,
            )
            if upgraded:
                logger.info(
                    "Sticker upgraded",
                    extra={
                        "student_id": student_id,
                        "component_skill_id": skill_id,
                        "previous_level": existing_level.label,
                        "rubric_level": level.label,
                    },
                )
                refreshed = self.credential_repo.get(student_id, CredentialType.STICKER.value, skill_id)
                issued.append(Credential.model_validate(refreshed))

    def _competency_complete(self, student_id: str, competency_id: str) -> bool:
        """Every skill of the competency has a current grade at or above the threshold"""
        skill_ids = self.hierarchy.skills_of_competency(competency_id)
        if not skill_ids:
            return False
        current = self.grade_repo.get_current_grades(skill_ids, [student_id])
        for skill_id in skill_ids:
            grade = current.get((student_id, skill_id))
            if grade is None or not self.rubric.qualifies_for_credential(RubricLevel.parse(grade.rubric_level)):
                return False
        return True

    def _ensure_badge(
        self, student_id: str, competency_id: str, awarded_by: Optional[str], issued: List[Credential]
    ) -> bool:
        """
        Issue the competency badge (and any missing sticker below it) when
        earned.

        Returns:
            True if the student holds the badge afterwards
        """
        if self.credential_repo.get(student_id, CredentialType.BADGE.value, competency_id) is not None:
            return True
        if not self._competency_complete(student_id, competency_id):
            return False

        skill_ids = self.hierarchy.skills_of_competency(competency_id)
        current = self.grade_repo.get_current_grades(skill_ids, [student_id])
        for skill_id in skill_ids:
            level = RubricLevel.parse(current[(student_id, skill_id)].rubric_level)
            self._ensure_sticker(student_id, skill_id, level, awarded_by, issued)

        competency = self.hierarchy.competency(competency_id)
        credential, created = self.credential_repo.try_create(
            student_id=student_id,
            credential_type=CredentialType.BADGE.value,
            scope_id=competency_id,
            title=f"{competency.name} Badge",
            description=f"Achieved proficiency in all component skills for {competency.name}",
            icon_url=BADGE_ICON,
            awarded_by=awarded_by,
        )
        if created:
            self._issued(credential, issued)
        return True

    def _ensure_plaque(
        self, student_id: str, outcome_id: str, awarded_by: Optional[str], issued: List[Credential]
    ) -> None:
        if self.credential_repo.get(student_id, CredentialType.PLAQUE.value, outcome_id) is not None:
            return
        competency_ids = self.hierarchy.competencies_of_outcome(outcome_id)
        if not competency_ids:
            return

        held = self.credential_repo.get_scope_ids(student_id, CredentialType.BADGE.value)
        if not all(cid in held or self._competency_complete(student_id, cid) for cid in competency_ids):
            return
        for competency_id in competency_ids:
            if not self._ensure_badge(student_id, competency_id, awarded_by, issued):
                # A grade moved under us; the next event re-scans
                return

        outcome = self.hierarchy.outcome(outcome_id)
        credential, created = self.credential_repo.try_create(
            student_id=student_id,
            credential_type=CredentialType.PLAQUE.value,
            scope_id=outcome_id,
            title=f"{outcome.name} Plaque",
            description=f"Achieved every competency of {outcome.name}",
            icon_url=PLAQUE_ICON,
            awarded_by=awarded_by,
        )
        if created:
            self._issued(credential, issued)

    def _issued(self, row, issued: List[Credential]) -> None:
        credential = Credential.model_validate(row)
        issued.append(credential)
        metrics.credentials_issued_total.labels(credential_type=credential.credential_type.value).inc()
        logger.info(
            "Credential issued",
            extra={
                "student_id": credential.student_id,
                "credential_type": credential.credential_type.value,
                "scope_id": credential.scope_id,
            },
        )
        if self.event_bus is not None:
            self.event_bus.publish(
                CredentialIssued(
                    credential_id=credential.id,
                    student_id=credential.student_id,
                    credential_type=credential.credential_type,
                    scope_id=credential.scope_id,
                    title=credential.title,
                )
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_credentials(self, student_id: str, credential_type: Optional[CredentialType] = None) -> List[Credential]:
        type_value = credential_type.value if credential_type is not None else None
        return [
            Credential.model_validate(row)
            for row in self.credential_repo.get_by_student(student_id, credential_type=type_value)
        ]

    def find_cascade_violations(self, student_id: str) -> List[str]:
        """
        Check plaque ⇒ badges ⇒ stickers for one student.

        Returns:
            Human readable descriptions, empty when the cascade holds
        """
        violations = []
        stickers = self.credential_repo.get_scope_ids(student_id, CredentialType.STICKER.value)
        badges = self.credential_repo.get_scope_ids(student_id, CredentialType.BADGE.value)
        plaques = self.credential_repo.get_scope_ids(student_id, CredentialType.PLAQUE.value)

        for outcome_id in sorted(plaques):
            try:
                competency_ids = self.hierarchy.competencies_of_outcome(outcome_id)
            except HierarchyIntegrityError as e:
                violations.append(f"plaque {outcome_id}: {e.message}")
                continue
            for competency_id in competency_ids:
                if competency_id not in badges:
                    violations.append(f"plaque {outcome_id} without badge {competency_id}")

        for competency_id in sorted(badges):
            try:
                skill_ids = self.hierarchy.skills_of_competency(competency_id)
            except HierarchyIntegrityError as e:
                violations.append(f"badge {competency_id}: {e.message}")
                continue
            for skill_id in skill_ids:
                if skill_id not in stickers:
                    violations.append(f"badge {competency_id} without sticker {skill_id}")

        return violations
