"""
Safety Screening Engine - screens self-evaluation text for safety-risk
language and raises incidents for human follow-up

Screening never blocks or alters the submission it looks at. The classifier
call is bounded by a timeout; a timeout, an error or a malformed answer
fails OPEN: exactly one ``screening-unavailable`` incident (severity low) is
raised so that a person still reviews the content. Failures to persist an
incident are logged and never reach the student.
"""
from typing import Any, Dict, List, Optional, Tuple
import asyncio
import logging
import time

from pydantic import ValidationError as PydanticValidationError

from ..database.repositories import SafetyIncidentRepository
from ..models.events import IncidentRaised
from ..models.incident import SafetyClassification, SafetyIncident, ScreeningResult
from ..services.roster import RosterProvider
from ..services.safety_classifiers import SafetyClassifier
from .cache import sanitize_for_logs
from .constants import (
    DEFAULT_CLASSIFIER_TIMEOUT_SECONDS,
    INCIDENT_SEVERITIES,
    INCIDENT_STATUSES,
    SCREENING_UNAVAILABLE_INCIDENT,
    SCREENING_UNAVAILABLE_SEVERITY,
)
from .event_bus import EventBus
from .exceptions import ClassifierUnavailableError, IncidentNotFoundError, ValidationError
from . import metrics

logger = logging.getLogger(__name__)


class SafetyScreeningEngine:
    """
    Runs the safety classifier and manages the resulting incidents.

    Responsibility: screening (``screen``) plus the incident workflow
    (manual reports, status changes, resolution, open-incident listing).
    """

    def __init__(
        self,
        incident_repo: SafetyIncidentRepository,
        roster: RosterProvider,
        classifier: SafetyClassifier,
        event_bus: Optional[EventBus] = None,
        timeout_seconds: float = DEFAULT_CLASSIFIER_TIMEOUT_SECONDS,
    ):
        self.incident_repo = incident_repo
        self.roster = roster
        self.classifier = classifier
        self.event_bus = event_bus
        self.timeout_seconds = timeout_seconds

    @property
    def classifier_name(self) -> str:
        return getattr(self.classifier, "name", type(self.classifier).__name__)

    # ------------------------------------------------------------------
    # Screening
    # ------------------------------------------------------------------

    async def screen(
        self,
        student_id: str,
        assessment_id: Optional[str],
        component_skill_id: Optional[str],
        text: str,
        conversation_history: Optional[List[Dict[str, Any]]] = None,
    ) -> ScreeningResult:
        """
        Screen one piece of student text.

        Returns:
            ScreeningResult; never raises for classifier or persistence
            failures
        """
        history = list(conversation_history or [])
        started = time.perf_counter()
        failure_reason = None
        classification: Optional[SafetyClassification] = None
        try:
            raw = await asyncio.wait_for(self.classifier.classify(text, history), timeout=self.timeout_seconds)
            classification = raw if isinstance(raw, SafetyClassification) else SafetyClassification.model_validate(raw)
        except asyncio.TimeoutError:
            failure_reason = "timeout"
        except (ClassifierUnavailableError, PydanticValidationError):
            failure_reason = "malformed"
            logger.warning("Safety classifier output unusable", exc_info=True, extra={"student_id": student_id})
        except Exception:
            failure_reason = "error"
            logger.error("Safety classifier failed", exc_info=True, extra={"student_id": student_id})
        finally:
            metrics.screening_duration_seconds.observe(time.perf_counter() - started)

        if failure_reason is not None:
            metrics.screening_failures_total.labels(reason=failure_reason).inc()
            logger.warning(
                "Safety screening unavailable, failing open",
                extra={
                    "student_id": student_id,
                    "reason": failure_reason,
                    "classifier": self.classifier_name,
                    "content": sanitize_for_logs(text),
                },
            )
            incident, notified = self._record_incident(
                student_id=student_id,
                assessment_id=assessment_id,
                component_skill_id=component_skill_id,
                incident_type=SCREENING_UNAVAILABLE_INCIDENT,
                severity=SCREENING_UNAVAILABLE_SEVERITY,
                message=text,
                history=history,
                detected_by=self.classifier_name,
            )
            return ScreeningResult(
                is_risky=False,
                classifier_failed=True,
                incident=incident,
                notified_teacher_ids=notified,
            )

        if not classification.is_risky:
            logger.debug("Safety screening passed", extra={"student_id": student_id})
            return ScreeningResult(is_risky=False, classification=classification)

        incident, notified = self._record_incident(
            student_id=student_id,
            assessment_id=assessment_id,
            component_skill_id=component_skill_id,
            incident_type=classification.category or "other",
            severity=classification.severity if classification.severity in INCIDENT_SEVERITIES else "medium",
            message=text,
            history=history,
            detected_by=self.classifier_name,
        )
        return ScreeningResult(
            is_risky=True,
            classification=classification,
            incident=incident,
            notified_teacher_ids=notified,
        )

    def _record_incident(
        self,
        student_id: str,
        assessment_id: Optional[str],
        component_skill_id: Optional[str],
        incident_type: str,
        severity: str,
        message: str,
        history: List[Dict[str, Any]],
        detected_by: str,
    ) -> Tuple[Optional[SafetyIncident], List[str]]:
        """Persist an incident and notify teachers; logs instead of raising"""
        try:
            teacher_ids = self.roster.teachers_to_notify(student_id, assessment_id)
            row = self.incident_repo.create(
                student_id=student_id,
                incident_type=incident_type,
                message=message,
                severity=severity,
                teacher_id=teacher_ids[0] if teacher_ids else None,
                assessment_id=assessment_id,
                component_skill_id=component_skill_id,
                conversation_history=history,
                detected_by=detected_by,
            )
        except Exception as e:
            logger.error(
                f"Failed to persist safety incident: {type(e).__name__}",
                exc_info=True,
                extra={"student_id": student_id, "incident_type": incident_type, "severity": severity},
            )
            return None, []

        incident = SafetyIncident.model_validate(row)
        metrics.safety_incidents_total.labels(incident_type=incident_type, severity=severity).inc()
        logger.warning(
            f"Safety incident raised: {incident_type}",
            extra={
                "incident_id": incident.id,
                "student_id": student_id,
                "severity": severity,
                "teacher_count": len(teacher_ids),
            },
        )
        self._notify(incident, teacher_ids)
        return incident, teacher_ids

    def _notify(self, incident: SafetyIncident, teacher_ids: List[str]) -> None:
        if self.event_bus is None:
            return
        for teacher_id in teacher_ids or [None]:
            try:
                self.event_bus.publish(
                    IncidentRaised(
                        incident_id=incident.id,
                        student_id=incident.student_id,
                        incident_type=incident.incident_type,
                        severity=incident.severity,
                        teacher_id=teacher_id,
                    )
                )
            except Exception:
                logger.error(
                    "Incident notification failed",
                    exc_info=True,
                    extra={"incident_id": incident.id, "teacher_id": teacher_id},
                )

    # ------------------------------------------------------------------
    # Incident workflow
    # ------------------------------------------------------------------

    def report_incident(
        self,
        student_id: str,
        teacher_id: str,
        incident_type: str,
        message: str,
        severity: str = "medium",
        assessment_id: Optional[str] = None,
        component_skill_id: Optional[str] = None,
        conversation_history: Optional[List[Dict[str, Any]]] = None,
    ) -> SafetyIncident:
        """
        Manual report by a teacher. Unlike ``screen`` this raises on
        persistence failure; the caller is staff, not the student.
        """
        if severity not in INCIDENT_SEVERITIES:
            raise ValidationError(
                f"Invalid severity: '{severity}'. Expected one of: {', '.join(INCIDENT_SEVERITIES)}",
                {"severity": severity},
            )
        row = self.incident_repo.create(
            student_id=student_id,
            incident_type=incident_type,
            message=message,
            severity=severity,
            teacher_id=teacher_id,
            assessment_id=assessment_id,
            component_skill_id=component_skill_id,
            conversation_history=conversation_history,
            detected_by="teacher_report",
        )
        incident = SafetyIncident.model_validate(row)
        metrics.safety_incidents_total.labels(incident_type=incident_type, severity=severity).inc()
        logger.warning(
            f"Safety incident reported by teacher: {incident_type}",
            extra={"incident_id": incident.id, "student_id": student_id, "teacher_id": teacher_id},
        )
        self._notify(incident, [teacher_id])
        return incident

    def update_status(self, incident_id: str, status: str) -> SafetyIncident:
        if status not in INCIDENT_STATUSES:
            raise ValidationError(
                f"Invalid status: '{status}'. Expected one of: {', '.join(INCIDENT_STATUSES)}",
                {"status": status},
            )
        if status == "resolved":
            return self.resolve_incident(incident_id, resolved_by=None)
        row = self.incident_repo.update_status(incident_id, status)
        if row is None:
            raise IncidentNotFoundError(incident_id)
        logger.info("Incident status changed", extra={"incident_id": incident_id, "status": status})
        return SafetyIncident.model_validate(row)

    def resolve_incident(
        self, incident_id: str, resolved_by: Optional[str], resolution_notes: Optional[str] = None
    ) -> SafetyIncident:
        row = self.incident_repo.resolve(incident_id, resolved_by=resolved_by, resolution_notes=resolution_notes)
        if row is None:
            raise IncidentNotFoundError(incident_id)
        logger.info("Incident resolved", extra={"incident_id": incident_id, "resolved_by": resolved_by})
        return SafetyIncident.model_validate(row)

    def list_open_incidents(
        self,
        student_id: Optional[str] = None,
        teacher_id: Optional[str] = None,
        severity: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[SafetyIncident]:
        rows = self.incident_repo.get_open(
            student_id=student_id, teacher_id=teacher_id, severity=severity, limit=limit, offset=offset
        )
        return [SafetyIncident.model_validate(row) for row in rows]
