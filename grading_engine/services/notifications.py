"""
Notification / incident sink collaborators

A sink receives well-formed ``CredentialIssued`` and ``IncidentRaised``
events. Delivery is best-effort: the bus logs and swallows sink failures.
"""
from typing import Protocol, Union
import logging

from ..database.repositories import NotificationRepository
from ..models.events import CredentialIssued, IncidentRaised
from ..core.event_bus import EventBus

logger = logging.getLogger(__name__)

SinkEvent = Union[CredentialIssued, IncidentRaised]

_HIGH_PRIORITY_SEVERITIES = {"high", "critical"}


class NotificationSink(Protocol):
    def deliver(self, event: SinkEvent) -> None:
        ...


def subscribe_sink(event_bus: EventBus, sink: NotificationSink) -> None:
    event_bus.subscribe(CredentialIssued, sink.deliver)
    event_bus.subscribe(IncidentRaised, sink.deliver)


class LoggingNotificationSink:
    """Writes events to the log only"""

    def deliver(self, event: SinkEvent) -> None:
        if isinstance(event, IncidentRaised):
            logger.warning(
                "Safety incident notification",
                extra={
                    "incident_id": event.incident_id,
                    "student_id": event.student_id,
                    "teacher_id": event.teacher_id,
                    "severity": event.severity,
                },
            )
        else:
            logger.info(
                "Credential notification",
                extra={
                    "student_id": event.student_id,
                    "credential_type": event.credential_type.value,
                    "scope_id": event.scope_id,
                },
            )


class DatabaseNotificationSink:
    """In-app notifications stored in the ``notifications`` table"""

    def __init__(self, notification_repo: NotificationRepository):
        self.notification_repo = notification_repo

    def deliver(self, event: SinkEvent) -> None:
        if isinstance(event, CredentialIssued):
            self.notification_repo.create(
                user_id=event.student_id,
                notification_type="credential_issued",
                title=f"New {event.credential_type.value} earned!",
                message=f"You earned: {event.title}",
                details={
                    "credential_id": event.credential_id,
                    "credential_type": event.credential_type.value,
                    "scope_id": event.scope_id,
                },
                priority="medium",
            )
        elif isinstance(event, IncidentRaised):
            if event.teacher_id is None:
                logger.warning(
                    "Incident raised without a teacher to notify",
                    extra={"incident_id": event.incident_id, "student_id": event.student_id},
                )
                return
            self.notification_repo.create(
                user_id=event.teacher_id,
                notification_type="safety_incident",
                title="Student safety alert",
                message=f"A {event.severity} severity safety incident ({event.incident_type}) requires review.",
                details={
                    "incident_id": event.incident_id,
                    "student_id": event.student_id,
                    "incident_type": event.incident_type,
                    "severity": event.severity,
                },
                priority="high" if event.severity in _HIGH_PRIORITY_SEVERITIES else "medium",
            )
