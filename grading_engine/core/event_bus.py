"""
In-process domain event bus

One ``publish(event)`` entry point for the closed set of domain events
(GradeSubmitted, GradeEdited, CredentialIssued, IncidentRaised).
Subscribers register per event type. Delivery is synchronous, in
subscription order, on the publishing thread.

Best-effort subscribers (the default) have their failures logged and
swallowed so that, for example, a failing credential scan never fails the
grade write that produced the event. Required subscribers propagate.

Example:
    bus = EventBus()
    bus.subscribe(GradeSubmitted, aggregation.on_grade_event)
    bus.subscribe(CredentialIssued, sink.deliver, required=True)
    bus.publish(GradeSubmitted(...))
"""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Type

from ..models.events import DomainEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[DomainEvent], None]


@dataclass(frozen=True)
class Subscription:
    event_type: type
    handler: EventHandler
    required: bool = False

    @property
    def name(self) -> str:
        return getattr(self.handler, "__qualname__", repr(self.handler))


class EventBus:
    """Thread-safe registry of per-event-type handlers"""

    def __init__(self):
        self._subscriptions: Dict[type, List[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(self, event_type: Type, handler: EventHandler, required: bool = False) -> Subscription:
        subscription = Subscription(event_type=event_type, handler=handler, required=required)
        with self._lock:
            self._subscriptions.setdefault(event_type, []).append(subscription)
        logger.debug(
            "Subscribed %s to %s", subscription.name, event_type.__name__
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            handlers = self._subscriptions.get(subscription.event_type, [])
            if subscription in handlers:
                handlers.remove(subscription)

    def publish(self, event: DomainEvent) -> int:
        """
        Deliver ``event`` to every subscriber of its type.

        Returns:
            Number of handlers that completed without error

        Raises:
            Exception: whatever a required subscriber raised
        """
        with self._lock:
            subscriptions = list(self._subscriptions.get(type(event), []))

        # Handlers run outside the lock; they may publish further events
        delivered = 0
        for subscription in subscriptions:
            try:
                subscription.handler(event)
                delivered += 1
            except Exception:
                if subscription.required:
                    raise
                logger.exception(
                    "Error in best-effort event handler %s for %s",
                    subscription.name,
                    event.kind,
                )

        logger.debug(
            "Published %s to %d/%d handlers", event.kind, delivered, len(subscriptions)
        )
        return delivered

    def subscriber_count(self, event_type: Type) -> int:
        with self._lock:
            return len(self._subscriptions.get(event_type, []))
