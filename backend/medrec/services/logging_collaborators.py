"""Collaborators that only log.

Used when no delivery, eventing or prescribing backend is wired in (local
runs and tests). Each keeps what it received so it can be inspected.
"""

import logging

from medrec.schemas.collaboration import DomainEvent, Notification, PrescriptionChange

logger = logging.getLogger(__name__)


class LoggingNotificationDispatcher:
    """Writes notifications to the log instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)
        logger.info(
            f"Notification {notification.type} to {', '.join(notification.recipients)} "
            f"(org={notification.organization_id}): {notification.title}"
        )


class LoggingEventPublisher:
    """Writes domain events to the log instead of publishing them."""

    def __init__(self) -> None:
        self.published: list[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.published.append(event)
        logger.info(
            f"Event {event.event_type} for {event.entity_type}/{event.entity_id} "
            f"(org={event.organization_id})"
        )


class LoggingPrescriptionModifier:
    """Logs prescription changes instead of applying them."""

    def __init__(self) -> None:
        self.changes: list[PrescriptionChange] = []

    async def apply_change(self, change: PrescriptionChange) -> None:
        self.changes.append(change)
        logger.info(
            f"Prescription change {change.action.value} for resident {change.resident_id} "
            f"from reconciliation {change.record_id} (resolution {change.resolution.id})"
        )
