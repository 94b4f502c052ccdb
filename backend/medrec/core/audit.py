"""Audit logging for reconciliation activity.

Every initiate, resolve and review action produces an audit event that
identifies the entity touched, the acting user and the owning
organization. Events are written to a dedicated ``audit`` logger; in
production that logger should be routed to a secure, append-only store.
"""

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

# Separate audit logger for security-critical events
audit_logger = logging.getLogger("audit")


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Reconciliation workflow
    INITIATE = "INITIATE"
    RESOLVE = "RESOLVE"
    REVIEW = "REVIEW"

    # Data access
    READ = "READ"

    # System
    ERROR = "ERROR"


class AuditEvent(BaseModel):
    """Audit event record.

    Contains all relevant context for an auditable action.
    """

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    action: AuditAction = Field(..., description="Type of action performed")
    entity_type: str = Field(..., description="Type of entity acted upon")
    entity_id: str | None = Field(None, description="ID of specific entity")
    user_id: str | None = Field(None, description="User who performed action")
    organization_id: str | None = Field(None, description="Owning organization")
    details: dict[str, Any] | None = Field(None, description="Additional context")
    success: bool = Field(True, description="Whether action succeeded")


def log_audit(
    action: AuditAction,
    entity_type: str,
    entity_id: str | None = None,
    user_id: str | None = None,
    organization_id: str | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
) -> AuditEvent:
    """Log an audit event.

    Args:
        action: Type of action being audited
        entity_type: The type of entity being acted upon
        entity_id: Specific entity identifier
        user_id: User performing the action
        organization_id: Organization owning the entity
        details: Additional context
        success: Whether the action succeeded

    Returns:
        The created AuditEvent
    """
    event = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        organization_id=organization_id,
        details=details,
        success=success,
    )

    log_level = logging.INFO if success else logging.WARNING
    audit_logger.log(
        log_level,
        f"AUDIT: {action.value} {entity_type}"
        f"{f'/{entity_id}' if entity_id else ''}"
        f"{f' org={organization_id}' if organization_id else ''}"
        f" success={success}",
        extra={"audit_event": event.model_dump(mode="json")},
    )

    return event


class AuditTrailLogger:
    """Audit collaborator that writes activity through ``log_audit``.

    Keeps every emitted event in ``events`` so callers (and tests) can
    inspect the trail for the lifetime of the instance.
    """

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def log_activity(
        self,
        *,
        entity_type: str,
        entity_id: str,
        action: AuditAction,
        user_id: str,
        organization_id: str,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        event = log_audit(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            organization_id=organization_id,
            details=details,
        )
        self.events.append(event)
        return event
