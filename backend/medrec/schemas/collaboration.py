"""Messages the workflow hands to external collaborators."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from medrec.schemas.base import PrescriptionAction
from medrec.schemas.reconciliation import Resolution


class Notification(BaseModel):
    """A message for the notification dispatcher."""

    type: str = Field(..., description="Notification type, e.g. critical_medication_discrepancy")
    recipients: list[str] = Field(..., description="Recipient groups or user IDs")
    title: str
    message: str
    organization_id: str
    data: dict[str, Any] = Field(default_factory=dict)


class DomainEvent(BaseModel):
    """An event for the event publisher."""

    event_type: str
    entity_id: str
    entity_type: str
    organization_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class PrescriptionChange(BaseModel):
    """A prescription mutation implied by a resolution."""

    record_id: str
    resident_id: str
    organization_id: str
    resolution: Resolution
    action: PrescriptionAction
    requested_by: str
