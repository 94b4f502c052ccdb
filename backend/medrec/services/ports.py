"""Ports/interfaces for the collaborators the reconciliation workflow uses.

These are intentionally lightweight so storage, notification delivery,
auditing, event publishing and prescription changes can be swapped
for real adapters or test doubles.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from medrec.core.audit import AuditAction, AuditEvent
from medrec.schemas.base import ReconciliationStatus
from medrec.schemas.collaboration import DomainEvent, Notification, PrescriptionChange
from medrec.schemas.medication import MedicationSource
from medrec.schemas.metrics import DateRange
from medrec.schemas.reconciliation import PharmacistReview, ReconciliationRecord, Resolution


@runtime_checkable
class ReconciliationStore(Protocol):
    """Tenant-scoped persistence for reconciliation records.

    Records are keyed by ``(id, organization_id)``. Every mutating call is
    an atomic read-modify-write that bumps the record version; when
    ``expected_version`` is given and does not match, the store raises
    ConcurrentModificationError.
    """

    async def save_record(self, record: ReconciliationRecord) -> None:
        """Insert a new record."""

    async def get_record(self, record_id: str, organization_id: str) -> ReconciliationRecord | None:
        """Return the record, or None if it does not exist for the organization."""

    async def update_status(
        self,
        record_id: str,
        status: ReconciliationStatus,
        organization_id: str,
        *,
        expected_version: int | None = None,
    ) -> ReconciliationRecord:
        """Set the record status and return the updated record."""

    async def append_resolution(
        self,
        record_id: str,
        resolution: Resolution,
        organization_id: str,
        *,
        status: ReconciliationStatus | None = None,
        expected_version: int | None = None,
    ) -> ReconciliationRecord:
        """Attach a resolution and mark its discrepancy resolved.

        When ``status`` is given the record moves to it in the same update.
        """

    async def append_review(
        self,
        record_id: str,
        review: PharmacistReview,
        organization_id: str,
        *,
        status: ReconciliationStatus | None = None,
        expected_version: int | None = None,
    ) -> ReconciliationRecord:
        """Attach a pharmacist review, moving to ``status`` in the same update when given."""

    async def query_records(
        self,
        *,
        organization_id: str,
        resident_id: str | None = None,
        date_range: DateRange | None = None,
        limit: int | None = None,
    ) -> list[ReconciliationRecord]:
        """Return matching records, most recent reconciliation date first."""


@runtime_checkable
class CurrentMedicationProvider(Protocol):
    """Looks up a resident's current active medications (the facility MAR)."""

    async def get_current_medication_list(self, resident_id: str, organization_id: str) -> MedicationSource:
        """Return the current medication list as a care_home_mar source."""


@runtime_checkable
class ResidentDirectory(Protocol):
    """Answers whether a resident exists within an organization."""

    async def resident_exists(self, resident_id: str, organization_id: str) -> bool:
        """Return True if the resident is known to the organization."""


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Delivers notifications. Fire-and-forget from the workflow's view."""

    async def send(self, notification: Notification) -> None:
        """Send a notification."""


@runtime_checkable
class AuditLogger(Protocol):
    """Records auditable activity."""

    async def log_activity(
        self,
        *,
        entity_type: str,
        entity_id: str,
        action: AuditAction,
        user_id: str,
        organization_id: str,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent | None:
        """Persist an audit entry."""


@runtime_checkable
class EventPublisher(Protocol):
    """Publishes domain events."""

    async def publish(self, event: DomainEvent) -> None:
        """Publish an event."""


@runtime_checkable
class PrescriptionModifier(Protocol):
    """Applies prescription changes implied by resolutions."""

    async def apply_change(self, change: PrescriptionChange) -> None:
        """Apply a prescription change."""


__all__ = [
    "AuditLogger",
    "CurrentMedicationProvider",
    "EventPublisher",
    "NotificationDispatcher",
    "PrescriptionModifier",
    "ReconciliationStore",
    "ResidentDirectory",
]
