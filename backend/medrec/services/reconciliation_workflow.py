"""Medication Reconciliation Workflow Service.

Drives a reconciliation from initiation to sign-off:
- initiate: detect discrepancies between two lists, persist the record,
  alert on critical findings and request pharmacist review when needed
- resolve_discrepancy: record a resolution, apply the implied
  prescription change, complete the record once every discrepancy is
  settled
- perform_pharmacist_review: attach a review and approve the record or
  send it back for changes

Status transitions:
    (initiate, no discrepancies) --> completed
    in_progress | requires_review --(all discrepancies settled)--> completed
    any but approved --(review approved)--> approved
    any but approved --(review requires_changes / rejected)--> requires_review

Operations on the same resident are serialized with a per-resident lock;
stores additionally reject writes against a stale record version.
Each operation runs its audit, event and prescription collaborators first
and writes the record in a single store update last, so a failing
collaborator leaves the stored record untouched. Notifications are best
effort and go out after the write.

Note: This is a clinical decision support workflow and does not replace
clinical judgment.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
import logging
from typing import Any
from uuid import uuid4

from medrec.core.audit import AuditAction, AuditTrailLogger
from medrec.core.config import settings
from medrec.core.exceptions import NotFoundError, StateError, ValidationError
from medrec.schemas.base import (
    ApprovalStatus,
    PrescriptionAction,
    ReconciliationStatus,
    ResolutionType,
    Severity,
)
from medrec.schemas.collaboration import DomainEvent, Notification, PrescriptionChange
from medrec.schemas.reconciliation import (
    PharmacistReview,
    ReconciliationRecord,
    ReconciliationRequest,
    Resolution,
    ResolutionInput,
    ReviewInput,
)
from medrec.services.discrepancy_detector import (
    SeverityClassifier,
    detect_discrepancies,
    get_severity_classifier,
    requires_pharmacist_review,
)
from medrec.services.logging_collaborators import (
    LoggingEventPublisher,
    LoggingNotificationDispatcher,
    LoggingPrescriptionModifier,
)
from medrec.services.ports import (
    AuditLogger,
    CurrentMedicationProvider,
    EventPublisher,
    NotificationDispatcher,
    PrescriptionModifier,
    ReconciliationStore,
    ResidentDirectory,
)
from medrec.services.reconciliation_metrics import calculate_completion_time

logger = logging.getLogger(__name__)

RECORD_ENTITY = "MedicationReconciliation"
RESOLUTION_ENTITY = "DiscrepancyResolution"
REVIEW_ENTITY = "PharmacistReview"

COMPLETED_EVENT = "medication_reconciliation_completed"

ACTIVE_STATUSES = frozenset({ReconciliationStatus.IN_PROGRESS, ReconciliationStatus.REQUIRES_REVIEW})

PRESCRIPTION_ACTIONS: dict[ResolutionType, PrescriptionAction] = {
    ResolutionType.MEDICATION_ADDED: PrescriptionAction.ADD,
    ResolutionType.MEDICATION_REMOVED: PrescriptionAction.DISCONTINUE,
    ResolutionType.DOSE_ADJUSTED: PrescriptionAction.ADJUST_DOSE,
    ResolutionType.FREQUENCY_CHANGED: PrescriptionAction.ADJUST_FREQUENCY,
    ResolutionType.ROUTE_CHANGED: PrescriptionAction.ADJUST_ROUTE,
}


@dataclass(frozen=True)
class WorkflowPolicy:
    """Configurable answers to the workflow's open policy questions."""

    allow_review_after_completion: bool = True
    allow_re_resolution: bool = True
    allow_unrequested_review: bool = False
    clinical_team_recipient: str = "clinical_team"
    pharmacist_team_recipient: str = "pharmacist_team"

    @classmethod
    def from_settings(cls) -> "WorkflowPolicy":
        return cls(
            allow_review_after_completion=settings.allow_review_after_completion,
            allow_re_resolution=settings.allow_re_resolution,
            allow_unrequested_review=settings.allow_unrequested_review,
            clinical_team_recipient=settings.clinical_team_recipient,
            pharmacist_team_recipient=settings.pharmacist_team_recipient,
        )


class ReconciliationWorkflowService:
    """Stateful orchestrator for medication reconciliations.

    All collaborators are injected. Notification, event, audit and
    prescription collaborators default to logging-only implementations.

    Usage:
        service = ReconciliationWorkflowService(store, medication_provider)
        record = await service.initiate(request, user_id="nurse-1")
        await service.resolve_discrepancy(record.id, discrepancy_id, resolution, org_id, "nurse-1")
    """

    def __init__(
        self,
        store: ReconciliationStore,
        medication_provider: CurrentMedicationProvider,
        *,
        notifications: NotificationDispatcher | None = None,
        audit_logger: AuditLogger | None = None,
        events: EventPublisher | None = None,
        prescriptions: PrescriptionModifier | None = None,
        resident_directory: ResidentDirectory | None = None,
        classifier: SeverityClassifier | None = None,
        policy: WorkflowPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._medication_provider = medication_provider
        self._notifications = notifications or LoggingNotificationDispatcher()
        self._audit = audit_logger or AuditTrailLogger()
        self._events = events or LoggingEventPublisher()
        self._prescriptions = prescriptions or LoggingPrescriptionModifier()
        self._resident_directory = resident_directory
        self._classifier = classifier or get_severity_classifier()
        self._policy = policy or WorkflowPolicy.from_settings()
        self._clock = clock or (lambda: datetime.now(UTC))
        self._resident_locks: dict[tuple[str, str], asyncio.Lock] = {}

    @property
    def policy(self) -> WorkflowPolicy:
        return self._policy

    def _resident_lock(self, organization_id: str, resident_id: str) -> asyncio.Lock:
        return self._resident_locks.setdefault((organization_id, resident_id), asyncio.Lock())

    # ------------------------------------------------------------------
    # Initiate
    # ------------------------------------------------------------------

    async def initiate(self, request: ReconciliationRequest, user_id: str) -> ReconciliationRecord:
        """Start a reconciliation.

        Args:
            request: Reconciliation request; when ``target_list`` is
                missing the resident's current medication list is used.
            user_id: Acting user, credited with identifying discrepancies.

        Returns:
            The persisted record: ``completed`` (and finalized) when the
            lists match, ``requires_review`` when any discrepancy crosses
            the review threshold, else ``in_progress``.

        Raises:
            ValidationError: Missing fields, no active source medications,
                or unknown resident.
        """
        await self._validate_request(request)

        context = {
            "operation": "initiate",
            "resident_id": request.resident_id,
            "organization_id": request.organization_id,
            "user_id": user_id,
        }
        async with self._resident_lock(request.organization_id, request.resident_id):
            try:
                target_list = request.target_list
                if target_list is None:
                    target_list = await self._medication_provider.get_current_medication_list(
                        request.resident_id, request.organization_id
                    )

                now = self._clock()
                discrepancies = detect_discrepancies(
                    request.source_list,
                    target_list,
                    user_id,
                    classifier=self._classifier,
                    now=now,
                )
                review_required = requires_pharmacist_review(discrepancies)
                if not discrepancies:
                    status = ReconciliationStatus.COMPLETED
                elif review_required:
                    status = ReconciliationStatus.REQUIRES_REVIEW
                else:
                    status = ReconciliationStatus.IN_PROGRESS

                record = ReconciliationRecord(
                    id=str(uuid4()),
                    resident_id=request.resident_id,
                    reconciliation_type=request.reconciliation_type,
                    reconciliation_date=now,
                    performed_by=request.performed_by,
                    status=status,
                    source_list=request.source_list,
                    target_list=target_list,
                    discrepancies=discrepancies,
                    clinical_notes=request.clinical_notes or "",
                    organization_id=request.organization_id,
                    created_at=now,
                    updated_at=now,
                )
                context["record_id"] = record.id

                await self._audit.log_activity(
                    entity_type=RECORD_ENTITY,
                    entity_id=record.id,
                    action=AuditAction.INITIATE,
                    user_id=user_id,
                    organization_id=request.organization_id,
                    details={
                        "resident_id": request.resident_id,
                        "reconciliation_type": request.reconciliation_type.value,
                        "discrepancies_found": len(discrepancies),
                        "requires_pharmacist_review": review_required,
                        "transfer_details": (
                            request.transfer_details.model_dump(mode="json")
                            if request.transfer_details
                            else None
                        ),
                    },
                )
                if record.status == ReconciliationStatus.COMPLETED:
                    await self._finalize(record)

                await self._store.save_record(record)
            except Exception:
                logger.exception(f"Error initiating medication reconciliation {context}")
                raise

        await self._send_critical_discrepancy_alerts(record)
        if review_required:
            await self._request_pharmacist_review(record)

        logger.info(
            f"Medication reconciliation initiated: id={record.id} resident={record.resident_id} "
            f"type={record.reconciliation_type.value} discrepancies={len(discrepancies)} "
            f"status={record.status.value} org={record.organization_id}"
        )
        return record

    async def _validate_request(self, request: ReconciliationRequest) -> None:
        missing = [
            name
            for name in ("resident_id", "reconciliation_type", "performed_by", "organization_id")
            if not getattr(request, name)
        ]
        if request.source_list is None:
            missing.append("source_list")
        if missing:
            raise ValidationError(
                "Invalid reconciliation request: missing required fields",
                details=[{"field": name, "message": "Field required"} for name in missing],
            )

        if not request.source_list.active_medications:
            raise ValidationError(
                "Source medication list cannot be empty",
                details=[{"field": "source_list.medications", "message": "No active medications"}],
            )

        if self._resident_directory is not None:
            exists = await self._resident_directory.resident_exists(request.resident_id, request.organization_id)
            if not exists:
                raise ValidationError(
                    "Resident not found",
                    details=[{"field": "resident_id", "message": f"Unknown resident {request.resident_id}"}],
                )

    # ------------------------------------------------------------------
    # Resolve
    # ------------------------------------------------------------------

    async def resolve_discrepancy(
        self,
        record_id: str,
        discrepancy_id: str,
        resolution: ResolutionInput,
        organization_id: str,
        user_id: str,
    ) -> Resolution:
        """Resolve one discrepancy on a record.

        Completes the record and publishes the completion event when this
        settles the last outstanding discrepancy. Resolutions other than
        ``no_action_required`` that map to a prescription action are sent
        to the prescription modifier.

        Raises:
            NotFoundError: Unknown record or discrepancy.
            StateError: Record already completed/approved, or discrepancy
                already resolved while re-resolution is disabled.
        """
        record = await self.get_record(record_id, organization_id)

        context = {
            "operation": "resolve_discrepancy",
            "record_id": record_id,
            "discrepancy_id": discrepancy_id,
            "resident_id": record.resident_id,
            "organization_id": organization_id,
            "user_id": user_id,
        }
        async with self._resident_lock(organization_id, record.resident_id):
            record = await self.get_record(record_id, organization_id)

            if record.status not in ACTIVE_STATUSES:
                raise StateError(
                    f"Cannot resolve discrepancies on a {record.status.value} reconciliation",
                    current_status=record.status.value,
                )
            discrepancy = record.find_discrepancy(discrepancy_id)
            if discrepancy is None:
                raise NotFoundError("Discrepancy", discrepancy_id, organization_id)
            if record.resolution_for(discrepancy_id) is not None and not self._policy.allow_re_resolution:
                raise StateError(
                    f"Discrepancy {discrepancy_id} is already resolved",
                    current_status=discrepancy.status.value,
                )

            now = self._clock()
            discrepancy_resolution = Resolution(
                id=str(uuid4()),
                discrepancy_id=discrepancy_id,
                resolved_by=user_id,
                resolved_date=now,
                **resolution.model_dump(),
            )
            resolved = record.with_resolution(discrepancy_resolution, now)
            completes = resolved.is_fully_resolved

            try:
                if discrepancy_resolution.resolution_type != ResolutionType.NO_ACTION_REQUIRED:
                    await self._apply_medication_change(record, discrepancy_resolution, user_id)

                await self._audit.log_activity(
                    entity_type=RESOLUTION_ENTITY,
                    entity_id=discrepancy_resolution.id,
                    action=AuditAction.RESOLVE,
                    user_id=user_id,
                    organization_id=organization_id,
                    details={
                        "reconciliation_id": record_id,
                        "discrepancy_id": discrepancy_id,
                        "resolution_type": discrepancy_resolution.resolution_type.value,
                        "resolution_action": discrepancy_resolution.resolution_action,
                        "follow_up_required": discrepancy_resolution.follow_up_required,
                        "completes_reconciliation": completes,
                    },
                )

                if completes:
                    await self._finalize(resolved)

                await self._store.append_resolution(
                    record_id,
                    discrepancy_resolution,
                    organization_id,
                    status=ReconciliationStatus.COMPLETED if completes else None,
                    expected_version=record.version,
                )
            except Exception:
                logger.exception(f"Error resolving medication discrepancy {context}")
                raise

        logger.info(
            f"Medication discrepancy resolved: record={record_id} discrepancy={discrepancy_id} "
            f"resolution={discrepancy_resolution.id} "
            f"type={discrepancy_resolution.resolution_type.value} org={organization_id}"
        )
        return discrepancy_resolution

    async def _finalize(self, record: ReconciliationRecord) -> None:
        await self._events.publish(
            DomainEvent(
                event_type=COMPLETED_EVENT,
                entity_id=record.id,
                entity_type=RECORD_ENTITY,
                organization_id=record.organization_id,
                data={
                    "resident_id": record.resident_id,
                    "reconciliation_type": record.reconciliation_type.value,
                    "discrepancies_found": len(record.discrepancies),
                    "discrepancies_resolved": len(record.resolutions),
                    "completion_time_minutes": calculate_completion_time(record.created_at, self._clock()),
                },
            )
        )
        logger.info(
            f"Medication reconciliation finalized: id={record.id} resident={record.resident_id} "
            f"org={record.organization_id}"
        )

    async def _apply_medication_change(
        self,
        record: ReconciliationRecord,
        resolution: Resolution,
        user_id: str,
    ) -> None:
        action = PRESCRIPTION_ACTIONS.get(resolution.resolution_type)
        if action is None:
            return
        await self._prescriptions.apply_change(
            PrescriptionChange(
                record_id=record.id,
                resident_id=record.resident_id,
                organization_id=record.organization_id,
                resolution=resolution,
                action=action,
                requested_by=user_id,
            )
        )

    # ------------------------------------------------------------------
    # Pharmacist review
    # ------------------------------------------------------------------

    async def perform_pharmacist_review(
        self,
        record_id: str,
        review: ReviewInput,
        organization_id: str,
        user_id: str,
    ) -> PharmacistReview:
        """Attach a pharmacist review and move the record accordingly.

        ``approved`` moves the record to ``approved``; any other outcome
        sends it back to ``requires_review``. The acting user is recorded
        as the reviewing pharmacist.

        Raises:
            NotFoundError: Unknown record.
            StateError: Record already approved, completed while reviews
                after completion are disabled, or never needed review while
                unrequested reviews are disabled.
        """
        record = await self.get_record(record_id, organization_id)

        context = {
            "operation": "perform_pharmacist_review",
            "record_id": record_id,
            "resident_id": record.resident_id,
            "organization_id": organization_id,
            "user_id": user_id,
        }
        async with self._resident_lock(organization_id, record.resident_id):
            record = await self.get_record(record_id, organization_id)
            self._check_reviewable(record)

            pharmacist_review = PharmacistReview(
                **review.model_dump(),
                pharmacist_id=user_id,
                review_date=self._clock(),
            )
            new_status = (
                ReconciliationStatus.APPROVED
                if pharmacist_review.approval_status == ApprovalStatus.APPROVED
                else ReconciliationStatus.REQUIRES_REVIEW
            )

            try:
                await self._audit.log_activity(
                    entity_type=REVIEW_ENTITY,
                    entity_id=record_id,
                    action=AuditAction.REVIEW,
                    user_id=user_id,
                    organization_id=organization_id,
                    details={
                        "reconciliation_id": record_id,
                        "review_type": pharmacist_review.review_type.value,
                        "approval_status": pharmacist_review.approval_status.value,
                        "overall_risk": pharmacist_review.risk_assessment.overall_risk.value,
                        "recommendations_count": len(pharmacist_review.recommendations),
                    },
                )

                updated = await self._store.append_review(
                    record_id,
                    pharmacist_review,
                    organization_id,
                    status=new_status,
                    expected_version=record.version,
                )
            except Exception:
                logger.exception(f"Error performing pharmacist review {context}")
                raise

        if pharmacist_review.approval_status == ApprovalStatus.REQUIRES_CHANGES:
            await self._send_review_feedback(updated, pharmacist_review)
        elif pharmacist_review.approval_status == ApprovalStatus.APPROVED:
            await self._send_approval(updated)

        logger.info(
            f"Pharmacist review completed: record={record_id} pharmacist={user_id} "
            f"type={pharmacist_review.review_type.value} "
            f"outcome={pharmacist_review.approval_status.value} org={organization_id}"
        )
        return pharmacist_review

    def _check_reviewable(self, record: ReconciliationRecord) -> None:
        if record.status == ReconciliationStatus.APPROVED:
            raise StateError("Reconciliation is already approved", current_status=record.status.value)
        if record.status == ReconciliationStatus.COMPLETED and not self._policy.allow_review_after_completion:
            raise StateError(
                "Reconciliation is completed and no longer accepts reviews",
                current_status=record.status.value,
            )
        if not self._policy.allow_unrequested_review and not requires_pharmacist_review(record.discrepancies):
            raise StateError(
                "Reconciliation has no discrepancies requiring pharmacist review",
                current_status=record.status.value,
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_record(self, record_id: str, organization_id: str) -> ReconciliationRecord:
        """Load a record for an organization.

        Raises:
            NotFoundError: If the record does not exist for the organization.
        """
        record = await self._store.get_record(record_id, organization_id)
        if record is None:
            raise NotFoundError("ReconciliationRecord", record_id, organization_id)
        return record

    # ------------------------------------------------------------------
    # Notifications (best effort)
    # ------------------------------------------------------------------

    async def _notify(self, notification: Notification) -> None:
        try:
            await self._notifications.send(notification)
        except Exception:
            logger.exception(
                f"Failed to send {notification.type} notification "
                f"(org={notification.organization_id}, data={notification.data})"
            )

    async def _send_critical_discrepancy_alerts(self, record: ReconciliationRecord) -> None:
        critical = record.critical_discrepancies
        if not critical:
            return
        await self._notify(
            Notification(
                type="critical_medication_discrepancy",
                recipients=[self._policy.clinical_team_recipient],
                title="CRITICAL: Medication Reconciliation Alert",
                message=(
                    f"Critical medication discrepancies found during "
                    f"{record.reconciliation_type.value} reconciliation for resident {record.resident_id}"
                ),
                organization_id=record.organization_id,
                data={
                    "reconciliation_id": record.id,
                    "resident_id": record.resident_id,
                    "reconciliation_type": record.reconciliation_type.value,
                    "critical_discrepancies": len(critical),
                    "discrepancies": [
                        {"type": d.type.value, "medication": d.medication_name, "severity": d.severity.value}
                        for d in critical
                    ],
                },
            )
        )

    async def _request_pharmacist_review(self, record: ReconciliationRecord) -> None:
        high_risk = [d for d in record.discrepancies if d.severity in (Severity.CRITICAL, Severity.HIGH)]
        await self._notify(
            Notification(
                type="pharmacist_review_required",
                recipients=[self._policy.pharmacist_team_recipient],
                title="Pharmacist Review Required",
                message=f"Medication reconciliation requires pharmacist review for resident {record.resident_id}",
                organization_id=record.organization_id,
                data={
                    "reconciliation_id": record.id,
                    "resident_id": record.resident_id,
                    "reconciliation_type": record.reconciliation_type.value,
                    "discrepancies_count": len(record.discrepancies),
                    "high_risk_discrepancies": len(high_risk),
                },
            )
        )

    async def _send_review_feedback(self, record: ReconciliationRecord, review: PharmacistReview) -> None:
        data: dict[str, Any] = {
            "reconciliation_id": record.id,
            "review_type": review.review_type.value,
            "approval_status": review.approval_status.value,
            "recommendations": list(review.recommendations),
            "overall_risk": review.risk_assessment.overall_risk.value,
        }
        await self._notify(
            Notification(
                type="reconciliation_review_feedback",
                recipients=[self._policy.clinical_team_recipient],
                title="Medication Reconciliation Review Feedback",
                message=f"Pharmacist review completed for reconciliation {record.id}. Changes required.",
                organization_id=record.organization_id,
                data=data,
            )
        )

    async def _send_approval(self, record: ReconciliationRecord) -> None:
        await self._notify(
            Notification(
                type="reconciliation_approved",
                recipients=[self._policy.clinical_team_recipient],
                title="Medication Reconciliation Approved",
                message=f"Medication reconciliation {record.id} has been approved by pharmacist.",
                organization_id=record.organization_id,
                data={"reconciliation_id": record.id},
            )
        )
