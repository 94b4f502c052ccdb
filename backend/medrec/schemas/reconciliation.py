"""Reconciliation record, discrepancy, resolution and review schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from medrec.core.exceptions import NotFoundError
from medrec.schemas.base import (
    ApprovalStatus,
    DiscrepancyStatus,
    DiscrepancyType,
    ReconciliationStatus,
    ReconciliationType,
    ResolutionType,
    ReviewType,
    Severity,
)
from medrec.schemas.medication import MedicationSource

SETTLED_DISCREPANCY_STATUSES = frozenset({DiscrepancyStatus.RESOLVED, DiscrepancyStatus.ACCEPTED_RISK})


class Discrepancy(BaseModel):
    """A single detected difference between two medication sources."""

    id: str = Field(..., description="Unique discrepancy identifier")
    type: DiscrepancyType = Field(..., description="Kind of difference")
    severity: Severity = Field(..., description="Severity tier")
    medication_name: str = Field(..., description="Medication the difference concerns")
    source_value: str | None = Field(None, description="Value on the source list")
    target_value: str | None = Field(None, description="Value on the target list")
    description: str = Field(..., description="Short description")
    clinical_significance: str = Field(..., description="Clinical risk statement")
    requires_action: bool = Field(True, description="Whether someone has to act on it")
    identified_by: str = Field(..., description="Actor that ran detection")
    identified_date: datetime = Field(..., description="When it was detected")
    status: DiscrepancyStatus = Field(DiscrepancyStatus.IDENTIFIED, description="Lifecycle status")

    @property
    def is_settled(self) -> bool:
        """Resolved or accepted as a known risk."""
        return self.status in SETTLED_DISCREPANCY_STATUSES


class ResolutionInput(BaseModel):
    """Caller-supplied part of a resolution (id, date and resolver are assigned)."""

    resolution_type: ResolutionType = Field(..., description="How the discrepancy was resolved")
    resolution_action: str = Field(..., description="What was done")
    rationale: str = Field(..., description="Why")
    approved_by: str | None = Field(None, description="Approver, if any")
    approval_date: datetime | None = Field(None, description="When it was approved")
    follow_up_required: bool = Field(False, description="Whether follow-up is needed")
    follow_up_date: datetime | None = Field(None, description="When to follow up")


class Resolution(ResolutionInput):
    """Resolution attached to a reconciliation record.

    References its discrepancy by ID; a discrepancy has at most one
    active resolution.
    """

    id: str = Field(..., description="Unique resolution identifier")
    discrepancy_id: str = Field(..., description="Discrepancy this resolves")
    resolved_by: str = Field(..., description="User who resolved it")
    resolved_date: datetime = Field(..., description="When it was resolved")


class RiskAssessment(BaseModel):
    """Pharmacist's risk view of the reconciliation."""

    overall_risk: Severity = Field(..., description="Overall risk level")
    specific_risks: list[str] = Field(default_factory=list)
    mitigation_strategies: list[str] = Field(default_factory=list)


class ReviewInput(BaseModel):
    """Caller-supplied part of a pharmacist review."""

    pharmacist_name: str = Field(..., description="Reviewing pharmacist's name")
    review_type: ReviewType = Field(..., description="Stage of review")
    recommendations: list[str] = Field(default_factory=list)
    clinical_assessment: str = Field(..., min_length=20, max_length=5000)
    risk_assessment: RiskAssessment
    approval_status: ApprovalStatus = Field(..., description="Review outcome")
    notes: str = Field("", max_length=5000)


class PharmacistReview(ReviewInput):
    """Pharmacist review attached to a record (latest one wins)."""

    pharmacist_id: str = Field(..., description="Reviewing user")
    review_date: datetime = Field(..., description="When the review was performed")


class TransferDetails(BaseModel):
    """Where a resident moved from and to, for transfer reconciliations."""

    from_location: str
    to_location: str
    transfer_date: datetime
    transfer_reason: str


class ReconciliationRequest(BaseModel):
    """Request to start a reconciliation.

    Required-ness of ``resident_id`` and a non-empty active source list is
    checked by the workflow so failures surface as ValidationError.
    """

    resident_id: str = Field(..., description="Resident being reconciled")
    reconciliation_type: ReconciliationType = Field(..., description="Triggering transition")
    source_list: MedicationSource = Field(..., description="List to reconcile from")
    target_list: MedicationSource | None = Field(None, description="List to reconcile against")
    performed_by: str = Field(..., description="Clinician performing the reconciliation")
    clinical_notes: str | None = Field(None, description="Free-text notes")
    organization_id: str = Field(..., description="Owning organization")
    transfer_details: TransferDetails | None = Field(None, description="Transfer context")


class ReconciliationRecord(BaseModel):
    """Aggregate root of a reconciliation.

    Owns its discrepancies and resolutions. Never deleted. Updates go
    through the ``with_*`` methods, each of which returns a new record
    with only the named fields changed, ``updated_at`` refreshed and
    ``version`` bumped.
    """

    id: str
    resident_id: str
    reconciliation_type: ReconciliationType
    reconciliation_date: datetime
    performed_by: str
    reviewed_by: str | None = None
    status: ReconciliationStatus = ReconciliationStatus.IN_PROGRESS
    source_list: MedicationSource
    target_list: MedicationSource
    discrepancies: list[Discrepancy] = Field(default_factory=list)
    resolutions: list[Resolution] = Field(default_factory=list)
    clinical_notes: str = ""
    pharmacist_review: PharmacistReview | None = None
    organization_id: str
    created_at: datetime
    updated_at: datetime
    version: int = 1

    model_config = {"from_attributes": True}

    @property
    def is_fully_resolved(self) -> bool:
        """Every discrepancy is resolved or accepted as a risk."""
        return all(d.is_settled for d in self.discrepancies)

    @property
    def critical_discrepancies(self) -> list[Discrepancy]:
        return [d for d in self.discrepancies if d.severity == Severity.CRITICAL]

    def find_discrepancy(self, discrepancy_id: str) -> Discrepancy | None:
        for discrepancy in self.discrepancies:
            if discrepancy.id == discrepancy_id:
                return discrepancy
        return None

    def resolution_for(self, discrepancy_id: str) -> Resolution | None:
        for resolution in self.resolutions:
            if resolution.discrepancy_id == discrepancy_id:
                return resolution
        return None

    def with_resolution(
        self,
        resolution: Resolution,
        now: datetime,
        status: ReconciliationStatus | None = None,
    ) -> "ReconciliationRecord":
        """Attach a resolution, replacing any earlier one for the same discrepancy.

        Marks the referenced discrepancy as resolved and, when ``status`` is
        given, moves the record to it in the same update.

        Raises:
            NotFoundError: If the discrepancy is not on this record.
        """
        if self.find_discrepancy(resolution.discrepancy_id) is None:
            raise NotFoundError("Discrepancy", resolution.discrepancy_id, self.organization_id)

        discrepancies = [
            d.model_copy(update={"status": DiscrepancyStatus.RESOLVED})
            if d.id == resolution.discrepancy_id
            else d.model_copy()
            for d in self.discrepancies
        ]
        resolutions = [r.model_copy() for r in self.resolutions if r.discrepancy_id != resolution.discrepancy_id]
        resolutions.append(resolution)
        return self._updated(now, status, discrepancies=discrepancies, resolutions=resolutions)

    def with_review(
        self,
        review: PharmacistReview,
        now: datetime,
        status: ReconciliationStatus | None = None,
    ) -> "ReconciliationRecord":
        """Attach a pharmacist review, record the reviewer and optionally move status."""
        return self._updated(now, status, pharmacist_review=review, reviewed_by=review.pharmacist_id)

    def with_status(self, status: ReconciliationStatus, now: datetime) -> "ReconciliationRecord":
        return self._updated(now, status)

    def _updated(
        self,
        now: datetime,
        status: ReconciliationStatus | None = None,
        **changes,
    ) -> "ReconciliationRecord":
        if status is not None:
            changes["status"] = status
        changes["updated_at"] = now
        changes["version"] = self.version + 1
        return self.model_copy(update=changes, deep=False)
