"""Pydantic schemas for the medication reconciliation engine."""

from medrec.schemas.base import (
    Adherence,
    ApprovalStatus,
    DiscrepancyStatus,
    DiscrepancyType,
    PrescriptionAction,
    ReconciliationStatus,
    ReconciliationType,
    Reliability,
    ResolutionType,
    ReviewType,
    Severity,
    SourceType,
)
from medrec.schemas.collaboration import DomainEvent, Notification, PrescriptionChange
from medrec.schemas.medication import MedicationEntry, MedicationSource
from medrec.schemas.metrics import (
    CompletionTimePercentiles,
    DateRange,
    MedicationCounts,
    ReconciliationMetrics,
    ReconciliationSummary,
)
from medrec.schemas.reconciliation import (
    Discrepancy,
    PharmacistReview,
    ReconciliationRecord,
    ReconciliationRequest,
    Resolution,
    ResolutionInput,
    ReviewInput,
    RiskAssessment,
    TransferDetails,
)

__all__ = [
    # Enums
    "Adherence",
    "ApprovalStatus",
    "DiscrepancyStatus",
    "DiscrepancyType",
    "PrescriptionAction",
    "ReconciliationStatus",
    "ReconciliationType",
    "Reliability",
    "ResolutionType",
    "ReviewType",
    "Severity",
    "SourceType",
    # Medication
    "MedicationEntry",
    "MedicationSource",
    # Reconciliation
    "Discrepancy",
    "PharmacistReview",
    "ReconciliationRecord",
    "ReconciliationRequest",
    "Resolution",
    "ResolutionInput",
    "ReviewInput",
    "RiskAssessment",
    "TransferDetails",
    # Reporting
    "CompletionTimePercentiles",
    "DateRange",
    "MedicationCounts",
    "ReconciliationMetrics",
    "ReconciliationSummary",
    # Collaboration
    "DomainEvent",
    "Notification",
    "PrescriptionChange",
]
