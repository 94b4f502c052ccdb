"""Base enums for the medication reconciliation engine."""

from enum import Enum


class SourceType(str, Enum):
    """Care-transition point a medication list was taken from."""

    HOME_MEDICATIONS = "home_medications"
    HOSPITAL_MEDICATIONS = "hospital_medications"
    GP_LIST = "gp_list"
    PHARMACY_RECORDS = "pharmacy_records"
    CARE_HOME_MAR = "care_home_mar"


class Reliability(str, Enum):
    """How trustworthy a medication source is."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNVERIFIED = "unverified"


class Adherence(str, Enum):
    """Observed adherence to a medication."""

    GOOD = "good"
    POOR = "poor"
    UNKNOWN = "unknown"


class DiscrepancyType(str, Enum):
    """Kind of difference found between two medication lists."""

    OMISSION = "omission"
    ADDITION = "addition"
    DOSE_CHANGE = "dose_change"
    FREQUENCY_CHANGE = "frequency_change"
    ROUTE_CHANGE = "route_change"
    FORMULATION_CHANGE = "formulation_change"
    TIMING_CHANGE = "timing_change"
    INDICATION_CHANGE = "indication_change"


class Severity(str, Enum):
    """Severity tier of a discrepancy (also used for review risk levels)."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DiscrepancyStatus(str, Enum):
    """Lifecycle of a single discrepancy."""

    IDENTIFIED = "identified"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    ACCEPTED_RISK = "accepted_risk"


class ResolutionType(str, Enum):
    """How a discrepancy was resolved."""

    MEDICATION_ADDED = "medication_added"
    MEDICATION_REMOVED = "medication_removed"
    DOSE_ADJUSTED = "dose_adjusted"
    FREQUENCY_CHANGED = "frequency_changed"
    ROUTE_CHANGED = "route_changed"
    NO_ACTION_REQUIRED = "no_action_required"
    CLINICAL_REVIEW_REQUESTED = "clinical_review_requested"


class ReviewType(str, Enum):
    """Stage of pharmacist review."""

    INITIAL = "initial"
    FOLLOW_UP = "follow_up"
    FINAL_APPROVAL = "final_approval"


class ApprovalStatus(str, Enum):
    """Outcome of a pharmacist review."""

    APPROVED = "approved"
    REQUIRES_CHANGES = "requires_changes"
    REJECTED = "rejected"


class ReconciliationType(str, Enum):
    """Care transition that triggered the reconciliation."""

    ADMISSION = "admission"
    DISCHARGE = "discharge"
    TRANSFER = "transfer"
    PERIODIC_REVIEW = "periodic_review"


class ReconciliationStatus(str, Enum):
    """Status of a reconciliation record."""

    IN_PROGRESS = "in_progress"
    REQUIRES_REVIEW = "requires_review"
    COMPLETED = "completed"
    APPROVED = "approved"


class PrescriptionAction(str, Enum):
    """Prescription mutation implied by a resolution."""

    ADD = "add"
    DISCONTINUE = "discontinue"
    ADJUST_DOSE = "adjust_dose"
    ADJUST_FREQUENCY = "adjust_frequency"
    ADJUST_ROUTE = "adjust_route"
