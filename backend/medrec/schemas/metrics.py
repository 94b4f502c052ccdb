"""Reporting schemas: history summaries and organization metrics."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator


class DateRange(BaseModel):
    """Inclusive date range for metrics queries."""

    start_date: datetime
    end_date: datetime

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class MedicationCounts(BaseModel):
    """Medication counts per list for one reconciliation."""

    source: int = 0
    target: int = 0
    final: int = 0


class ReconciliationSummary(BaseModel):
    """One row of a resident's reconciliation history."""

    reconciliation_id: str
    resident_id: str
    reconciliation_type: str
    reconciliation_date: datetime
    status: str
    total_medications: MedicationCounts
    discrepancies_found: int
    discrepancies_resolved: int
    critical_issues: int
    pharmacist_review_required: bool
    completion_time_minutes: int = Field(..., description="Minutes between creation and last update")
    performed_by: str
    reviewed_by: str | None = None


class CompletionTimePercentiles(BaseModel):
    """Distribution of completion times in minutes."""

    median: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


class ReconciliationMetrics(BaseModel):
    """Organization-level reconciliation analytics over a date range."""

    total_reconciliations: int = 0
    average_discrepancies: float = 0.0
    average_completion_time: float = 0.0
    discrepancy_types: dict[str, int] = Field(default_factory=dict)
    resolution_types: dict[str, int] = Field(default_factory=dict)
    pharmacist_review_rate: float = 0.0
    critical_issue_rate: float = 0.0
    time_to_completion: CompletionTimePercentiles = Field(default_factory=CompletionTimePercentiles)
