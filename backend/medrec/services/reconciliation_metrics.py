"""Reconciliation Metrics Service.

Reports on persisted reconciliation records:
- Per-resident reconciliation history summaries
- Organization-level metrics over a date range (discrepancy and
  resolution frequencies, review and critical-issue rates, completion
  time percentiles)
"""

import asyncio
from collections import Counter
from collections.abc import Sequence
from datetime import datetime
import logging
import math

from medrec.core.config import settings
from medrec.schemas.base import Severity
from medrec.schemas.metrics import (
    CompletionTimePercentiles,
    DateRange,
    MedicationCounts,
    ReconciliationMetrics,
    ReconciliationSummary,
)
from medrec.schemas.reconciliation import ReconciliationRecord
from medrec.services.ports import ReconciliationStore

logger = logging.getLogger(__name__)


def calculate_completion_time(start: datetime, end: datetime) -> int:
    """Whole minutes between two timestamps, rounding halves up."""
    minutes = (end - start).total_seconds() / 60
    return math.floor(minutes + 0.5)


def calculate_percentile(values: Sequence[float], percentile: float) -> float:
    """Percentile by linear interpolation between closest ranks.

    ``index = p/100 * (n-1)``; when the index falls between two ranks
    the result is weighted by its distance to each. An empty sequence
    yields 0.

    >>> calculate_percentile([10, 20, 30, 40], 50)
    25.0
    """
    if not values:
        return 0
    ordered = sorted(values)
    index = (percentile / 100) * (len(ordered) - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return ordered[lower]
    return ordered[lower] * (upper - index) + ordered[upper] * (index - lower)


def summarize_record(record: ReconciliationRecord) -> ReconciliationSummary:
    """Build the history summary row for one record."""
    target_count = len(record.target_list.medications)
    return ReconciliationSummary(
        reconciliation_id=record.id,
        resident_id=record.resident_id,
        reconciliation_type=record.reconciliation_type.value,
        reconciliation_date=record.reconciliation_date,
        status=record.status.value,
        total_medications=MedicationCounts(
            source=len(record.source_list.medications),
            target=target_count,
            final=target_count,
        ),
        discrepancies_found=len(record.discrepancies),
        discrepancies_resolved=len(record.resolutions),
        critical_issues=len(record.critical_discrepancies),
        pharmacist_review_required=any(
            d.severity in (Severity.HIGH, Severity.CRITICAL) for d in record.discrepancies
        ),
        completion_time_minutes=calculate_completion_time(record.created_at, record.updated_at),
        performed_by=record.performed_by,
        reviewed_by=record.reviewed_by,
    )


def aggregate_metrics(records: Sequence[ReconciliationRecord]) -> ReconciliationMetrics:
    """Compute organization metrics over a set of records."""
    total_records = len(records)
    if total_records == 0:
        return ReconciliationMetrics()

    discrepancy_types: Counter[str] = Counter()
    resolution_types: Counter[str] = Counter()
    completion_times: list[int] = []
    total_discrepancies = 0
    critical_discrepancies = 0
    reviewed_records = 0

    for record in records:
        total_discrepancies += len(record.discrepancies)
        critical_discrepancies += len(record.critical_discrepancies)
        if record.pharmacist_review is not None:
            reviewed_records += 1
        discrepancy_types.update(d.type.value for d in record.discrepancies)
        resolution_types.update(r.resolution_type.value for r in record.resolutions)
        completion_times.append(calculate_completion_time(record.created_at, record.updated_at))

    completion_times.sort()
    return ReconciliationMetrics(
        total_reconciliations=total_records,
        average_discrepancies=total_discrepancies / total_records,
        average_completion_time=sum(completion_times) / total_records,
        discrepancy_types=dict(discrepancy_types),
        resolution_types=dict(resolution_types),
        pharmacist_review_rate=reviewed_records / total_records * 100,
        critical_issue_rate=(
            critical_discrepancies / total_discrepancies * 100 if total_discrepancies > 0 else 0.0
        ),
        time_to_completion=CompletionTimePercentiles(
            median=calculate_percentile(completion_times, 50),
            p95=calculate_percentile(completion_times, 95),
            p99=calculate_percentile(completion_times, 99),
        ),
    )


class ReconciliationMetricsService:
    """Read-side reporting over a reconciliation store."""

    def __init__(
        self,
        store: ReconciliationStore,
        *,
        timeout_seconds: float | None = None,
        default_history_limit: int | None = None,
    ) -> None:
        self._store = store
        self._timeout_seconds = timeout_seconds if timeout_seconds is not None else settings.metrics_timeout_seconds
        self._default_history_limit = (
            default_history_limit if default_history_limit is not None else settings.history_default_limit
        )

    async def get_reconciliation_history(
        self,
        resident_id: str,
        organization_id: str,
        limit: int | None = None,
    ) -> list[ReconciliationSummary]:
        """Summaries of a resident's most recent reconciliations, newest first."""
        records = await self._store.query_records(
            organization_id=organization_id,
            resident_id=resident_id,
            limit=limit if limit is not None else self._default_history_limit,
        )
        return [summarize_record(record) for record in records]

    async def generate_reconciliation_metrics(
        self,
        organization_id: str,
        date_range: DateRange,
    ) -> ReconciliationMetrics:
        """Metrics for all reconciliations of an organization within a date range.

        The scan is bounded by the configured timeout.

        Raises:
            TimeoutError: If aggregation does not finish in time.
        """
        try:
            return await asyncio.wait_for(
                self._collect_metrics(organization_id, date_range),
                timeout=self._timeout_seconds,
            )
        except TimeoutError:
            logger.error(
                f"Reconciliation metrics timed out after {self._timeout_seconds}s "
                f"for org={organization_id} range={date_range.start_date.isoformat()}"
                f"..{date_range.end_date.isoformat()}"
            )
            raise

    async def _collect_metrics(self, organization_id: str, date_range: DateRange) -> ReconciliationMetrics:
        records = await self._store.query_records(organization_id=organization_id, date_range=date_range)
        metrics = aggregate_metrics(records)
        logger.info(
            f"Reconciliation metrics for org={organization_id}: "
            f"{metrics.total_reconciliations} records, "
            f"avg discrepancies {metrics.average_discrepancies:.2f}"
        )
        return metrics
