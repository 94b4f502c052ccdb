"""Reconciliation record stores.

Every mutation follows the same read-modify-write shape: load the
record, check the expected version, apply one of the record's
``with_*`` updates and write it back. Subclasses supply the atomic
``_mutate`` step for their backend.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime
import logging

from medrec.core.exceptions import CollaboratorFailure, ConcurrentModificationError, NotFoundError
from medrec.schemas.base import ReconciliationStatus
from medrec.schemas.metrics import DateRange
from medrec.schemas.reconciliation import PharmacistReview, ReconciliationRecord, Resolution

logger = logging.getLogger(__name__)

RecordUpdate = Callable[[ReconciliationRecord, datetime], ReconciliationRecord]


def utc_now() -> datetime:
    return datetime.now(UTC)


class BaseReconciliationStore(ABC):
    """Shared update logic for reconciliation stores."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or utc_now

    @staticmethod
    def check_version(record: ReconciliationRecord, expected_version: int | None) -> None:
        if expected_version is not None and record.version != expected_version:
            raise ConcurrentModificationError(record.id, expected_version)

    @abstractmethod
    async def save_record(self, record: ReconciliationRecord) -> None:
        """Insert a new record."""

    @abstractmethod
    async def get_record(self, record_id: str, organization_id: str) -> ReconciliationRecord | None:
        """Return the record or None."""

    @abstractmethod
    async def query_records(
        self,
        *,
        organization_id: str,
        resident_id: str | None = None,
        date_range: DateRange | None = None,
        limit: int | None = None,
    ) -> list[ReconciliationRecord]:
        """Return matching records, most recent first."""

    @abstractmethod
    async def _mutate(
        self,
        record_id: str,
        organization_id: str,
        expected_version: int | None,
        update: RecordUpdate,
    ) -> ReconciliationRecord:
        """Atomically apply ``update`` to the stored record and return the result."""

    async def update_status(
        self,
        record_id: str,
        status: ReconciliationStatus,
        organization_id: str,
        *,
        expected_version: int | None = None,
    ) -> ReconciliationRecord:
        return await self._mutate(
            record_id,
            organization_id,
            expected_version,
            lambda record, now: record.with_status(status, now),
        )

    async def append_resolution(
        self,
        record_id: str,
        resolution: Resolution,
        organization_id: str,
        *,
        status: ReconciliationStatus | None = None,
        expected_version: int | None = None,
    ) -> ReconciliationRecord:
        return await self._mutate(
            record_id,
            organization_id,
            expected_version,
            lambda record, now: record.with_resolution(resolution, now, status),
        )

    async def append_review(
        self,
        record_id: str,
        review: PharmacistReview,
        organization_id: str,
        *,
        status: ReconciliationStatus | None = None,
        expected_version: int | None = None,
    ) -> ReconciliationRecord:
        return await self._mutate(
            record_id,
            organization_id,
            expected_version,
            lambda record, now: record.with_review(review, now, status),
        )


class InMemoryReconciliationStore(BaseReconciliationStore):
    """Process-local store keyed by ``(record_id, organization_id)``.

    Records are deep-copied on the way in and out so callers never share
    state with the store.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        super().__init__(clock)
        self._records: dict[tuple[str, str], ReconciliationRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def save_record(self, record: ReconciliationRecord) -> None:
        async with self._lock:
            key = (record.id, record.organization_id)
            if key in self._records:
                raise CollaboratorFailure(f"Reconciliation record {record.id} already exists")
            self._records[key] = record.model_copy(deep=True)

    async def get_record(self, record_id: str, organization_id: str) -> ReconciliationRecord | None:
        record = self._records.get((record_id, organization_id))
        return record.model_copy(deep=True) if record is not None else None

    async def query_records(
        self,
        *,
        organization_id: str,
        resident_id: str | None = None,
        date_range: DateRange | None = None,
        limit: int | None = None,
    ) -> list[ReconciliationRecord]:
        matches = [
            record
            for (_, org_id), record in self._records.items()
            if org_id == organization_id
            and (resident_id is None or record.resident_id == resident_id)
            and (
                date_range is None
                or date_range.start_date <= record.reconciliation_date <= date_range.end_date
            )
        ]
        matches.sort(key=lambda r: r.reconciliation_date, reverse=True)
        if limit is not None:
            matches = matches[:limit]
        return [record.model_copy(deep=True) for record in matches]

    async def _mutate(
        self,
        record_id: str,
        organization_id: str,
        expected_version: int | None,
        update: RecordUpdate,
    ) -> ReconciliationRecord:
        async with self._lock:
            key = (record_id, organization_id)
            current = self._records.get(key)
            if current is None:
                raise NotFoundError("ReconciliationRecord", record_id, organization_id)
            self.check_version(current, expected_version)
            updated = update(current.model_copy(deep=True), self._clock())
            self._records[key] = updated
            logger.debug(f"Record {record_id} updated to version {updated.version}")
            return updated.model_copy(deep=True)
