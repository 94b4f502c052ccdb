"""Database-backed reconciliation record store.

Each operation runs in its own transaction. Updates are conditional on
the version read inside that transaction, so a concurrent writer that
got there first makes the update match no rows and the store raises
ConcurrentModificationError instead of losing the other write.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medrec.core.database import async_session_maker
from medrec.core.exceptions import CollaboratorFailure, ConcurrentModificationError, NotFoundError
from medrec.models.reconciliation import MedicationReconciliationRecord
from medrec.schemas.metrics import DateRange
from medrec.schemas.reconciliation import ReconciliationRecord
from medrec.services.reconciliation_store import BaseReconciliationStore, RecordUpdate

logger = logging.getLogger(__name__)


class DatabaseReconciliationStore(BaseReconciliationStore):
    """Reconciliation store over an async SQLAlchemy session factory.

    Usage:
        store = DatabaseReconciliationStore(async_session_maker)
        await store.save_record(record)
        record = await store.get_record(record.id, record.organization_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            session_factory: Async session factory; defaults to the
                application's configured factory.
            clock: Source of update timestamps.
        """
        super().__init__(clock)
        self._session_factory = session_factory or async_session_maker

    async def save_record(self, record: ReconciliationRecord) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(MedicationReconciliationRecord.from_schema(record))
        except IntegrityError as e:
            raise CollaboratorFailure(f"Reconciliation record {record.id} already exists") from e
        logger.debug(f"Stored reconciliation record {record.id} for org={record.organization_id}")

    async def get_record(self, record_id: str, organization_id: str) -> ReconciliationRecord | None:
        async with self._session_factory() as session:
            row = await self._load(session, record_id, organization_id)
            return row.to_schema() if row is not None else None

    async def query_records(
        self,
        *,
        organization_id: str,
        resident_id: str | None = None,
        date_range: DateRange | None = None,
        limit: int | None = None,
    ) -> list[ReconciliationRecord]:
        stmt = select(MedicationReconciliationRecord).where(
            MedicationReconciliationRecord.organization_id == organization_id
        )
        if resident_id is not None:
            stmt = stmt.where(MedicationReconciliationRecord.resident_id == resident_id)
        if date_range is not None:
            stmt = stmt.where(
                MedicationReconciliationRecord.reconciliation_date.between(
                    date_range.start_date, date_range.end_date
                )
            )
        stmt = stmt.order_by(MedicationReconciliationRecord.reconciliation_date.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [row.to_schema() for row in result.scalars().all()]

    async def _mutate(
        self,
        record_id: str,
        organization_id: str,
        expected_version: int | None,
        update_record: RecordUpdate,
    ) -> ReconciliationRecord:
        async with self._session_factory() as session:
            async with session.begin():
                row = await self._load(session, record_id, organization_id)
                if row is None:
                    raise NotFoundError("ReconciliationRecord", record_id, organization_id)

                current = row.to_schema()
                self.check_version(current, expected_version)
                updated = update_record(current, self._clock())

                values = MedicationReconciliationRecord.column_values(updated)
                values.pop("id")
                values.pop("created_at")
                stmt = (
                    update(MedicationReconciliationRecord)
                    .where(MedicationReconciliationRecord.id == record_id)
                    .where(MedicationReconciliationRecord.organization_id == organization_id)
                    .where(MedicationReconciliationRecord.version == current.version)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    raise ConcurrentModificationError(record_id, current.version)

        logger.debug(f"Record {record_id} updated to version {updated.version}")
        return updated

    @staticmethod
    async def _load(
        session: AsyncSession,
        record_id: str,
        organization_id: str,
    ) -> MedicationReconciliationRecord | None:
        stmt = (
            select(MedicationReconciliationRecord)
            .where(MedicationReconciliationRecord.id == record_id)
            .where(MedicationReconciliationRecord.organization_id == organization_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()
