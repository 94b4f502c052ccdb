"""SQLAlchemy model for persisted medication reconciliation records."""

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from medrec.core.database import Base
from medrec.schemas.base import ReconciliationStatus, ReconciliationType
from medrec.schemas.reconciliation import ReconciliationRecord

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class MedicationReconciliationRecord(Base):
    """Reconciliation aggregate stored as one row.

    Medication lists, discrepancies, resolutions and the pharmacist review
    are kept as JSON documents; they are only ever read and written with
    their owning record. ``version`` backs optimistic concurrency control.
    Rows are never deleted.
    """

    __tablename__ = "medication_reconciliation_records"

    organization_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    resident_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    reconciliation_type: Mapped[ReconciliationType] = mapped_column(
        Enum(ReconciliationType, name="reconciliation_type", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    reconciliation_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    performed_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    reviewed_by: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    status: Mapped[ReconciliationStatus] = mapped_column(
        Enum(ReconciliationStatus, name="reconciliation_status", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        default=ReconciliationStatus.IN_PROGRESS,
        index=True,
    )
    source_list: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    target_list: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    discrepancies: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)
    resolutions: Mapped[list[dict[str, Any]]] = mapped_column(JSONDocument, nullable=False, default=list)
    clinical_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    pharmacist_review: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
    )

    def __repr__(self) -> str:
        return (
            f"<MedicationReconciliationRecord(id={self.id}, resident={self.resident_id}, "
            f"status={self.status}, version={self.version})>"
        )

    @staticmethod
    def column_values(record: ReconciliationRecord) -> dict[str, Any]:
        """Column values for a schema record, JSON columns serialized."""
        data = record.model_dump(mode="json")
        return {
            "id": record.id,
            "organization_id": record.organization_id,
            "resident_id": record.resident_id,
            "reconciliation_type": record.reconciliation_type,
            "reconciliation_date": _as_utc(record.reconciliation_date),
            "performed_by": record.performed_by,
            "reviewed_by": record.reviewed_by,
            "status": record.status,
            "source_list": data["source_list"],
            "target_list": data["target_list"],
            "discrepancies": data["discrepancies"],
            "resolutions": data["resolutions"],
            "clinical_notes": record.clinical_notes,
            "pharmacist_review": data["pharmacist_review"],
            "created_at": _as_utc(record.created_at),
            "updated_at": _as_utc(record.updated_at),
            "version": record.version,
        }

    @classmethod
    def from_schema(cls, record: ReconciliationRecord) -> "MedicationReconciliationRecord":
        return cls(**cls.column_values(record))

    def to_schema(self) -> ReconciliationRecord:
        return ReconciliationRecord.model_validate(
            {
                "id": self.id,
                "resident_id": self.resident_id,
                "reconciliation_type": self.reconciliation_type,
                "reconciliation_date": _as_utc(self.reconciliation_date),
                "performed_by": self.performed_by,
                "reviewed_by": self.reviewed_by,
                "status": self.status,
                "source_list": self.source_list,
                "target_list": self.target_list,
                "discrepancies": self.discrepancies or [],
                "resolutions": self.resolutions or [],
                "clinical_notes": self.clinical_notes or "",
                "pharmacist_review": self.pharmacist_review,
                "organization_id": self.organization_id,
                "created_at": _as_utc(self.created_at),
                "updated_at": _as_utc(self.updated_at),
                "version": self.version,
            }
        )
