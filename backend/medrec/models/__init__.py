"""SQLAlchemy ORM models for the medication reconciliation engine.

All models inherit from Base which provides:
- id: string primary key
- created_at: Timestamp

Models:
- MedicationReconciliationRecord
"""

from medrec.core.database import Base
from medrec.models.reconciliation import MedicationReconciliationRecord

__all__ = [
    "Base",
    "MedicationReconciliationRecord",
]
