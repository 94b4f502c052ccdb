"""Core application configuration and utilities."""

from medrec.core.audit import AuditAction, AuditEvent, AuditTrailLogger, log_audit
from medrec.core.config import settings
from medrec.core.exceptions import (
    CollaboratorFailure,
    ConcurrentModificationError,
    NotFoundError,
    ReconciliationError,
    StateError,
    ValidationError,
)

__all__ = [
    # Config
    "settings",
    # Audit
    "AuditAction",
    "AuditEvent",
    "AuditTrailLogger",
    "log_audit",
    # Errors
    "CollaboratorFailure",
    "ConcurrentModificationError",
    "NotFoundError",
    "ReconciliationError",
    "StateError",
    "ValidationError",
]
