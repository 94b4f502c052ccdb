"""Reconciliation services."""

from medrec.services.discrepancy_detector import (
    RiskClassificationTable,
    RiskTier,
    SeverityClassifier,
    detect_discrepancies,
    get_severity_classifier,
    requires_pharmacist_review,
    reset_severity_classifier,
)
from medrec.services.logging_collaborators import (
    LoggingEventPublisher,
    LoggingNotificationDispatcher,
    LoggingPrescriptionModifier,
)
from medrec.services.ports import (
    AuditLogger,
    CurrentMedicationProvider,
    EventPublisher,
    NotificationDispatcher,
    PrescriptionModifier,
    ReconciliationStore,
    ResidentDirectory,
)
from medrec.services.reconciliation_metrics import (
    ReconciliationMetricsService,
    aggregate_metrics,
    calculate_completion_time,
    calculate_percentile,
    summarize_record,
)
from medrec.services.reconciliation_store import BaseReconciliationStore, InMemoryReconciliationStore
from medrec.services.reconciliation_store_db import DatabaseReconciliationStore
from medrec.services.reconciliation_workflow import ReconciliationWorkflowService, WorkflowPolicy

__all__ = [
    # Detection
    "RiskClassificationTable",
    "RiskTier",
    "SeverityClassifier",
    "detect_discrepancies",
    "get_severity_classifier",
    "requires_pharmacist_review",
    "reset_severity_classifier",
    # Collaborators
    "AuditLogger",
    "CurrentMedicationProvider",
    "EventPublisher",
    "LoggingEventPublisher",
    "LoggingNotificationDispatcher",
    "LoggingPrescriptionModifier",
    "NotificationDispatcher",
    "PrescriptionModifier",
    "ReconciliationStore",
    "ResidentDirectory",
    # Storage
    "BaseReconciliationStore",
    "DatabaseReconciliationStore",
    "InMemoryReconciliationStore",
    # Metrics
    "ReconciliationMetricsService",
    "aggregate_metrics",
    "calculate_completion_time",
    "calculate_percentile",
    "summarize_record",
    # Workflow
    "ReconciliationWorkflowService",
    "WorkflowPolicy",
]
