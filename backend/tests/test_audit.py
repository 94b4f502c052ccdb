"""Tests for reconciliation audit logging."""

import logging
from datetime import UTC, datetime

import pytest

from medrec.core.audit import AuditAction, AuditEvent, AuditTrailLogger, log_audit


class TestAuditEvent:
    """Tests for AuditEvent model."""

    def test_audit_event_required_fields(self) -> None:
        """Test AuditEvent with required fields only."""
        event = AuditEvent(
            action=AuditAction.READ,
            entity_type="MedicationReconciliation",
        )
        assert event.action == AuditAction.READ
        assert event.entity_type == "MedicationReconciliation"
        assert event.success is True
        assert event.organization_id is None

    def test_audit_event_all_fields(self) -> None:
        """Test AuditEvent with all fields."""
        event = AuditEvent(
            action=AuditAction.RESOLVE,
            entity_type="DiscrepancyResolution",
            entity_id="res-123",
            user_id="nurse-1",
            organization_id="org-1",
            details={"resolution_type": "dose_adjusted"},
            success=True,
        )
        assert event.entity_id == "res-123"
        assert event.user_id == "nurse-1"
        assert event.organization_id == "org-1"
        assert event.details == {"resolution_type": "dose_adjusted"}

    def test_audit_event_timestamp_auto_set(self) -> None:
        """Test that timestamp is automatically set."""
        before = datetime.now(UTC)
        event = AuditEvent(action=AuditAction.READ, entity_type="test")
        after = datetime.now(UTC)
        assert before <= event.timestamp <= after


class TestAuditActions:
    """Tests for audit action types."""

    def test_workflow_actions(self) -> None:
        """Test workflow action types exist."""
        assert AuditAction.INITIATE == "INITIATE"
        assert AuditAction.RESOLVE == "RESOLVE"
        assert AuditAction.REVIEW == "REVIEW"


class TestLogAudit:
    """Tests for log_audit."""

    def test_log_audit_returns_event(self) -> None:
        """Test log_audit returns the audit event."""
        event = log_audit(
            action=AuditAction.INITIATE,
            entity_type="MedicationReconciliation",
            entity_id="rec-123",
            organization_id="org-1",
        )
        assert isinstance(event, AuditEvent)
        assert event.action == AuditAction.INITIATE
        assert event.entity_id == "rec-123"

    def test_log_audit_writes_to_audit_logger(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test the event is logged on the audit logger with the event attached."""
        caplog.set_level(logging.INFO, logger="audit")

        log_audit(
            action=AuditAction.REVIEW,
            entity_type="PharmacistReview",
            entity_id="rec-123",
            user_id="pharmacist-1",
            organization_id="org-1",
        )

        records = [r for r in caplog.records if r.name == "audit"]
        assert len(records) == 1
        assert records[0].levelno == logging.INFO
        assert "REVIEW PharmacistReview/rec-123 org=org-1" in records[0].getMessage()
        assert records[0].audit_event["user_id"] == "pharmacist-1"

    def test_failed_action_logs_warning(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test unsuccessful actions are logged at WARNING."""
        caplog.set_level(logging.INFO, logger="audit")

        log_audit(action=AuditAction.ERROR, entity_type="MedicationReconciliation", success=False)

        assert [r.levelno for r in caplog.records if r.name == "audit"] == [logging.WARNING]


class TestAuditTrailLogger:
    """Tests for the audit collaborator."""

    @pytest.mark.asyncio
    async def test_log_activity_keeps_events(self) -> None:
        """Test every logged activity is kept in order."""
        trail = AuditTrailLogger()

        await trail.log_activity(
            entity_type="MedicationReconciliation",
            entity_id="rec-1",
            action=AuditAction.INITIATE,
            user_id="nurse-1",
            organization_id="org-1",
            details={"discrepancies_found": 2},
        )
        await trail.log_activity(
            entity_type="PharmacistReview",
            entity_id="rec-1",
            action=AuditAction.REVIEW,
            user_id="pharmacist-1",
            organization_id="org-1",
        )

        assert [e.action for e in trail.events] == [AuditAction.INITIATE, AuditAction.REVIEW]
        assert trail.events[0].details == {"discrepancies_found": 2}
        assert trail.events[1].user_id == "pharmacist-1"
