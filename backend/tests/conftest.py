"""Pytest configuration and fixtures for backend tests."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock

import pytest

from medrec.schemas import (
    MedicationEntry,
    MedicationSource,
    ReconciliationRequest,
    ReconciliationType,
    Reliability,
    SourceType,
)
from medrec.services.discrepancy_detector import SeverityClassifier, reset_severity_classifier
from medrec.services.logging_collaborators import LoggingNotificationDispatcher
from medrec.services.reconciliation_store import InMemoryReconciliationStore
from medrec.services.reconciliation_workflow import ReconciliationWorkflowService, WorkflowPolicy

ORG_ID = "org-1"
RESIDENT_ID = "resident-1"
NURSE_ID = "nurse-1"
PHARMACIST_ID = "pharmacist-1"


class FakeClock:
    """Controllable clock; call it to read the current time."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _reset_classifier() -> None:
    """Make sure no test sees a classifier cached by another."""
    reset_severity_classifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_entry() -> Callable[..., MedicationEntry]:
    """Factory for medication entries.

    The active ingredient doubles as the name unless one is given.
    """

    def _make(
        active_ingredient: str,
        *,
        name: str | None = None,
        dosage: str = "10 mg",
        frequency: str = "once daily",
        route: str = "oral",
        indication: str | None = None,
        is_active: bool = True,
    ) -> MedicationEntry:
        return MedicationEntry(
            name=name or active_ingredient.title(),
            active_ingredient=active_ingredient,
            strength=dosage,
            dosage=dosage,
            frequency=frequency,
            route=route,
            indication=indication,
            source="test",
            is_active=is_active,
        )

    return _make


@pytest.fixture
def make_source() -> Callable[..., MedicationSource]:
    """Factory for medication sources."""

    def _make(
        medications: list[MedicationEntry],
        source_type: SourceType = SourceType.HOSPITAL_MEDICATIONS,
    ) -> MedicationSource:
        return MedicationSource(
            source_type=source_type,
            source_date=datetime(2026, 3, 1, 8, 0, tzinfo=UTC),
            medications=medications,
            reliability=Reliability.HIGH,
        )

    return _make


@pytest.fixture
def make_request(
    make_source: Callable[..., MedicationSource],
) -> Callable[..., ReconciliationRequest]:
    """Factory for reconciliation requests between two entry lists.

    Leave ``target`` as None to have the workflow fetch the current list.
    """

    def _make(
        source: list[MedicationEntry],
        target: list[MedicationEntry] | None = None,
        **overrides: Any,
    ) -> ReconciliationRequest:
        data: dict[str, Any] = {
            "resident_id": RESIDENT_ID,
            "reconciliation_type": ReconciliationType.ADMISSION,
            "source_list": make_source(source),
            "target_list": (
                make_source(target, SourceType.CARE_HOME_MAR) if target is not None else None
            ),
            "performed_by": NURSE_ID,
            "organization_id": ORG_ID,
        }
        data.update(overrides)
        return ReconciliationRequest(**data)

    return _make


@pytest.fixture
def store(clock: FakeClock) -> InMemoryReconciliationStore:
    return InMemoryReconciliationStore(clock)


@pytest.fixture
def medication_provider(make_source: Callable[..., MedicationSource]) -> AsyncMock:
    """Current medication lookup returning an empty care home MAR."""
    provider = AsyncMock()
    provider.get_current_medication_list.return_value = make_source([], SourceType.CARE_HOME_MAR)
    return provider


@pytest.fixture
def notifications() -> LoggingNotificationDispatcher:
    return LoggingNotificationDispatcher()


@pytest.fixture
def audit_logger() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def events() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def prescriptions() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def policy() -> WorkflowPolicy:
    return WorkflowPolicy()


@pytest.fixture
def service(
    store: InMemoryReconciliationStore,
    medication_provider: AsyncMock,
    notifications: LoggingNotificationDispatcher,
    audit_logger: AsyncMock,
    events: AsyncMock,
    prescriptions: AsyncMock,
    policy: WorkflowPolicy,
    clock: FakeClock,
) -> ReconciliationWorkflowService:
    """Workflow service over an in-memory store with inspectable collaborators."""
    return ReconciliationWorkflowService(
        store,
        medication_provider,
        notifications=notifications,
        audit_logger=audit_logger,
        events=events,
        prescriptions=prescriptions,
        classifier=SeverityClassifier(),
        policy=policy,
        clock=clock,
    )
