"""Error taxonomy for the reconciliation engine.

Validation and not-found errors are raised before any state is touched
and are meant to be surfaced to the immediate caller. Collaborator
failures (storage, audit, event publishing) propagate unchanged; the
classes here exist for adapters that need to signal one explicitly.
"""

from collections.abc import Mapping
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


class ReconciliationError(Exception):
    """Base class for all reconciliation errors."""


class ValidationError(ReconciliationError):
    """Request data is missing, malformed, or references an unknown resident."""

    def __init__(self, message: str, details: list[dict[str, str]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundError(ReconciliationError):
    """A record or discrepancy does not exist for the given organization."""

    def __init__(self, entity_type: str, entity_id: str, organization_id: str | None = None) -> None:
        message = f"{entity_type} {entity_id} not found"
        if organization_id:
            message += f" for organization {organization_id}"
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.organization_id = organization_id


class StateError(ReconciliationError):
    """The requested operation is not allowed in the record's current state."""

    def __init__(self, message: str, current_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status


class CollaboratorFailure(ReconciliationError):
    """An external collaborator (storage, audit, events) failed."""


class ConcurrentModificationError(CollaboratorFailure):
    """A record changed between read and write (optimistic version mismatch)."""

    def __init__(self, record_id: str, expected_version: int) -> None:
        super().__init__(
            f"Reconciliation record {record_id} was modified concurrently "
            f"(expected version {expected_version})"
        )
        self.record_id = record_id
        self.expected_version = expected_version


def validation_error_from_pydantic(exc: PydanticValidationError, message: str) -> ValidationError:
    """Convert a pydantic validation failure into a ValidationError.

    Each pydantic error becomes a ``{"field": ..., "message": ...}`` entry,
    with the field path joined by dots.
    """
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return ValidationError(message, details=details)


def parse_payload(model: type[ModelT], payload: Mapping[str, Any], message: str) -> ModelT:
    """Validate a raw payload into ``model``, raising ValidationError on failure."""
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise validation_error_from_pydantic(exc, message) from exc
