"""MedicationEntry and MedicationSource schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from medrec.schemas.base import Adherence, Reliability, SourceType


class MedicationEntry(BaseModel):
    """A single medication on a list.

    Entries are matched across lists by ``active_ingredient`` (lower-cased),
    never by ``name``: two brands of the same ingredient are the same
    medication for reconciliation purposes.
    """

    id: str | None = Field(None, description="Upstream identifier, e.g. prescription ID")
    name: str = Field(..., description="Name as written on the list (often a brand)")
    generic_name: str | None = Field(None, description="Generic name")
    active_ingredient: str = Field(..., description="Active ingredient used as matching key")
    strength: str = Field(..., description="Strength, e.g. '500 mg'")
    dosage: str = Field(..., description="Dose as free text, e.g. '500 mg'")
    frequency: str = Field(..., description="Frequency as free text, e.g. 'twice daily'")
    route: str = Field(..., description="Route of administration")
    indication: str | None = Field(None, description="Why it is prescribed")
    prescriber: str | None = Field(None, description="Prescribing clinician")
    start_date: datetime | None = Field(None, description="When the medication started")
    end_date: datetime | None = Field(None, description="When the medication ended")
    last_taken: datetime | None = Field(None, description="Last recorded dose")
    adherence: Adherence | None = Field(None, description="Observed adherence")
    source: str = Field(..., description="Provenance tag")
    is_active: bool = Field(..., description="Whether the medication is currently active")

    @property
    def match_key(self) -> str:
        """Lower-cased active ingredient used to match across lists."""
        return self.active_ingredient.lower()


class MedicationSource(BaseModel):
    """A snapshot of a resident's medications from one care-transition point."""

    source_type: SourceType = Field(..., description="Where the list came from")
    source_date: datetime = Field(..., description="When the list was taken")
    medications: list[MedicationEntry] = Field(default_factory=list, description="Ordered entries")
    reliability: Reliability = Field(..., description="Trustworthiness of the source")
    verified_by: str | None = Field(None, description="Who verified the list")
    verification_date: datetime | None = Field(None, description="When it was verified")
    notes: str | None = Field(None, description="Free-text notes")

    @property
    def active_medications(self) -> list[MedicationEntry]:
        """Entries with ``is_active`` set, in list order."""
        return [med for med in self.medications if med.is_active]
