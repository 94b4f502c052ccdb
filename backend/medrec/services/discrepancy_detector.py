"""Medication Discrepancy Detector.

Compares two medication lists for the same resident and reports every
difference as a severity-scored discrepancy:
- Omissions (active on the source list, absent from the target list)
- Additions (active on the target list, absent from the source list)
- Dose, frequency and route changes for medications on both lists

Medications are matched on lower-cased active ingredient, so brand
substitutions do not register as an omission plus an addition. Inactive
entries are ignored on both sides.

Detection is pure: no I/O, and the only inputs besides the two lists are
the acting user, the clock and the severity classifier.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
import logging
import re
import threading
from uuid import uuid4

from medrec.core.config import settings
from medrec.schemas.base import DiscrepancyStatus, DiscrepancyType, Severity
from medrec.schemas.medication import MedicationEntry, MedicationSource
from medrec.schemas.reconciliation import Discrepancy

logger = logging.getLogger(__name__)

DOSE_VALUE_PATTERN = re.compile(r"(\d+(?:\.\d+)?|\.\d+)")

# (threshold percent, severity), checked top down; boundary values take the higher band
DOSE_CHANGE_BANDS: tuple[tuple[float, Severity], ...] = (
    (50.0, Severity.CRITICAL),
    (25.0, Severity.HIGH),
    (10.0, Severity.MEDIUM),
)


class RiskTier(Enum):
    """Risk classification of an active ingredient."""

    HIGH = "high"
    STANDARD = "standard"


# ============================================================================
# Risk Classification Table
# ============================================================================


@dataclass
class RiskClassificationTable:
    """Maps active ingredients to a risk tier.

    Lookup is by substring containment on the lower-cased ingredient, so
    "insulin glargine" matches an "insulin" entry.
    """

    tiers: dict[str, RiskTier] = field(default_factory=dict)

    @classmethod
    def from_high_risk(cls, ingredients: list[str]) -> "RiskClassificationTable":
        return cls({name.lower().strip(): RiskTier.HIGH for name in ingredients if name.strip()})

    def tier_for(self, active_ingredient: str) -> RiskTier:
        ingredient = active_ingredient.lower()
        for name, tier in self.tiers.items():
            if tier == RiskTier.HIGH and name in ingredient:
                return RiskTier.HIGH
        return RiskTier.STANDARD

    def is_high_risk(self, active_ingredient: str) -> bool:
        return self.tier_for(active_ingredient) == RiskTier.HIGH


# ============================================================================
# Dose parsing
# ============================================================================


def extract_dose_value(dosage: str) -> float | None:
    """Return the leading numeric value in a dosage string, if any.

    >>> extract_dose_value("500 mg")
    500.0
    >>> extract_dose_value("one tablet") is None
    True
    """
    match = DOSE_VALUE_PATTERN.search(dosage)
    if match is None:
        return None
    return float(match.group(1))


def dose_change_percentage(source_dosage: str, target_dosage: str) -> float | None:
    """Percentage change from source dose to target dose.

    Returns None when either dose has no numeric value, or when the
    source dose is zero (no meaningful percentage).
    """
    source_value = extract_dose_value(source_dosage)
    target_value = extract_dose_value(target_dosage)
    if source_value is None or target_value is None or source_value == 0:
        return None
    return abs(target_value - source_value) / source_value * 100


# ============================================================================
# Severity Classifier
# ============================================================================


class SeverityClassifier:
    """Assigns severity and clinical-significance text to discrepancies."""

    def __init__(self, risk_table: RiskClassificationTable | None = None) -> None:
        self._risk_table = risk_table or RiskClassificationTable.from_high_risk(settings.high_risk_ingredients)

    @property
    def risk_table(self) -> RiskClassificationTable:
        return self._risk_table

    def classify(
        self,
        discrepancy_type: DiscrepancyType,
        medication: MedicationEntry,
        target: MedicationEntry | None = None,
    ) -> Severity:
        """Severity for a discrepancy on ``medication``.

        High-risk ingredients dominate: an omission is critical and any
        other change is high. Otherwise severity depends on the type.

        Args:
            discrepancy_type: Kind of discrepancy
            medication: The source entry (the target entry for additions)
            target: The target entry, for field changes

        Returns:
            The severity tier.
        """
        if self._risk_table.is_high_risk(medication.active_ingredient):
            return Severity.CRITICAL if discrepancy_type == DiscrepancyType.OMISSION else Severity.HIGH

        if discrepancy_type == DiscrepancyType.OMISSION:
            indication = (medication.indication or "").lower()
            return Severity.HIGH if "cardiac" in indication else Severity.MEDIUM
        if discrepancy_type == DiscrepancyType.ADDITION:
            return Severity.MEDIUM
        if discrepancy_type == DiscrepancyType.DOSE_CHANGE:
            if target is None:
                return Severity.MEDIUM
            return self.classify_dose_change(medication.dosage, target.dosage)
        if discrepancy_type == DiscrepancyType.FREQUENCY_CHANGE:
            return Severity.MEDIUM
        if discrepancy_type == DiscrepancyType.ROUTE_CHANGE:
            return Severity.HIGH
        return Severity.LOW

    def classify_dose_change(self, source_dosage: str, target_dosage: str) -> Severity:
        change = dose_change_percentage(source_dosage, target_dosage)
        if change is None:
            return Severity.MEDIUM
        for threshold, severity in DOSE_CHANGE_BANDS:
            if change >= threshold:
                return severity
        return Severity.LOW

    def clinical_significance(self, discrepancy_type: DiscrepancyType, medication: MedicationEntry) -> str:
        name = medication.name
        templates = {
            DiscrepancyType.OMISSION: (
                f"Omission of {name} may lead to therapeutic failure or disease progression. "
                "Review indication and necessity."
            ),
            DiscrepancyType.ADDITION: (
                f"Addition of {name} not documented in source list. "
                "Verify indication and appropriateness."
            ),
            DiscrepancyType.DOSE_CHANGE: (
                f"Dose change for {name} may affect therapeutic efficacy "
                "or increase risk of adverse effects."
            ),
            DiscrepancyType.FREQUENCY_CHANGE: (
                f"Frequency change for {name} may affect steady-state levels and therapeutic outcomes."
            ),
            DiscrepancyType.ROUTE_CHANGE: (
                f"Route change for {name} may significantly alter bioavailability and therapeutic effect."
            ),
        }
        return templates.get(
            discrepancy_type,
            f"Change in {name} requires clinical review to ensure continued safety and efficacy.",
        )


# Singleton instance and lock for thread safety
_severity_classifier: SeverityClassifier | None = None
_severity_classifier_lock = threading.Lock()


def get_severity_classifier() -> SeverityClassifier:
    """Get the singleton severity classifier built from settings."""
    global _severity_classifier
    if _severity_classifier is None:
        with _severity_classifier_lock:
            if _severity_classifier is None:
                _severity_classifier = SeverityClassifier()
    return _severity_classifier


def reset_severity_classifier() -> None:
    """Reset the singleton instance (for testing)."""
    global _severity_classifier
    with _severity_classifier_lock:
        _severity_classifier = None


# ============================================================================
# Detection
# ============================================================================


def _active_by_key(source: MedicationSource) -> dict[str, MedicationEntry]:
    mapping: dict[str, MedicationEntry] = {}
    for med in source.active_medications:
        mapping[med.match_key] = med
    return mapping


def _format_regimen(med: MedicationEntry) -> str:
    return f"{med.dosage} {med.frequency}"


class _DiscrepancyFactory:
    def __init__(self, classifier: SeverityClassifier, identified_by: str, now: datetime) -> None:
        self.classifier = classifier
        self.identified_by = identified_by
        self.now = now

    def build(
        self,
        discrepancy_type: DiscrepancyType,
        medication: MedicationEntry,
        source_value: str,
        target_value: str,
        description: str,
        target: MedicationEntry | None = None,
    ) -> Discrepancy:
        return Discrepancy(
            id=str(uuid4()),
            type=discrepancy_type,
            severity=self.classifier.classify(discrepancy_type, medication, target),
            medication_name=medication.name,
            source_value=source_value,
            target_value=target_value,
            description=description,
            clinical_significance=self.classifier.clinical_significance(discrepancy_type, medication),
            requires_action=True,
            identified_by=self.identified_by,
            identified_date=self.now,
            status=DiscrepancyStatus.IDENTIFIED,
        )


def detect_discrepancies(
    source: MedicationSource,
    target: MedicationSource,
    identified_by: str,
    *,
    classifier: SeverityClassifier | None = None,
    now: datetime | None = None,
) -> list[Discrepancy]:
    """Diff two medication lists.

    Output order is deterministic: omissions and field changes in source
    order, then additions in target order. Each differing field on a
    matched medication yields its own discrepancy.

    Args:
        source: The list being reconciled from (e.g. hospital discharge)
        target: The list being reconciled against (e.g. the care home MAR)
        identified_by: Actor attributed with the detection
        classifier: Severity classifier (defaults to the shared one)
        now: Detection timestamp (defaults to current UTC time)

    Returns:
        List of discrepancies, all with status ``identified``.
    """
    factory = _DiscrepancyFactory(
        classifier or get_severity_classifier(),
        identified_by,
        now or datetime.now(UTC),
    )
    source_map = _active_by_key(source)
    target_map = _active_by_key(target)
    discrepancies: list[Discrepancy] = []

    for key, source_med in source_map.items():
        target_med = target_map.get(key)
        if target_med is None:
            discrepancies.append(
                factory.build(
                    DiscrepancyType.OMISSION,
                    source_med,
                    source_value=_format_regimen(source_med),
                    target_value="Not prescribed",
                    description=f"{source_med.name} is in source list but not in target list",
                )
            )
            continue

        field_checks = (
            (DiscrepancyType.DOSE_CHANGE, source_med.dosage, target_med.dosage, "Dose"),
            (DiscrepancyType.FREQUENCY_CHANGE, source_med.frequency, target_med.frequency, "Frequency"),
            (DiscrepancyType.ROUTE_CHANGE, source_med.route, target_med.route, "Route"),
        )
        for discrepancy_type, source_value, target_value, label in field_checks:
            if source_value != target_value:
                discrepancies.append(
                    factory.build(
                        discrepancy_type,
                        source_med,
                        source_value=source_value,
                        target_value=target_value,
                        description=f"{label} change for {source_med.name}",
                        target=target_med,
                    )
                )

    for key, target_med in target_map.items():
        if key not in source_map:
            discrepancies.append(
                factory.build(
                    DiscrepancyType.ADDITION,
                    target_med,
                    source_value="Not in source list",
                    target_value=_format_regimen(target_med),
                    description=f"{target_med.name} is in target list but not in source list",
                )
            )

    logger.debug(
        f"Detected {len(discrepancies)} discrepancies "
        f"(source={len(source_map)} active, target={len(target_map)} active)"
    )
    return discrepancies


def requires_pharmacist_review(discrepancies: list[Discrepancy]) -> bool:
    """Whether any discrepancy crosses the pharmacist-review threshold.

    Critical or high severity always does; a medium-severity omission
    does too.
    """
    return any(
        d.severity in (Severity.CRITICAL, Severity.HIGH)
        or (d.type == DiscrepancyType.OMISSION and d.severity == Severity.MEDIUM)
        for d in discrepancies
    )
