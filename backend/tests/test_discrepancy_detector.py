"""Tests for the medication discrepancy detector and severity classifier."""

from collections.abc import Callable
from datetime import UTC, datetime

import pytest

from medrec.schemas import (
    DiscrepancyStatus,
    DiscrepancyType,
    MedicationEntry,
    MedicationSource,
    Severity,
)
from medrec.services.discrepancy_detector import (
    RiskClassificationTable,
    RiskTier,
    SeverityClassifier,
    detect_discrepancies,
    dose_change_percentage,
    extract_dose_value,
    get_severity_classifier,
    requires_pharmacist_review,
    reset_severity_classifier,
)

DETECTED_AT = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)

EntryFactory = Callable[..., MedicationEntry]
SourceFactory = Callable[..., MedicationSource]


@pytest.fixture
def detect(make_source: SourceFactory) -> Callable[..., list]:
    """Run detection over two entry lists with a fixed actor and clock."""

    def _detect(source: list[MedicationEntry], target: list[MedicationEntry], **kwargs):
        return detect_discrepancies(
            make_source(source),
            make_source(target),
            "nurse-1",
            now=DETECTED_AT,
            **kwargs,
        )

    return _detect


class TestReferenceScenarios:
    """Tests for the documented reconciliation scenarios."""

    def test_high_risk_omission_is_critical(self, make_entry: EntryFactory, detect) -> None:
        """Test warfarin missing from the target list is a critical omission."""
        warfarin = make_entry("warfarin", dosage="5 mg", frequency="once daily")

        discrepancies = detect([warfarin], [])

        assert len(discrepancies) == 1
        omission = discrepancies[0]
        assert omission.type == DiscrepancyType.OMISSION
        assert omission.severity == Severity.CRITICAL
        assert omission.source_value == "5 mg once daily"
        assert omission.target_value == "Not prescribed"
        assert omission.description == "Warfarin is in source list but not in target list"
        assert requires_pharmacist_review(discrepancies) is True

    def test_large_dose_increase_is_critical(self, make_entry: EntryFactory, detect) -> None:
        """Test metformin 500 mg to 850 mg (70%) is a critical dose change."""
        source = make_entry("metformin", dosage="500 mg", frequency="twice daily")
        target = make_entry("metformin", dosage="850 mg", frequency="twice daily")

        discrepancies = detect([source], [target])

        assert len(discrepancies) == 1
        assert discrepancies[0].type == DiscrepancyType.DOSE_CHANGE
        assert discrepancies[0].severity == Severity.CRITICAL
        assert discrepancies[0].source_value == "500 mg"
        assert discrepancies[0].target_value == "850 mg"

    def test_frequency_change_is_medium(self, make_entry: EntryFactory, detect) -> None:
        """Test paracetamol once daily to twice daily is a medium frequency change."""
        source = make_entry("paracetamol", dosage="500 mg", frequency="once daily")
        target = make_entry("paracetamol", dosage="500 mg", frequency="twice daily")

        discrepancies = detect([source], [target])

        assert len(discrepancies) == 1
        assert discrepancies[0].type == DiscrepancyType.FREQUENCY_CHANGE
        assert discrepancies[0].severity == Severity.MEDIUM
        assert discrepancies[0].description == "Frequency change for Paracetamol"
        assert requires_pharmacist_review(discrepancies) is False


class TestMatching:
    """Tests for how entries are paired across the two lists."""

    def test_identical_lists_have_no_discrepancies(self, make_entry: EntryFactory, detect) -> None:
        """Test that reconciling a list against itself finds nothing."""
        meds = [make_entry("amlodipine"), make_entry("warfarin", dosage="3 mg")]

        assert detect(meds, meds) == []

    def test_brand_substitution_matches_on_ingredient(self, make_entry: EntryFactory, detect) -> None:
        """Test that a different brand name with the same ingredient is not a discrepancy."""
        source = make_entry("Metformin", name="Glucophage", dosage="500 mg")
        target = make_entry("metformin", name="Metformin Hydrochloride", dosage="500 mg")

        assert detect([source], [target]) == []

    def test_inactive_entries_are_ignored(self, make_entry: EntryFactory, detect) -> None:
        """Test that inactive entries on either side produce no discrepancies."""
        stopped_source = make_entry("warfarin", is_active=False)
        stopped_target = make_entry("digoxin", is_active=False)

        assert detect([stopped_source], [stopped_target]) == []

    def test_inactive_target_entry_counts_as_missing(self, make_entry: EntryFactory, detect) -> None:
        """Test that an active source entry matched only by an inactive target entry is omitted."""
        discrepancies = detect([make_entry("amlodipine")], [make_entry("amlodipine", is_active=False)])

        assert [d.type for d in discrepancies] == [DiscrepancyType.OMISSION]

    def test_addition_values(self, make_entry: EntryFactory, detect) -> None:
        """Test that a target-only medication is reported as a medium addition."""
        target = make_entry("sertraline", dosage="50 mg", frequency="once daily")

        discrepancies = detect([], [target])

        assert len(discrepancies) == 1
        addition = discrepancies[0]
        assert addition.type == DiscrepancyType.ADDITION
        assert addition.severity == Severity.MEDIUM
        assert addition.source_value == "Not in source list"
        assert addition.target_value == "50 mg once daily"
        assert addition.description == "Sertraline is in target list but not in source list"

    def test_each_changed_field_is_a_separate_discrepancy(self, make_entry: EntryFactory, detect) -> None:
        """Test that dose and route changes on one medication yield two discrepancies."""
        source = make_entry("morphine", dosage="10 mg", route="oral")
        target = make_entry("morphine", dosage="10.5 mg", route="subcutaneous")

        discrepancies = detect([source], [target])

        assert [d.type for d in discrepancies] == [DiscrepancyType.DOSE_CHANGE, DiscrepancyType.ROUTE_CHANGE]
        assert discrepancies[0].severity == Severity.LOW
        assert discrepancies[1].severity == Severity.HIGH

    def test_output_order(self, make_entry: EntryFactory, detect) -> None:
        """Test omissions and changes follow source order, additions come last."""
        source = [
            make_entry("amlodipine"),
            make_entry("simvastatin", dosage="20 mg"),
        ]
        target = [
            make_entry("sertraline"),
            make_entry("simvastatin", dosage="40 mg"),
        ]

        discrepancies = detect(source, target)

        assert [(d.type, d.medication_name) for d in discrepancies] == [
            (DiscrepancyType.OMISSION, "Amlodipine"),
            (DiscrepancyType.DOSE_CHANGE, "Simvastatin"),
            (DiscrepancyType.ADDITION, "Sertraline"),
        ]

    def test_swapping_lists_swaps_omissions_and_additions(self, make_entry: EntryFactory, detect) -> None:
        """Test that omissions one way are additions the other way."""
        left = [make_entry("amlodipine"), make_entry("ramipril"), make_entry("aspirin")]
        right = [make_entry("aspirin"), make_entry("sertraline")]

        forward = detect(left, right)
        backward = detect(right, left)

        def names(discrepancies, kind):
            return sorted(d.medication_name for d in discrepancies if d.type == kind)

        assert names(forward, DiscrepancyType.OMISSION) == names(backward, DiscrepancyType.ADDITION)
        assert names(forward, DiscrepancyType.ADDITION) == names(backward, DiscrepancyType.OMISSION)

    def test_detection_is_repeatable(self, make_entry: EntryFactory, detect) -> None:
        """Test that running detection twice gives the same findings apart from IDs."""
        source = [make_entry("warfarin", dosage="5 mg"), make_entry("amlodipine")]
        target = [make_entry("warfarin", dosage="3 mg"), make_entry("sertraline")]

        def shape(discrepancies):
            return [(d.type, d.severity, d.medication_name, d.source_value, d.target_value) for d in discrepancies]

        assert shape(detect(source, target)) == shape(detect(source, target))


class TestDiscrepancyFields:
    """Tests for bookkeeping fields on detected discrepancies."""

    def test_bookkeeping_fields(self, make_entry: EntryFactory, detect) -> None:
        """Test actor, timestamp, status and action flag on every discrepancy."""
        discrepancies = detect([make_entry("amlodipine")], [make_entry("sertraline")])

        assert len(discrepancies) == 2
        for discrepancy in discrepancies:
            assert discrepancy.identified_by == "nurse-1"
            assert discrepancy.identified_date == DETECTED_AT
            assert discrepancy.status == DiscrepancyStatus.IDENTIFIED
            assert discrepancy.requires_action is True
            assert discrepancy.clinical_significance
        assert len({d.id for d in discrepancies}) == 2

    def test_clinical_significance_mentions_medication(self, make_entry: EntryFactory, detect) -> None:
        """Test the significance text names the medication."""
        discrepancies = detect([make_entry("amlodipine")], [])

        assert "Amlodipine" in discrepancies[0].clinical_significance
        assert "therapeutic failure" in discrepancies[0].clinical_significance


class TestSeverityClassifier:
    """Tests for severity rules."""

    @pytest.mark.parametrize(
        "source_dose,target_dose,expected",
        [
            ("100 mg", "109 mg", Severity.LOW),
            ("100 mg", "110 mg", Severity.MEDIUM),
            ("100 mg", "124 mg", Severity.MEDIUM),
            ("100 mg", "125 mg", Severity.HIGH),
            ("100 mg", "149 mg", Severity.HIGH),
            ("100 mg", "150 mg", Severity.CRITICAL),
            ("100 mg", "50 mg", Severity.CRITICAL),
            ("0 mg", "5 mg", Severity.MEDIUM),
            ("one tablet", "two tablets", Severity.MEDIUM),
        ],
    )
    def test_dose_change_bands(self, source_dose: str, target_dose: str, expected: Severity) -> None:
        """Test dose change severity bands, boundaries going to the higher band."""
        assert SeverityClassifier().classify_dose_change(source_dose, target_dose) == expected

    def test_high_risk_change_is_high(self, make_entry: EntryFactory, detect) -> None:
        """Test any non-omission change to a high-risk drug is high."""
        source = make_entry("warfarin", dosage="5 mg", frequency="once daily")
        target = make_entry("warfarin", dosage="5.1 mg", frequency="twice daily")

        discrepancies = detect([source], [target])

        assert [d.severity for d in discrepancies] == [Severity.HIGH, Severity.HIGH]

    def test_high_risk_addition_is_high(self, make_entry: EntryFactory, detect) -> None:
        """Test adding a high-risk drug is high."""
        discrepancies = detect([], [make_entry("lithium")])

        assert discrepancies[0].severity == Severity.HIGH

    def test_high_risk_matches_by_substring(self, make_entry: EntryFactory, detect) -> None:
        """Test that a compound ingredient containing a high-risk name is high risk."""
        discrepancies = detect([make_entry("Insulin Glargine")], [])

        assert discrepancies[0].severity == Severity.CRITICAL

    def test_cardiac_omission_is_high(self, make_entry: EntryFactory, detect) -> None:
        """Test omitting a medication with a cardiac indication is high."""
        source = make_entry("bisoprolol", indication="Cardiac arrhythmia")

        discrepancies = detect([source], [])

        assert discrepancies[0].severity == Severity.HIGH

    def test_plain_omission_is_medium_and_needs_review(self, make_entry: EntryFactory, detect) -> None:
        """Test a standard omission is medium yet still requests pharmacist review."""
        discrepancies = detect([make_entry("omeprazole", indication="Reflux")], [])

        assert discrepancies[0].severity == Severity.MEDIUM
        assert requires_pharmacist_review(discrepancies) is True

    def test_medium_addition_does_not_need_review(self, make_entry: EntryFactory, detect) -> None:
        """Test a medium addition alone does not request pharmacist review."""
        discrepancies = detect([], [make_entry("omeprazole")])

        assert requires_pharmacist_review(discrepancies) is False

    def test_custom_risk_table(self, make_entry: EntryFactory, detect) -> None:
        """Test an injected risk table replaces the configured high-risk list."""
        classifier = SeverityClassifier(RiskClassificationTable.from_high_risk(["metformin"]))

        metformin = detect([make_entry("metformin")], [], classifier=classifier)
        warfarin = detect([make_entry("warfarin")], [], classifier=classifier)

        assert metformin[0].severity == Severity.CRITICAL
        assert warfarin[0].severity == Severity.MEDIUM


class TestRiskClassificationTable:
    """Tests for the ingredient risk table."""

    def test_from_high_risk_normalizes_names(self) -> None:
        """Test names are lower-cased and blanks dropped."""
        table = RiskClassificationTable.from_high_risk(["Warfarin ", "", "DIGOXIN"])

        assert table.tiers == {"warfarin": RiskTier.HIGH, "digoxin": RiskTier.HIGH}

    def test_tier_lookup(self) -> None:
        """Test tier lookup is case-insensitive."""
        table = RiskClassificationTable.from_high_risk(["warfarin"])

        assert table.tier_for("WARFARIN SODIUM") == RiskTier.HIGH
        assert table.tier_for("amlodipine") == RiskTier.STANDARD
        assert table.is_high_risk("Warfarin") is True

    def test_default_table_from_settings(self) -> None:
        """Test the default classifier uses the configured high-risk ingredients."""
        table = SeverityClassifier().risk_table

        for name in ("warfarin", "insulin", "digoxin", "lithium", "methotrexate"):
            assert table.is_high_risk(name)


class TestDoseParsing:
    """Tests for numeric dose extraction."""

    @pytest.mark.parametrize(
        "dosage,expected",
        [
            ("500 mg", 500.0),
            ("2.5mg", 2.5),
            (".5 mg", 0.5),
            ("take 2 tablets", 2.0),
            ("one tablet", None),
            ("", None),
        ],
    )
    def test_extract_dose_value(self, dosage: str, expected: float | None) -> None:
        """Test the first number in a dosage string is extracted."""
        assert extract_dose_value(dosage) == expected

    def test_dose_change_percentage(self) -> None:
        """Test percentage change is relative to the source dose."""
        assert dose_change_percentage("500 mg", "850 mg") == pytest.approx(70.0)
        assert dose_change_percentage("200 mg", "100 mg") == pytest.approx(50.0)

    def test_dose_change_percentage_unavailable(self) -> None:
        """Test no percentage for unparsable or zero source doses."""
        assert dose_change_percentage("half a tablet", "10 mg") is None
        assert dose_change_percentage("0 mg", "10 mg") is None


class TestClassifierSingleton:
    """Tests for the shared classifier instance."""

    def test_singleton_is_reused(self) -> None:
        """Test get_severity_classifier returns the same instance."""
        assert get_severity_classifier() is get_severity_classifier()

    def test_reset_creates_new_instance(self) -> None:
        """Test reset_severity_classifier drops the cached instance."""
        first = get_severity_classifier()
        reset_severity_classifier()

        assert get_severity_classifier() is not first
