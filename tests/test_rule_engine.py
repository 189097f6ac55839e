"""Tests for condition and recommendation derivation."""
import pytest
from datetime import datetime, timezone

from src.derive.rule_engine import (
    DEFAULT_MIN_WHEEL_DIAMETER_MM,
    RECOMMEND_EXCESSIVE_WEAR,
    RECOMMEND_FLAWS_AND_WEAR,
    RECOMMEND_MONITORING,
    RECOMMEND_SURFACE_FLAWS,
    ConditionLabel,
    classify_condition,
    derive_recommendation,
    derive_report,
    derive_surface_status,
    rollup_condition,
)
from src.ingest.records import InspectionReport


def report(diameter=None, flawed=False):
    return InspectionReport(
        id="r1",
        train_number=1,
        compartment_number=1,
        wheel_number=1,
        timestamp=datetime(2024, 5, 1, 12, tzinfo=timezone.utc),
        surface_flawed=flawed,
        wheel_diameter_mm=diameter,
    )


class TestConstants:

    def test_threshold_default(self):
        assert DEFAULT_MIN_WHEEL_DIAMETER_MM == 631

    def test_recommendation_texts(self):
        assert RECOMMEND_FLAWS_AND_WEAR == "For Repair/Replacement (Flaws and Wheel Wear)"
        assert RECOMMEND_SURFACE_FLAWS == "For Repair/Replacement (Surface Flaws)"
        assert RECOMMEND_EXCESSIVE_WEAR == "For Wheel Replacement (Excessive Wear)"
        assert RECOMMEND_MONITORING == "For Consistent Monitoring"


class TestClassifyCondition:

    def test_at_threshold_is_good(self):
        assert classify_condition(631) == ConditionLabel.GOOD

    def test_below_threshold_is_bad(self):
        assert classify_condition(630.99) == ConditionLabel.BAD

    def test_missing_is_unknown(self):
        assert classify_condition(None) == ConditionLabel.UNKNOWN

    def test_zero_is_bad_not_unknown(self):
        assert classify_condition(0.0) == ConditionLabel.BAD

    def test_custom_threshold(self):
        assert classify_condition(640, min_diameter_mm=650) == ConditionLabel.BAD


class TestDeriveRecommendation:
    """All four (flawed, BAD) combinations map to exactly one text."""

    @pytest.mark.parametrize("flawed,condition,expected", [
        (True, ConditionLabel.BAD, RECOMMEND_FLAWS_AND_WEAR),
        (True, ConditionLabel.GOOD, RECOMMEND_SURFACE_FLAWS),
        (False, ConditionLabel.BAD, RECOMMEND_EXCESSIVE_WEAR),
        (False, ConditionLabel.GOOD, RECOMMEND_MONITORING),
    ])
    def test_exhaustive(self, flawed, condition, expected):
        assert derive_recommendation(flawed, condition) == expected

    def test_unknown_condition_counts_as_not_worn(self):
        assert derive_recommendation(False, ConditionLabel.UNKNOWN) == RECOMMEND_MONITORING
        assert derive_recommendation(True, ConditionLabel.UNKNOWN) == RECOMMEND_SURFACE_FLAWS


class TestDeriveReport:

    def test_surface_status_labels(self):
        assert derive_surface_status(True) == "FLAW DETECTED"
        assert derive_surface_status(False) == "NO FLAW"

    def test_worn_and_flawed(self):
        derived = derive_report(report(diameter=600, flawed=True))

        assert derived.condition_label == ConditionLabel.BAD
        assert derived.surface_status == "FLAW DETECTED"
        assert derived.recommendation == RECOMMEND_FLAWS_AND_WEAR
        assert derived.needs_attention is True

    def test_healthy_wheel_needs_no_attention(self):
        derived = derive_report(report(diameter=640))
        assert derived.needs_attention is False
        assert derived.recommendation == RECOMMEND_MONITORING

    def test_unknown_diameter_needs_no_attention(self):
        assert derive_report(report()).needs_attention is False

    def test_threshold_is_configurable(self):
        assert derive_report(report(diameter=640), min_diameter_mm=700).condition_label == ConditionLabel.BAD


class TestRollupCondition:

    def test_any_bad_wins(self):
        labels = [ConditionLabel.GOOD, ConditionLabel.UNKNOWN, ConditionLabel.BAD]
        assert rollup_condition(labels) == ConditionLabel.BAD

    def test_good_beats_unknown(self):
        assert rollup_condition([ConditionLabel.UNKNOWN, ConditionLabel.GOOD]) == ConditionLabel.GOOD

    def test_all_unknown(self):
        assert rollup_condition([ConditionLabel.UNKNOWN]) == ConditionLabel.UNKNOWN
        assert rollup_condition([]) == ConditionLabel.UNKNOWN
