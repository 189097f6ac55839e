"""Tests for free-text search and list orderings."""
import pytest
from datetime import datetime, timedelta, timezone

from src.aggregate.queries import (
    filter_by_condition,
    filter_flawed,
    search_reports,
    search_text,
    sort_reports,
)
from src.derive.rule_engine import ConditionLabel
from src.ingest.records import InspectionReport

NOON = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def report(report_id, train=5, compartment=1, wheel=1, minutes=0, name=None, flawed=False, diameter=640.0):
    return InspectionReport(
        id=report_id,
        train_number=train,
        compartment_number=compartment,
        wheel_number=wheel,
        timestamp=NOON + timedelta(minutes=minutes),
        surface_flawed=flawed,
        wheel_diameter_mm=diameter,
        name=name,
    )


@pytest.fixture
def reports():
    return [
        report("a", train=5, compartment=2, wheel=3, minutes=0, name="Depot check"),
        report("b", train=12, compartment=1, wheel=1, minutes=10, name="alpha run", flawed=True),
        report("c", train=7, compartment=4, wheel=2, minutes=-24 * 60, diameter=600.0),
    ]


class TestSearch:
    """Tests for the search haystack and matching."""

    def test_haystack_contents(self):
        text = search_text(report("a", train=5, compartment=2, wheel=3, name="Depot"), timezone.utc)

        for token in ["depot", "t5", "train 5", "c2", "compartment 2", "w3", "wheel 3", "5/1/2024"]:
            assert token in text

    def test_matches_train_phrase(self, reports):
        assert [r.id for r in search_reports(reports, "train 12", timezone.utc)] == ["b"]

    def test_case_insensitive_name(self, reports):
        assert [r.id for r in search_reports(reports, "DEPOT", timezone.utc)] == ["a"]

    def test_matches_us_date(self, reports):
        found = search_reports(reports, "4/30/2024", timezone.utc)
        assert [r.id for r in found] == ["c"]

    def test_empty_query_returns_all(self, reports):
        assert search_reports(reports, "  ", timezone.utc) == tuple(reports)
        assert search_reports(reports, None, timezone.utc) == tuple(reports)

    def test_no_match(self, reports):
        assert search_reports(reports, "nothing like this", timezone.utc) == ()


class TestSort:

    def test_date_is_canonical(self, reports):
        assert [r.id for r in sort_reports(reports, "date")] == ["b", "a", "c"]

    def test_name_unnamed_last(self, reports):
        assert [r.id for r in sort_reports(reports, "name")] == ["b", "a", "c"]

    def test_name_ignores_case(self):
        reports = [report("x", name="beta"), report("y", name="Alpha")]
        assert [r.id for r in sort_reports(reports, "name")] == ["y", "x"]

    def test_status_unflawed_first(self, reports):
        assert [r.id for r in sort_reports(reports, "status")] == ["a", "c", "b"]

    def test_unknown_key(self, reports):
        with pytest.raises(ValueError):
            sort_reports(reports, "wheel")


class TestFilters:

    def test_filter_flawed(self, reports):
        assert [r.id for r in filter_flawed(reports)] == ["b"]

    def test_filter_by_condition(self, reports):
        assert [r.id for r in filter_by_condition(reports, ConditionLabel.BAD)] == ["c"]
        assert [r.id for r in filter_by_condition(reports, ConditionLabel.GOOD, min_diameter_mm=500)] == ["a", "b", "c"]
