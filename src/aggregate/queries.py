"""Search and alternate orderings over the flat report collection."""

from datetime import tzinfo
from typing import Iterable, List, Optional, Tuple

from src.derive.rule_engine import (
    DEFAULT_MIN_WHEEL_DIAMETER_MM,
    ConditionLabel,
    classify_condition,
)
from src.ingest.records import InspectionReport
from src.ingest.store import sort_canonical

from .hierarchy import day_of

SORT_KEYS = ("name", "date", "status")


def search_text(report: InspectionReport, tz: Optional[tzinfo] = None) -> str:
    """Lower-cased haystack a free-text query is matched against."""
    day = day_of(report.timestamp, tz)
    parts = [
        report.name or "",
        f"t{report.train_number}",
        f"train {report.train_number}",
        f"c{report.compartment_number}",
        f"compartment {report.compartment_number}",
        f"w{report.wheel_number}",
        f"wheel {report.wheel_number}",
        f"{day.month}/{day.day}/{day.year}",
    ]
    return "\n".join(parts).lower()


def search_reports(
    reports: Iterable[InspectionReport],
    query: str,
    tz: Optional[tzinfo] = None,
) -> Tuple[InspectionReport, ...]:
    """Case-insensitive substring search; an empty query matches everything."""
    needle = (query or "").strip().lower()
    if not needle:
        return tuple(reports)
    return tuple(r for r in reports if needle in search_text(r, tz))


def sort_reports(reports: Iterable[InspectionReport], by: str = "date") -> Tuple[InspectionReport, ...]:
    """
    Order reports for list views.

    Args:
        by: "name" (unnamed last), "date" (canonical order) or
            "status" (unflawed first, canonical within)
    """
    ordered: List[InspectionReport] = list(sort_canonical(reports))
    if by == "date":
        return tuple(ordered)
    if by == "name":
        ordered.sort(key=lambda r: (r.name is None, (r.name or "").lower()))
        return tuple(ordered)
    if by == "status":
        ordered.sort(key=lambda r: r.surface_flawed)
        return tuple(ordered)
    raise ValueError(f"Unknown sort key '{by}', expected one of {SORT_KEYS}")


def filter_flawed(reports: Iterable[InspectionReport]) -> Tuple[InspectionReport, ...]:
    return tuple(r for r in reports if r.surface_flawed)


def filter_by_condition(
    reports: Iterable[InspectionReport],
    condition: ConditionLabel,
    min_diameter_mm: float = DEFAULT_MIN_WHEEL_DIAMETER_MM,
) -> Tuple[InspectionReport, ...]:
    return tuple(
        r for r in reports
        if classify_condition(r.wheel_diameter_mm, min_diameter_mm) == condition
    )
