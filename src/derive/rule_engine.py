"""Condition and recommendation rules for wheel inspection reports.

Every function here is pure. The diameter threshold defaults to 631 mm and
is read from config/engine.yaml by callers, never hardcoded at call sites.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from src.ingest.records import FLAW_DETECTED, NO_FLAW, InspectionReport

DEFAULT_MIN_WHEEL_DIAMETER_MM = 631.0

RECOMMEND_FLAWS_AND_WEAR = "For Repair/Replacement (Flaws and Wheel Wear)"
RECOMMEND_SURFACE_FLAWS = "For Repair/Replacement (Surface Flaws)"
RECOMMEND_EXCESSIVE_WEAR = "For Wheel Replacement (Excessive Wear)"
RECOMMEND_MONITORING = "For Consistent Monitoring"


class ConditionLabel(str, Enum):
    GOOD = "GOOD"
    BAD = "BAD"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class DerivedReport:
    condition_label: ConditionLabel
    surface_status: str
    recommendation: str

    @property
    def needs_attention(self) -> bool:
        return self.surface_status == FLAW_DETECTED or self.condition_label == ConditionLabel.BAD


def classify_condition(
    diameter_mm: Optional[float],
    min_diameter_mm: float = DEFAULT_MIN_WHEEL_DIAMETER_MM,
) -> ConditionLabel:
    """Classify wheel wear from its measured diameter.

    Args:
        diameter_mm: Wheel diameter in millimeters, or None if not measured
        min_diameter_mm: Smallest diameter still in GOOD condition

    Returns:
        UNKNOWN if diameter is None, GOOD at or above the threshold, else BAD
    """
    if diameter_mm is None:
        return ConditionLabel.UNKNOWN
    if diameter_mm >= min_diameter_mm:
        return ConditionLabel.GOOD
    return ConditionLabel.BAD


def derive_surface_status(surface_flawed: bool) -> str:
    return FLAW_DETECTED if surface_flawed else NO_FLAW


def derive_recommendation(surface_flawed: bool, condition: ConditionLabel) -> str:
    """Pick the maintenance recommendation.

    Precedence: flaw and wear, then flaw only, then wear only, then monitoring.
    UNKNOWN condition counts as not worn.
    """
    worn = condition == ConditionLabel.BAD
    if surface_flawed and worn:
        return RECOMMEND_FLAWS_AND_WEAR
    if surface_flawed:
        return RECOMMEND_SURFACE_FLAWS
    if worn:
        return RECOMMEND_EXCESSIVE_WEAR
    return RECOMMEND_MONITORING


def derive_report(
    report: InspectionReport,
    min_diameter_mm: float = DEFAULT_MIN_WHEEL_DIAMETER_MM,
) -> DerivedReport:
    condition = classify_condition(report.wheel_diameter_mm, min_diameter_mm)
    return DerivedReport(
        condition_label=condition,
        surface_status=derive_surface_status(report.surface_flawed),
        recommendation=derive_recommendation(report.surface_flawed, condition),
    )


def rollup_condition(labels: Iterable[ConditionLabel]) -> ConditionLabel:
    """Combine child conditions: any BAD wins, all UNKNOWN stays UNKNOWN."""
    seen_good = False
    for label in labels:
        if label == ConditionLabel.BAD:
            return ConditionLabel.BAD
        if label == ConditionLabel.GOOD:
            seen_good = True
    return ConditionLabel.GOOD if seen_good else ConditionLabel.UNKNOWN
