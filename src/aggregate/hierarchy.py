"""
Train -> inspection day -> compartment -> wheel hierarchy with rollups.

The hierarchy is rebuilt wholesale from the report collection or patched one
event at a time. Nodes are frozen dataclasses holding tuples, so whatever a
consumer receives is a read-only snapshot and two hierarchies can be
compared with ``==``. Incremental patches recompute only the touched
compartment and its train-day and must always equal a full rebuild over the
same collection.

Rollup rule at every level: a node needs attention when any wheel below it
has a surface flaw or is in BAD condition. Nodes with no wheels are pruned.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Dict, Iterable, NamedTuple, Optional, Set, Tuple

from src.derive.rule_engine import (
    DEFAULT_MIN_WHEEL_DIAMETER_MM,
    ConditionLabel,
    DerivedReport,
    derive_recommendation,
    derive_report,
    derive_surface_status,
    rollup_condition,
)
from src.ingest.events import EventType, ReportEvent
from src.ingest.records import FLAW_DETECTED, InspectionReport
from src.ingest.store import canonical_key

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY_IMAGES = 5


class HierarchyState(str, Enum):
    EMPTY = "EMPTY"
    POPULATED = "POPULATED"


class _NotLoaded:
    """Returned by queries before the first report has been ingested."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_LOADED"


NOT_LOADED = _NotLoaded()


class TrainDayKey(NamedTuple):
    train_number: int
    day: date


@dataclass(frozen=True)
class WheelEntry:
    wheel_number: int
    report: InspectionReport
    derived: DerivedReport


@dataclass(frozen=True)
class CompartmentNode:
    compartment_number: int
    wheels: Tuple[WheelEntry, ...]
    needs_attention: bool
    surface_status: str
    condition_label: ConditionLabel
    recommendation: str
    latest_timestamp: datetime


@dataclass(frozen=True)
class TrainDayNode:
    key: TrainDayKey
    compartments: Tuple[CompartmentNode, ...]
    needs_attention: bool
    surface_status: str
    condition_label: ConditionLabel
    recommendation: str
    latest_timestamp: datetime
    wheel_count: int


@dataclass(frozen=True)
class LatestSummary:
    train_day: TrainDayNode
    surface_status: str
    condition_label: ConditionLabel
    recommendation: str
    images: Tuple[WheelEntry, ...]


def day_of(timestamp: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar day of a timestamp in the viewer's zone (host local when tz is None)."""
    return timestamp.astimezone(tz).date()


def _train_day_order(node: TrainDayNode) -> Tuple:
    return (-node.latest_timestamp.timestamp(), node.key.train_number, -node.key.day.toordinal())


class ReportHierarchy:
    """Owns the derived hierarchy; consumers only ever see snapshots."""

    def __init__(
        self,
        min_diameter_mm: float = DEFAULT_MIN_WHEEL_DIAMETER_MM,
        tz: Optional[tzinfo] = None,
        summary_images: int = DEFAULT_SUMMARY_IMAGES,
    ):
        self.min_diameter_mm = min_diameter_mm
        self.tz = tz
        self.summary_images = summary_images
        self.state = HierarchyState.EMPTY

        # key -> compartment -> wheel -> id -> report; shadowed duplicates stay here
        self._slots: Dict[TrainDayKey, Dict[int, Dict[int, Dict[str, InspectionReport]]]] = {}
        self._located: Dict[str, Tuple[TrainDayKey, int, int]] = {}
        self._compartments: Dict[TrainDayKey, Dict[int, CompartmentNode]] = {}
        self._nodes: Dict[TrainDayKey, TrainDayNode] = {}

    def key_for(self, report: InspectionReport) -> TrainDayKey:
        return TrainDayKey(report.train_number, day_of(report.timestamp, self.tz))

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def rebuild(self, reports: Iterable[InspectionReport]) -> None:
        """Recompute the whole hierarchy from a report collection."""
        self._slots = {}
        self._located = {}
        self._compartments = {}
        self._nodes = {}

        for report in reports:
            self._insert(report)

        for key, compartments in self._slots.items():
            for compartment_number in compartments:
                self._refresh_compartment(key, compartment_number)
        for key in list(self._compartments):
            self._refresh_train_day(key)

        self._mark_populated()
        logger.info(f"Rebuilt hierarchy: {len(self._nodes)} train-day(s), {len(self._located)} report(s)")

    def patch(self, event: ReportEvent) -> Tuple[TrainDayKey, ...]:
        """
        Apply one event incrementally.

        Returns:
            The train-day keys whose nodes were recomputed (or pruned)
        """
        touched: Set[Tuple[TrainDayKey, int]] = set()

        location = self._located.get(event.report_id)
        if location is not None:
            key, compartment_number, _ = location
            self._remove(event.report_id)
            touched.add((key, compartment_number))

        if event.type != EventType.DELETED:
            key, compartment_number = self._insert(event.report)
            touched.add((key, compartment_number))

        for key, compartment_number in touched:
            self._refresh_compartment(key, compartment_number)
        affected = sorted({key for key, _ in touched})
        for key in affected:
            self._refresh_train_day(key)

        self._mark_populated()
        return tuple(affected)

    def _mark_populated(self) -> None:
        if self.state == HierarchyState.EMPTY and self._located:
            self.state = HierarchyState.POPULATED

    def _insert(self, report: InspectionReport) -> Tuple[TrainDayKey, int]:
        if report.id in self._located:
            self._remove(report.id)
        key = self.key_for(report)
        wheels = self._slots.setdefault(key, {}).setdefault(report.compartment_number, {})
        wheels.setdefault(report.wheel_number, {})[report.id] = report
        self._located[report.id] = (key, report.compartment_number, report.wheel_number)
        return key, report.compartment_number

    def _remove(self, report_id: str) -> None:
        key, compartment_number, wheel_number = self._located.pop(report_id)
        compartments = self._slots[key]
        wheels = compartments[compartment_number]
        candidates = wheels[wheel_number]
        del candidates[report_id]
        if not candidates:
            del wheels[wheel_number]
        if not wheels:
            del compartments[compartment_number]
        if not compartments:
            del self._slots[key]

    def _refresh_compartment(self, key: TrainDayKey, compartment_number: int) -> None:
        wheels = self._slots.get(key, {}).get(compartment_number)
        if not wheels:
            nodes = self._compartments.get(key, {})
            nodes.pop(compartment_number, None)
            if not nodes:
                self._compartments.pop(key, None)
            return
        self._compartments.setdefault(key, {})[compartment_number] = self._build_compartment(
            compartment_number, wheels
        )

    def _refresh_train_day(self, key: TrainDayKey) -> None:
        compartments = self._compartments.get(key)
        if not compartments:
            self._nodes.pop(key, None)
            return
        self._nodes[key] = self._build_train_day(key, compartments)

    def _build_compartment(
        self,
        compartment_number: int,
        wheels: Dict[int, Dict[str, InspectionReport]],
    ) -> CompartmentNode:
        entries = []
        for wheel_number in sorted(wheels):
            # Last write wins: the most recent report in canonical order.
            winner = min(wheels[wheel_number].values(), key=canonical_key)
            entries.append(WheelEntry(wheel_number, winner, derive_report(winner, self.min_diameter_mm)))

        any_flawed = any(e.report.surface_flawed for e in entries)
        condition = rollup_condition(e.derived.condition_label for e in entries)
        return CompartmentNode(
            compartment_number=compartment_number,
            wheels=tuple(entries),
            needs_attention=any(e.derived.needs_attention for e in entries),
            surface_status=derive_surface_status(any_flawed),
            condition_label=condition,
            recommendation=derive_recommendation(any_flawed, condition),
            latest_timestamp=max(e.report.timestamp for e in entries),
        )

    def _build_train_day(self, key: TrainDayKey, compartments: Dict[int, CompartmentNode]) -> TrainDayNode:
        nodes = tuple(compartments[number] for number in sorted(compartments))
        any_flawed = any(n.surface_status == FLAW_DETECTED for n in nodes)
        condition = rollup_condition(n.condition_label for n in nodes)
        return TrainDayNode(
            key=key,
            compartments=nodes,
            needs_attention=any(n.needs_attention for n in nodes),
            surface_status=derive_surface_status(any_flawed),
            condition_label=condition,
            recommendation=derive_recommendation(any_flawed, condition),
            latest_timestamp=max(n.latest_timestamp for n in nodes),
            wheel_count=sum(len(n.wheels) for n in nodes),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_train_days(self):
        """Train-day nodes, newest first; NOT_LOADED before any report."""
        if self.state == HierarchyState.EMPTY:
            return NOT_LOADED
        return tuple(sorted(self._nodes.values(), key=_train_day_order))

    def get_train_day(self, key: Tuple[int, date]):
        if self.state == HierarchyState.EMPTY:
            return NOT_LOADED
        return self._nodes.get(TrainDayKey(*key))

    def list_compartments(self, key: Tuple[int, date]):
        if self.state == HierarchyState.EMPTY:
            return NOT_LOADED
        node = self._nodes.get(TrainDayKey(*key))
        return node.compartments if node is not None else ()

    def list_wheels(self, key: Tuple[int, date], compartment_number: int):
        if self.state == HierarchyState.EMPTY:
            return NOT_LOADED
        node = self._nodes.get(TrainDayKey(*key))
        if node is None:
            return ()
        for compartment in node.compartments:
            if compartment.compartment_number == compartment_number:
                return compartment.wheels
        return ()

    def latest_summary(self):
        """
        At-a-glance view of the most recent train-day.

        Returns:
            LatestSummary, None when populated but empty, NOT_LOADED before any report
        """
        train_days = self.list_train_days()
        if train_days is NOT_LOADED:
            return NOT_LOADED
        if not train_days:
            return None

        latest = train_days[0]
        wheels = [w for c in latest.compartments for w in c.wheels if w.report.image_path]
        wheels.sort(key=lambda w: canonical_key(w.report))
        return LatestSummary(
            train_day=latest,
            surface_status=latest.surface_status,
            condition_label=latest.condition_label,
            recommendation=latest.recommendation,
            images=tuple(wheels[: self.summary_images]),
        )

    def snapshot(self):
        """Full hierarchy as comparable tuples (same order as list_train_days)."""
        return self.list_train_days()

    def __len__(self) -> int:
        return len(self._located)
