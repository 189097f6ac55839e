"""
Authoritative in-memory collection of inspection reports.

Holds at most one report per id, fed by a bulk load and by live point
events, and keeps a canonically ordered view that is rebuilt after every
mutation:

    timestamp desc, train asc, compartment asc, wheel asc, id asc
"""

import logging
from typing import Dict, Iterable, Optional, Tuple

from .events import EventType, ReportEvent, check_event
from .records import InspectionReport

logger = logging.getLogger(__name__)


class InvalidStateError(Exception):
    """Raised on API misuse, e.g. a non-resync load after live events."""
    pass


def canonical_key(report: InspectionReport) -> Tuple:
    """Sort key for the canonical presentation order."""
    return (
        -report.timestamp.timestamp(),
        report.train_number,
        report.compartment_number,
        report.wheel_number,
        report.id,
    )


def sort_canonical(reports: Iterable[InspectionReport]) -> Tuple[InspectionReport, ...]:
    return tuple(sorted(reports, key=canonical_key))


class ReportStore:
    """Deduplicated report collection with idempotent event application."""

    def __init__(self):
        self._by_id: Dict[str, InspectionReport] = {}
        self._ordered: Tuple[InspectionReport, ...] = ()
        self.initialized = False
        self.events_applied = 0

    def load_initial(self, reports: Iterable[InspectionReport], resync: bool = True) -> None:
        """
        Replace the entire collection.

        Args:
            reports: Bulk snapshot; duplicate ids resolve last-one-wins
            resync: When False, refuse to overwrite state that live events
                have already modified

        Raises:
            InvalidStateError: If resync is False and live events were applied
        """
        if not resync and self.events_applied > 0:
            raise InvalidStateError(
                f"{self.events_applied} live event(s) already applied; "
                "pass resync=True to replace the collection"
            )

        by_id: Dict[str, InspectionReport] = {}
        for report in reports:
            by_id[report.id] = report

        dropped = len(set(self._by_id) - set(by_id))
        self._by_id = by_id
        self.initialized = True
        self._resort()
        logger.info(f"Loaded {len(by_id)} report(s), dropped {dropped} stale")

    def apply_event(self, event: ReportEvent) -> Optional[InspectionReport]:
        """
        Apply one normalized event.

        created/updated upsert (so duplicate creates and update-before-create
        are tolerated); deleted removes and is a no-op for unknown ids.

        Returns:
            The previous version of the report, or None if it was absent

        Raises:
            MalformedEventError: If the event is inconsistent (state unchanged)
        """
        check_event(event)
        previous = self._by_id.get(event.report_id)

        if event.type == EventType.DELETED:
            if previous is not None:
                del self._by_id[event.report_id]
        else:
            self._by_id[event.report_id] = event.report

        self.events_applied += 1
        self.initialized = True
        self._resort()
        logger.debug(f"Applied {event.type.value} for {event.report_id}")
        return previous

    def _resort(self) -> None:
        self._ordered = sort_canonical(self._by_id.values())

    def reports(self) -> Tuple[InspectionReport, ...]:
        """All reports in canonical order."""
        return self._ordered

    def get(self, report_id: str) -> Optional[InspectionReport]:
        return self._by_id.get(report_id)

    def latest(self) -> Optional[InspectionReport]:
        """The report at index 0 of the canonical order."""
        return self._ordered[0] if self._ordered else None

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, report_id: object) -> bool:
        return report_id in self._by_id
