"""
Report engine facade.

Ties ingestion, derivation and aggregation together behind one object:

    bulk records / live messages
        -> ReportStore (dedup + canonical order)
        -> ReportHierarchy (train -> day -> compartment -> wheel, rollups)
        -> subscribers (ChangeNotice after every successful mutation)

The engine assumes a single writer. Hosts that call it from more than one
thread construct it with ``thread_safe=True`` so every entry point runs under
one re-entrant lock.
"""

import contextlib
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Tuple

from src.aggregate.hierarchy import NOT_LOADED, ReportHierarchy, TrainDayKey
from src.aggregate.queries import search_reports, sort_reports
from src.config.settings import EngineSettings
from src.derive.rule_engine import DerivedReport, derive_report
from src.ingest.events import EventType, ReportEvent, parse_event
from src.ingest.records import InspectionReport, parse_report
from src.ingest.store import ReportStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChangeNotice:
    """What changed: kind is "load", "created", "updated" or "deleted"."""
    kind: str
    report_id: Optional[str]
    affected: Tuple[TrainDayKey, ...]


Subscriber = Callable[[ChangeNotice], None]


class Subscription:
    """Handle returned by ReportEngine.subscribe."""

    def __init__(self, engine: "ReportEngine", callback: Subscriber):
        self._engine = engine
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._engine._unsubscribe(self)
            self.active = False


class ReportEngine:
    """Owns the canonical report state and the derived hierarchy."""

    def __init__(self, settings: Optional[EngineSettings] = None, thread_safe: bool = False):
        self.settings = settings or EngineSettings()
        self.store = ReportStore()
        self.hierarchy = ReportHierarchy(
            min_diameter_mm=self.settings.min_wheel_diameter_mm,
            tz=self.settings.tz,
            summary_images=self.settings.latest_summary_images,
        )
        self._subscriptions: List[Subscription] = []
        self._lock = threading.RLock() if thread_safe else None

    def _guard(self):
        return self._lock if self._lock is not None else contextlib.nullcontext()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def load_initial(self, reports: Iterable[Any], resync: bool = True) -> int:
        """
        Replace all state with a bulk snapshot.

        Args:
            reports: InspectionReport values or raw backend records
            resync: See ReportStore.load_initial

        Returns:
            Number of reports held after the load

        Raises:
            MalformedEventError: If any raw record is invalid (state unchanged)
            InvalidStateError: On a non-resync load after live events
        """
        parsed = [r if isinstance(r, InspectionReport) else parse_report(r) for r in reports]
        with self._guard():
            self.store.load_initial(parsed, resync=resync)
            self.hierarchy.rebuild(self.store.reports())
            notice = ChangeNotice(
                kind="load",
                report_id=None,
                affected=tuple(node.key for node in self.hierarchy.list_train_days() or ()),
            )
        self._notify(notice)
        return len(self.store)

    def resync(self, reports: Iterable[Any]) -> int:
        """Full resync after a suspected gap in the live stream."""
        logger.info("Resyncing report state from bulk snapshot")
        return self.load_initial(reports, resync=True)

    def apply_event(self, event: ReportEvent) -> ChangeNotice:
        """
        Apply one normalized event to store and hierarchy, then notify.

        Raises:
            MalformedEventError: If the event is inconsistent (state unchanged)
        """
        with self._guard():
            previous = self.store.apply_event(event)
            affected = self.hierarchy.patch(event)
        if event.type == EventType.DELETED and previous is None:
            logger.debug(f"Delete for unknown report {event.report_id} ignored")
        notice = ChangeNotice(kind=event.type.value, report_id=event.report_id, affected=affected)
        self._notify(notice)
        return notice

    def apply_message(self, message: Any) -> ChangeNotice:
        """
        Parse and apply a raw live-channel message.

        Raises:
            MalformedEventError: If the message is rejected (state unchanged)
        """
        return self.apply_event(parse_event(message))

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Subscription:
        subscription = Subscription(self, callback)
        with self._guard():
            self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription) -> None:
        with self._guard():
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def _notify(self, notice: ChangeNotice) -> None:
        with self._guard():
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            try:
                subscription.callback(notice)
            except Exception:
                logger.exception(f"Subscriber {subscription.callback!r} failed on {notice.kind}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def state(self):
        return self.hierarchy.state

    def list_train_days(self):
        with self._guard():
            return self.hierarchy.list_train_days()

    def list_compartments(self, key):
        with self._guard():
            return self.hierarchy.list_compartments(key)

    def list_wheels(self, key, compartment_number: int):
        with self._guard():
            return self.hierarchy.list_wheels(key, compartment_number)

    def latest_summary(self):
        with self._guard():
            return self.hierarchy.latest_summary()

    def reports(self) -> Tuple[InspectionReport, ...]:
        with self._guard():
            return self.store.reports()

    def search(self, query: str, sort_by: str = "date"):
        """Free-text search over all reports; NOT_LOADED before any data."""
        with self._guard():
            if not self.store.initialized:
                return NOT_LOADED
            found = search_reports(self.store.reports(), query, self.settings.tz)
        return sort_reports(found, by=sort_by)

    def derive(self, report_id: str) -> Optional[DerivedReport]:
        with self._guard():
            report = self.store.get(report_id)
        if report is None:
            return None
        return derive_report(report, self.settings.min_wheel_diameter_mm)
