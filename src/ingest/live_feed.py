"""
Reconnecting live feed for report events.

The live channel cannot replay what was missed while it was down, so every
(re)connect starts with a full bulk resync before live messages are applied:

1. fetch_initial() -> engine.load_initial(...)
2. connect() -> iterate messages -> engine.apply_message(...)
3. on transport failure or end of stream: back off, go to 1

Malformed messages are logged and skipped; they never end the loop. A
rejected credential (NonRetryableFetchError) does end it.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from src.config.settings import EngineSettings, get_retry_config

from .base_fetcher import FetchError, NonRetryableFetchError
from .fetch_reports import ReportsFetcher
from .records import MalformedEventError

logger = logging.getLogger(__name__)

# Health status thresholds
CONSECUTIVE_FAILURES_DEGRADED = 3
CONSECUTIVE_FAILURES_DOWN = 7

# Backoff never grows past this many seconds
MAX_BACKOFF_SECONDS = 60

TRANSPORT_ERRORS = (ConnectionError, OSError, FetchError)


@dataclass
class FeedHealth:
    """Connection health for the live feed."""
    connects: int = 0
    resyncs: int = 0
    messages_applied: int = 0
    messages_rejected: int = 0
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    last_connected_at: Optional[str] = None
    last_failure_at: Optional[str] = None
    status: str = "OK"  # OK, DEGRADED, DOWN

    def update_status(self):
        """Update status based on consecutive failures."""
        if self.consecutive_failures >= CONSECUTIVE_FAILURES_DOWN:
            self.status = "DOWN"
        elif self.consecutive_failures >= CONSECUTIVE_FAILURES_DEGRADED:
            self.status = "DEGRADED"
        else:
            self.status = "OK"

    def record_connect(self, timestamp: Optional[datetime] = None):
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)
        self.connects += 1
        self.last_connected_at = timestamp.isoformat()
        self.consecutive_failures = 0
        self.last_error = None
        self.update_status()

    def record_failure(self, error: str, timestamp: Optional[datetime] = None):
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)
        self.consecutive_failures += 1
        self.last_error = error
        self.last_failure_at = timestamp.isoformat()
        self.update_status()


@dataclass
class LiveReportFeed:
    """
    Drives a ReportEngine from a bulk fetch plus a live message stream.

    Args:
        engine: ReportEngine to feed
        fetch_initial: Returns the bulk list of backend records
        connect: Opens the live channel and returns an iterable of raw
            messages; raising or exhausting the iterable counts as a disconnect
        max_reconnects: Stop after this many reconnects (None = forever)
    """
    engine: Any
    fetch_initial: Callable[[], List[Dict[str, Any]]]
    connect: Callable[[], Iterable[Any]]
    max_reconnects: Optional[int] = None
    retry_config: Optional[Dict[str, Any]] = None
    health: FeedHealth = field(default_factory=FeedHealth)

    def __post_init__(self):
        retry = self.retry_config or get_retry_config()
        self.initial_backoff_seconds = retry['initial_backoff_seconds']
        self.backoff_multiplier = retry['backoff_multiplier']
        self._stopped = False

    @classmethod
    def from_settings(
        cls,
        engine: Any,
        settings: EngineSettings,
        connect: Callable[[], Iterable[Any]],
    ) -> "LiveReportFeed":
        """Build a feed that resyncs from the reports API and honours live_feed.max_reconnects."""
        return cls(
            engine=engine,
            fetch_initial=ReportsFetcher(settings).fetch_records,
            connect=connect,
            max_reconnects=settings.max_reconnects,
        )

    def stop(self) -> None:
        """Ask run() to return after the current message."""
        self._stopped = True

    def run(self) -> FeedHealth:
        """Resync, stream, and reconnect until stopped or out of reconnects."""
        attempts = 0
        backoff = self.initial_backoff_seconds

        while not self._stopped:
            try:
                self._resync()
                stream = self.connect()
                self.health.record_connect()
                backoff = self.initial_backoff_seconds
                logger.info("Live feed connected")
                self._consume(stream)
                if self._stopped:
                    break
                logger.warning("Live feed stream ended")
                self.health.record_failure("stream ended")
            except NonRetryableFetchError:
                raise
            except (*TRANSPORT_ERRORS, MalformedEventError) as e:
                logger.warning(f"Live feed disconnected: {e}")
                self.health.record_failure(str(e))

            attempts += 1
            if self.max_reconnects is not None and attempts > self.max_reconnects:
                logger.error(f"Live feed giving up after {self.max_reconnects} reconnect(s)")
                break

            logger.info(f"Reconnecting live feed in {backoff}s (status {self.health.status})")
            time.sleep(backoff)
            backoff = min(backoff * self.backoff_multiplier, MAX_BACKOFF_SECONDS)

        return self.health

    def _resync(self) -> None:
        records = self.fetch_initial()
        self.engine.resync(records)
        self.health.resyncs += 1

    def _consume(self, stream: Iterable[Any]) -> None:
        for message in stream:
            try:
                self.engine.apply_message(message)
                self.health.messages_applied += 1
            except MalformedEventError as e:
                self.health.messages_rejected += 1
                logger.warning(f"Rejected live message: {e}")
            if self._stopped:
                return
