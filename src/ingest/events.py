"""Live event normalization.

The backend has used two naming schemes on its live channel over time
(``created``/``updated``/``deleted`` and ``new_report``/``updated_report``/
``report_updated``/``deleted_report``). Both are folded into three canonical
event types here, before anything touches engine state.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .records import (
    SCHEMA_DIR,
    InspectionReport,
    MalformedEventError,
    parse_report,
    record_id,
    validate_against,
)

EVENT_SCHEMA_PATH = SCHEMA_DIR / "live_event.schema.json"


class EventType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


EVENT_TYPE_ALIASES: Dict[str, EventType] = {
    "created": EventType.CREATED,
    "new_report": EventType.CREATED,
    "updated": EventType.UPDATED,
    "updated_report": EventType.UPDATED,
    "report_updated": EventType.UPDATED,
    "deleted": EventType.DELETED,
    "deleted_report": EventType.DELETED,
}


@dataclass(frozen=True)
class ReportEvent:
    """A normalized point event. ``report`` is None for deletions."""
    type: EventType
    report_id: str
    report: Optional[InspectionReport] = None


def normalize_event_type(raw_type: Any) -> EventType:
    """Map any known event name to its canonical EventType."""
    if isinstance(raw_type, EventType):
        return raw_type
    if not isinstance(raw_type, str) or not raw_type.strip():
        raise MalformedEventError("missing event type", field="type")
    try:
        return EVENT_TYPE_ALIASES[raw_type.strip().lower()]
    except KeyError:
        raise MalformedEventError(f"unknown event type '{raw_type}'", field="type") from None


def check_event(event: ReportEvent) -> None:
    """
    Reject a ReportEvent that cannot be applied consistently.

    Raises:
        MalformedEventError: On an unknown type, a blank id, a create/update
            without a report, or a report whose id differs from the event's
    """
    if not isinstance(event.type, EventType):
        raise MalformedEventError(f"unknown event type {event.type!r}", field="type")
    if not isinstance(event.report_id, str) or not event.report_id.strip():
        raise MalformedEventError("missing report id", field="report_id")
    if event.type == EventType.DELETED:
        return
    if not isinstance(event.report, InspectionReport):
        raise MalformedEventError(f"{event.type.value} event carries no report", field="report")
    if event.report.id != event.report_id:
        raise MalformedEventError(
            f"report id '{event.report.id}' does not match event id '{event.report_id}'",
            field="report_id",
        )


def build_event(event_type: Any, data: Any) -> ReportEvent:
    """
    Build a ReportEvent from an event type and its record payload.

    Deletions only need an id; creates and updates need a full record.
    """
    etype = normalize_event_type(event_type)
    if not isinstance(data, dict):
        raise MalformedEventError("event data must be an object", field="data")

    report_id = record_id(data)
    if report_id is None:
        raise MalformedEventError("missing report id", field="data._id")

    if etype == EventType.DELETED:
        return ReportEvent(type=etype, report_id=report_id)

    return ReportEvent(type=etype, report_id=report_id, report=parse_report(data))


def parse_event(message: Any) -> ReportEvent:
    """
    Parse a live channel message into a ReportEvent.

    Args:
        message: Decoded dict or raw JSON text ``{"type": ..., "data": {...}}``

    Returns:
        ReportEvent

    Raises:
        MalformedEventError: If the envelope or its record is invalid
    """
    if isinstance(message, (str, bytes)):
        try:
            message = json.loads(message)
        except json.JSONDecodeError as e:
            raise MalformedEventError(f"message is not valid JSON: {e}") from e

    if not isinstance(message, dict):
        raise MalformedEventError("message must be a JSON object")

    # Check type first so an unknown name is reported as such, not as a schema enum error.
    etype = normalize_event_type(message.get("type"))
    validate_against(EVENT_SCHEMA_PATH, {**message, "type": etype.value})

    return build_event(etype, message["data"])


def event_from_socketio(event_name: str, payload: Any) -> ReportEvent:
    """
    Adapt a Socket.IO style event (name carries the type, payload is the record).

    Example: ``socket.on('report_updated', report)`` becomes an UPDATED event.
    """
    return build_event(event_name, payload)
