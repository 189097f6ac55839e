"""Inspection report records as delivered by the inspection backend.

Backend records use camelCase/snake_case field names (``_id``,
``trainNumber``, ``wheel_diameter``...). ``parse_report`` validates them
against ``config/schemas/inspection_report.schema.json`` and converts them
into immutable ``InspectionReport`` values.
"""

import json
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import jsonschema

SCHEMA_DIR = Path(__file__).resolve().parent.parent.parent / "config" / "schemas"
REPORT_SCHEMA_PATH = SCHEMA_DIR / "inspection_report.schema.json"

FLAW_DETECTED = "FLAW DETECTED"
NO_FLAW = "NO FLAW"

# Epoch values above this are milliseconds (JavaScript Date.now()).
EPOCH_MILLIS_CUTOFF = 1e11

_NUMERIC_RE = re.compile(r"^\d+(\.\d+)?$")


class MalformedEventError(Exception):
    """Raised when a record or live event is missing required data."""
    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(f"{field}: {message}" if field else message)


@dataclass(frozen=True)
class InspectionReport:
    """One wheel inspection, replaced wholesale on update."""
    id: str
    train_number: int
    compartment_number: int
    wheel_number: int
    timestamp: datetime
    surface_flawed: bool = False
    wheel_diameter_mm: Optional[float] = None
    image_path: Optional[str] = None
    name: Optional[str] = None


@lru_cache(maxsize=None)
def load_schema(path: Path) -> Dict[str, Any]:
    """Load and cache a JSON schema file."""
    with open(path) as f:
        return json.load(f)


def validate_against(schema_path: Path, payload: Any) -> None:
    """
    Validate payload against a JSON schema.

    Raises:
        MalformedEventError: With the failing field path and schema message
    """
    schema = load_schema(schema_path)
    try:
        jsonschema.validate(payload, schema)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else None
        raise MalformedEventError(e.message, field=path) from e


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO-8601 string or epoch value into an aware UTC datetime.

    Naive ISO values are taken as UTC. Epoch numbers above 1e11 are
    milliseconds, anything smaller is seconds.
    """
    if isinstance(value, bool):
        raise MalformedEventError(f"unsupported timestamp {value!r}", field="timestamp")

    try:
        if isinstance(value, (int, float)):
            return _from_epoch(float(value))

        text = str(value).strip()
        if _NUMERIC_RE.match(text):
            return _from_epoch(float(text))

        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except (ValueError, OverflowError, OSError) as e:
        raise MalformedEventError(f"unparseable timestamp {value!r}", field="timestamp") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _from_epoch(seconds: float) -> datetime:
    if math.isnan(seconds) or seconds < 0:
        raise ValueError(f"invalid epoch {seconds}")
    if seconds > EPOCH_MILLIS_CUTOFF:
        seconds = seconds / 1000.0
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def record_id(record: Dict[str, Any]) -> Optional[str]:
    """Return the report id of a backend record (``_id``, falling back to ``id``)."""
    value = record.get("_id")
    if value is None:
        value = record.get("id")
    if value is None or isinstance(value, bool):
        return None
    value = str(value).strip()
    return value or None


def _positive_int(record: Dict[str, Any], key: str) -> int:
    raw = record[key]
    value = int(raw) if isinstance(raw, (int, float)) else int(str(raw).strip())
    if value < 1:
        raise MalformedEventError(f"must be a positive integer, got {value}", field=key)
    return value


def _diameter(value: Any) -> Optional[float]:
    if value is None:
        return None
    diameter = float(str(value).strip()) if isinstance(value, str) else float(value)
    if math.isnan(diameter) or diameter < 0:
        raise MalformedEventError(f"invalid wheel diameter {value!r}", field="wheel_diameter")
    return diameter


def parse_report(record: Any) -> InspectionReport:
    """
    Validate a backend record and convert it into an InspectionReport.

    Args:
        record: Decoded JSON object from the bulk fetch or a live event

    Returns:
        InspectionReport

    Raises:
        MalformedEventError: If the record violates the report schema
    """
    if not isinstance(record, dict):
        raise MalformedEventError(f"report must be an object, got {type(record).__name__}")

    validate_against(REPORT_SCHEMA_PATH, record)

    report_id = record_id(record)
    if report_id is None:
        raise MalformedEventError("missing report id", field="_id")

    return InspectionReport(
        id=report_id,
        train_number=_positive_int(record, "trainNumber"),
        compartment_number=_positive_int(record, "compartmentNumber"),
        wheel_number=_positive_int(record, "wheelNumber"),
        timestamp=parse_timestamp(record["timestamp"]),
        surface_flawed=record.get("status") == FLAW_DETECTED,
        wheel_diameter_mm=_diameter(record.get("wheel_diameter")),
        image_path=record.get("image_path") or None,
        name=record.get("name"),
    )


def report_to_record(report: InspectionReport) -> Dict[str, Any]:
    """Serialize an InspectionReport back to backend field names."""
    return {
        "_id": report.id,
        "trainNumber": report.train_number,
        "compartmentNumber": report.compartment_number,
        "wheelNumber": report.wheel_number,
        "wheel_diameter": report.wheel_diameter_mm,
        "status": FLAW_DETECTED if report.surface_flawed else NO_FLAW,
        "image_path": report.image_path,
        "name": report.name,
        "timestamp": report.timestamp.isoformat(),
    }
