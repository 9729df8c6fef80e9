"""Strict timestamp and calendar-day codec for remote rows.

The only accepted wire format for instants is ISO-8601 with an explicit
offset (``2024-05-01T09:30:00+00:00`` or ``...Z``). Anything else is a
``DataAnomaly``; no multi-format guessing.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo

from campos.domain.errors import DataAnomaly
from campos.settings import settings

_TIMESTAMP_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}:\d{2}(?:\.\d{1,6})?(?:Z|[+-]\d{2}:\d{2})$"
)
_DAY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def reference_zone() -> tzinfo:
    name = settings.day_timezone
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def parse_timestamp(value: object) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            raise DataAnomaly("naive datetime", kind="timestamp")
        return value
    if not isinstance(value, str) or not _TIMESTAMP_RE.match(value):
        raise DataAnomaly(f"unsupported timestamp {value!r}", kind="timestamp")
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise DataAnomaly(f"invalid timestamp {value!r}", kind="timestamp") from exc


def format_timestamp(moment: datetime) -> str:
    if moment.tzinfo is None:
        raise ValueError("timestamps must be timezone-aware")
    return moment.astimezone(timezone.utc).isoformat()


def parse_day(value: object) -> date:
    if isinstance(value, datetime):
        raise DataAnomaly("expected a calendar day", kind="day")
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DAY_RE.match(value):
        raise DataAnomaly(f"unsupported day {value!r}", kind="day")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise DataAnomaly(f"invalid day {value!r}", kind="day") from exc


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def day_of(moment: datetime) -> date:
    """Calendar day of ``moment`` in the reference timezone."""
    return moment.astimezone(reference_zone()).date()


def start_of_day(moment: datetime) -> datetime:
    """Start of ``moment``'s reference-timezone day, as an aware instant."""
    zone = reference_zone()
    local_day = moment.astimezone(zone).date()
    return datetime.combine(local_day, time.min, tzinfo=zone)
