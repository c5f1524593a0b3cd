"""Conversion between local rows, client input and Google event bodies.

Local rows keep the wall-clock strings the client sent: a `date`
(`YYYY-MM-DD`) plus optional `start_time`/`end_time`. No timezone
conversion happens on write. Offsets are attached only when a body is sent
to Google, using the configured calendar time zone.
"""

from __future__ import annotations

import re
from datetime import date as date_type
from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from fitness_calendar.calendar.google_calendar import RemoteEvent

_DATETIME_RE = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})"
    r"(?:[T ](?P<time>\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?))?"
)

DEFAULT_DURATION = timedelta(hours=1)


def split_datetime(value: str) -> tuple[str, str | None]:
    """Split `2025-01-01T10:00:00Z` into ("2025-01-01", "10:00:00").

    The offset is dropped, the wall-clock part is kept verbatim. A bare date
    returns (date, None).

    Raises:
        ValueError: If `value` does not start with a date
    """
    match = _DATETIME_RE.match(value.strip())
    if not match:
        raise ValueError(f"Invalid date or date-time: {value!r}")
    return match.group("date"), match.group("time")


def _time_part(value: str | None) -> str | None:
    """Wall-clock time from either `HH:MM[:SS]` or a full date-time."""
    if not value:
        return None
    if _DATETIME_RE.match(value.strip()):
        return split_datetime(value)[1]
    return value.strip()


def _check_wall_clock(
    event_date: str,
    start_time: str | None,
    end_time: str | None,
) -> None:
    """Reject dates and times Google bodies cannot be built from."""
    try:
        date_type.fromisoformat(event_date)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid date: {event_date!r}") from None

    for value in (start_time, end_time):
        if value is None:
            continue
        try:
            datetime.fromisoformat(f"{event_date}T{value}")
        except ValueError:
            raise ValueError(f"Invalid time: {value!r}") from None


def normalize_times(
    date: str | None,
    start: str | None,
    end: str | None,
) -> tuple[str, str | None, str | None]:
    """Resolve client input to the stored (date, start_time, end_time) triple.

    Accepts a date with wall-clock times, full date-times in `start`/`end`,
    or a bare date in `start` for all-day events.

    Raises:
        ValueError: If no date can be determined, or a date or time is malformed
    """
    if not date:
        if not start:
            raise ValueError("An event needs a date or a start")
        date = split_datetime(start)[0]

    start_time, end_time = _time_part(start), _time_part(end)
    _check_wall_clock(date, start_time, end_time)
    return date, start_time, end_time


def apply_time_changes(
    current: tuple[str, str | None, str | None],
    fields: dict[str, Any],
) -> tuple[str, str | None, str | None]:
    """Apply the `date`/`start`/`end` keys present in `fields` to a stored triple.

    Keys that are absent keep their stored value; a key present with None
    clears the time. A full date-time in `start` also moves the date unless
    `date` is given explicitly.

    Raises:
        ValueError: If the resulting date or a time is malformed
    """
    event_date, start_time, end_time = current

    if "start" in fields:
        start = fields["start"]
        start_time = _time_part(start)
        if start and _DATETIME_RE.match(start.strip()):
            event_date = split_datetime(start)[0]
    if "end" in fields:
        end_time = _time_part(fields["end"])
    if fields.get("date"):
        event_date = fields["date"]

    _check_wall_clock(event_date, start_time, end_time)
    return event_date, start_time, end_time


def remote_to_local(event: RemoteEvent) -> dict[str, Any]:
    """Map a Google event to the column values of a local row."""
    if event.is_all_day:
        event_date, start_time, end_time = event.start_date, None, None
    else:
        event_date, start_time = split_datetime(event.start)
        end_time = split_datetime(event.end)[1] if event.end else None

    return {
        "remote_event_id": event.id,
        "title": event.title,
        "description": event.description,
        "date": event_date,
        "start_time": start_time,
        "end_time": end_time,
    }


def _time_fields(
    event_date: str,
    start_time: str | None,
    end_time: str | None,
    time_zone: str,
) -> dict[str, Any]:
    if not start_time:
        # Google treats the end date of all-day events as exclusive
        next_day = date_type.fromisoformat(event_date) + timedelta(days=1)
        return {
            "start": {"date": event_date},
            "end": {"date": next_day.isoformat()},
        }

    zone = ZoneInfo(time_zone)
    start = datetime.fromisoformat(f"{event_date}T{start_time}").replace(tzinfo=zone)
    if end_time:
        end = datetime.fromisoformat(f"{event_date}T{end_time}").replace(tzinfo=zone)
        if end <= start:
            end += timedelta(days=1)
    else:
        end = start + DEFAULT_DURATION

    return {
        "start": {"dateTime": start.isoformat(), "timeZone": time_zone},
        "end": {"dateTime": end.isoformat(), "timeZone": time_zone},
    }


def build_remote_body(
    title: str,
    description: str | None,
    event_date: str,
    start_time: str | None,
    end_time: str | None,
    time_zone: str,
) -> dict[str, Any]:
    """Google event body for a local event."""
    return {
        "summary": title,
        "description": description or "",
        **_time_fields(event_date, start_time, end_time, time_zone),
    }
