"""
Time parsing, range validation and formatting helpers.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, NamedTuple, Optional

MAX_RANGE = timedelta(days=7)
DEFAULT_RANGE = timedelta(hours=24)


class InvalidDateRange(ValueError):
    """
    Raised when a requested query window is malformed, inverted or too wide.
    """


class DateRange(NamedTuple):
    start: datetime
    end: datetime


def to_utc(value: Any) -> Optional[datetime]:
    """
    Coerce a timestamp-ish value to an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), ISO-8601 strings
    (a trailing "Z" is allowed) and epoch seconds. Anything else,
    including empty values, yields None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def seconds_between(start: datetime, end: datetime) -> int:
    """
    Whole seconds from start to end, halves rounded up, clamped to zero.
    """
    sec = math.floor((end - start).total_seconds() + 0.5)
    return sec if sec > 0 else 0


def iso_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Render an aware datetime as ISO-8601 UTC with millisecond precision and "Z".
    """
    if dt is None:
        return None
    utc = dt.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def parse_date_range(
    from_raw: Optional[str],
    to_raw: Optional[str],
    now: Optional[datetime] = None,
) -> DateRange:
    """
    Validate a user supplied query window.

    Missing `to` defaults to now, missing `from` to 24 hours before `to`.

    Raises
    ------
    InvalidDateRange
        If either bound is unparseable, `to` is not after `from`, or the
        window exceeds 7 days.
    """
    if to_raw:
        end = _parse_bound(to_raw)
    else:
        end = now.astimezone(timezone.utc) if now else datetime.now(timezone.utc)
    start = _parse_bound(from_raw) if from_raw else end - DEFAULT_RANGE

    if end <= start:
        raise InvalidDateRange("Invalid date range: to must be greater than from")
    if end - start > MAX_RANGE:
        raise InvalidDateRange("Date range too large. Maximum allowed is 7 days.")
    return DateRange(start, end)


def _parse_bound(raw: str) -> datetime:
    dt = to_utc(raw) if isinstance(raw, str) else None
    if dt is None:
        raise InvalidDateRange(f"Invalid date range: cannot parse {raw!r} as ISO-8601")
    return dt


def format_duration(seconds: float) -> str:
    """
    Format seconds as HH:MM:SS.
    """
    s = max(0, math.floor(seconds + 0.5))
    h = s // 3600
    m = (s % 3600) // 60
    sec = s % 60
    return f"{h:02d}:{m:02d}:{sec:02d}"
