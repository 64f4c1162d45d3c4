"""
CSV export of inferred trips.
"""

import re
from typing import Any, Sequence

from fleettrips.analysis.types import TripRecord
from fleettrips.utils.timeutils import iso_z

TRIP_CSV_COLUMNS = [
    "plate_number",
    "display_name",
    "start_time",
    "end_time",
    "duration_sec",
    "idle_sec",
    "moving_sec",
    "distance_km",
    "avg_speed_kmh",
    "max_speed_kmh",
    "start_lat",
    "start_lon",
    "end_lat",
    "end_lon",
    "has_time_anomaly",
]

NEEDS_QUOTES_REGEX = re.compile(r'[",\n]')


def _cell(value: Any) -> str:
    """
    Render one value: None is blank, booleans are lowercase and whole floats
    drop their fractional part (22.0 -> "22").
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _escape(text: str) -> str:
    if NEEDS_QUOTES_REGEX.search(text):
        return '"' + text.replace('"', '""') + '"'
    return text


def trips_to_csv(trips: Sequence[TripRecord]) -> str:
    """
    Render trips as CSV text.

    Times are ISO-8601 UTC. A field is quoted only when it contains a comma,
    a double quote or a newline; embedded quotes are doubled. Lines are
    joined with "\\n" and there is no trailing newline.
    """
    lines = [",".join(TRIP_CSV_COLUMNS)]
    for t in trips:
        values = (
            t.plate_number,
            t.display_name,
            iso_z(t.start_time),
            iso_z(t.end_time),
            t.duration_sec,
            t.idle_sec,
            t.moving_sec,
            t.distance_km,
            t.avg_speed_kmh,
            t.max_speed_kmh,
            t.start_lat,
            t.start_lon,
            t.end_lat,
            t.end_lon,
            t.has_time_anomaly,
        )
        lines.append(",".join(_escape(_cell(v)) for v in values))
    return "\n".join(lines)
