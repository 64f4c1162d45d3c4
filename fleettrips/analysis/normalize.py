"""
Normalize raw tracking rows into time-consistent segments.

Rows arrive approximately ordered by (start, end, id). Each row gets an
effective start/end (GPS time preferred, server time as fallback), a parsed
point and a duration. Rows without a usable start or end are dropped
silently.
The anomaly flag is computed in read order, before the final sort.
"""

from __future__ import annotations

from typing import Iterable, Union

from fleettrips.analysis.types import NormalizedSegment
from fleettrips.parsers.location import parse_location_text
from fleettrips.utils.log import get_logger
from fleettrips.utils.timeutils import seconds_between, to_utc
from fleettrips.utils.validate import TrackingRow

logger = get_logger(__name__)


def _sort_key(seg: NormalizedSegment):
    return (seg.effective_start, seg.effective_end, seg.id)


def normalize_segments(
    rows: Iterable[Union[TrackingRow, NormalizedSegment]],
) -> list[NormalizedSegment]:
    """
    Resolve timestamps, parse locations and flag time anomalies.

    Parameters
    ----------
    rows
        Tracking rows in the order they were read. Already normalized
        segments are accepted and re-derived from their source row.

    Returns
    -------
    list[NormalizedSegment]
        Retained segments sorted by (effective_start, effective_end, id).
    """
    normalized: list[NormalizedSegment] = []
    previous_start = None
    dropped = 0

    for item in rows:
        row = item.row if isinstance(item, NormalizedSegment) else item

        start = to_utc(row.first_gps_timestamp) or to_utc(row.first_server_timestamp)
        end = to_utc(row.last_gps_timestamp) or to_utc(row.last_server_timestamp)
        if start is None or end is None:
            dropped += 1
            continue

        has_time_anomaly = (previous_start is not None and start < previous_start) or end < start

        normalized.append(
            NormalizedSegment(
                row=row,
                effective_start=start,
                effective_end=end,
                point=parse_location_text(row.location_text).point,
                duration_sec=seconds_between(start, end),
                has_time_anomaly=has_time_anomaly,
            )
        )
        previous_start = start

    if dropped:
        logger.debug("Dropped %d rows without resolvable timestamps", dropped)

    normalized.sort(key=_sort_key)
    return normalized
