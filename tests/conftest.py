from datetime import datetime, timezone

import pytest

from fleettrips.analysis.config import TripThresholds
from fleettrips.analysis.types import NormalizedSegment
from fleettrips.utils.geo import GeoPoint
from fleettrips.utils.timeutils import seconds_between
from fleettrips.utils.validate import TrackingRow


def at(hhmm: str, day: int = 1) -> datetime:
    """2026-01-<day> HH:MM[:SS] in UTC."""
    parts = [int(p) for p in hhmm.split(":")]
    while len(parts) < 3:
        parts.append(0)
    return datetime(2026, 1, day, parts[0], parts[1], parts[2], tzinfo=timezone.utc)


def _make_segment(
    id: int,
    start: str,
    end: str,
    speed: float | None = 0.0,
    point: tuple[float, float] | None = None,
    plate: str = "ABC123",
    anomaly: bool = False,
) -> NormalizedSegment:
    start_dt, end_dt = at(start), at(end)
    return NormalizedSegment(
        row=TrackingRow(
            id=id,
            plate_number=plate,
            speed_kmh=speed,
            first_gps_timestamp=start_dt,
            last_gps_timestamp=end_dt,
            display_name="Unit 1",
        ),
        effective_start=start_dt,
        effective_end=end_dt,
        point=GeoPoint(*point) if point else None,
        duration_sec=seconds_between(start_dt, end_dt),
        has_time_anomaly=anomaly,
    )


@pytest.fixture
def make_segment():
    return _make_segment


@pytest.fixture
def thresholds() -> TripThresholds:
    return TripThresholds(move_distance_m=50, move_speed_kmh=5, stop_minutes=5)


@pytest.fixture
def utc_at():
    return at
