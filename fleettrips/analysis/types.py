# fleettrips/analysis/types.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from fleettrips.utils.geo import GeoPoint
from fleettrips.utils.validate import TrackingRow, TripSummary


@dataclass(frozen=True)
class NormalizedSegment:
    """
    A tracking row with resolved times and a parsed location.

    Parameters
    ----------
    row : TrackingRow
        The source row, kept for pass-through fields.
    effective_start : datetime
        First GPS timestamp, or first server timestamp as fallback (UTC).
    effective_end : datetime
        Last GPS timestamp, or last server timestamp as fallback (UTC).
    point : GeoPoint or None
        Parsed location; None when missing or unparseable.
    duration_sec : int
        Whole seconds from start to end, never negative.
    has_time_anomaly : bool
        Start went backwards relative to the previous row in read order,
        or the row ends before it starts.
    """
    row: TrackingRow
    effective_start: datetime
    effective_end: datetime
    point: Optional[GeoPoint]
    duration_sec: int
    has_time_anomaly: bool

    @property
    def id(self) -> int:
        return self.row.id

    @property
    def plate_number(self) -> str:
        return self.row.plate_number

    @property
    def display_name(self) -> Optional[str]:
        return self.row.display_name

    @property
    def speed_kmh(self) -> Optional[float]:
        return self.row.speed_kmh


@dataclass(frozen=True)
class OpenTrip:
    """
    Running accumulator for the trip currently being built.

    `last_movement_point_index` is -1 while no movement segment has
    contributed a point.
    """
    plate_number: str
    display_name: Optional[str]
    start_time: datetime
    end_time: datetime
    points: Tuple[GeoPoint, ...] = ()
    distance_m: float = 0.0
    idle_sec: int = 0
    moving_sec: int = 0
    speed_weighted_sum: float = 0.0
    speed_weight_sec: int = 0
    max_speed_kmh: float = 0.0
    trailing_stationary_sec: int = 0
    last_movement_end: Optional[datetime] = None
    last_movement_point_index: int = -1
    has_time_anomaly: bool = False


@dataclass(frozen=True)
class TripRecord:
    """
    One inferred trip for one vehicle.
    """
    plate_number: str
    display_name: Optional[str]
    start_time: datetime
    end_time: datetime
    duration_sec: int
    idle_sec: int
    moving_sec: int
    distance_km: float
    avg_speed_kmh: float
    max_speed_kmh: float
    start_lat: Optional[float]
    start_lon: Optional[float]
    end_lat: Optional[float]
    end_lon: Optional[float]
    points: Tuple[GeoPoint, ...] = field(default_factory=tuple)
    has_time_anomaly: bool = False

    def summary(self) -> TripSummary:
        """Project to the API schema, dropping the point list."""
        return TripSummary(
            plate_number=self.plate_number,
            display_name=self.display_name,
            start_time=self.start_time,
            end_time=self.end_time,
            duration_sec=self.duration_sec,
            idle_sec=self.idle_sec,
            moving_sec=self.moving_sec,
            distance_km=self.distance_km,
            avg_speed_kmh=self.avg_speed_kmh,
            max_speed_kmh=self.max_speed_kmh,
            start_lat=self.start_lat,
            start_lon=self.start_lon,
            end_lat=self.end_lat,
            end_lon=self.end_lon,
            has_time_anomaly=self.has_time_anomaly,
        )
