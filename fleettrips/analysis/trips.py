"""
Infer trips from one vehicle's normalized segments.

A trip opens on the first movement segment and stays open through short
pauses. Once the stationary time accumulated since the last movement
reaches the stop threshold, the trip is closed at its last movement and the
trailing stop is left out of its idle time and geometry.

The scan is written as an explicit state machine: `step` takes the current
state and one segment and returns the next state plus the trip it closed,
if any. States are immutable, so each transition can be tested on its own.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Iterable, Optional, Sequence, Tuple, Union

from fleettrips.analysis.config import TripThresholds
from fleettrips.analysis.types import NormalizedSegment, OpenTrip, TripRecord
from fleettrips.utils.geo import GeoPoint, haversine
from fleettrips.utils.log import get_logger
from fleettrips.utils.timeutils import seconds_between

logger = get_logger(__name__)


@dataclass(frozen=True)
class NoTripOpen:
    """Between trips; only the last seen point is tracked."""
    last_point: Optional[GeoPoint] = None


@dataclass(frozen=True)
class TripOpen:
    """A trip is accumulating."""
    trip: OpenTrip
    last_point: Optional[GeoPoint] = None


State = Union[NoTripOpen, TripOpen]


def is_movement(
    segment: NormalizedSegment,
    last_point: Optional[GeoPoint],
    thresholds: TripThresholds,
) -> bool:
    """
    Movement means enough displacement from the previous point or enough
    reported speed. A missing speed counts as 0.
    """
    delta_m = 0.0
    if last_point is not None and segment.point is not None:
        delta_m = haversine(last_point, segment.point)
    speed = segment.speed_kmh or 0.0
    return delta_m >= thresholds.move_distance_m or speed >= thresholds.move_speed_kmh


def start_trip(segment: NormalizedSegment) -> OpenTrip:
    """
    Seed a trip from its first movement segment.
    """
    points = (segment.point,) if segment.point is not None else ()
    speed = segment.speed_kmh or 0.0
    duration = segment.duration_sec
    return OpenTrip(
        plate_number=segment.plate_number,
        display_name=segment.display_name,
        start_time=segment.effective_start,
        end_time=segment.effective_end,
        points=points,
        moving_sec=duration,
        speed_weighted_sum=speed * duration,
        speed_weight_sec=duration,
        max_speed_kmh=speed,
        last_movement_end=segment.effective_end,
        last_movement_point_index=len(points) - 1,
        has_time_anomaly=segment.has_time_anomaly,
    )


def extend_trip(trip: OpenTrip, segment: NormalizedSegment, moving: bool) -> OpenTrip:
    """
    Fold one more segment into an open trip.
    """
    points = trip.points
    distance_m = trip.distance_m
    if segment.point is not None:
        if points:
            distance_m += haversine(points[-1], segment.point)
        points = points + (segment.point,)

    trip = replace(
        trip,
        end_time=segment.effective_end,
        has_time_anomaly=trip.has_time_anomaly or segment.has_time_anomaly,
        points=points,
        distance_m=distance_m,
    )

    duration = segment.duration_sec
    if moving:
        speed = segment.speed_kmh or 0.0
        return replace(
            trip,
            moving_sec=trip.moving_sec + duration,
            trailing_stationary_sec=0,
            last_movement_end=segment.effective_end,
            last_movement_point_index=(
                len(points) - 1 if segment.point is not None else trip.last_movement_point_index
            ),
            speed_weighted_sum=trip.speed_weighted_sum + speed * duration,
            speed_weight_sec=trip.speed_weight_sec + duration,
            max_speed_kmh=max(trip.max_speed_kmh, speed),
        )

    return replace(
        trip,
        idle_sec=trip.idle_sec + duration,
        trailing_stationary_sec=trip.trailing_stationary_sec + duration,
    )


def finalize_trip(trip: OpenTrip, terminal_stop_exceeded: bool) -> Optional[TripRecord]:
    """
    Turn an accumulator into a TripRecord.

    The trip ends at its last movement. When it was closed by a qualifying
    stop, the trailing stationary time is removed from idle time and the
    trailing stationary points are cut from the geometry.

    Returns
    -------
    TripRecord or None
        None when the resulting duration is not positive.
    """
    end_time = trip.last_movement_end or trip.end_time
    duration_sec = seconds_between(trip.start_time, end_time)
    if duration_sec <= 0:
        return None

    idle_sec = trip.idle_sec
    points = trip.points
    if terminal_stop_exceeded:
        idle_sec = max(0, idle_sec - trip.trailing_stationary_sec)
        if trip.last_movement_point_index >= 0:
            points = points[: trip.last_movement_point_index + 1]

    start_point = points[0] if points else None
    end_point = points[-1] if points else None

    avg_speed_kmh = (
        round(trip.speed_weighted_sum / trip.speed_weight_sec, 2) if trip.speed_weight_sec > 0 else 0.0
    )

    return TripRecord(
        plate_number=trip.plate_number,
        display_name=trip.display_name,
        start_time=trip.start_time,
        end_time=end_time,
        duration_sec=duration_sec,
        idle_sec=idle_sec,
        moving_sec=max(0, duration_sec - idle_sec),
        distance_km=round(trip.distance_m / 1000, 3),
        avg_speed_kmh=avg_speed_kmh,
        max_speed_kmh=round(trip.max_speed_kmh, 2),
        start_lat=start_point.lat if start_point else None,
        start_lon=start_point.lon if start_point else None,
        end_lat=end_point.lat if end_point else None,
        end_lon=end_point.lon if end_point else None,
        points=points,
        has_time_anomaly=trip.has_time_anomaly,
    )


def step(
    state: State,
    segment: NormalizedSegment,
    thresholds: TripThresholds,
) -> Tuple[State, Optional[TripRecord]]:
    """
    Advance the trip state machine by one segment.

    Returns
    -------
    (State, TripRecord or None)
        The next state, and the trip closed by this segment if any.
    """
    moving = is_movement(segment, state.last_point, thresholds)
    last_point = segment.point if segment.point is not None else state.last_point

    if isinstance(state, NoTripOpen):
        if moving:
            return TripOpen(start_trip(segment), last_point), None
        return NoTripOpen(last_point), None

    trip = extend_trip(state.trip, segment, moving)
    if not moving and trip.trailing_stationary_sec >= thresholds.stop_seconds:
        return NoTripOpen(last_point), finalize_trip(trip, terminal_stop_exceeded=True)
    return TripOpen(trip, last_point), None


def infer_trips_for_plate(
    segments: Sequence[NormalizedSegment],
    thresholds: TripThresholds,
) -> list[TripRecord]:
    """
    Infer trips for a single vehicle.

    Parameters
    ----------
    segments
        One vehicle's segments, already ordered by effective start.
        The order is trusted, not checked.
    thresholds
        Movement and stop thresholds.

    Returns
    -------
    list[TripRecord]
        Trips in the order they were closed.
    """
    trips: list[TripRecord] = []
    state: State = NoTripOpen()

    for segment in segments:
        state, closed = step(state, segment, thresholds)
        if closed is not None:
            trips.append(closed)

    if isinstance(state, TripOpen):
        closed = finalize_trip(state.trip, terminal_stop_exceeded=False)
        if closed is not None:
            trips.append(closed)

    return trips


def infer_trips(
    segments: Iterable[NormalizedSegment],
    thresholds: TripThresholds,
) -> list[TripRecord]:
    """
    Infer trips across a fleet.

    Segments are grouped by plate, each group is stable-sorted by effective
    start and run through `infer_trips_for_plate`; the combined result is
    stable-sorted by trip start time.
    """
    by_plate: dict[str, list[NormalizedSegment]] = {}
    for seg in segments:
        by_plate.setdefault(seg.plate_number, []).append(seg)

    trips: list[TripRecord] = []
    for plate, group in by_plate.items():
        group.sort(key=lambda s: s.effective_start)
        plate_trips = infer_trips_for_plate(group, thresholds)
        logger.debug("Plate %s: %d segments -> %d trips", plate, len(group), len(plate_trips))
        trips.extend(plate_trips)

    trips.sort(key=lambda t: t.start_time)
    return trips
