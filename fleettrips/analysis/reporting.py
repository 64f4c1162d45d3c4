"""
Report builders: fetch segments from the store and run trip inference.
"""
from dataclasses import dataclass, field
from typing import Any, Optional

from fleettrips.analysis.config import TripThresholds
from fleettrips.analysis.trips import infer_trips, infer_trips_for_plate
from fleettrips.analysis.types import TripRecord
from fleettrips.storage.dao import DAO
from fleettrips.utils.geo import GeoPoint, to_geojson_line
from fleettrips.utils.validate import ReportFilter


@dataclass(frozen=True)
class RouteData:
    """
    Everything needed to draw one vehicle's route over a window.
    """
    points: list[GeoPoint]
    line: Optional[dict[str, Any]]
    trips: list[TripRecord] = field(default_factory=list)


def build_trips_report(
    dao: DAO,
    filter: ReportFilter,
    thresholds: TripThresholds,
) -> list[TripRecord]:
    """
    Infer trips for every vehicle (or the filtered plates) in the window.
    """
    segments = dao.get_fleet_segments_by_range(filter.from_ts, filter.to_ts, filter.plates or None)
    return infer_trips(segments, thresholds)


def build_vehicle_trips(
    dao: DAO,
    plate: str,
    filter: ReportFilter,
    thresholds: TripThresholds,
) -> list[TripRecord]:
    """
    Infer trips for a single vehicle in the window.
    """
    segments = dao.get_vehicle_history_segments(plate, filter.from_ts, filter.to_ts)
    return infer_trips_for_plate(segments, thresholds)


def build_route_for_range(
    dao: DAO,
    plate: str,
    filter: ReportFilter,
    thresholds: TripThresholds,
) -> RouteData:
    """
    Collect the raw point trail, its LineString and the inferred trips
    for one vehicle.
    """
    segments = dao.get_vehicle_history_segments(plate, filter.from_ts, filter.to_ts)
    points = [seg.point for seg in segments if seg.point is not None]
    return RouteData(
        points=points,
        line=to_geojson_line(points),
        trips=infer_trips_for_plate(segments, thresholds),
    )
