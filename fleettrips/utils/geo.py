# fleettrips/utils/geo.py

"""
Geospatial utility functions.
"""

import math
from typing import Any, NamedTuple, Optional, Sequence, Tuple


class GeoPoint(NamedTuple):
    """
    Canonical geographic point, in decimal degrees.

    Being a tuple of (lat, lon), it can be passed anywhere a
    (latitude, longitude) pair is expected, e.g. `haversine`.
    """
    lat: float
    lon: float


def is_valid_lat_lon(lat: float, lon: float) -> bool:
    """
    True when both values are finite and within the WGS84 ranges
    lat ∈ [-90, 90], lon ∈ [-180, 180].
    """
    return (
        math.isfinite(lat)
        and math.isfinite(lon)
        and -90.0 <= lat <= 90.0
        and -180.0 <= lon <= 180.0
    )


def haversine(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    """
    Compute the great-circle distance between two points on the Earth.

    Parameters
    ----------
    a
        (latitude, longitude) of point A, in decimal degrees.
    b
        (latitude, longitude) of point B, in decimal degrees.

    Returns
    -------
    float
        Distance between A and B in metres.
    """
    lat1, lon1 = a
    lat2, lon2 = b
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = phi2 - phi1
    d_lam = math.radians(lon2 - lon1)
    r = 6371000.0  # Earth radius in metres
    h = math.sin(d_phi/2)**2 + math.cos(phi1)*math.cos(phi2)*math.sin(d_lam/2)**2
    return 2 * r * math.asin(math.sqrt(h))


def to_lat_lon_array(points: Sequence[GeoPoint]) -> list[list[float]]:
    """
    Flatten points into [[lat, lon], ...] as map widgets expect.
    """
    return [[p.lat, p.lon] for p in points]


def to_geojson_line(points: Sequence[GeoPoint]) -> Optional[dict[str, Any]]:
    """
    Build a GeoJSON LineString Feature from an ordered point list.

    Coordinates are emitted in GeoJSON order, [lon, lat]. Fewer than two
    points cannot form a line, so None is returned.
    """
    if len(points) < 2:
        return None
    return {
        "type": "Feature",
        "properties": {},
        "geometry": {
            "type": "LineString",
            "coordinates": [[p.lon, p.lat] for p in points],
        },
    }
