"""
Road snapping through an OSRM service.

Points are snapped pairwise: for each consecutive pair we ask OSRM's match
service, fall back to its route service, and finally to the raw straight
segment. Individual pair failures only set a `hadFailures` flag on the
result; they never abort the whole route.
"""

from typing import Any, Optional, Sequence

import requests

from fleettrips.utils.cache import TtlCache
from fleettrips.utils.geo import GeoPoint, is_valid_lat_lon
from fleettrips.utils.log import get_logger

logger = get_logger(__name__)

COORD_PRECISION = 6
REQUEST_TIMEOUT_S = 5.0
SNAP_METHOD = "osrm-pairwise-match"

Coordinates = list[list[float]]

_CACHE: TtlCache[dict[str, Any]] = TtlCache(60 * 60)


class RoutingError(RuntimeError):
    """
    OSRM returned an error, an invalid payload, or could not be reached.
    """


def normalize_points(points: Sequence[GeoPoint]) -> list[GeoPoint]:
    """
    Drop invalid points, round to 6 decimals and drop consecutive duplicates.
    """
    normalized: list[GeoPoint] = []
    last_key = None
    for p in points:
        if not is_valid_lat_lon(p.lat, p.lon):
            continue
        point = GeoPoint(round(p.lat, COORD_PRECISION), round(p.lon, COORD_PRECISION))
        key = (point.lat, point.lon)
        if key == last_key:
            continue
        normalized.append(point)
        last_key = key
    return normalized


def _pair_coords(a: GeoPoint, b: GeoPoint) -> str:
    return f"{a.lon:.6f},{a.lat:.6f};{b.lon:.6f},{b.lat:.6f}"


def _error_detail(response: requests.Response) -> tuple[str, Any]:
    """
    Pull (detail, parsed body) out of an OSRM response, tolerating non-JSON.
    """
    raw = response.text
    try:
        data = response.json()
    except ValueError:
        return raw[:200], None
    if isinstance(data, dict):
        return data.get("message") or data.get("code") or raw[:200], data
    return raw[:200], data


def _fetch_pair(
    session: requests.Session,
    base_url: str,
    service: str,
    a: GeoPoint,
    b: GeoPoint,
) -> Coordinates:
    """
    Query one OSRM service ("match" or "route") for a single pair.

    Raises
    ------
    RoutingError
        On transport errors, non-2xx statuses, a non-"Ok" code or a
        geometry with fewer than two coordinates.
    """
    if service == "match":
        url = f"{base_url}/match/v1/driving/{_pair_coords(a, b)}"
        params = {"geometries": "geojson", "overview": "full", "tidy": "true", "gaps": "split"}
        result_key = "matchings"
    else:
        url = f"{base_url}/route/v1/driving/{_pair_coords(a, b)}"
        params = {"geometries": "geojson", "overview": "full", "steps": "false"}
        result_key = "routes"

    try:
        response = session.get(url, params=params, timeout=REQUEST_TIMEOUT_S)
    except requests.RequestException as exc:
        raise RoutingError(f"OSRM {service} error: {exc}") from exc

    detail, data = _error_detail(response)
    if not response.ok:
        raise RoutingError(f"OSRM {service} error: {response.status_code} - {detail}")
    if not isinstance(data, dict) or (data.get("code") and data.get("code") != "Ok"):
        code = data.get("code") if isinstance(data, dict) else "InvalidResponse"
        message = data.get("message") if isinstance(data, dict) else None
        raise RoutingError(f"OSRM {service} error: {code}" + (f" - {message}" if message else ""))

    try:
        geometry = data[result_key][0]["geometry"]["coordinates"]
    except (KeyError, IndexError, TypeError):
        geometry = None
    if not geometry or len(geometry) < 2:
        raise RoutingError(f"OSRM {service} returned empty geometry")
    return geometry


def _append_coordinates(target: Coordinates, coordinates: Coordinates) -> None:
    """
    Append a pair geometry, skipping its first coordinate when it repeats
    the current tail.
    """
    if not coordinates:
        return
    if target and list(target[-1]) == list(coordinates[0]):
        coordinates = coordinates[1:]
    target.extend(coordinates)


def snap_route_to_roads(
    points: Sequence[GeoPoint],
    base_url: str,
    session: Optional[requests.Session] = None,
    cache: Optional[TtlCache] = None,
) -> Optional[dict[str, Any]]:
    """
    Snap an ordered point trail to the road network.

    Parameters
    ----------
    points
        Raw trail, in travel order.
    base_url
        OSRM base URL, e.g. "http://osrm:5000".
    session
        Optional requests session (a fresh one is used otherwise).
    cache
        Result cache; defaults to a module-wide one-hour cache.

    Returns
    -------
    dict or None
        GeoJSON LineString Feature with `snapMethod` and `hadFailures`
        properties, or None when fewer than two distinct valid points remain.
    """
    valid = normalize_points(points)
    if len(valid) < 2:
        return None

    cache = _CACHE if cache is None else cache
    key = (base_url, tuple(valid))
    cached = cache.get(key)
    if cached is not None:
        return cached

    own_session = session is None
    session = session or requests.Session()
    stitched: Coordinates = []
    had_failures = False
    try:
        for index, (start, end) in enumerate(zip(valid, valid[1:])):
            segment: Coordinates = [[start.lon, start.lat], [end.lon, end.lat]]
            try:
                segment = _fetch_pair(session, base_url, "match", start, end)
            except RoutingError as match_error:
                try:
                    segment = _fetch_pair(session, base_url, "route", start, end)
                except RoutingError as route_error:
                    had_failures = True
                    logger.warning(
                        "OSRM pair %d fallback to raw segment. match=%s; route=%s",
                        index + 1, match_error, route_error,
                    )
            _append_coordinates(stitched, segment)
    finally:
        if own_session:
            session.close()

    if len(stitched) < 2:
        return None

    feature = {
        "type": "Feature",
        "properties": {"snapMethod": SNAP_METHOD, "hadFailures": had_failures},
        "geometry": {"type": "LineString", "coordinates": stitched},
    }
    cache.set(key, feature)
    return feature
