import json

import pytest
import requests

from fleettrips.routing.osrm import normalize_points, snap_route_to_roads
from fleettrips.utils.cache import TtlCache
from fleettrips.utils.geo import GeoPoint

BASE = "http://osrm.test"
P1 = GeoPoint(24.7136, 46.6753)
P2 = GeoPoint(24.7200, 46.6800)
P3 = GeoPoint(24.7300, 46.6900)


class FakeResponse:
    def __init__(self, status_code: int, body):
        self.status_code = status_code
        self.text = body if isinstance(body, str) else json.dumps(body)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """Answers per service with a callable (url) -> FakeResponse."""

    def __init__(self, match=None, route=None):
        self.match = match
        self.route = route
        self.calls: list[str] = []
        self.closed = False

    def get(self, url, params=None, timeout=None):
        self.calls.append(url)
        handler = self.match if "/match/" in url else self.route
        if handler is None:
            raise requests.ConnectionError("unreachable")
        return handler(url)

    def close(self):
        self.closed = True


def _coords(url: str) -> list[list[float]]:
    pair = url.rsplit("/", 1)[1]
    return [[float(x) for x in c.split(",")] for c in pair.split(";")]


def ok_matching(url):
    a, b = _coords(url)
    mid = [(a[0] + b[0]) / 2, (a[1] + b[1]) / 2]
    return FakeResponse(200, {"code": "Ok", "matchings": [{"geometry": {"coordinates": [a, mid, b]}}]})


def ok_route(url):
    a, b = _coords(url)
    return FakeResponse(200, {"code": "Ok", "routes": [{"geometry": {"coordinates": [a, b]}}]})


def no_match(url):
    return FakeResponse(400, {"code": "NoMatch", "message": "Could not match the trace."})


@pytest.fixture
def cache():
    return TtlCache(60)


def test_fewer_than_two_points_does_not_call_osrm(cache) -> None:
    session = FakeSession(match=ok_matching)
    assert snap_route_to_roads([P1, P1, GeoPoint(95.0, 10.0)], BASE, session=session, cache=cache) is None
    assert session.calls == []


def test_normalize_points_rounds_and_dedupes() -> None:
    points = [P1, GeoPoint(24.71360001, 46.67530001), GeoPoint(float("nan"), 1.0), P2, P1]
    assert normalize_points(points) == [P1, P2, P1]


def test_match_success_stitches_without_duplicate_joints(cache) -> None:
    session = FakeSession(match=ok_matching)
    feature = snap_route_to_roads([P1, P2, P3], BASE, session=session, cache=cache)

    assert feature["type"] == "Feature"
    assert feature["properties"] == {"snapMethod": "osrm-pairwise-match", "hadFailures": False}
    coords = feature["geometry"]["coordinates"]
    assert len(coords) == 5
    assert coords[0] == [P1.lon, P1.lat]
    assert coords[2] == [P2.lon, P2.lat]
    assert coords[-1] == [P3.lon, P3.lat]
    assert all("/match/v1/driving/" in url for url in session.calls)
    assert session.closed is False


def test_route_is_used_when_match_fails(cache) -> None:
    session = FakeSession(match=no_match, route=ok_route)
    feature = snap_route_to_roads([P1, P2], BASE, session=session, cache=cache)

    assert feature["properties"]["hadFailures"] is False
    assert feature["geometry"]["coordinates"] == [[P1.lon, P1.lat], [P2.lon, P2.lat]]
    assert [("/match/" in u, "/route/" in u) for u in session.calls] == [(True, False), (False, True)]


def test_raw_segment_when_both_services_fail(cache) -> None:
    session = FakeSession(match=no_match, route=lambda url: FakeResponse(502, "Bad Gateway"))
    feature = snap_route_to_roads([P1, P2, P3], BASE, session=session, cache=cache)

    assert feature["properties"]["hadFailures"] is True
    assert feature["geometry"]["coordinates"] == [
        [P1.lon, P1.lat],
        [P2.lon, P2.lat],
        [P3.lon, P3.lat],
    ]


def test_one_bad_pair_does_not_abort_route(cache) -> None:
    def flaky_match(url):
        if url.endswith(f"{P2.lon:.6f},{P2.lat:.6f};{P3.lon:.6f},{P3.lat:.6f}"):
            return FakeResponse(200, {"code": "Ok", "matchings": []})
        return ok_matching(url)

    session = FakeSession(match=flaky_match)
    feature = snap_route_to_roads([P1, P2, P3], BASE, session=session, cache=cache)

    assert feature["properties"]["hadFailures"] is True
    assert len(feature["geometry"]["coordinates"]) == 4


def test_results_are_cached(cache) -> None:
    session = FakeSession(match=ok_matching)
    first = snap_route_to_roads([P1, P2], BASE, session=session, cache=cache)
    calls = len(session.calls)
    second = snap_route_to_roads([P1, P2], BASE, session=session, cache=cache)

    assert second == first
    assert len(session.calls) == calls
