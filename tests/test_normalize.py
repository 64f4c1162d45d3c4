from datetime import datetime, timezone

from fleettrips.analysis.normalize import normalize_segments
from fleettrips.utils.geo import GeoPoint
from fleettrips.utils.validate import TrackingRow


def row(id: int, first_gps=None, last_gps=None, first_server=None, last_server=None, **extra) -> TrackingRow:
    return TrackingRow(
        id=id,
        plate_number=extra.pop("plate_number", "ABC123"),
        first_gps_timestamp=first_gps,
        last_gps_timestamp=last_gps,
        first_server_timestamp=first_server,
        last_server_timestamp=last_server,
        **extra,
    )


def utc(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, 1, hour, minute, tzinfo=timezone.utc)


def test_gps_timestamps_preferred_over_server() -> None:
    segments = normalize_segments(
        [
            row(
                1,
                first_gps="2026-01-01T08:00:00Z",
                last_gps="2026-01-01T08:02:00Z",
                first_server="2026-01-01T08:00:30Z",
                last_server="2026-01-01T08:02:30Z",
            )
        ]
    )
    assert len(segments) == 1
    seg = segments[0]
    assert seg.effective_start == utc(8, 0)
    assert seg.effective_end == utc(8, 2)
    assert seg.duration_sec == 120
    assert seg.has_time_anomaly is False


def test_server_timestamps_fill_in_missing_or_malformed_gps() -> None:
    segments = normalize_segments(
        [
            row(
                1,
                first_gps="not-a-time",
                last_gps=None,
                first_server="2026-01-01T08:00:00Z",
                last_server="2026-01-01T08:01:00Z",
            )
        ]
    )
    assert [s.effective_start for s in segments] == [utc(8, 0)]
    assert segments[0].effective_end == utc(8, 1)


def test_rows_without_resolvable_times_are_dropped() -> None:
    segments = normalize_segments(
        [
            row(1, first_gps="2026-01-01T08:00:00Z"),
            row(2, last_server="2026-01-01T08:00:00Z"),
            row(3, first_gps="garbage", last_gps="garbage"),
            row(4, first_gps=utc(8, 0), last_gps=utc(8, 1)),
        ]
    )
    assert [s.id for s in segments] == [4]


def test_anomaly_is_computed_in_read_order_before_sorting() -> None:
    segments = normalize_segments(
        [
            row(1, first_gps=utc(10, 0), last_gps=utc(10, 5)),
            row(2, first_gps=utc(9, 0), last_gps=utc(9, 5)),
            row(3, first_gps=utc(9, 30), last_gps=utc(9, 35)),
        ]
    )
    assert [s.id for s in segments] == [2, 3, 1]
    flags = {s.id: s.has_time_anomaly for s in segments}
    # row 3 is compared with row 2 (the previous row read), not with row 1
    assert flags == {1: False, 2: True, 3: False}


def test_dropped_rows_do_not_move_the_anomaly_cursor() -> None:
    segments = normalize_segments(
        [
            row(1, first_gps=utc(10, 0), last_gps=utc(10, 5)),
            row(2),
            row(3, first_gps=utc(9, 0), last_gps=utc(9, 5)),
        ]
    )
    assert {s.id: s.has_time_anomaly for s in segments} == {1: False, 3: True}


def test_equal_start_is_not_an_anomaly() -> None:
    segments = normalize_segments(
        [
            row(1, first_gps=utc(8, 0), last_gps=utc(8, 5)),
            row(2, first_gps=utc(8, 0), last_gps=utc(8, 3)),
        ]
    )
    assert not any(s.has_time_anomaly for s in segments)
    assert [s.id for s in segments] == [2, 1]


def test_end_before_start_is_an_anomaly_with_zero_duration() -> None:
    segments = normalize_segments([row(1, first_gps=utc(8, 5), last_gps=utc(8, 0))])
    assert segments[0].has_time_anomaly is True
    assert segments[0].duration_sec == 0


def test_sort_breaks_ties_on_id() -> None:
    segments = normalize_segments(
        [
            row(5, first_gps=utc(8, 0), last_gps=utc(8, 1)),
            row(3, first_gps=utc(8, 0), last_gps=utc(8, 1)),
        ]
    )
    assert [s.id for s in segments] == [3, 5]


def test_location_is_parsed_and_failures_become_none() -> None:
    segments = normalize_segments(
        [
            row(1, first_gps=utc(8, 0), last_gps=utc(8, 1), location_text="(46.6753,24.7136)"),
            row(2, first_gps=utc(8, 1), last_gps=utc(8, 2), location_text="nonsense"),
            row(3, first_gps=utc(8, 2), last_gps=utc(8, 3)),
        ]
    )
    assert [s.point for s in segments] == [GeoPoint(24.7136, 46.6753), None, None]


def test_pass_through_fields_are_kept() -> None:
    segments = normalize_segments(
        [row(1, first_gps=utc(8, 0), last_gps=utc(8, 1), speed_kmh=42.0, display_name="Unit 7", city="Riyadh")]
    )
    seg = segments[0]
    assert seg.speed_kmh == 42.0
    assert seg.display_name == "Unit 7"
    assert seg.row.city == "Riyadh"


def test_normalizing_normalized_output_is_a_fixed_point() -> None:
    rows = [
        row(1, first_gps=utc(8, 0), last_gps=utc(8, 2), location_text="POINT(46.67 24.71)", speed_kmh=20),
        row(2, first_gps=utc(8, 2), last_gps=utc(8, 4), location_text="POINT(46.68 24.72)", speed_kmh=24),
        row(3, first_server=utc(8, 4), last_server=utc(8, 9), location_text="POINT(46.68 24.72)"),
    ]
    once = normalize_segments(rows)
    twice = normalize_segments(once)
    assert twice == once
    assert not any(s.has_time_anomaly for s in once)


def test_empty_input() -> None:
    assert normalize_segments([]) == []
