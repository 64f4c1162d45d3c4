import json

import pytest

from fleettrips.cli import ingest, parse_args, trips
from fleettrips.storage.dao import DAO
from fleettrips.utils.timeutils import to_utc

CSV_TEXT = """id,plate_number,speed_kmh,first_gps_timestamp,last_gps_timestamp,first_server_timestamp,last_server_timestamp,display_name,location
1,ABC,35,2026-01-01T08:00:00Z,2026-01-01T08:05:00Z,,,"Truck, north",POINT(46.6753 24.7136)
2,ABC,0,2026-01-01T08:05:00Z,2026-01-01T08:12:00Z,,,"Truck, north",POINT(46.6753 24.7136)
3,ABC,26,,,2026-01-01T08:12:00Z,2026-01-01T08:18:00Z,"Truck, north",POINT(46.6753 24.7271)
oops,ABC,,,,,,,
"""

WINDOW = ("2026-01-01T07:00:00Z", "2026-01-01T10:00:00Z")


@pytest.fixture
def db_path(tmp_path):
    csv_path = tmp_path / "rows.csv"
    csv_path.write_text(CSV_TEXT, encoding="utf-8")
    db = str(tmp_path / "cli.sqlite")
    ingest(db, str(csv_path))
    return db


def test_ingest_skips_invalid_rows(db_path) -> None:
    dao = DAO(db_path)
    try:
        segments = dao.get_vehicle_history_segments("ABC", to_utc(WINDOW[0]), to_utc(WINDOW[1]))
    finally:
        dao.close()
    assert [s.id for s in segments] == [1, 2, 3]
    assert segments[0].display_name == "Truck, north"
    assert segments[2].point.lat == pytest.approx(24.7271)


def test_trips_json_to_file(db_path, tmp_path) -> None:
    out = tmp_path / "trips.json"
    assert trips(db_path, *WINDOW, [], "json", str(out)) == 0

    body = json.loads(out.read_text(encoding="utf-8"))
    assert body["count"] == 2
    assert body["from"] == "2026-01-01T07:00:00.000Z"
    assert body["trips"][0]["points"] == [[24.7136, 46.6753]]
    assert body["trips"][1]["duration_sec"] == 360


def test_trips_csv_to_stdout(db_path, capsys) -> None:
    assert trips(db_path, *WINDOW, ["ABC"], "csv", None) == 0
    lines = capsys.readouterr().out.rstrip("\n").split("\n")
    assert lines[0].startswith("plate_number,")
    assert len(lines) == 3
    assert '"Truck, north"' in lines[1]


def test_trips_table(db_path) -> None:
    assert trips(db_path, *WINDOW, [], "table", None) == 0


def test_trips_rejects_bad_range(db_path) -> None:
    assert trips(db_path, WINDOW[1], WINDOW[0], [], "json", None) == 2


def test_parse_args() -> None:
    args = parse_args(["trips", "--db", "x.sqlite", "--plate", "A", "--plate", "B", "--format", "csv"])
    assert args.command == "trips"
    assert args.db == "x.sqlite"
    assert args.plates == ["A", "B"]
    assert args.fmt == "csv"
    assert args.from_ts is None

    args = parse_args(["ingest", "rows.csv"])
    assert (args.command, args.csv_path) == ("ingest", "rows.csv")

    with pytest.raises(SystemExit):
        parse_args(["trips", "--format", "xml"])
