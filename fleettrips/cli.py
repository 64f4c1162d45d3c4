#!/usr/bin/env python3
"""
CLI entry point for the fleettrips toolkit.

Defines the following commands:
  fleettrips ingest <csv_file> [--db PATH]
  fleettrips trips [--db PATH] [--from ISO8601] [--to ISO8601] [--plate P]... [--format json|csv|table] [--out PATH]
  fleettrips serve [--db PATH] [--port 8000]
  fleettrips version
"""

import csv
import json
import sys
from argparse import ArgumentParser, Namespace
from importlib.metadata import PackageNotFoundError, version as _get_version
from typing import Iterator

import uvicorn
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from fleettrips.utils.log import get_logger
from fleettrips.utils.timeutils import InvalidDateRange, format_duration, iso_z, parse_date_range
from fleettrips.utils.validate import ReportFilter, TrackingRow
from fleettrips.storage.dao import DAO
from fleettrips.server import create_app
from fleettrips.analysis.config import Settings, TripThresholds
from fleettrips.analysis.reporting import build_trips_report
from fleettrips.analysis.types import TripRecord
from fleettrips.export.trip_csv import trips_to_csv

logger = get_logger(__name__)


def _read_rows(csv_path: str) -> Iterator[TrackingRow]:
    """
    Yield TrackingRow objects from a CSV export of the tracking table.

    Blank cells become None. Rows that fail validation are logged and skipped.
    A `location` column is accepted as an alias of `location_text`.
    """
    with open(csv_path, "r", encoding="utf-8", newline="") as f:
        for line_no, raw in enumerate(csv.DictReader(f), start=2):
            data = {k: (v if v != "" else None) for k, v in raw.items() if k}
            if "location_text" not in data and "location" in data:
                data["location_text"] = data.pop("location")
            try:
                yield TrackingRow(**data)
            except ValidationError as exc:
                logger.warning("Skipping line %d of %s: %s", line_no, csv_path, exc.errors()[0]["msg"])


def ingest(db_path: str, csv_path: str) -> None:
    """
    Load raw tracking rows from a CSV file into the store.

    Parameters
    ----------
    db_path
        SQLite database file.
    csv_path
        CSV file with one tracking row per line.
    """
    logger.info("Ingest: db=%s, file=%s", db_path, csv_path)
    dao = DAO(db_path)
    try:
        written = dao.add_rows_bulk(_read_rows(csv_path))
    finally:
        dao.close()
    logger.info("Ingested %d rows", written)


def _trip_dict(trip: TripRecord) -> dict:
    data = trip.summary().model_dump(mode="json")
    data["points"] = [[p.lat, p.lon] for p in trip.points]
    return data


def _print_table(trips: list[TripRecord]) -> None:
    table = Table(title=f"{len(trips)} trips")
    for col in ("plate", "start", "end", "duration", "idle", "km", "avg km/h", "max km/h", "anomaly"):
        table.add_column(col)
    for t in trips:
        table.add_row(
            t.plate_number,
            iso_z(t.start_time),
            iso_z(t.end_time),
            format_duration(t.duration_sec),
            format_duration(t.idle_sec),
            f"{t.distance_km:.3f}",
            f"{t.avg_speed_kmh:.2f}",
            f"{t.max_speed_kmh:.2f}",
            "yes" if t.has_time_anomaly else "",
        )
    Console().print(table)


def trips(
    db_path: str,
    from_ts: str | None,
    to_ts: str | None,
    plates: list[str],
    fmt: str,
    out: str | None,
) -> int:
    """
    Infer trips from the store and write them out.

    Parameters
    ----------
    db_path
        SQLite database file.
    from_ts, to_ts
        Optional ISO8601 window bounds (defaults: the last 24 hours).
    plates
        Vehicle filter; empty means the whole fleet.
    fmt
        "json", "csv" or "table".
    out
        Output file; stdout when omitted.

    Returns
    -------
    int
        Process exit code.
    """
    try:
        date_range = parse_date_range(from_ts, to_ts)
    except InvalidDateRange as exc:
        logger.error("%s", exc)
        return 2

    report = ReportFilter(from_ts=date_range.start, to_ts=date_range.end, plates=plates)
    thresholds = TripThresholds.from_env()
    logger.info(
        "Trips: db=%s, from=%s, to=%s, plates=%s, thresholds=%s",
        db_path, iso_z(report.from_ts), iso_z(report.to_ts), plates or "all", thresholds,
    )

    dao = DAO(db_path)
    try:
        result = build_trips_report(dao, report, thresholds)
    finally:
        dao.close()
    logger.info("Inferred %d trips", len(result))

    if fmt == "table":
        _print_table(result)
        return 0

    if fmt == "csv":
        text = trips_to_csv(result)
    else:
        text = json.dumps(
            {
                "from": iso_z(report.from_ts),
                "to": iso_z(report.to_ts),
                "count": len(result),
                "trips": [_trip_dict(t) for t in result],
            },
            indent=2,
        )

    if out:
        with open(out, "w", encoding="utf-8", newline="") as f:
            f.write(text)
    else:
        sys.stdout.write(text + "\n")
    return 0


def serve(db_path: str, port: int) -> None:
    """
    Spin up FastAPI+Uvicorn to serve the trips API.

    Parameters
    ----------
    db_path
        SQLite database file.
    port
        Port on which to serve HTTP.
    """
    logger.info("Serve: db=%s, port=%d", db_path, port)
    app = create_app(db_path)
    uvicorn.run(app, host="127.0.0.1", port=port)


def version() -> None:
    """
    Print the installed fleettrips package version.
    """
    try:
        ver = _get_version("fleettrips")
    except PackageNotFoundError:
        ver = "unknown"
    logger.info("fleettrips version %s", ver)


def parse_args(argv: list[str] | None = None) -> Namespace:
    """
    Parse command-line arguments and return the populated namespace.
    """
    default_db = Settings.from_env().db_path
    parser = ArgumentParser(prog="fleettrips")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # fleettrips ingest
    p = subparsers.add_parser("ingest", help="Load tracking rows from CSV.")
    p.add_argument("csv_path", type=str, help="CSV file of tracking rows.")
    p.add_argument("--db", type=str, default=default_db, help="SQLite database file.")

    # fleettrips trips
    p = subparsers.add_parser("trips", help="Infer trips for a time window.")
    p.add_argument("--db", type=str, default=default_db, help="SQLite database file.")
    p.add_argument("--from", dest="from_ts", type=str, help="ISO8601 window start.")
    p.add_argument("--to", dest="to_ts", type=str, help="ISO8601 window end.")
    p.add_argument(
        "--plate", dest="plates", action="append", default=[], help="Vehicle plate (repeatable)."
    )
    p.add_argument(
        "--format", dest="fmt", choices=("json", "csv", "table"), default="json", help="Output format."
    )
    p.add_argument("--out", type=str, help="Output file (default: stdout).")

    # fleettrips serve
    p = subparsers.add_parser("serve", help="Serve via FastAPI + Uvicorn.")
    p.add_argument("--db", type=str, default=default_db, help="SQLite database file.")
    p.add_argument(
        "--port", type=int, default=8000, help="Port number to serve on."
    )

    # fleettrips version
    subparsers.add_parser("version", help="Show fleettrips version and exit.")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """
    Entry point: dispatch to the selected subcommand.
    """
    args = parse_args(argv)
    match args.command:
        case "ingest":
            ingest(args.db, args.csv_path)
        case "trips":
            sys.exit(trips(args.db, args.from_ts, args.to_ts, args.plates, args.fmt, args.out))
        case "serve":
            serve(args.db, args.port)
        case "version":
            version()
        case _:
            sys.exit(1)


if __name__ == "__main__":
    main()
