from datetime import datetime, timedelta, timezone
from sqlite3 import Connection
from typing import Iterable, Optional
from fleettrips.analysis.normalize import normalize_segments
from fleettrips.analysis.types import NormalizedSegment
from fleettrips.parsers.location import parse_location_text
from fleettrips.storage.db import init_db
from fleettrips.utils.log import get_logger
from fleettrips.utils.timeutils import iso_z, to_utc
from fleettrips.utils.validate import TrackingRow, VehicleCurrentLocation

logger = get_logger(__name__)

ROW_COLUMNS = (
    "id",
    "plate_number",
    "speed_kmh",
    "heading",
    "first_gps_timestamp",
    "last_gps_timestamp",
    "first_server_timestamp",
    "last_server_timestamp",
    "display_name",
    "road",
    "suburb",
    "city",
    "subdistrict",
    "county",
    "state_district",
    "state",
    "postcode",
    "country",
    "country_code",
)

BASE_SELECT = f"""
    SELECT {", ".join(ROW_COLUMNS)}, location AS location_text
      FROM tracking_segments
"""

SEGMENT_ORDER = """
    COALESCE(first_gps_timestamp, first_server_timestamp) ASC,
    COALESCE(last_gps_timestamp, last_server_timestamp) ASC,
    id ASC
"""

WINDOW_FILTER = """
    COALESCE(last_gps_timestamp, last_server_timestamp) >= ?
    AND COALESCE(first_gps_timestamp, first_server_timestamp) <= ?
"""


def _store_ts(value) -> Optional[str]:
    """
    Store datetimes as ISO-8601 UTC text so that text ordering matches time
    ordering. Unparseable strings are kept verbatim.
    """
    if value is None:
        return None
    parsed = to_utc(value)
    return iso_z(parsed) if parsed else str(value)


class DAO:
    """
    Encapsulates all inserts/queries against the tracking segment store.
    """

    def __init__(self, db_path: str):
        """
        Create/connect and apply schema if needed.
        """
        self.conn: Connection = init_db(db_path)

    def close(self) -> None:
        self.conn.close()

    def add_rows_bulk(self, rows: Iterable[TrackingRow]) -> int:
        """
        Bulk upsert tracking rows (keyed by id) in a single transaction.

        Returns
        -------
        int
            Number of rows written.
        """
        stmt = f"""
        INSERT INTO tracking_segments
          ({", ".join(ROW_COLUMNS)}, location)
        VALUES ({", ".join("?" for _ in ROW_COLUMNS)}, ?)
        ON CONFLICT(id) DO UPDATE SET
          {", ".join(f"{c} = excluded.{c}" for c in ROW_COLUMNS[1:])},
          location   = excluded.location,
          updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
        """
        params = [
            (
                r.id,
                r.plate_number,
                r.speed_kmh,
                r.heading,
                _store_ts(r.first_gps_timestamp),
                _store_ts(r.last_gps_timestamp),
                _store_ts(r.first_server_timestamp),
                _store_ts(r.last_server_timestamp),
                r.display_name,
                r.road,
                r.suburb,
                r.city,
                r.subdistrict,
                r.county,
                r.state_district,
                r.state,
                r.postcode,
                r.country,
                r.country_code,
                r.location_text,
            )
            for r in rows
        ]
        with self.conn:
            self.conn.executemany(stmt, params)
        return len(params)

    def _fetch_rows(self, sql: str, params: tuple) -> list[TrackingRow]:
        cursor = self.conn.execute(sql, params)
        return [TrackingRow(**dict(row)) for row in cursor.fetchall()]

    def get_vehicle_history_segments(
        self, plate: str, from_ts: datetime, to_ts: datetime
    ) -> list[NormalizedSegment]:
        """
        Return one vehicle's normalized segments overlapping [from_ts, to_ts].
        """
        sql = f"""
            {BASE_SELECT}
            WHERE plate_number = ?
              AND {WINDOW_FILTER}
            ORDER BY {SEGMENT_ORDER}
        """
        rows = self._fetch_rows(sql, (plate, iso_z(from_ts), iso_z(to_ts)))
        logger.debug("History %s: %d rows", plate, len(rows))
        return normalize_segments(rows)

    def get_fleet_segments_by_range(
        self, from_ts: datetime, to_ts: datetime, plates: Optional[list[str]] = None
    ) -> list[NormalizedSegment]:
        """
        Return normalized segments for every (or the listed) vehicle
        overlapping [from_ts, to_ts].
        """
        sql = f"{BASE_SELECT} WHERE {WINDOW_FILTER}"
        params: list = [iso_z(from_ts), iso_z(to_ts)]
        if plates:
            sql += f" AND plate_number IN ({', '.join('?' for _ in plates)})"
            params.extend(plates)
        sql += f" ORDER BY plate_number ASC, {SEGMENT_ORDER}"
        rows = self._fetch_rows(sql, tuple(params))
        logger.debug("Fleet range: %d rows", len(rows))
        return normalize_segments(rows)

    def get_current_vehicles(
        self,
        plate: Optional[str] = None,
        active_within_minutes: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> list[VehicleCurrentLocation]:
        """
        Return the latest row per vehicle, newest server timestamp first.
        """
        cutoff = None
        if active_within_minutes is not None:
            now = now or datetime.now(timezone.utc)
            cutoff = iso_z(now - timedelta(minutes=active_within_minutes))

        cursor = self.conn.execute(
            """
            WITH ranked AS (
                SELECT
                    id, plate_number, speed_kmh, heading, display_name, road, city,
                    last_gps_timestamp, last_server_timestamp,
                    location AS location_text,
                    ROW_NUMBER() OVER (
                        PARTITION BY plate_number
                        ORDER BY last_server_timestamp DESC NULLS LAST, id DESC
                    ) AS rn
                FROM tracking_segments
                WHERE (:plate IS NULL OR plate_number = :plate)
                  AND (
                    :cutoff IS NULL
                    OR COALESCE(last_server_timestamp, last_gps_timestamp) >= :cutoff
                  )
            )
            SELECT * FROM ranked WHERE rn = 1 ORDER BY plate_number
            """,
            {"plate": plate, "cutoff": cutoff},
        )

        vehicles: list[VehicleCurrentLocation] = []
        for row in cursor.fetchall():
            point, warning = parse_location_text(row["location_text"])
            vehicles.append(
                VehicleCurrentLocation(
                    id=row["id"],
                    plate_number=row["plate_number"],
                    display_name=row["display_name"],
                    road=row["road"],
                    city=row["city"],
                    speed_kmh=row["speed_kmh"],
                    heading=row["heading"],
                    last_gps_timestamp=to_utc(row["last_gps_timestamp"]),
                    last_server_timestamp=to_utc(row["last_server_timestamp"]),
                    lat=point.lat if point else None,
                    lon=point.lon if point else None,
                    location_warning=warning.value if warning else None,
                )
            )
        return vehicles
