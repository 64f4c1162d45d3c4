# fleettrips/server.py
"""
FastAPI server for the fleettrips CLI.
"""

from typing import Optional

from fastapi import FastAPI, Query, Request
from starlette.responses import JSONResponse, Response

from fleettrips.analysis.config import Settings, TripThresholds
from fleettrips.analysis.reporting import build_route_for_range, build_trips_report
from fleettrips.export.trip_csv import trips_to_csv
from fleettrips.routing.osrm import snap_route_to_roads
from fleettrips.storage.dao import DAO
from fleettrips.utils.cache import TtlCache
from fleettrips.utils.geo import to_geojson_line
from fleettrips.utils.log import get_logger
from fleettrips.utils.timeutils import InvalidDateRange, iso_z, parse_date_range
from fleettrips.utils.validate import ReportFilter, SegmentView

logger = get_logger(__name__)


def bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


def internal_error(message: str) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": message})


def parse_plate_list(raw: Optional[str]) -> list[str]:
    """
    Split a comma separated plate filter, dropping blanks.
    """
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _report_filter(from_raw: Optional[str], to_raw: Optional[str], plates: list[str]) -> ReportFilter:
    date_range = parse_date_range(from_raw, to_raw)
    return ReportFilter(from_ts=date_range.start, to_ts=date_range.end, plates=plates)


def _snap(points, settings: Settings) -> tuple[Optional[dict], Optional[str]]:
    try:
        return snap_route_to_roads(points, settings.osrm_base_url), None
    except Exception as exc:
        logger.warning("Road snapping failed: %s", exc)
        return None, str(exc) or "Unknown OSRM error"


def create_app(
    db_path: str,
    settings: Optional[Settings] = None,
    thresholds: Optional[TripThresholds] = None,
) -> FastAPI:
    """
    Build a FastAPI instance bound to a specific tracking store.
    """
    app = FastAPI()
    app.state.db_path = db_path
    app.state.settings = settings or Settings.from_env()
    app.state.thresholds = thresholds or TripThresholds.from_env()
    app.state.current_cache = TtlCache(max(5.0, app.state.settings.poll_interval_sec))

    def open_dao(request: Request) -> DAO:
        return DAO(request.app.state.db_path)

    @app.get("/api/status", response_class=JSONResponse)
    async def status() -> JSONResponse:
        return JSONResponse(status_code=200, content={"status": "ok"})

    @app.get("/api/vehicles/current")
    def get_current_vehicles(
        request: Request,
        plate: Optional[str] = None,
        active_within: Optional[str] = Query(None, alias="activeWithinMinutes"),
    ):
        """
        Latest position per vehicle, cached for one polling interval.
        """
        plate = (plate or "").strip() or None
        minutes = None
        if active_within:
            try:
                minutes = float(active_within)
            except ValueError:
                minutes = None
            if minutes is None or not minutes > 0 or minutes == float("inf"):
                return bad_request("activeWithinMinutes must be a positive number")

        state = request.app.state
        cache_key = (plate, minutes)
        try:
            vehicles = state.current_cache.get(cache_key)
            cached = vehicles is not None
            if not cached:
                dao = open_dao(request)
                try:
                    vehicles = dao.get_current_vehicles(plate, minutes)
                finally:
                    dao.close()
                state.current_cache.set(cache_key, vehicles)
        except Exception:
            logger.exception("GET /api/vehicles/current error")
            return internal_error("Failed to fetch current vehicle positions")

        return {
            "vehicles": [v.model_dump(mode="json") for v in vehicles],
            "cached": cached,
            "poll_interval_sec": state.settings.poll_interval_sec,
        }

    @app.get("/api/vehicles/{plate}/history")
    def get_vehicle_history(
        request: Request,
        plate: str,
        from_raw: Optional[str] = Query(None, alias="from"),
        to_raw: Optional[str] = Query(None, alias="to"),
        snap: str = "true",
    ):
        """
        Normalized segments for one vehicle plus its raw and snapped route.
        """
        should_snap = snap != "false"
        try:
            report = _report_filter(from_raw, to_raw, [plate])
            dao = open_dao(request)
            try:
                segments = dao.get_vehicle_history_segments(plate, report.from_ts, report.to_ts)
            finally:
                dao.close()
        except InvalidDateRange as exc:
            return bad_request(str(exc))
        except Exception:
            logger.exception("GET /api/vehicles/%s/history error", plate)
            return internal_error("Failed to fetch vehicle history")

        payload = [
            SegmentView(
                id=seg.id,
                plate_number=seg.plate_number,
                display_name=seg.display_name,
                speed_kmh=seg.speed_kmh,
                heading=seg.row.heading,
                start_time=seg.effective_start,
                end_time=seg.effective_end,
                duration_sec=seg.duration_sec,
                lat=seg.point.lat if seg.point else None,
                lon=seg.point.lon if seg.point else None,
                location_warning=None if seg.point else "location_parse_failed_or_missing",
                road=seg.row.road,
                suburb=seg.row.suburb,
                city=seg.row.city,
                state=seg.row.state,
                country=seg.row.country,
                has_time_anomaly=seg.has_time_anomaly,
            )
            for seg in segments
        ]
        route_points = [seg.point for seg in segments if seg.point is not None]
        snapped, snap_error = _snap(route_points, request.app.state.settings) if should_snap else (None, None)

        return {
            "plate": plate,
            "from": iso_z(report.from_ts),
            "to": iso_z(report.to_ts),
            "count": len(payload),
            "points": [
                {"lat": seg.point.lat, "lon": seg.point.lon, "time": iso_z(seg.effective_start)}
                for seg in segments
                if seg.point is not None
            ],
            "snap_requested": should_snap,
            "snap_applied": snapped is not None,
            "snap_error": snap_error,
            "route": {"raw": to_geojson_line(route_points), "snapped": snapped},
            "segments": [p.model_dump(mode="json") for p in payload],
        }

    @app.get("/api/reports/trips")
    def get_trips_report(
        request: Request,
        from_raw: Optional[str] = Query(None, alias="from"),
        to_raw: Optional[str] = Query(None, alias="to"),
        plate: Optional[str] = None,
    ):
        """
        Trips for the fleet (or the comma separated plates) in the window.
        """
        try:
            report = _report_filter(from_raw, to_raw, parse_plate_list(plate))
            dao = open_dao(request)
            try:
                trips = build_trips_report(dao, report, request.app.state.thresholds)
            finally:
                dao.close()
        except InvalidDateRange as exc:
            return bad_request(str(exc))
        except Exception:
            logger.exception("GET /api/reports/trips error")
            return internal_error("Failed to build trips report")

        return {
            "from": iso_z(report.from_ts),
            "to": iso_z(report.to_ts),
            "count": len(trips),
            "trips": [t.summary().model_dump(mode="json") for t in trips],
        }

    @app.get("/api/reports/trips/export.csv")
    def export_trips_csv(
        request: Request,
        from_raw: Optional[str] = Query(None, alias="from"),
        to_raw: Optional[str] = Query(None, alias="to"),
        plate: Optional[str] = None,
    ):
        try:
            report = _report_filter(from_raw, to_raw, parse_plate_list(plate))
            dao = open_dao(request)
            try:
                trips = build_trips_report(dao, report, request.app.state.thresholds)
            finally:
                dao.close()
        except InvalidDateRange as exc:
            return bad_request(str(exc))
        except Exception:
            logger.exception("GET /api/reports/trips/export.csv error")
            return internal_error("Failed to export CSV")

        filename = f"trip-report-{iso_z(report.from_ts)}-{iso_z(report.to_ts)}.csv"
        return Response(
            content=trips_to_csv(trips),
            media_type="text/csv; charset=utf-8",
            headers={
                "Content-Disposition": f'attachment; filename="{filename}"',
                "Cache-Control": "no-store",
            },
        )

    @app.get("/api/reports/trips/route")
    def get_trip_route(
        request: Request,
        plate: Optional[str] = None,
        from_raw: Optional[str] = Query(None, alias="from"),
        to_raw: Optional[str] = Query(None, alias="to"),
        snap: str = "true",
    ):
        """
        Raw and snapped route for one vehicle, with its trips.
        """
        plate = (plate or "").strip()
        if not plate:
            return bad_request("plate is required")
        should_snap = snap != "false"
        try:
            report = _report_filter(from_raw, to_raw, [plate])
            dao = open_dao(request)
            try:
                route = build_route_for_range(dao, plate, report, request.app.state.thresholds)
            finally:
                dao.close()
        except InvalidDateRange as exc:
            return bad_request(str(exc))
        except Exception:
            logger.exception("GET /api/reports/trips/route error")
            return internal_error("Failed to build trip route")

        snapped, snap_error = _snap(route.points, request.app.state.settings) if should_snap else (None, None)
        return {
            "plate": plate,
            "from": iso_z(report.from_ts),
            "to": iso_z(report.to_ts),
            "snap_requested": should_snap,
            "snap_applied": snapped is not None,
            "snap_error": snap_error,
            "trip_count": len(route.trips),
            "route": {"raw": route.line, "snapped": snapped},
            "points": [{"lat": p.lat, "lon": p.lon} for p in route.points],
            "trips": [t.summary().model_dump(mode="json") for t in route.trips],
        }

    return app
