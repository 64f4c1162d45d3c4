# fleettrips/analysis/config.py

import math
import os
from dataclasses import dataclass


def _env_number(name: str, fallback: float) -> float:
    """
    Read a numeric environment variable, falling back when unset or unparseable.
    """
    try:
        value = float(os.environ[name])
    except (KeyError, ValueError):
        return fallback
    return value if math.isfinite(value) else fallback


@dataclass(frozen=True)
class TripThresholds:
    """
    Thresholds for the trip segmentation engine.

    Attributes
    ----------
    move_distance_m
        Minimum displacement (m) between consecutive segments that counts as movement.
    move_speed_kmh
        Minimum reported speed (km/h) that counts as movement.
    stop_minutes
        Continuous non-movement (min) that closes an open trip.
    """
    move_distance_m:  float = 50.0
    move_speed_kmh:   float = 5.0
    stop_minutes:     float = 5.0

    @property
    def stop_seconds(self) -> float:
        return self.stop_minutes * 60

    @classmethod
    def default(cls):
        """Preset for road vehicles (default thresholds)."""
        return cls()

    @classmethod
    def from_env(cls):
        """Thresholds from TRIP_MOVE_DISTANCE_M, TRIP_MOVE_SPEED_KMH and TRIP_STOP_MINUTES."""
        base = cls()
        return cls(
            move_distance_m=_env_number("TRIP_MOVE_DISTANCE_M", base.move_distance_m),
            move_speed_kmh=_env_number("TRIP_MOVE_SPEED_KMH", base.move_speed_kmh),
            stop_minutes=_env_number("TRIP_STOP_MINUTES", base.stop_minutes),
        )


@dataclass(frozen=True)
class Settings:
    """
    Process settings for the CLI and API.

    Attributes
    ----------
    db_path
        SQLite file holding tracking segments.
    osrm_base_url
        Base URL of the OSRM service used for road snapping.
    poll_interval_sec
        Client polling interval; also bounds the current-vehicles cache TTL.
    """
    db_path:            str   = "fleettrips.sqlite"
    osrm_base_url:      str   = "http://osrm:5000"
    poll_interval_sec:  float = 10.0

    @classmethod
    def from_env(cls):
        base = cls()
        return cls(
            db_path=os.environ.get("FLEETTRIPS_DB", base.db_path),
            osrm_base_url=os.environ.get("OSRM_BASE_URL", base.osrm_base_url),
            poll_interval_sec=_env_number("POLL_INTERVAL_SEC", base.poll_interval_sec),
        )
