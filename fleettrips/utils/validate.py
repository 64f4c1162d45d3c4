"""
Pydantic schemas for rows entering the toolkit and payloads leaving the API.
"""

from datetime import datetime
from typing import Optional, Union
from pydantic import BaseModel


class TrackingRow(BaseModel):
    """
    One persisted tracking segment, as read from the store or an ingest file.

    Timestamps are kept as given when they are not valid datetimes; the
    normalizer decides what to do with them.
    """
    id: int
    plate_number: str
    speed_kmh: Optional[float] = None
    heading: Optional[float] = None
    first_gps_timestamp: Union[datetime, str, None] = None
    last_gps_timestamp: Union[datetime, str, None] = None
    first_server_timestamp: Union[datetime, str, None] = None
    last_server_timestamp: Union[datetime, str, None] = None
    display_name: Optional[str] = None
    road: Optional[str] = None
    suburb: Optional[str] = None
    city: Optional[str] = None
    subdistrict: Optional[str] = None
    county: Optional[str] = None
    state_district: Optional[str] = None
    state: Optional[str] = None
    postcode: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    location_text: Optional[str] = None


class VehicleCurrentLocation(BaseModel):
    """
    Latest known position of one vehicle.
    """
    id: int
    plate_number: str
    display_name: Optional[str]
    road: Optional[str]
    city: Optional[str]
    speed_kmh: Optional[float]
    heading: Optional[float]
    last_gps_timestamp: Optional[datetime]
    last_server_timestamp: Optional[datetime]
    lat: Optional[float]
    lon: Optional[float]
    location_warning: Optional[str]


class SegmentView(BaseModel):
    """
    One normalized segment as shown in a vehicle history.
    """
    id: int
    plate_number: str
    display_name: Optional[str]
    speed_kmh: Optional[float]
    heading: Optional[float]
    start_time: datetime
    end_time: datetime
    duration_sec: int
    lat: Optional[float]
    lon: Optional[float]
    location_warning: Optional[str]
    road: Optional[str]
    suburb: Optional[str]
    city: Optional[str]
    state: Optional[str]
    country: Optional[str]
    has_time_anomaly: bool


class TripSummary(BaseModel):
    """
    Trip record without its point list.
    """
    plate_number: str
    display_name: Optional[str]
    start_time: datetime
    end_time: datetime
    duration_sec: int
    idle_sec: int
    moving_sec: int
    distance_km: float
    avg_speed_kmh: float
    max_speed_kmh: float
    start_lat: Optional[float]
    start_lon: Optional[float]
    end_lat: Optional[float]
    end_lon: Optional[float]
    has_time_anomaly: bool


class ReportFilter(BaseModel):
    """
    Query window and optional vehicle filter for a report.
    """
    from_ts: datetime
    to_ts: datetime
    plates: list[str] = []
