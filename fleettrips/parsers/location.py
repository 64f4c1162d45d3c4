"""
Location parser: turn the textual geometry stored with each tracking segment
into a canonical GeoPoint.

The store hands us whatever `location::text` produced, which in practice is
one of: a native point "(x,y)", WKT/EWKT, a bare "x,y" pair, a GeoJSON Point
or a hex-encoded (E)WKB blob. Parsing never raises; failures are reported as
a warning next to a null point.
"""

import binascii
import json
import math
import re
import struct
from enum import Enum
from typing import Any, NamedTuple, Optional

from fleettrips.utils.geo import GeoPoint, is_valid_lat_lon

_NUM = r"[-+0-9.]+"

POINT_PG_REGEX = re.compile(rf"^\(({_NUM}),\s*({_NUM})\)$")
POINT_WKT_REGEX = re.compile(rf"^POINT\s*\(\s*({_NUM})\s+({_NUM})\s*\)$", re.IGNORECASE)
POINT_WKT_SRID_REGEX = re.compile(
    rf"^SRID=[0-9]+;\s*POINT(?:\s+[A-Z]+)?\s*\(\s*({_NUM})\s+({_NUM})(?:\s+{_NUM}(?:\s+{_NUM})?)?\s*\)$",
    re.IGNORECASE,
)
POINT_CSV_REGEX = re.compile(rf"^({_NUM})\s*,\s*({_NUM})$")
HEX_EWKB_REGEX = re.compile(r"^(?:\\x)?[0-9a-fA-F]+$")

WKB_POINT = 1
EWKB_SRID_FLAG = 0x20000000


class LocationWarning(str, Enum):
    """
    Why a location value could not be turned into a point.
    """
    MISSING = "location_missing"
    PARSE_FAILED = "location_parse_failed"


class ParsedLocation(NamedTuple):
    point: Optional[GeoPoint]
    warning: Optional[LocationWarning]


def _to_float(raw: Any) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        return math.nan


def pick_point(a: float, b: float, assume_lon_lat: bool = True) -> Optional[GeoPoint]:
    """
    Resolve an ambiguous number pair into a GeoPoint.

    The primary ordering is tried first and the flipped ordering second;
    None is returned when neither lands inside the valid lat/lon ranges.

    Parameters
    ----------
    a, b
        The two numbers in the order they appeared in the source text.
    assume_lon_lat
        If True the primary guess is (lon, lat), otherwise (lat, lon).
    """
    primary = GeoPoint(lat=b, lon=a) if assume_lon_lat else GeoPoint(lat=a, lon=b)
    if is_valid_lat_lon(primary.lat, primary.lon):
        return primary

    flipped = GeoPoint(lat=a, lon=b) if assume_lon_lat else GeoPoint(lat=b, lon=a)
    if is_valid_lat_lon(flipped.lat, flipped.lon):
        return flipped

    return None


def parse_geojson_point(text: str) -> Optional[GeoPoint]:
    """
    Parse a GeoJSON Point. Coordinates are taken as [lon, lat] with no
    reordering.
    """
    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        return None
    if not isinstance(parsed, dict) or parsed.get("type") != "Point":
        return None
    coords = parsed.get("coordinates")
    if not isinstance(coords, list) or len(coords) < 2:
        return None

    lon = _to_float(coords[0])
    lat = _to_float(coords[1])
    return GeoPoint(lat=lat, lon=lon) if is_valid_lat_lon(lat, lon) else None


def parse_ewkb_point(text: str) -> Optional[GeoPoint]:
    """
    Decode a hex (E)WKB point, optionally prefixed with a `\\x` bytea marker.

    Layout: 1 byte byte-order flag (1 = little endian), 4 byte geometry type
    word (low byte is the type, 0x20000000 flags an embedded SRID), optional
    4 byte SRID, then X and Y as doubles. Any Z/M ordinates are ignored.
    """
    if not HEX_EWKB_REGEX.match(text):
        return None
    hex_text = text[2:] if text.startswith("\\x") else text
    if len(hex_text) % 2 != 0:
        return None

    try:
        buf = binascii.unhexlify(hex_text)
    except binascii.Error:
        return None
    if len(buf) < 1 + 4 + 16:
        return None

    order = "<" if buf[0] == 1 else ">"
    (type_with_flags,) = struct.unpack_from(f"{order}I", buf, 1)
    if type_with_flags & 0xFF != WKB_POINT:
        return None

    offset = 5
    if type_with_flags & EWKB_SRID_FLAG:
        offset += 4
    if len(buf) < offset + 16:
        return None

    lon, lat = struct.unpack_from(f"{order}dd", buf, offset)
    return GeoPoint(lat=lat, lon=lon) if is_valid_lat_lon(lat, lon) else None


def _strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1].strip()
    return text


def parse_location_text(location_text: Optional[str]) -> ParsedLocation:
    """
    Parse one stored location value into a GeoPoint.

    Formats are tried in a fixed order and the first one that yields a
    valid point wins. Pair formats are disambiguated with `pick_point`,
    assuming (lon, lat) first.

    Parameters
    ----------
    location_text
        Raw text from the store, possibly None.

    Returns
    -------
    ParsedLocation
        (point, None) on success, (None, warning) otherwise.
    """
    if not location_text:
        return ParsedLocation(None, LocationWarning.MISSING)

    text = _strip_quotes(location_text.strip())

    for regex in (POINT_PG_REGEX, POINT_WKT_REGEX, POINT_WKT_SRID_REGEX, POINT_CSV_REGEX):
        match = regex.match(text)
        if match:
            point = pick_point(_to_float(match.group(1)), _to_float(match.group(2)))
            if point:
                return ParsedLocation(point, None)

    point = parse_geojson_point(text)
    if point:
        return ParsedLocation(point, None)

    point = parse_ewkb_point(text)
    if point:
        return ParsedLocation(point, None)

    return ParsedLocation(None, LocationWarning.PARSE_FAILED)
