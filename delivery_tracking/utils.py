# delivery-tracking/delivery_tracking/utils.py
"""
Utility functions for the delivery tracking client.

Provides geographic calculations (great-circle distance, synthetic offsets)
and small conversion helpers shared by the routing and rendering modules.
"""

from __future__ import annotations

import math
import logging
from datetime import datetime
from typing import List, Optional

from .coordinates import CoordinatePair

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.0

# Unit vectors (east, north) per compass direction. Diagonals use 0.7 per axis.
DIRECTIONS = {
    "north": (0.0, 1.0),
    "east": (1.0, 0.0),
    "south": (0.0, -1.0),
    "west": (-1.0, 0.0),
    "northeast": (0.7, 0.7),
    "southeast": (0.7, -0.7),
    "southwest": (-0.7, -0.7),
    "northwest": (-0.7, 0.7),
}


def distance_km(a: CoordinatePair, b: CoordinatePair) -> float:
    """
    Calculate the great-circle distance between two (lng, lat) pairs.

    Uses the Haversine formula, which accounts for Earth's curvature and is
    accurate for last-mile distances. Symmetric, and zero for equal points.

    Args:
        a: First point as (longitude, latitude) in decimal degrees
        b: Second point as (longitude, latitude) in decimal degrees

    Returns:
        Distance in kilometers

    Example:
        >>> round(distance_km((79.8612, 6.9271), (79.8800, 6.9000)), 2)
        3.66
    """
    lng1, lat1 = a
    lng2, lat2 = b
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lng2 - lng1)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # rounding can push h past 1 for antipodal points
    h = min(1.0, h)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def offset(base: CoordinatePair, km: float = 1.0, direction: str = "north") -> CoordinatePair:
    """
    Shift a coordinate roughly ``km`` kilometers in a compass direction.

    Flat-earth approximation: 111 km per degree of latitude, longitude scaled
    by cos(latitude). Only meant for demo/fallback positions, never as a
    stand-in for a real coordinate that is available.

    Args:
        base: Starting (lng, lat)
        km: Offset distance in kilometers
        direction: One of the eight compass directions (case-insensitive)

    Returns:
        A new (lng, lat). Unknown directions return ``base`` unchanged.
    """
    lng, lat = base
    unit = DIRECTIONS.get(direction.lower())
    if unit is None:
        logger.warning(f"Unknown offset direction '{direction}', returning base coordinate")
        return base

    lat_offset = km / KM_PER_DEGREE_LAT
    lng_offset = km / (KM_PER_DEGREE_LAT * math.cos(math.radians(lat)))
    return (lng + unit[0] * lng_offset, lat + unit[1] * lat_offset)


def seconds_to_eta_minutes(seconds: float) -> int:
    """Round a provider duration up to whole minutes."""
    return int(math.ceil(seconds / 60))


def meters_to_km(meters: float) -> float:
    """Convert meters to kilometers rounded to one decimal."""
    return round(meters / 100) / 10


def format_time_duration(minutes: float) -> str:
    """
    Format a duration in minutes as a human-readable string.

    Returns:
        Formatted string like "1h 23m" or "45m"
    """
    if minutes < 60:
        return f"{minutes:.0f}m"
    hours = int(minutes // 60)
    mins = int(minutes % 60)
    return f"{hours}h {mins}m"


def hex_to_rgb(color: str) -> List[int]:
    """'#3887be' -> [56, 135, 190] for deck.gl color accessors."""
    value = color.lstrip("#")
    if len(value) == 3:
        value = "".join(ch * 2 for ch in value)
    return [int(value[i:i + 2], 16) for i in (0, 2, 4)]


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from a service payload (accepts a 'Z' suffix)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable timestamp: {value!r}")
        return None
