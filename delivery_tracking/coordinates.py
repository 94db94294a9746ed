# delivery-tracking/delivery_tracking/coordinates.py
"""
Coordinate normalization for heterogeneous location payloads.

Backend services embed locations in several shapes. Each known shape has its
own decoder; decoders are tried in a fixed precedence order and the first
one whose structure matches decides the outcome, even if a later shape would
also match:

1. bare pair            [lng, lat]
2. coordinates object   {"coordinates": [lng, lat]}
3. nested GeoJSON       {"location": {"coordinates": [lng, lat]}}
4. lat/lng fields       {"lat": ..., "lng": ...}
5. latitude/longitude   {"latitude": ..., "longitude": ...}

All coordinate pairs in this package are (longitude, latitude).
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from .errors import InvalidLocationData

logger = logging.getLogger(__name__)

CoordinatePair = Tuple[float, float]


class LocationShape(Enum):
    """The location payload shapes the normalizer understands."""
    PAIR = "pair"
    COORDINATES = "coordinates"
    NESTED_LOCATION = "nested_location"
    LAT_LNG = "lat_lng"
    LATITUDE_LONGITUDE = "latitude_longitude"


@dataclass(frozen=True)
class DecodedLocation:
    """Result of a successful decode: which shape matched and the pair."""
    shape: LocationShape
    coordinates: CoordinatePair


class _NoMatch:
    """Sentinel: the decoder's structure did not match the payload."""


NO_MATCH = _NoMatch()

# A decoder returns NO_MATCH when the structure is foreign, None when the
# structure matches but the values are unusable, or the decoded pair.
Decoder = Callable[[Any], Any]


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def _pair(lng: Any, lat: Any) -> Optional[CoordinatePair]:
    lng_f, lat_f = _to_float(lng), _to_float(lat)
    if lng_f is None or lat_f is None:
        return None
    return (lng_f, lat_f)


def _is_pair_like(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) == 2


def _decode_pair(data: Any) -> Any:
    if not _is_pair_like(data):
        return NO_MATCH
    return _pair(data[0], data[1])


def _decode_coordinates(data: Any) -> Any:
    if not isinstance(data, Mapping) or not _is_pair_like(data.get("coordinates")):
        return NO_MATCH
    coords = data["coordinates"]
    return _pair(coords[0], coords[1])


def _decode_nested_location(data: Any) -> Any:
    if not isinstance(data, Mapping):
        return NO_MATCH
    location = data.get("location")
    if not isinstance(location, Mapping) or not _is_pair_like(location.get("coordinates")):
        return NO_MATCH
    coords = location["coordinates"]
    return _pair(coords[0], coords[1])


def _decode_lat_lng(data: Any) -> Any:
    if not isinstance(data, Mapping) or "lat" not in data or "lng" not in data:
        return NO_MATCH
    return _pair(data["lng"], data["lat"])


def _decode_latitude_longitude(data: Any) -> Any:
    if not isinstance(data, Mapping) or "latitude" not in data or "longitude" not in data:
        return NO_MATCH
    return _pair(data["longitude"], data["latitude"])


DECODERS: List[Tuple[LocationShape, Decoder]] = [
    (LocationShape.PAIR, _decode_pair),
    (LocationShape.COORDINATES, _decode_coordinates),
    (LocationShape.NESTED_LOCATION, _decode_nested_location),
    (LocationShape.LAT_LNG, _decode_lat_lng),
    (LocationShape.LATITUDE_LONGITUDE, _decode_latitude_longitude),
]
"""Decoders in precedence order. Order matters for ambiguous payloads."""


def decode(location_data: Any) -> Optional[DecodedLocation]:
    """
    Decode a location payload, reporting which shape matched.

    Returns:
        DecodedLocation, or None when no shape matches or the matching
        shape holds non-numeric / non-finite values.
    """
    if location_data is None:
        return None
    for shape, decoder in DECODERS:
        result = decoder(location_data)
        if result is NO_MATCH:
            continue
        if result is None:
            logger.debug(f"Location matched {shape.value} but values are unusable: {location_data!r}")
            return None
        return DecodedLocation(shape, result)
    return None


def normalize(location_data: Any) -> Optional[CoordinatePair]:
    """
    Resolve any supported location payload into a canonical (lng, lat) pair.

    Pure function: no range validation is done here, use is_valid_gps().

    Example:
        >>> normalize({"lat": 6.92, "lng": 79.86})
        (79.86, 6.92)
    """
    decoded = decode(location_data)
    return decoded.coordinates if decoded else None


def is_valid_gps(pair: Any) -> bool:
    """True when ``pair`` is a finite (lng, lat) within [-180,180] x [-90,90]."""
    if not _is_pair_like(pair):
        return False
    checked = _pair(pair[0], pair[1])
    if checked is None:
        return False
    lng, lat = checked
    return -180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0


def location_validation_error(location_data: Any) -> Optional[str]:
    """Human-readable reason why ``location_data`` is unusable, or None."""
    if location_data is None:
        return "Location data is null or undefined"
    coordinates = normalize(location_data)
    if coordinates is None:
        return "Location data is in an unrecognized format"
    if not is_valid_gps(coordinates):
        return "Coordinates are outside valid GPS range"
    return None


def valid_coordinates(location_data: Any, name: str = "location") -> Optional[CoordinatePair]:
    """
    Normalize and range-check in one step.

    Invalid data is logged as a warning and reported as None so callers can
    skip the affected marker or candidate without raising.
    """
    coordinates = normalize(location_data)
    if coordinates is None or not is_valid_gps(coordinates):
        logger.warning(f"Invalid {name} coordinates: {location_data!r} ({location_validation_error(location_data)})")
        return None
    return coordinates


def swap_axes(pair: CoordinatePair) -> CoordinatePair:
    """Swap a latitude-first pair into (lng, lat) order, or back."""
    return (pair[1], pair[0])


def require_coordinates(location_data: Any, name: str = "location") -> CoordinatePair:
    """
    Strict variant of valid_coordinates() for user-supplied input.

    Raises:
        InvalidLocationData: with the reason from location_validation_error()
    """
    reason = location_validation_error(location_data)
    if reason is not None:
        raise InvalidLocationData(f"Invalid {name}: {reason}")
    return normalize(location_data)
