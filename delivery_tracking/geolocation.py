# delivery-tracking/delivery_tracking/geolocation.py
"""
Position acquisition for the delivery person.

A provider answers "where am I" as (lat, lng), or raises PositionUnavailable.
``acquire_position`` never raises: when the provider fails or takes too long
it falls back to config.DEFAULT_POSITION.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Tuple

import requests

from . import config
from .coordinates import is_valid_gps

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]


class PositionUnavailable(Exception):
    """The provider could not determine a position."""


class PositionProvider(Protocol):
    def current_position(self, timeout: float) -> LatLng:
        ...


@dataclass
class FixedPosition:
    """Always answers the same position. Used by tests and CLI flags."""
    lat: float
    lng: float

    def current_position(self, timeout: float) -> LatLng:
        return (self.lat, self.lng)


class IpGeolocation:
    """Approximate position from the public IP address (ip-api.com format)."""

    def __init__(self, session: Optional[requests.Session] = None, url: str = None):
        self.session = session or requests.Session()
        self.url = url or config.GEOLOCATION_URL

    def current_position(self, timeout: float) -> LatLng:
        try:
            response = self.session.get(self.url, timeout=timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            raise PositionUnavailable("Geolocation request timed out") from e
        except (requests.exceptions.RequestException, ValueError) as e:
            raise PositionUnavailable(f"Geolocation request failed: {e}") from e

        if data.get("status", "success") != "success":
            raise PositionUnavailable(f"Geolocation lookup failed: {data.get('message', 'unknown')}")
        try:
            return (float(data["lat"]), float(data["lon"]))
        except (KeyError, TypeError, ValueError) as e:
            raise PositionUnavailable(f"Geolocation response parsing failed: {e}") from e


def acquire_position(
    provider: Optional[PositionProvider],
    timeout: float = None,
) -> Tuple[LatLng, bool]:
    """
    Ask ``provider`` for the current position.

    Returns:
        ((lat, lng), is_fallback). The default position is used when there
        is no provider, it fails, or it answers with an invalid position.
    """
    timeout = config.GEOLOCATION_TIMEOUT_SECONDS if timeout is None else timeout
    if provider is None:
        return config.DEFAULT_POSITION, True

    try:
        lat, lng = provider.current_position(timeout)
    except PositionUnavailable as e:
        logger.warning(f"Couldn't get current location, using default: {e}")
        return config.DEFAULT_POSITION, True

    if not is_valid_gps((lng, lat)):
        logger.warning(f"Provider returned invalid position ({lat}, {lng}), using default")
        return config.DEFAULT_POSITION, True
    return (lat, lng), False
