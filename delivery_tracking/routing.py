# delivery-tracking/delivery_tracking/routing.py
"""
Route resolution via the directions provider.

``RouteResolver.compute_route`` issues exactly one directions request per
call (no batching, no caching) and parses the first route. ``draw_route``
and ``clear_route`` apply a result to a MapContext.

Coordinates go to the provider in lng,lat order, the same order used
everywhere in this package.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import requests

from . import config
from .coordinates import CoordinatePair, is_valid_gps
from .errors import ConfigurationError, InvalidWaypoints, NoRouteFound
from .models import Route
from .rendering import MapContext, RouteLayer
from .utils import meters_to_km, seconds_to_eta_minutes

logger = logging.getLogger(__name__)


def _full_profile(profile: str) -> str:
    """'driving' -> 'mapbox/driving'; already-qualified profiles pass through."""
    return profile if "/" in profile else f"mapbox/{profile}"


def validate_waypoints(waypoints: Sequence[Any]) -> List[CoordinatePair]:
    """
    Check the route precondition.

    Raises:
        InvalidWaypoints: fewer than two waypoints, or any outside GPS range
    """
    if waypoints is None or len(waypoints) < 2:
        raise InvalidWaypoints(f"At least 2 waypoints are required, got {len(waypoints or [])}")
    for index, waypoint in enumerate(waypoints):
        if not is_valid_gps(waypoint):
            raise InvalidWaypoints(f"Waypoint {index} is not a valid coordinate: {waypoint!r}")
    return [(float(w[0]), float(w[1])) for w in waypoints]


class RouteResolver:
    """
    Directions API client.

    Args:
        session: Optional pre-configured session (tests pass a fake)
        token: Provider access token; defaults to config.MAPBOX_TOKEN
        base_url: Provider base URL; defaults to config.DIRECTIONS_API_URL
        profile: Default routing profile
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        token: str = None,
        base_url: str = None,
        profile: str = None,
        timeout: float = None,
    ):
        self.session = session or requests.Session()
        self.token = config.MAPBOX_TOKEN if token is None else token
        self.base_url = (base_url or config.DIRECTIONS_API_URL).rstrip("/")
        self.profile = profile or config.DIRECTIONS_PROFILE
        self.timeout = timeout or config.HTTP_TIMEOUT_SECONDS

    def directions_url(self, waypoints: Sequence[CoordinatePair], profile: str = None) -> str:
        coordinates = ";".join(f"{lng},{lat}" for lng, lat in waypoints)
        return f"{self.base_url}/directions/v5/{_full_profile(profile or self.profile)}/{coordinates}"

    def compute_route(self, waypoints: Sequence[Any], profile: str = None) -> Route:
        """
        Compute a route through ``waypoints`` in the given order.

        Args:
            waypoints: Two or more (lng, lat) pairs
            profile: Routing profile, e.g. "driving" or "mapbox/walking"

        Returns:
            Route with geometry, ETA minutes (rounded up) and distance km

        Raises:
            InvalidWaypoints: precondition failed; no request is made
            ConfigurationError: no access token; no request is made
            NoRouteFound: provider error, or an empty route set
        """
        points = validate_waypoints(waypoints)
        if not self.token:
            raise ConfigurationError("Map access token is missing")

        params = {
            "alternatives": "false",
            "geometries": "geojson",
            "overview": "full",
            "steps": "false",
            "access_token": self.token,
        }
        try:
            response = self.session.get(self.directions_url(points, profile), params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.Timeout as e:
            logger.warning("Directions request timed out")
            raise NoRouteFound("Directions request timed out") from e
        except requests.exceptions.RequestException as e:
            logger.warning(f"Directions request failed: {e}")
            raise NoRouteFound(f"Directions request failed: {e}") from e
        except ValueError as e:
            logger.warning(f"Directions response parsing failed: {e}")
            raise NoRouteFound("Directions response could not be read") from e

        return _parse_route(data, points)


def _parse_route(data: Dict[str, Any], waypoints: List[CoordinatePair]) -> Route:
    routes = data.get("routes") if isinstance(data, dict) else None
    if not routes:
        code = data.get("code") if isinstance(data, dict) else None
        logger.warning(f"Directions returned no route: {code}")
        raise NoRouteFound("No routes found between these locations.")

    first = routes[0]
    try:
        geometry = [(float(c[0]), float(c[1])) for c in first["geometry"]["coordinates"]]
        route = Route(
            geometry=geometry,
            duration_minutes=seconds_to_eta_minutes(float(first["duration"])),
            distance_km=meters_to_km(float(first.get("distance", 0))),
            waypoints=list(waypoints),
        )
    except (KeyError, IndexError, TypeError, ValueError) as e:
        logger.warning(f"Directions response parsing failed: {e}")
        raise NoRouteFound("Directions response could not be read") from e

    logger.info(f"Route computed: {route.distance_km} km, ETA {route.duration_minutes} min")
    return route


@dataclass
class RouteOptions:
    color: str = config.ROUTE_COLOR
    width: int = config.ROUTE_WIDTH
    opacity: float = config.ROUTE_OPACITY
    fit_bounds: bool = True
    padding: int = config.ROUTE_FIT_PADDING_PX


def draw_route(context: MapContext, route: Route, options: RouteOptions = None) -> None:
    """Replace the context's route layer with ``route`` and optionally fit to it."""
    options = options or RouteOptions()
    context.replace_route_layer(
        RouteLayer(
            geometry=list(route.geometry),
            key=config.ROUTE_LAYER_KEY,
            color=options.color,
            width=options.width,
            opacity=options.opacity,
        )
    )
    if options.fit_bounds:
        context.fit_to_points(route.geometry, padding=options.padding, max_zoom=config.MAX_ZOOM)


def clear_route(context: MapContext) -> bool:
    return context.remove_route_layer()
