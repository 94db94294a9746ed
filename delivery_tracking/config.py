# delivery-tracking/delivery_tracking/config.py
"""
Configuration parameters for the delivery tracking client.

This module centralizes all tunable parameters, making it easy to:
- Point the client at different service deployments
- Adjust polling and timeout behavior
- Tweak how maps, markers and routes are drawn

Deployment-specific values (access token, service base URLs) are read from
the environment at import time. Everything else can be overridden at runtime
by assigning to the module attribute.
"""

import os
from typing import Final, FrozenSet, Tuple


def _env(*names: str, default: str = "") -> str:
    """Return the first non-empty environment variable among ``names``."""
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return default


# =============================================================================
# PROVIDER ACCESS
# =============================================================================

MAPBOX_TOKEN: str = _env("MAPBOX_TOKEN", "VITE_MAPBOX_TOKEN")
"""
Map/routing provider access token.
An empty string means the token is absent, which is fatal for every
map-bearing view (they degrade to the fallback summary).
"""

DIRECTIONS_API_URL: str = _env("DIRECTIONS_API_URL", default="https://api.mapbox.com")
"""Base URL of the directions provider."""

DIRECTIONS_PROFILE: str = "mapbox/driving"
"""Routing profile. Options: mapbox/driving, mapbox/walking, mapbox/cycling."""

MAP_STYLE: str = "mapbox://styles/mapbox/streets-v12"
"""Base map style used when rendering a view."""

# =============================================================================
# SERVICE ENDPOINTS
# =============================================================================

ORDER_API_URL: str = _env("ORDER_API_URL", "VITE_ORDERS_API_URL", default="http://localhost:5001")
"""Order service base URL (orders, nearby orders)."""

DELIVERY_API_URL: str = _env("DELIVERY_API_URL", "VITE_DELIVERY_API_URL", default="http://localhost:5002")
"""Delivery service base URL (delivery persons, assignment, status updates)."""

RESTAURANT_API_URL: str = _env("RESTAURANT_API_URL", "VITE_USER_API_URL", default="http://localhost:5003")
"""Restaurant/user service base URL (restaurants, customers)."""

NOTIFICATION_API_URL: str = _env("NOTIFICATION_API_URL", default="http://localhost:5004")
"""Notification service base URL."""

GEOLOCATION_URL: str = _env("GEOLOCATION_URL", default="http://ip-api.com/json")
"""IP geolocation endpoint used when no device position is supplied."""

HTTP_TIMEOUT_SECONDS: float = 10.0
"""Timeout for service and directions requests. Fail fast to keep views responsive."""

# =============================================================================
# TIMING
# =============================================================================

POLL_INTERVAL_SECONDS: float = 60.0
"""Refresh interval for a tracked order while it is on the way."""

MAP_INIT_TIMEOUT_SECONDS: Final[float] = 15.0
"""Watchdog for map initialization. Past this, the view reports a timeout."""

GEOLOCATION_TIMEOUT_SECONDS: float = 5.0
"""Maximum time spent acquiring the delivery person's position."""

TICK_SECONDS: float = 5.0
"""How often the dashboard wakes up to run due timers."""

# =============================================================================
# ORDER STATUS RULES
# =============================================================================

POLLING_STATUSES: Final[FrozenSet[str]] = frozenset({"assigned", "picked_up"})
"""Statuses for which a tracking view keeps polling the order service."""

ASSIGNMENT_BLOCKING_STATUSES: Final[FrozenSet[str]] = frozenset({"assigned", "picked_up", "delivered"})
"""An order in one of these statuses can no longer be claimed."""

DELIVERY_LOCATION_LAT_FIRST: bool = True
"""
The order service stores deliveryLocation.location.coordinates as
[latitude, longitude]. When True, the customer coordinate is swapped into
canonical [longitude, latitude] order on extraction.
"""

# =============================================================================
# FALLBACK POSITIONS
# =============================================================================

DEFAULT_POSITION: Tuple[float, float] = (6.915582, 79.974036)
"""(lat, lng) used when the delivery person's position cannot be acquired."""

DEFAULT_MAP_CENTER: Tuple[float, float] = (80.0379, 7.0698)
"""[lng, lat] map center when no restaurant coordinate is known."""

DEMO_OFFSET_KM: float = 0.5
"""Distance of the synthetic delivery-person position from the restaurant."""

DEMO_OFFSET_DIRECTION: str = "northeast"
"""Compass direction of the synthetic delivery-person position."""

# =============================================================================
# MAP PRESENTATION
# =============================================================================

MAX_ZOOM: Final[float] = 15.0
"""Upper bound on zoom when fitting the viewport to points or a route."""

DEFAULT_ZOOM: float = 14.0
"""Zoom used when the viewport cannot be fitted."""

FIT_PADDING_PX: int = 80
"""Padding around all active points when fitting the viewport."""

ROUTE_FIT_PADDING_PX: int = 50
"""Padding around the route geometry when fitting to a drawn route."""

VIEWPORT_SIZE_PX: Tuple[int, int] = (800, 500)
"""(width, height) assumed when computing a fitted zoom level."""

ROUTE_LAYER_KEY: Final[str] = "route"
"""Fixed key of the single route layer on a map."""

ROUTE_COLOR: str = "#3887be"
ROUTE_WIDTH: int = 5
ROUTE_OPACITY: float = 0.75

MARKER_COLORS = {
    "restaurant": "#e74c3c",
    "customer": "#2ecc71",
    "deliveryPerson": "#3498db",
    "order": "#f39c12",
}
"""Marker fill color per role. Nearby-order markers share the 'order' color."""

MARKER_RADIUS_M: int = 40
"""Marker radius in meters (scaled up at low zoom by the renderer)."""
