# delivery-tracking/delivery_tracking/rendering.py
"""
Marker and map rendering.

A MapContext is the single owner of everything drawn on one view's map:
the markers (one per role), the route layer (at most one), the viewport and
the map lifecycle. Views create one context each and pass it explicitly to
the route resolver and the orchestrators; contexts are never shared.

Rendering goes through pydeck. The context itself is plain data, so the
upsert/prune/fit rules work (and are tested) without a browser.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

import pydeck as pdk

from . import config
from .coordinates import CoordinatePair, is_valid_gps, valid_coordinates
from .utils import hex_to_rgb

logger = logging.getLogger(__name__)

ROLE_RESTAURANT = "restaurant"
ROLE_CUSTOMER = "customer"
ROLE_DELIVERY_PERSON = "deliveryPerson"
ORDER_ROLE_PREFIX = "order-"

# Web Mercator world size in pixels at zoom 0 (512px vector tiles)
WORLD_SIZE_PX = 512


def order_role(order_id: str) -> str:
    return f"{ORDER_ROLE_PREFIX}{order_id}"


def default_color(role: str) -> str:
    if role.startswith(ORDER_ROLE_PREFIX):
        return config.MARKER_COLORS["order"]
    return config.MARKER_COLORS.get(role, config.MARKER_COLORS["order"])


# =============================================================================
# MAP LIFECYCLE
# =============================================================================

class MapState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    LOADED = "loaded"
    ERROR = "error"
    TIMED_OUT = "timed_out"


@dataclass
class MapLifecycle:
    """
    uninitialized -> initializing -> loaded | error | timed_out

    ``retry()`` is the only way back to uninitialized. Late load/error
    reports for an attempt that already ended are ignored.
    """
    state: MapState = MapState.UNINITIALIZED
    error: Optional[str] = None
    started_at: Optional[float] = None

    def begin(self, now: float) -> bool:
        if self.state is not MapState.UNINITIALIZED:
            return False
        self.state = MapState.INITIALIZING
        self.started_at = now
        self.error = None
        return True

    def mark_loaded(self) -> bool:
        if self.state is not MapState.INITIALIZING:
            logger.debug(f"Ignoring map load report in state {self.state.value}")
            return False
        self.state = MapState.LOADED
        return True

    def mark_error(self, message: str) -> bool:
        """Record a map failure. Configuration errors may arrive before begin()."""
        if self.state not in (MapState.UNINITIALIZED, MapState.INITIALIZING):
            logger.debug(f"Ignoring map error in state {self.state.value}: {message}")
            return False
        self.state = MapState.ERROR
        self.error = message
        return True

    def check_watchdog(self, now: float, timeout: float = None) -> bool:
        """Move initializing -> timed_out once ``timeout`` has elapsed. True if it fired."""
        timeout = config.MAP_INIT_TIMEOUT_SECONDS if timeout is None else timeout
        if self.state is not MapState.INITIALIZING or self.started_at is None:
            return False
        if now - self.started_at < timeout:
            return False
        self.state = MapState.TIMED_OUT
        self.error = "Map initialization timed out"
        logger.warning(f"Map did not load within {timeout:.0f}s")
        return True

    def retry(self) -> None:
        self.state = MapState.UNINITIALIZED
        self.error = None
        self.started_at = None

    @property
    def is_loaded(self) -> bool:
        return self.state is MapState.LOADED

    @property
    def is_failed(self) -> bool:
        return self.state in (MapState.ERROR, MapState.TIMED_OUT)


# =============================================================================
# MAP CONTENTS
# =============================================================================

@dataclass
class Marker:
    role: str
    coordinates: CoordinatePair
    title: str
    color: str


@dataclass
class RouteLayer:
    """The one route drawn on a map. Replaced wholesale, never merged."""
    geometry: List[CoordinatePair]
    key: str = config.ROUTE_LAYER_KEY
    color: str = config.ROUTE_COLOR
    width: int = config.ROUTE_WIDTH
    opacity: float = config.ROUTE_OPACITY


@dataclass
class Viewport:
    longitude: float = config.DEFAULT_MAP_CENTER[0]
    latitude: float = config.DEFAULT_MAP_CENTER[1]
    zoom: float = config.DEFAULT_ZOOM


def _mercator_y(lat: float) -> float:
    sin = math.sin(math.radians(lat))
    sin = min(max(sin, -0.9999), 0.9999)
    return 0.5 - math.log((1 + sin) / (1 - sin)) / (4 * math.pi)


def _axis_zoom(span: float, available_px: float) -> float:
    if span <= 0:
        return math.inf
    return math.log2(available_px / (WORLD_SIZE_PX * span))


def fitted_viewport(
    points: Sequence[CoordinatePair],
    padding: int = config.FIT_PADDING_PX,
    max_zoom: float = config.MAX_ZOOM,
    size: Sequence[int] = config.VIEWPORT_SIZE_PX,
) -> Viewport:
    """
    Smallest Web Mercator viewport showing every point with ``padding``
    pixels to spare on each side, capped at ``max_zoom``.
    """
    lngs = [p[0] for p in points]
    lats = [p[1] for p in points]
    width = max(1, size[0] - 2 * padding)
    height = max(1, size[1] - 2 * padding)

    span_x = (max(lngs) - min(lngs)) / 360
    span_y = abs(_mercator_y(max(lats)) - _mercator_y(min(lats)))
    zoom = min(_axis_zoom(span_x, width), _axis_zoom(span_y, height), max_zoom)

    return Viewport(
        longitude=(min(lngs) + max(lngs)) / 2,
        latitude=(min(lats) + max(lats)) / 2,
        zoom=max(0.0, zoom),
    )


class MapContext:
    """
    Owner of one view's map.

    Attributes:
        markers: Role -> Marker. At most one marker per role.
        route_layer: The single route layer, or None
        viewport: Current camera
        lifecycle: Map initialization state
    """

    def __init__(self, token: str = None, style: str = None, center: CoordinatePair = None):
        self.token = config.MAPBOX_TOKEN if token is None else token
        self.style = style or config.MAP_STYLE
        self.markers: Dict[str, Marker] = {}
        self.route_layer: Optional[RouteLayer] = None
        self.lifecycle = MapLifecycle()
        center = center or config.DEFAULT_MAP_CENTER
        self.viewport = Viewport(longitude=center[0], latitude=center[1])

    # -------------------------------------------------------------------------
    # Markers
    # -------------------------------------------------------------------------

    def upsert_marker(self, role: str, coordinates: CoordinatePair, title: str, color: str = None) -> bool:
        """
        Create the marker for ``role`` or move the existing one.

        Invalid coordinates are logged and skipped; the previous marker for
        the role (if any) is left untouched.

        Returns:
            True if a marker now sits at ``coordinates``
        """
        coordinates = valid_coordinates(coordinates, f"'{role}' marker")
        if coordinates is None:
            return False

        marker = self.markers.get(role)
        if marker is None:
            self.markers[role] = Marker(role, coordinates, title, color or default_color(role))
            logger.debug(f"Added marker '{role}' at {coordinates}")
        else:
            marker.coordinates = coordinates
            marker.title = title
            if color:
                marker.color = color
            logger.debug(f"Moved marker '{role}' to {coordinates}")
        return True

    def remove_marker(self, role: str) -> bool:
        return self.markers.pop(role, None) is not None

    def prune_order_markers(self, active_order_ids: Iterable[str]) -> List[str]:
        """Remove ``order-<id>`` markers whose id is not in ``active_order_ids``."""
        keep = {order_role(str(i)) for i in active_order_ids}
        stale = [r for r in self.markers if r.startswith(ORDER_ROLE_PREFIX) and r not in keep]
        for role in stale:
            del self.markers[role]
        if stale:
            logger.debug(f"Pruned {len(stale)} order markers")
        return stale

    def marker_position(self, role: str) -> Optional[CoordinatePair]:
        marker = self.markers.get(role)
        return marker.coordinates if marker else None

    # -------------------------------------------------------------------------
    # Route layer
    # -------------------------------------------------------------------------

    def replace_route_layer(self, layer: RouteLayer) -> None:
        """Remove the current route layer, then add ``layer`` under the same key."""
        self.remove_route_layer()
        self.route_layer = layer

    def remove_route_layer(self) -> bool:
        existed = self.route_layer is not None
        self.route_layer = None
        return existed

    # -------------------------------------------------------------------------
    # Viewport
    # -------------------------------------------------------------------------

    def fit_to_points(
        self,
        points: Optional[Sequence[CoordinatePair]] = None,
        padding: int = config.FIT_PADDING_PX,
        max_zoom: float = config.MAX_ZOOM,
    ) -> bool:
        """
        Fit the viewport to ``points`` (default: every marker).

        Needs at least two valid points; otherwise logs and leaves the
        viewport alone.
        """
        if points is None:
            points = [m.coordinates for m in self.markers.values()]
        valid = [p for p in points if is_valid_gps(p)]
        if len(valid) < 2:
            logger.info(f"Not enough valid points to fit map ({len(valid)})")
            return False
        self.viewport = fitted_viewport(valid, padding=padding, max_zoom=max_zoom)
        return True

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _marker_layer(self) -> pdk.Layer:
        data = [
            {
                "position": list(m.coordinates),
                "color": hex_to_rgb(m.color) + [230],
                "title": m.title,
                "role": m.role,
            }
            for m in self.markers.values()
        ]
        return pdk.Layer(
            "ScatterplotLayer",
            data,
            id="markers",
            get_position="position",
            get_fill_color="color",
            get_line_color=[255, 255, 255],
            get_radius=config.MARKER_RADIUS_M,
            radius_min_pixels=6,
            radius_max_pixels=14,
            line_width_min_pixels=2,
            stroked=True,
            filled=True,
            pickable=True,
        )

    def _route_layer(self, route: RouteLayer) -> pdk.Layer:
        return pdk.Layer(
            "PathLayer",
            [{"path": [list(p) for p in route.geometry], "title": "Route"}],
            id=route.key,
            get_path="path",
            get_color=hex_to_rgb(route.color),
            get_width=route.width,
            width_units="pixels",
            opacity=route.opacity,
            cap_rounded=True,
            joint_rounded=True,
        )

    def build_deck(self) -> pdk.Deck:
        layers = []
        if self.route_layer is not None:
            layers.append(self._route_layer(self.route_layer))
        layers.append(self._marker_layer())
        view_state = pdk.ViewState(
            longitude=self.viewport.longitude,
            latitude=self.viewport.latitude,
            zoom=self.viewport.zoom,
        )
        return pdk.Deck(
            layers=layers,
            initial_view_state=view_state,
            map_provider="mapbox",
            map_style=self.style,
            api_keys={"mapbox": self.token},
            tooltip={"text": "{title}"},
        )

    def render(self) -> Optional[pdk.Deck]:
        """
        Build the deck, containing any provider failure.

        Returns:
            The deck, or None after moving the lifecycle to ``error``
        """
        try:
            return self.build_deck()
        except Exception as e:
            logger.error(f"Map rendering failed: {e}")
            self.lifecycle.mark_error(f"Map rendering failed: {e}")
            return None

    def to_html(self, path: str) -> Optional[str]:
        deck = self.render()
        if deck is None:
            return None
        deck.to_html(path, open_browser=False, notebook_display=False)
        logger.info(f"Map written to {path}")
        return path

    def teardown(self) -> None:
        """Drop all markers and the route layer (view unmounted)."""
        self.markers.clear()
        self.route_layer = None

    def __repr__(self) -> str:
        route = "route" if self.route_layer else "no route"
        return f"MapContext({len(self.markers)} markers, {route}, {self.lifecycle.state.value})"
