# delivery-tracking/delivery_tracking/__init__.py

from .models import Order, OrderStatus, Restaurant, Customer, DeliveryPerson, NearbyOrderCandidate, Route
from .coordinates import normalize, is_valid_gps, location_validation_error
from .utils import distance_km, offset
from .errors import (
    TrackingError,
    ConfigurationError,
    ApiError,
    NoRouteFound,
    InvalidWaypoints,
    InvalidLocationData,
    AssignmentConflict,
    UnknownOrder,
)
from .api import ServiceClient
from .rendering import MapContext, MapState
from .routing import RouteResolver, draw_route, clear_route
from .tracking import TrackingOrchestrator
from .nearby import NearbyOrdersFlow, filter_orders
from .scheduler import Timers
from .status import progress_step, progress_indicator

__version__ = "1.0.0"
__author__ = "Food Delivery Platform Team"

__all__ = [
    # Models
    "Order",
    "OrderStatus",
    "Restaurant",
    "Customer",
    "DeliveryPerson",
    "NearbyOrderCandidate",
    "Route",
    # Core
    "MapContext",
    "MapState",
    "RouteResolver",
    "ServiceClient",
    "TrackingOrchestrator",
    "NearbyOrdersFlow",
    "Timers",
    # Functions
    "normalize",
    "is_valid_gps",
    "location_validation_error",
    "distance_km",
    "offset",
    "draw_route",
    "clear_route",
    "filter_orders",
    "progress_step",
    "progress_indicator",
    # Errors
    "TrackingError",
    "ConfigurationError",
    "ApiError",
    "NoRouteFound",
    "InvalidWaypoints",
    "InvalidLocationData",
    "AssignmentConflict",
    "UnknownOrder",
]
