# delivery-tracking/delivery_tracking/tracking.py
"""
Order tracking orchestrator.

Drives one customer-facing tracking view:

    fetch order -> fetch restaurant / customer -> fetch delivery person
        -> place markers -> compute route -> ETA + progress

Each step finishes before the next starts. A refresh runs the whole chain
again, either on demand or from the poll interval, which only runs while
the order is on the way.

Every response carries a ticket from a Sequencer and is applied only when
it is the newest one seen for its resource and the view is still mounted.
A failed sub-fetch is recorded in ``error_banner`` and never discards the
last state that loaded successfully.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from . import config
from .api import ServiceClient
from .coordinates import CoordinatePair, is_valid_gps
from .errors import ApiError, ConfigurationError, InvalidWaypoints, NoRouteFound
from .models import Customer, DeliveryPerson, Order, Restaurant, Route
from .rendering import ROLE_CUSTOMER, ROLE_DELIVERY_PERSON, ROLE_RESTAURANT, MapContext
from .routing import RouteResolver, clear_route, draw_route
from .scheduler import Sequencer, Timers
from .status import ProgressIndicator, progress_indicator, should_poll, status_description
from .utils import offset

logger = logging.getLogger(__name__)

MISSING_TOKEN_MESSAGE = "Map access token is missing. Showing order details without a map."


@dataclass
class FallbackSummary:
    """What a tracking view shows when the map cannot be displayed."""
    order_id: str
    status: str
    description: str
    restaurant_name: str
    customer_name: str
    delivery_person_name: str
    eta_minutes: Optional[int]
    approximate_position: bool = False


class TrackingOrchestrator:
    """
    State and behavior of one mounted tracking view.

    Args:
        order_id: Order to track
        client: Service client (defaults to one built from config)
        resolver: Directions client
        context: Map owned by this view
        timers: Timer registry driven by the host
        delivery_person_id: Used when the order does not name one yet
    """

    def __init__(
        self,
        order_id: str,
        client: Optional[ServiceClient] = None,
        resolver: Optional[RouteResolver] = None,
        context: Optional[MapContext] = None,
        timers: Optional[Timers] = None,
        delivery_person_id: Optional[str] = None,
    ):
        self.order_id = order_id
        self.client = client if client is not None else ServiceClient()
        self.resolver = resolver if resolver is not None else RouteResolver()
        self.context = context if context is not None else MapContext()
        self.timers = timers if timers is not None else Timers()
        self.delivery_person_id = delivery_person_id
        self.sequencer = Sequencer()

        self.order: Optional[Order] = None
        self.restaurant: Optional[Restaurant] = None
        self.customer: Optional[Customer] = None
        self.delivery_person: Optional[DeliveryPerson] = None
        self.route: Optional[Route] = None

        self.error_banner: Optional[str] = None
        self.route_error: Optional[str] = None
        self.mounted = False
        self.loading = False

        self.poll_timer = f"poll:{order_id}"
        self.watchdog_timer = f"map-watchdog:{order_id}"

    # -------------------------------------------------------------------------
    # Mount / unmount
    # -------------------------------------------------------------------------

    def mount(self) -> None:
        """Start the map lifecycle and load the order."""
        self.mounted = True
        self._start_map()
        self.refresh()

    def unmount(self) -> None:
        """Stop timers and release map resources. Late responses are discarded."""
        self.mounted = False
        self.timers.clear(self.poll_timer)
        self.timers.clear(self.watchdog_timer)
        self.context.teardown()
        logger.debug(f"Tracking view for {self.order_id} unmounted")

    def _start_map(self) -> None:
        lifecycle = self.context.lifecycle
        if not self.context.token:
            logger.error("Map access token is missing")
            lifecycle.mark_error(MISSING_TOKEN_MESSAGE)
            return
        if lifecycle.begin(self.timers.clock()):
            self.timers.set_timeout(self.watchdog_timer, config.MAP_INIT_TIMEOUT_SECONDS, self._on_watchdog)

    def _on_watchdog(self) -> None:
        self.context.lifecycle.check_watchdog(self.timers.clock())

    # -------------------------------------------------------------------------
    # Map lifecycle reports from the host
    # -------------------------------------------------------------------------

    def mark_map_loaded(self) -> None:
        if not self.context.lifecycle.mark_loaded():
            return
        self.timers.clear(self.watchdog_timer)
        logger.info(f"Map loaded for order {self.order_id}")
        self.draw_markers_and_route()

    def mark_map_error(self, message: str) -> None:
        if self.context.lifecycle.mark_error(message):
            self.timers.clear(self.watchdog_timer)
            logger.error(f"Map failed for order {self.order_id}: {message}")

    def retry_map(self) -> None:
        """Reset a failed or timed-out map and initialize it again."""
        self.timers.clear(self.watchdog_timer)
        self.context.lifecycle.retry()
        if self.mounted:
            self._start_map()

    @property
    def show_fallback(self) -> bool:
        return self.context.lifecycle.is_failed

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    def _accept(self, resource: str, ticket: int) -> bool:
        if not self.mounted:
            logger.debug(f"Discarding {resource} response: view unmounted")
            return False
        if not self.sequencer.accept(resource, ticket):
            logger.debug(f"Discarding stale {resource} response (ticket {ticket})")
            return False
        return True

    def fetch_order(self) -> Optional[Order]:
        """Load the order. On failure the banner is set and the last order kept."""
        ticket = self.sequencer.issue()
        try:
            data = self.client.get_order(self.order_id)
        except ApiError as e:
            if self.mounted:
                logger.error(f"Failed to fetch order {self.order_id}: {e.message}")
                self.error_banner = e.message
            return self.order
        self.apply_order(ticket, data)
        return self.order

    def apply_order(self, ticket: int, data: Dict[str, Any]) -> bool:
        if not self._accept("order", ticket):
            return False
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed order {self.order_id}: {data!r}")
            return False
        self.order = Order.from_dict(data)
        self.error_banner = None
        logger.info(f"Order {self.order_id} is {self.order.raw_status}")
        self._update_polling()
        return True

    def fetch_restaurant(self) -> Optional[Restaurant]:
        restaurant_id = self.order.restaurant_id if self.order else None
        if not restaurant_id:
            return self.restaurant
        ticket = self.sequencer.issue()
        try:
            data = self.client.get_restaurant(restaurant_id)
        except ApiError as e:
            logger.warning(f"Failed to fetch restaurant {restaurant_id}: {e.message}")
            return self.restaurant
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed restaurant {restaurant_id}")
        elif self._accept("restaurant", ticket):
            self.restaurant = Restaurant.from_dict(data)
        return self.restaurant

    def fetch_customer(self) -> Optional[Customer]:
        customer_id = self.order.customer_id if self.order else None
        if not customer_id:
            return self.customer
        ticket = self.sequencer.issue()
        try:
            data = self.client.get_customer(customer_id)
        except ApiError as e:
            logger.warning(f"Failed to fetch customer {customer_id}: {e.message}")
            return self.customer
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed customer {customer_id}")
        elif self._accept("customer", ticket):
            self.customer = Customer.from_dict(data)
        return self.customer

    def fetch_delivery_person(self, delivery_person_id: Optional[str] = None) -> Optional[DeliveryPerson]:
        """
        Load the delivery person.

        A missing or invalid current location is replaced by a synthetic
        position near the restaurant, flagged as approximate.
        """
        dp_id = delivery_person_id or (self.order.delivery_person_id if self.order else None) or self.delivery_person_id
        if not dp_id:
            return self.delivery_person
        ticket = self.sequencer.issue()
        try:
            data = self.client.get_delivery_person(dp_id)
        except ApiError as e:
            logger.warning(f"Failed to load delivery person data: {e.message}")
            return self.delivery_person
        self.apply_delivery_person(ticket, dp_id, data)
        return self.delivery_person

    def apply_delivery_person(self, ticket: int, delivery_person_id: str, data: Dict[str, Any]) -> bool:
        if not self._accept("deliveryPerson", ticket):
            return False
        person = DeliveryPerson.from_dict(data if isinstance(data, dict) else {})
        person.delivery_person_id = person.delivery_person_id or delivery_person_id
        if person.current_location is None:
            anchor = self.restaurant_location
            if anchor is not None:
                person.current_location = offset(anchor, config.DEMO_OFFSET_KM, config.DEMO_OFFSET_DIRECTION)
                person.is_approximate = True
                logger.warning(f"Delivery person {delivery_person_id} has no location, using approximate position")
        self.delivery_person = person
        return True

    def refresh(self) -> None:
        """Re-run every fetch, then reset markers and route."""
        if not self.mounted:
            return
        self.loading = True
        try:
            if self.fetch_order() is None:
                return
            self.fetch_restaurant()
            self.fetch_customer()
            self.fetch_delivery_person()
            self.reset_route()
            if self.context.lifecycle.is_loaded:
                self.draw_markers_and_route()
        finally:
            self.loading = False

    # -------------------------------------------------------------------------
    # Derived coordinates
    # -------------------------------------------------------------------------

    @property
    def restaurant_location(self) -> Optional[CoordinatePair]:
        if self.restaurant is not None and is_valid_gps(self.restaurant.location):
            return self.restaurant.location
        if self.order is not None and is_valid_gps(self.order.restaurant_location):
            return self.order.restaurant_location
        return None

    @property
    def customer_location(self) -> Optional[CoordinatePair]:
        return self.order.customer_location if self.order else None

    @property
    def delivery_person_location(self) -> Optional[CoordinatePair]:
        return self.delivery_person.current_location if self.delivery_person else None

    def waypoints(self) -> List[CoordinatePair]:
        """Delivery person (when known) -> restaurant -> customer."""
        points = []
        if self.delivery_person_location is not None:
            points.append(self.delivery_person_location)
        if self.restaurant_location is not None:
            points.append(self.restaurant_location)
        if self.customer_location is not None:
            points.append(self.customer_location)
        return points

    # -------------------------------------------------------------------------
    # Markers and route
    # -------------------------------------------------------------------------

    def draw_markers_and_route(self) -> bool:
        """
        Place the markers and compute the route.

        No-op until both restaurant and customer coordinates are valid.
        """
        if not self.mounted:
            return False
        restaurant, customer = self.restaurant_location, self.customer_location
        if restaurant is None or customer is None:
            logger.info(f"Order {self.order_id}: waiting for restaurant and customer coordinates")
            return False

        restaurant_name = self.restaurant.name if self.restaurant else "Restaurant"
        customer_name = self.customer.name if self.customer else "Customer"
        self.context.upsert_marker(ROLE_RESTAURANT, restaurant, restaurant_name)
        self.context.upsert_marker(ROLE_CUSTOMER, customer, customer_name)
        if self.delivery_person_location is not None:
            title = self.delivery_person.name
            if self.delivery_person.is_approximate:
                title = f"{title} (approximate)"
            self.context.upsert_marker(ROLE_DELIVERY_PERSON, self.delivery_person_location, title)
        else:
            self.context.remove_marker(ROLE_DELIVERY_PERSON)

        self.context.fit_to_points()
        self.navigate()
        return True

    def navigate(self) -> Optional[Route]:
        """
        Compute and draw the route through the current waypoints.

        Failures are recorded in ``route_error`` and leave the ETA unset;
        calling this again is the user's explicit retry.
        """
        ticket = self.sequencer.issue()
        try:
            route = self.resolver.compute_route(self.waypoints())
        except (NoRouteFound, InvalidWaypoints) as e:
            logger.warning(f"Order {self.order_id}: {e}")
            if self.mounted:
                self.route = None
                self.route_error = str(e)
            return None
        except ConfigurationError as e:
            self.mark_map_error(str(e))
            return None

        if not self._accept("route", ticket):
            return None
        draw_route(self.context, route)
        self.route = route
        self.route_error = None
        return route

    def reset_route(self) -> None:
        clear_route(self.context)
        self.route = None
        self.route_error = None

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    def _update_polling(self) -> None:
        polling = self.timers.is_active(self.poll_timer)
        if self.mounted and self.order is not None and should_poll(self.order.status):
            if not polling:
                self.timers.set_interval(self.poll_timer, config.POLL_INTERVAL_SECONDS, self.refresh)
                logger.info(f"Polling order {self.order_id} every {config.POLL_INTERVAL_SECONDS:.0f}s")
        elif polling:
            self.timers.clear(self.poll_timer)
            logger.info(f"Stopped polling order {self.order_id}")

    @property
    def is_polling(self) -> bool:
        return self.timers.is_active(self.poll_timer)

    def tick(self, now: Optional[float] = None) -> List[str]:
        """Run due timers (poll interval, map watchdog)."""
        return self.timers.run_due(now)

    # -------------------------------------------------------------------------
    # Presentation
    # -------------------------------------------------------------------------

    @property
    def eta_minutes(self) -> Optional[int]:
        return self.route.duration_minutes if self.route else None

    @property
    def progress(self) -> ProgressIndicator:
        return progress_indicator(self.order.raw_status if self.order else None)

    def fallback_summary(self) -> FallbackSummary:
        status = self.order.raw_status if self.order else "unknown"
        return FallbackSummary(
            order_id=self.order_id,
            status=status,
            description=status_description(status),
            restaurant_name=self.restaurant.name if self.restaurant else "Restaurant",
            customer_name=self.customer.name if self.customer else "Customer",
            delivery_person_name=self.delivery_person.name if self.delivery_person else "Not assigned yet",
            eta_minutes=self.eta_minutes,
            approximate_position=bool(self.delivery_person and self.delivery_person.is_approximate),
        )

    def __repr__(self) -> str:
        status = self.order.raw_status if self.order else "not loaded"
        return f"TrackingOrchestrator({self.order_id}, {status}, {self.context.lifecycle.state.value})"
