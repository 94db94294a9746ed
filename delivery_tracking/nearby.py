# delivery-tracking/delivery_tracking/nearby.py
"""
Nearby-order assignment flow for a delivery person.

- ``fetch_nearby`` finds orders near the current position, joins each with
  its restaurant and customer and sorts them by distance to the restaurant
- ``assign`` claims an order (primary endpoint, then the fallback endpoint)
  and applies the result locally before any refresh
- ``update_status`` advances one of the delivery person's orders, reverting
  the local change if the service rejects it
- ``fetch_my_orders`` is the authoritative poll: it reconciles or rolls back
  every optimistic assignment still pending
"""

from __future__ import annotations

import logging
import math
from datetime import timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from . import config
from .api import ServiceClient
from .coordinates import is_valid_gps
from .errors import ApiError, AssignmentConflict, ConfigurationError, UnknownOrder
from .geolocation import PositionProvider, acquire_position
from .models import Customer, DeliveryLocation, NearbyOrderCandidate, Order, OrderStatus, Restaurant
from .rendering import ROLE_DELIVERY_PERSON, MapContext, order_role
from .scheduler import Sequencer, Timers
from .utils import distance_km

logger = logging.getLogger(__name__)

ALREADY_ASSIGNED_MESSAGE = "This order is already assigned and cannot be reassigned."
NEARBY_FAILED_MESSAGE = "Failed to fetch nearby orders. Please try again later."

_TERMINAL = (OrderStatus.REJECTED, OrderStatus.DELIVERED)


def _canonical_status(status: Any) -> str:
    """'pickup' and 'picked_up' are the same filter value."""
    value = status.value if isinstance(status, OrderStatus) else str(status or "").lower()
    return "picked_up" if value == "pickup" else value


def _updated_key(order: Order) -> float:
    stamp = order.updated_at or order.created_at
    if stamp is None:
        return -math.inf
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp.timestamp()


def dedupe_orders(orders: Iterable[Order]) -> List[Order]:
    """One order per id, keeping the most recently updated copy. First-seen order is kept."""
    latest: Dict[str, Order] = {}
    for order in orders:
        current = latest.get(order.order_id)
        if current is None or _updated_key(order) > _updated_key(current):
            latest[order.order_id] = order
    return list(latest.values())


def filter_orders(orders: Iterable[Any], status: str = "all", search: str = "") -> List[Any]:
    """
    Filter orders (or nearby candidates) for display.

    Args:
        status: "all" or a status value; "pickup" and "picked_up" match each other
        search: Case-insensitive substring of reference number, restaurant
            name, customer name or delivery address
    """
    wanted = _canonical_status(status) if status and status != "all" else None
    term = (search or "").strip().lower()
    result = []
    for order in orders:
        if wanted is not None and _canonical_status(order.status) != wanted:
            continue
        if term:
            haystack = (
                order.ref_no,
                order.restaurant_name,
                order.customer_name,
                order.delivery_address,
            )
            if not any(term in (field or "").lower() for field in haystack):
                continue
        result.append(order)
    return result


class NearbyOrdersFlow:
    """
    State and behavior of the delivery person's map view.

    Attributes:
        nearby: Current candidates, nearest first
        my_orders: The delivery person's active orders (not pending, not delivered)
        history: Every non-pending order from the last authoritative poll
        position: (lat, lng) used for the last nearby search
    """

    POLL_TIMER = "nearby-poll"

    def __init__(
        self,
        delivery_person_id: str,
        client: Optional[ServiceClient] = None,
        context: Optional[MapContext] = None,
        provider: Optional[PositionProvider] = None,
        timers: Optional[Timers] = None,
    ):
        self.delivery_person_id = delivery_person_id
        self.client = client if client is not None else ServiceClient()
        self.context = context if context is not None else MapContext()
        self.provider = provider
        self.timers = timers if timers is not None else Timers()
        self.sequencer = Sequencer()

        self.nearby: List[NearbyOrderCandidate] = []
        self.my_orders: List[Order] = []
        self.history: List[Order] = []
        self.position: Tuple[float, float] = config.DEFAULT_POSITION
        self.position_is_fallback = True
        self.error_banner: Optional[str] = None
        self.mounted = True

        # order id -> optimistic local copy awaiting the next authoritative poll
        self._pending: Dict[str, Order] = {}

    # -------------------------------------------------------------------------
    # Nearby search
    # -------------------------------------------------------------------------

    def fetch_nearby(self, lat: Optional[float] = None, lng: Optional[float] = None) -> List[NearbyOrderCandidate]:
        """
        Search for orders near (lat, lng), or near the acquired position.

        On failure the banner is set and the previous candidates are kept.
        """
        if lat is None or lng is None:
            (lat, lng), self.position_is_fallback = acquire_position(self.provider)
        else:
            self.position_is_fallback = False
        self.position = (lat, lng)
        logger.info(f"Fetching nearby orders at ({lat}, {lng})")

        ticket = self.sequencer.issue()
        try:
            raw_orders = self.client.get_nearby_orders(lat, lng)
        except ApiError as e:
            logger.error(f"Error fetching nearby orders: {e.message}")
            if self.mounted:
                self.error_banner = NEARBY_FAILED_MESSAGE
            return self.nearby

        candidates = []
        for raw in raw_orders:
            candidate = self._build_candidate(raw, lat, lng)
            if candidate is not None:
                candidates.append(candidate)
        candidates.sort(key=lambda c: c.distance_km)
        logger.info(f"Processed {len(candidates)} valid orders out of {len(raw_orders)} total")

        if not self.mounted or not self.sequencer.accept("nearby", ticket):
            logger.debug(f"Discarding stale nearby response (ticket {ticket})")
            return self.nearby
        self.nearby = candidates
        self.error_banner = None
        self.sync_markers()
        return self.nearby

    def _build_candidate(self, raw: Any, lat: float, lng: float) -> Optional[NearbyOrderCandidate]:
        if not isinstance(raw, dict):
            logger.warning(f"Skipping malformed nearby order entry: {raw!r}")
            return None
        order = Order.from_dict(raw)
        if order.status in _TERMINAL:
            logger.debug(f"Skipping {order.status.value} order {order.order_id}")
            return None
        if (
            order.status.value in config.ASSIGNMENT_BLOCKING_STATUSES
            and order.delivery_person_id
            and order.delivery_person_id != self.delivery_person_id
        ):
            logger.debug(f"Order {order.order_id} already assigned to another delivery person")
            return None
        if not order.restaurant_id:
            logger.warning(f"Missing restaurant ID for order {order.order_id}")
            return None

        try:
            restaurant_data = self.client.get_restaurant(order.restaurant_id)
        except ApiError as e:
            logger.warning(f"Skipping order {order.order_id}: restaurant {order.restaurant_id} unavailable ({e.message})")
            return None
        if not isinstance(restaurant_data, dict):
            logger.warning(f"Skipping order {order.order_id}: malformed restaurant {order.restaurant_id}")
            return None
        restaurant = Restaurant.from_dict(restaurant_data)
        if not is_valid_gps(restaurant.location):
            logger.warning(f"Skipping order {order.order_id}: invalid restaurant location")
            return None

        customer = Customer(customer_id=order.customer_id or "")
        if order.customer_id:
            try:
                customer_data = self.client.get_customer(order.customer_id)
            except ApiError as e:
                logger.warning(f"Couldn't fetch customer details for {order.customer_id}: {e.message}")
            else:
                if isinstance(customer_data, dict):
                    customer = Customer.from_dict(customer_data)
                else:
                    logger.warning(f"Malformed customer details for {order.customer_id}")

        if order.customer_location is None:
            logger.warning(f"Skipping order {order.order_id}: invalid delivery location")
            return None

        distance = round(distance_km((lng, lat), restaurant.location), 1)
        return NearbyOrderCandidate(
            order_id=order.order_id,
            status=order.status,
            restaurant_id=order.restaurant_id,
            restaurant_name=restaurant.name,
            restaurant_location=restaurant.location,
            customer_location=order.customer_location,
            distance_km=distance,
            ref_no=order.ref_no or "N/A",
            customer_id=order.customer_id,
            customer_name=customer.name or "Customer",
            customer_phone=customer.phone,
            delivery_address=order.delivery_address or "No address provided",
            delivery_person_id=order.delivery_person_id,
            items=order.items,
            total_amount=order.total_amount,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

    def sync_markers(self) -> None:
        """One marker per candidate (at its restaurant), plus the delivery person."""
        lat, lng = self.position
        self.context.upsert_marker(ROLE_DELIVERY_PERSON, (lng, lat), "You")
        for candidate in self.nearby:
            self.context.upsert_marker(
                order_role(candidate.order_id),
                candidate.restaurant_location,
                f"{candidate.restaurant_name} ({candidate.distance_km} km)",
            )
        self.context.prune_order_markers(c.order_id for c in self.nearby)

    def find_candidate(self, order_id: str) -> Optional[NearbyOrderCandidate]:
        for candidate in self.nearby:
            if candidate.order_id == order_id:
                return candidate
        return None

    def find_order(self, order_id: str) -> Optional[Order]:
        for order in self.my_orders:
            if order.order_id == order_id:
                return order
        return None

    # -------------------------------------------------------------------------
    # Assignment
    # -------------------------------------------------------------------------

    def assign(self, order_id: str, order_data: Optional[Dict[str, Any]] = None) -> Order:
        """
        Claim an order for this delivery person.

        Args:
            order_id: Order to claim
            order_data: Optional order details for an order that is not in
                the nearby list (keys: status, restaurantId, customerId,
                customerLocation as (lng, lat), deliveryLocation address)

        Returns:
            The optimistic local copy appended to ``my_orders``

        Raises:
            ConfigurationError: no delivery person id
            UnknownOrder: not a nearby candidate and no order_data given
            AssignmentConflict: already claimed (checked before any request,
                or reported by the service with 409)
            ApiError: both endpoints failed
        """
        if not self.delivery_person_id:
            raise ConfigurationError("Delivery person ID is missing. Please log in again.")

        candidate = None if order_data else self.find_candidate(order_id)
        if candidate is None and order_data is None:
            raise UnknownOrder(f"Order {order_id} not found in nearby orders.")

        if candidate is not None:
            status = candidate.status
            payload = candidate.to_assign_payload(self.delivery_person_id)
        else:
            status = OrderStatus.parse(order_data.get("status", "pending"))
            payload = self._payload_from_data(order_id, order_data)

        if status.value in config.ASSIGNMENT_BLOCKING_STATUSES:
            logger.warning(f"Order {order_id} already {status.value}, not reassigning")
            raise AssignmentConflict(ALREADY_ASSIGNED_MESSAGE)

        self._submit_assignment(order_id, payload)

        if candidate is not None:
            assigned = candidate.to_order(OrderStatus.ASSIGNED, self.delivery_person_id)
        else:
            assigned = Order.from_dict(
                dict(payload, _id=order_id, status=OrderStatus.ASSIGNED.value)
            )

        self.nearby = [c for c in self.nearby if c.order_id != order_id]
        self.context.remove_marker(order_role(order_id))
        if self.find_order(order_id) is None:
            self.my_orders.append(assigned)
        self._pending[order_id] = assigned
        logger.info(f"Order {order_id} assigned to {self.delivery_person_id}")
        return assigned

    def _payload_from_data(self, order_id: str, order_data: Dict[str, Any]) -> Dict[str, Any]:
        location = DeliveryLocation(
            address=str(order_data.get("deliveryLocation") or ""),
            coordinates=order_data.get("customerLocation"),
        )
        return {
            "id": order_id,
            "deliveryPersonId": self.delivery_person_id,
            "restaurantId": order_data.get("restaurantId"),
            "customerId": order_data.get("customerId"),
            "deliveryLocation": location.to_payload(),
        }

    def _submit_assignment(self, order_id: str, payload: Dict[str, Any]) -> None:
        try:
            self.client.assign_order(payload)
            return
        except ApiError as e:
            logger.warning(f"Primary assign endpoint failed for {order_id}: {e.message}, trying fallback")

        try:
            self.client.assign_order_fallback(payload)
        except ApiError as e:
            logger.error(f"Error assigning order {order_id}: {e.message}")
            if e.status_code == 409:
                raise AssignmentConflict(e.message) from e
            raise
        logger.info(f"Order {order_id} assigned through fallback endpoint")

    # -------------------------------------------------------------------------
    # Status updates
    # -------------------------------------------------------------------------

    def update_status(self, order_id: str, new_status: str) -> Order:
        """
        Advance one of my orders. Applied locally first, reverted on failure.

        Raises:
            UnknownOrder: the order is not in ``my_orders``
            ApiError: the service rejected the update (local state reverted)
        """
        order = self.find_order(order_id)
        if order is None:
            raise UnknownOrder(f"Order {order_id} is not one of your orders.")

        previous = (order.status, order.raw_status)
        order.status = OrderStatus.parse(new_status)
        order.raw_status = new_status
        try:
            self.client.update_order_status(order_id, new_status)
        except ApiError as e:
            order.status, order.raw_status = previous
            logger.error(f"Failed to update order {order_id} to {new_status}: {e.message}")
            self.error_banner = e.message
            raise
        logger.info(f"Order {order_id} is now {new_status}")
        return order

    # -------------------------------------------------------------------------
    # My orders (authoritative poll)
    # -------------------------------------------------------------------------

    def fetch_my_orders(self) -> List[Order]:
        """
        Load this delivery person's orders and settle optimistic assignments.

        Pending orders are dropped, duplicates collapse to the latest copy,
        and delivered orders stay in ``history`` only.
        """
        ticket = self.sequencer.issue()
        try:
            raw_orders = self.client.get_delivery_person_orders(self.delivery_person_id)
        except ApiError as e:
            logger.error(f"Error fetching order history: {e.message}")
            return self.my_orders
        if not self.mounted or not self.sequencer.accept("myOrders", ticket):
            return self.my_orders

        orders = dedupe_orders(Order.from_dict(raw) for raw in raw_orders if isinstance(raw, dict))
        orders = [o for o in orders if o.status is not OrderStatus.PENDING]
        self.history = orders
        active = [o for o in orders if o.status is not OrderStatus.DELIVERED]
        self.my_orders = self._reconcile(active)
        return self.my_orders

    def _reconcile(self, server_orders: List[Order]) -> List[Order]:
        by_id = {o.order_id: o for o in server_orders}
        for order_id, local in list(self._pending.items()):
            server = by_id.get(order_id)
            if server is not None and server.delivery_person_id in (None, self.delivery_person_id):
                server.restaurant_name = server.restaurant_name or local.restaurant_name
                server.customer_name = server.customer_name or local.customer_name
                logger.debug(f"Assignment of {order_id} confirmed")
            elif server is not None:
                logger.warning(f"Order {order_id} was assigned to {server.delivery_person_id}, rolling back")
                self.error_banner = f"Order {local.ref_no or order_id} was claimed by another delivery person."
            elif any(o.order_id == order_id for o in self.history):
                logger.debug(f"Order {order_id} already delivered")
            else:
                logger.warning(f"Assignment of {order_id} not confirmed by the delivery service, rolling back")
            del self._pending[order_id]
        return [o for o in server_orders if o.delivery_person_id in (None, self.delivery_person_id)]

    @property
    def pending_assignments(self) -> List[str]:
        return list(self._pending)

    # -------------------------------------------------------------------------
    # Polling
    # -------------------------------------------------------------------------

    def refresh(self) -> None:
        self.fetch_nearby()
        self.fetch_my_orders()

    def start_polling(self) -> None:
        self.timers.set_interval(self.POLL_TIMER, config.POLL_INTERVAL_SECONDS, self.refresh)

    def stop(self) -> None:
        """Unmount: stop polling, drop markers, ignore late responses."""
        self.mounted = False
        self.timers.clear(self.POLL_TIMER)
        self.context.teardown()

    def __repr__(self) -> str:
        return f"NearbyOrdersFlow({self.delivery_person_id}, {len(self.nearby)} nearby, {len(self.my_orders)} mine)"
