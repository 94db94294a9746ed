# delivery-tracking/delivery_tracking/models.py
"""
Core domain models for the delivery tracking client.

This module defines the data structures exchanged with the backend services:
- Order: A customer order as returned by the order service
- Restaurant / Customer / DeliveryPerson: Records owned by other services,
  used here mainly as sources of coordinates and display names
- NearbyOrderCandidate: An ephemeral, enriched view of an order near a
  delivery person, recomputed on every fetch
- Route: The result of one directions request

Service payloads are inconsistent (``_id`` vs ``orderId``, ``restaurantID``
vs ``restaurantId``); every ``from_dict`` accepts all observed spellings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from . import config
from .coordinates import CoordinatePair, LocationShape, decode, is_valid_gps, normalize, swap_axes
from .utils import parse_timestamp


class OrderStatus(Enum):
    """Lifecycle states of an order as reported by the order service."""
    PENDING = "pending"        # Placed, awaiting restaurant acceptance
    ACCEPTED = "accepted"      # Accepted by the restaurant
    REJECTED = "rejected"      # Rejected by the restaurant (failure terminal)
    PAID = "paid"              # Payment received
    PREPARING = "preparing"    # Kitchen is working on it
    READY = "ready"            # Ready for pickup
    ASSIGNED = "assigned"      # A delivery person claimed it
    PICKUP = "pickup"          # Legacy alias of PICKED_UP
    PICKED_UP = "picked_up"    # Collected from the restaurant
    DELIVERED = "delivered"    # Handed to the customer (success terminal)
    UNKNOWN = "unknown"        # Anything the client does not recognize

    @classmethod
    def parse(cls, value: Any) -> "OrderStatus":
        """Map a raw status string to a member, UNKNOWN when unrecognized."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


def _first(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return default


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass
class OrderItem:
    """A single line of an order."""
    name: str
    quantity: int = 1
    price: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderItem":
        return cls(
            name=str(data.get("name", "Item")),
            quantity=int(_as_float(data.get("quantity"), 1)),
            price=_as_float(data.get("price")),
        )


@dataclass
class DeliveryLocation:
    """
    Where an order is delivered.

    Attributes:
        address: Street address as typed by the customer
        coordinates: Canonical (lng, lat), or None if the payload was unusable
        raw: The location payload exactly as received
    """
    address: str = ""
    coordinates: Optional[CoordinatePair] = None
    raw: Any = None

    @classmethod
    def from_payload(cls, payload: Any) -> "DeliveryLocation":
        """
        Decode the order service's delivery location.

        The nested GeoJSON shape is stored latitude-first by the order
        service; it is swapped into (lng, lat) when
        config.DELIVERY_LOCATION_LAT_FIRST is set. Other shapes are taken
        as already canonical.
        """
        if payload is None:
            return cls()
        address = payload.get("address", "") if isinstance(payload, dict) else ""
        decoded = decode(payload)
        coordinates = None
        if decoded is not None:
            coordinates = decoded.coordinates
            if decoded.shape is LocationShape.NESTED_LOCATION and config.DELIVERY_LOCATION_LAT_FIRST:
                coordinates = swap_axes(coordinates)
        return cls(address=str(address or ""), coordinates=coordinates, raw=payload)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize back into the order service's convention."""
        coordinates = self.coordinates
        if coordinates is not None and config.DELIVERY_LOCATION_LAT_FIRST:
            coordinates = swap_axes(coordinates)
        return {
            "location": {"type": "Point", "coordinates": list(coordinates) if coordinates else None},
            "address": self.address or "No address provided",
        }


@dataclass
class Order:
    """
    A customer order.

    Attributes:
        order_id: Unique identifier
        ref_no: Human-facing reference number
        status: Current lifecycle state
        raw_status: Status string exactly as received (kept for display)
        restaurant_id / customer_id: Links to the owning records
        delivery_person_id: Set once a delivery person claims the order
        delivery_location: Address and customer coordinate
        restaurant_location: Restaurant coordinate when the order embeds one
        restaurant_name / customer_name: Display names, when the payload carries them
        items: Ordered lines
        restaurant_cost / delivery_cost: Cost breakdown
        created_at / updated_at: Service timestamps
    """
    order_id: str
    status: OrderStatus = OrderStatus.PENDING
    raw_status: str = "pending"
    ref_no: str = ""
    restaurant_id: Optional[str] = None
    customer_id: Optional[str] = None
    delivery_person_id: Optional[str] = None
    delivery_location: DeliveryLocation = field(default_factory=DeliveryLocation)
    restaurant_location: Optional[CoordinatePair] = None
    restaurant_name: str = ""
    customer_name: str = ""
    items: List[OrderItem] = field(default_factory=list)
    restaurant_cost: float = 0.0
    delivery_cost: float = 0.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        raw_status = str(data.get("status") or "pending")
        return cls(
            order_id=str(_first(data, "_id", "orderId", "id", default="")),
            status=OrderStatus.parse(raw_status),
            raw_status=raw_status,
            ref_no=str(_first(data, "refNo", "orderRefNo", default="")),
            restaurant_id=_first(data, "restaurantId", "restaurantID"),
            customer_id=_first(data, "customerId", "customerID"),
            delivery_person_id=_first(data, "deliveryPersonId", "deliveryPersonID"),
            delivery_location=DeliveryLocation.from_payload(data.get("deliveryLocation")),
            restaurant_location=normalize(data.get("restaurantLocation")),
            restaurant_name=str(data.get("restaurantName") or ""),
            customer_name=str(data.get("customerName") or ""),
            items=[OrderItem.from_dict(i) for i in data.get("items") or [] if isinstance(i, dict)],
            restaurant_cost=_as_float(data.get("restaurantCost")),
            delivery_cost=_as_float(data.get("deliveryCost")),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    @property
    def total_amount(self) -> float:
        return self.restaurant_cost + self.delivery_cost

    @property
    def delivery_address(self) -> str:
        return self.delivery_location.address

    @property
    def customer_location(self) -> Optional[CoordinatePair]:
        """Canonical customer coordinate, only if it passes GPS validation."""
        coords = self.delivery_location.coordinates
        return coords if is_valid_gps(coords) else None

    def __repr__(self) -> str:
        return f"Order({self.order_id}, {self.raw_status})"


@dataclass
class Restaurant:
    """A restaurant record. Only its name and location matter here."""
    restaurant_id: str
    name: str = "Restaurant"
    location: Optional[CoordinatePair] = None
    is_verified: bool = False
    is_available: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Restaurant":
        return cls(
            restaurant_id=str(_first(data, "_id", "id", "restaurantId", default="")),
            name=str(data.get("name") or "Restaurant"),
            location=normalize(data.get("location")),
            is_verified=bool(data.get("isVerified", False)),
            is_available=bool(data.get("isAvailable", True)),
        )


@dataclass
class Customer:
    """A customer record."""
    customer_id: str
    name: str = "Customer"
    phone: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Customer":
        return cls(
            customer_id=str(_first(data, "_id", "id", "customerId", default="")),
            name=str(data.get("name") or "Customer"),
            phone=str(data.get("phone") or ""),
        )


@dataclass
class DeliveryPerson:
    """
    A courier.

    Attributes:
        current_location: Last known (lng, lat). May be missing or stale.
        is_approximate: True when current_location was synthesized rather
            than reported by the delivery service.
    """
    delivery_person_id: str
    name: str = "Delivery Person"
    phone: str = ""
    current_location: Optional[CoordinatePair] = None
    is_approximate: bool = False
    is_verified: bool = False
    is_available: bool = True
    profile_image: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeliveryPerson":
        location = normalize(data.get("currentLocation"))
        return cls(
            delivery_person_id=str(_first(data, "_id", "id", "deliveryPersonId", default="")),
            name=str(data.get("name") or "Delivery Person"),
            phone=str(data.get("phone") or ""),
            current_location=location if is_valid_gps(location) else None,
            is_verified=bool(data.get("isVerified", False)),
            is_available=bool(data.get("isAvailable", True)),
            profile_image=str(data.get("profileImage") or ""),
        )


@dataclass
class NearbyOrderCandidate:
    """
    An order near a delivery person, joined with its restaurant and customer.

    Created per fetch and discarded on the next one. Never persisted.
    """
    order_id: str
    status: OrderStatus
    restaurant_id: str
    restaurant_name: str
    restaurant_location: CoordinatePair
    customer_location: CoordinatePair
    distance_km: float
    ref_no: str = ""
    customer_id: Optional[str] = None
    customer_name: str = "Customer"
    customer_phone: str = ""
    delivery_address: str = "No address provided"
    delivery_person_id: Optional[str] = None
    items: List[OrderItem] = field(default_factory=list)
    total_amount: float = 0.0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_claimed(self) -> bool:
        """True once the order can no longer be assigned."""
        return self.status.value in config.ASSIGNMENT_BLOCKING_STATUSES

    def to_assign_payload(self, delivery_person_id: str) -> Dict[str, Any]:
        """Body of an assignment request, in the delivery service's format."""
        location = DeliveryLocation(address=self.delivery_address, coordinates=self.customer_location)
        return {
            "id": self.order_id,
            "deliveryPersonId": delivery_person_id,
            "restaurantId": self.restaurant_id,
            "customerId": self.customer_id,
            "deliveryLocation": location.to_payload(),
        }

    def to_order(self, status: OrderStatus = None, delivery_person_id: Optional[str] = None) -> Order:
        """Local Order copy, used for the optimistic "my orders" entry."""
        return Order(
            order_id=self.order_id,
            status=status or self.status,
            raw_status=(status or self.status).value,
            ref_no=self.ref_no,
            restaurant_id=self.restaurant_id,
            customer_id=self.customer_id,
            delivery_person_id=delivery_person_id or self.delivery_person_id,
            delivery_location=DeliveryLocation(address=self.delivery_address, coordinates=self.customer_location),
            restaurant_location=self.restaurant_location,
            restaurant_name=self.restaurant_name,
            customer_name=self.customer_name,
            items=list(self.items),
            restaurant_cost=self.total_amount,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def __repr__(self) -> str:
        return f"NearbyOrderCandidate({self.order_id}, {self.status.value}, {self.distance_km:.1f}km)"


@dataclass
class Route:
    """
    Result of one directions request.

    Attributes:
        geometry: Path as a list of (lng, lat) points
        duration_minutes: Trip duration rounded up to whole minutes
        distance_km: Trip length rounded to one decimal
        waypoints: The waypoints the route was requested for
    """
    geometry: List[CoordinatePair]
    duration_minutes: int
    distance_km: float
    waypoints: List[CoordinatePair] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"Route({len(self.waypoints)} waypoints, {self.distance_km}km, {self.duration_minutes}min)"
