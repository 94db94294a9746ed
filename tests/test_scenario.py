"""A customer follows one order from assignment to delivery."""

from conftest import DELIVERY_URL, MAPS_URL, ORDER_URL, RESTAURANT_URL, directions_payload
from delivery_tracking import config
from delivery_tracking.rendering import ROLE_CUSTOMER, ROLE_DELIVERY_PERSON, ROLE_RESTAURANT
from delivery_tracking.tracking import TrackingOrchestrator

ORDER = {
    "_id": "o1",
    "status": "assigned",
    "restaurantId": "r1",
    "customerId": "c1",
    "restaurantLocation": [79.8612, 6.9271],
    "deliveryLocation": {"location": {"coordinates": [6.9, 79.88]}},
    "deliveryPersonId": "dp1",
}
COURIER = {"_id": "dp1", "name": "Kasun", "currentLocation": {"coordinates": [79.87, 6.91]}}
DIRECTIONS = f"{MAPS_URL}/directions/v5/mapbox/driving/79.87,6.91;79.8612,6.9271;79.88,6.9"


def test_order_on_the_way_then_delivered(session, client, resolver, context, timers, clock):
    session.add("GET", f"{ORDER_URL}/order/o1", json=ORDER)
    session.add("GET", f"{ORDER_URL}/order/o1", json=dict(ORDER, status="delivered"))
    session.add("GET", f"{DELIVERY_URL}/delivery/deliveryPerson/dp1", json=COURIER)
    session.add("GET", DIRECTIONS, json=directions_payload())

    orchestrator = TrackingOrchestrator("o1", client=client, resolver=resolver, context=context, timers=timers)
    orchestrator.mount()
    orchestrator.mark_map_loaded()

    # restaurant comes from the order, the lat-first delivery location is swapped
    assert orchestrator.waypoints() == [(79.87, 6.91), (79.8612, 6.9271), (79.88, 6.9)]
    assert context.marker_position(ROLE_CUSTOMER) == (79.88, 6.9)
    assert context.marker_position(ROLE_RESTAURANT) == (79.8612, 6.9271)
    assert context.marker_position(ROLE_DELIVERY_PERSON) == (79.87, 6.91)
    assert session.urls().count(DIRECTIONS) == 1
    assert orchestrator.eta_minutes == 11
    assert orchestrator.progress.show_eta
    assert orchestrator.is_polling

    clock.advance(config.POLL_INTERVAL_SECONDS)
    orchestrator.tick()

    assert orchestrator.order.raw_status == "delivered"
    assert orchestrator.progress.step == 3
    assert not orchestrator.progress.show_eta
    assert not orchestrator.is_polling
    assert session.urls().count(DIRECTIONS) == 2

    orchestrator.unmount()
    assert len(timers) == 0
