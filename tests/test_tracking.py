import pytest

from conftest import DELIVERY_URL, MAPS_URL, ORDER_URL, RESTAURANT_URL, directions_payload
from delivery_tracking import config
from delivery_tracking.models import OrderStatus
from delivery_tracking.rendering import ROLE_CUSTOMER, ROLE_DELIVERY_PERSON, ROLE_RESTAURANT, MapContext, MapState
from delivery_tracking.routing import RouteResolver
from delivery_tracking.tracking import TrackingOrchestrator
from delivery_tracking.utils import distance_km

RESTAURANT = (79.8612, 6.9271)
CUSTOMER = (79.88, 6.9)
COURIER = (79.87, 6.91)

ORDER_PATH = f"{ORDER_URL}/order/o1"
RESTAURANT_PATH = f"{RESTAURANT_URL}/restaurant/r1"
CUSTOMER_PATH = f"{RESTAURANT_URL}/customer/c1"
COURIER_PATH = f"{DELIVERY_URL}/delivery/deliveryPerson/dp1"
DIRECTIONS = f"{MAPS_URL}/directions/v5/mapbox/driving/79.87,6.91;79.8612,6.9271;79.88,6.9"


def order_payload(status="assigned", **overrides):
    payload = {
        "_id": "o1",
        "refNo": "REF-1",
        "status": status,
        "restaurantId": "r1",
        "customerId": "c1",
        "deliveryPersonId": "dp1",
        "restaurantLocation": list(RESTAURANT),
        "deliveryLocation": {
            "address": "12 Galle Rd",
            "location": {"type": "Point", "coordinates": [6.9, 79.88]},
        },
        "items": [{"name": "Pizza", "quantity": 2, "price": 1500}],
        "restaurantCost": 3000,
        "deliveryCost": 250,
    }
    payload.update(overrides)
    return payload


def courier_payload(location=None):
    payload = {"_id": "dp1", "name": "Kasun"}
    if location is not None:
        payload["currentLocation"] = {"type": "Point", "coordinates": list(location)}
    return payload


@pytest.fixture
def script(session):
    """Script the happy path; tests override individual answers."""
    session.add("GET", ORDER_PATH, json=order_payload())
    session.add("GET", RESTAURANT_PATH, json={"_id": "r1", "name": "Pizza Hut", "location": {"coordinates": list(RESTAURANT)}})
    session.add("GET", CUSTOMER_PATH, json={"_id": "c1", "name": "Nimal"})
    session.add("GET", COURIER_PATH, json=courier_payload(COURIER))
    session.add("GET", DIRECTIONS, json=directions_payload())
    return session


@pytest.fixture
def orchestrator(client, resolver, context, timers):
    return TrackingOrchestrator("o1", client=client, resolver=resolver, context=context, timers=timers)


class TestLoading:
    def test_mount_loads_everything_in_order(self, orchestrator, script):
        orchestrator.mount()

        assert script.urls() == [ORDER_PATH, RESTAURANT_PATH, CUSTOMER_PATH, COURIER_PATH]
        assert orchestrator.order.status is OrderStatus.ASSIGNED
        assert orchestrator.order.total_amount == 3250
        assert orchestrator.restaurant.name == "Pizza Hut"
        assert orchestrator.customer.name == "Nimal"
        assert orchestrator.delivery_person_location == COURIER
        assert orchestrator.customer_location == CUSTOMER
        assert orchestrator.error_banner is None

    def test_route_waits_for_map_load(self, orchestrator, script):
        orchestrator.mount()
        assert orchestrator.context.markers == {}
        assert MAPS_URL not in "".join(script.urls())

        orchestrator.mark_map_loaded()

        assert orchestrator.eta_minutes == 11
        assert orchestrator.route.distance_km == 2.3
        assert script.urls()[-1] == DIRECTIONS
        assert set(orchestrator.context.markers) == {ROLE_RESTAURANT, ROLE_CUSTOMER, ROLE_DELIVERY_PERSON}
        assert orchestrator.context.route_layer is not None

    def test_order_failure_keeps_last_known_state(self, orchestrator, script):
        script.add("GET", ORDER_PATH, json={"message": "Order service unavailable"}, status=503)
        orchestrator.mount()

        orchestrator.refresh()

        assert orchestrator.error_banner == "Order service unavailable"
        assert orchestrator.order.order_id == "o1"
        assert orchestrator.order.status is OrderStatus.ASSIGNED

    def test_first_order_failure_stops_the_chain(self, orchestrator, session):
        session.add("GET", ORDER_PATH, json={"message": "Order not found"}, status=404)
        orchestrator.mount()

        assert orchestrator.order is None
        assert orchestrator.error_banner == "Order not found"
        assert session.urls() == [ORDER_PATH]

    def test_restaurant_failure_falls_back_to_order_location(self, orchestrator, session):
        session.add("GET", ORDER_PATH, json=order_payload())
        orchestrator.mount()

        assert orchestrator.restaurant is None
        assert orchestrator.restaurant_location == RESTAURANT

    def test_missing_courier_gives_two_waypoints(self, orchestrator, session):
        session.add("GET", ORDER_PATH, json=order_payload(deliveryPersonId=None))
        orchestrator.mount()
        assert orchestrator.waypoints() == [RESTAURANT, CUSTOMER]


class TestStaleResponses:
    def test_older_ticket_is_discarded(self, orchestrator, script):
        orchestrator.mount()
        older = orchestrator.sequencer.issue()
        newer = orchestrator.sequencer.issue()

        assert orchestrator.apply_order(newer, order_payload("delivered"))
        assert not orchestrator.apply_order(older, order_payload("preparing"))
        assert orchestrator.order.status is OrderStatus.DELIVERED

    def test_malformed_order_keeps_last_known_state(self, orchestrator, script):
        orchestrator.mount()
        ticket = orchestrator.sequencer.issue()

        assert not orchestrator.apply_order(ticket, ["o1"])
        assert orchestrator.order.status is OrderStatus.ASSIGNED

    def test_responses_after_unmount_are_discarded(self, orchestrator, script):
        orchestrator.mount()
        ticket = orchestrator.sequencer.issue()
        orchestrator.unmount()

        assert not orchestrator.apply_order(ticket, order_payload("delivered"))
        assert not orchestrator.apply_delivery_person(ticket, "dp1", courier_payload(CUSTOMER))
        assert orchestrator.order.status is OrderStatus.ASSIGNED

    def test_unmount_stops_timers_and_clears_map(self, orchestrator, script, timers):
        orchestrator.mount()
        orchestrator.mark_map_loaded()
        orchestrator.unmount()

        assert len(timers) == 0
        assert orchestrator.context.markers == {}
        calls = len(script.calls)
        orchestrator.refresh()
        assert len(script.calls) == calls


class TestMapLifecycle:
    def test_missing_token_shows_fallback_without_directions(self, client, session, timers, script):
        orchestrator = TrackingOrchestrator(
            "o1",
            client=client,
            resolver=RouteResolver(session=session, token="", base_url=MAPS_URL),
            context=MapContext(token=""),
            timers=timers,
        )
        orchestrator.mount()

        assert orchestrator.context.lifecycle.state is MapState.ERROR
        assert orchestrator.show_fallback
        assert not any(url.startswith(MAPS_URL) for url in session.urls())

        summary = orchestrator.fallback_summary()
        assert summary.status == "assigned"
        assert summary.restaurant_name == "Pizza Hut"
        assert summary.delivery_person_name == "Kasun"
        assert summary.eta_minutes is None

    def test_watchdog_times_out_then_retry(self, orchestrator, script, clock):
        orchestrator.mount()
        clock.advance(config.MAP_INIT_TIMEOUT_SECONDS)

        assert orchestrator.tick() == [orchestrator.watchdog_timer]
        assert orchestrator.context.lifecycle.state is MapState.TIMED_OUT
        assert orchestrator.show_fallback

        orchestrator.mark_map_loaded()
        assert orchestrator.context.lifecycle.state is MapState.TIMED_OUT

        orchestrator.retry_map()
        assert orchestrator.context.lifecycle.state is MapState.INITIALIZING
        orchestrator.mark_map_loaded()
        assert orchestrator.context.lifecycle.is_loaded
        assert orchestrator.eta_minutes == 11

    def test_watchdog_runs_on_the_injected_registry(self, orchestrator, script, timers):
        assert len(timers) == 0
        assert orchestrator.timers is timers

        orchestrator.mount()

        assert timers.is_active(orchestrator.watchdog_timer)
        assert timers.due_in(orchestrator.watchdog_timer) == config.MAP_INIT_TIMEOUT_SECONDS

    def test_loaded_map_clears_watchdog(self, orchestrator, script, timers):
        orchestrator.mount()
        orchestrator.mark_map_loaded()
        assert not timers.is_active(orchestrator.watchdog_timer)

    def test_map_error_report(self, orchestrator, script):
        orchestrator.mount()
        orchestrator.mark_map_error("WebGL not supported")
        assert orchestrator.show_fallback
        assert orchestrator.context.lifecycle.error == "WebGL not supported"


class TestRoute:
    def test_no_route_sets_route_error(self, orchestrator, script):
        script.replace("GET", DIRECTIONS, json={"code": "NoRoute", "routes": []})
        orchestrator.mount()
        orchestrator.mark_map_loaded()

        assert orchestrator.route_error == "No routes found between these locations."
        assert orchestrator.eta_minutes is None
        assert len(orchestrator.context.markers) == 3

    def test_navigate_again_after_failure(self, orchestrator, script):
        script.replace("GET", DIRECTIONS, json={"code": "NoRoute", "routes": []})
        orchestrator.mount()
        orchestrator.mark_map_loaded()
        assert orchestrator.route_error is not None
        script.replace("GET", DIRECTIONS, json=directions_payload(duration=300))

        orchestrator.navigate()

        assert orchestrator.route_error is None
        assert orchestrator.eta_minutes == 5

    def test_refresh_recomputes_route(self, orchestrator, script):
        orchestrator.mount()
        orchestrator.mark_map_loaded()
        orchestrator.refresh()
        assert script.urls().count(DIRECTIONS) == 2
        assert orchestrator.eta_minutes == 11


class TestApproximateCourier:
    def test_position_is_synthesized_near_restaurant(self, orchestrator, script):
        script.replace("GET", COURIER_PATH, json=courier_payload())
        orchestrator.mount()

        courier = orchestrator.delivery_person
        assert courier.is_approximate
        assert distance_km(courier.current_location, RESTAURANT) == pytest.approx(config.DEMO_OFFSET_KM, abs=0.05)
        assert orchestrator.fallback_summary().approximate_position

    def test_marker_is_labelled_approximate(self, orchestrator, script, session, resolver):
        script.replace("GET", COURIER_PATH, json=courier_payload())
        orchestrator.mount()
        session.add("GET", resolver.directions_url(orchestrator.waypoints()), json=directions_payload())

        orchestrator.mark_map_loaded()

        assert orchestrator.context.markers[ROLE_DELIVERY_PERSON].title == "Kasun (approximate)"


class TestPolling:
    def test_polls_while_on_the_way_and_stops_when_delivered(self, orchestrator, script, clock):
        script.add("GET", ORDER_PATH, json=order_payload("delivered"))
        orchestrator.mount()
        assert orchestrator.is_polling

        clock.advance(config.POLL_INTERVAL_SECONDS)
        fired = orchestrator.tick()

        assert orchestrator.poll_timer in fired
        assert orchestrator.order.status is OrderStatus.DELIVERED
        assert not orchestrator.is_polling
        assert orchestrator.progress.bar_width == 100

    def test_no_polling_before_assignment(self, orchestrator, session):
        session.add("GET", ORDER_PATH, json=order_payload("preparing"))
        orchestrator.mount()
        assert not orchestrator.is_polling
        assert orchestrator.progress.step == 1
