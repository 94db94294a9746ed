import pytest
import requests

from conftest import DELIVERY_URL, NOTIFICATION_URL, ORDER_URL, RESTAURANT_URL, FakeSession
from delivery_tracking import config
from delivery_tracking.api import ServiceClient, build_verified_notification
from delivery_tracking.errors import NO_RESPONSE_MESSAGE, ApiError


class TestEndpoints:
    def test_get_order(self, client, session):
        session.add("GET", f"{ORDER_URL}/order/o1", json={"_id": "o1", "status": "assigned"})
        assert client.get_order("o1") == {"_id": "o1", "status": "assigned"}
        assert session.calls[0]["timeout"] == config.HTTP_TIMEOUT_SECONDS

    def test_restaurant_and_customer_share_the_user_service(self, client, session):
        session.add("GET", f"{RESTAURANT_URL}/restaurant/r1", json={"name": "Pizza Hut"})
        session.add("GET", f"{RESTAURANT_URL}/customer/c1", json={"name": "Nimal"})
        assert client.get_restaurant("r1")["name"] == "Pizza Hut"
        assert client.get_customer("c1")["name"] == "Nimal"

    @pytest.mark.parametrize("payload", [[{"_id": "o1"}], {"orders": [{"_id": "o1"}]}])
    def test_nearby_orders_accepts_list_or_envelope(self, client, session, payload):
        session.add("GET", f"{ORDER_URL}/order/nearby", json=payload)
        assert client.get_nearby_orders(lat=6.9, lng=79.8) == [{"_id": "o1"}]
        assert session.calls[0]["params"] == {"lat": 6.9, "lng": 79.8}

    def test_nearby_orders_unexpected_body(self, client, session):
        session.add("GET", f"{ORDER_URL}/order/nearby", json={"status": "ok"})
        assert client.get_nearby_orders(lat=6.9, lng=79.8) == []

    def test_delivery_person_and_history_share_a_path(self, client, session):
        url = f"{DELIVERY_URL}/delivery/deliveryPerson/dp1"
        session.add("GET", url, json=[{"_id": "o1"}])
        assert client.get_delivery_person_orders("dp1") == [{"_id": "o1"}]
        assert client.get_delivery_person("dp1") == {}
        assert session.urls() == [url, url]

    def test_update_status_sends_json(self, client, session):
        url = f"{DELIVERY_URL}/delivery/o1/status"
        session.add("PUT", url, json={"status": "picked_up"})
        client.update_order_status("o1", "picked_up")
        assert session.calls[0]["method"] == "PUT"
        assert session.calls[0]["json"] == {"status": "picked_up"}

    def test_assignment_endpoints(self, client, session):
        session.add("POST", f"{DELIVERY_URL}/delivery/assign", json={"ok": True})
        session.add("POST", f"{DELIVERY_URL}/order/assign", json={"ok": True})
        client.assign_order({"id": "o1"})
        client.assign_order_fallback({"id": "o1"})
        assert session.urls("POST") == [f"{DELIVERY_URL}/delivery/assign", f"{DELIVERY_URL}/order/assign"]

    def test_empty_body_is_none(self, client, session):
        session.add("PUT", f"{DELIVERY_URL}/delivery/o1/status", json=None, status=204)
        assert client.update_order_status("o1", "delivered") is None

    def test_trailing_slash_in_base_url(self, session):
        client = ServiceClient(session=session, order_url="http://orders/")
        session.add("GET", "http://orders/order/o1", json={"_id": "o1"})
        assert client.get_order("o1") == {"_id": "o1"}


class TestErrors:
    @pytest.mark.parametrize(
        "body, status, message",
        [
            ({"message": "Order not found"}, 404, "Order not found"),
            ({"error": "Database unavailable"}, 503, "Database unavailable"),
            ({"unexpected": True}, 500, "Error: 500"),
            (None, 500, "Error: 500"),
        ],
    )
    def test_server_message_is_extracted(self, client, session, body, status, message):
        session.add("GET", f"{ORDER_URL}/order/o1", json=body, status=status)
        with pytest.raises(ApiError) as excinfo:
            client.get_order("o1")
        assert excinfo.value.message == message
        assert excinfo.value.status_code == status

    @pytest.mark.parametrize("exc", [requests.ConnectionError("refused"), requests.Timeout("slow")])
    def test_no_response(self, client, session, exc):
        session.add("GET", f"{ORDER_URL}/order/o1", exc=exc)
        with pytest.raises(ApiError) as excinfo:
            client.get_order("o1")
        assert excinfo.value.message == NO_RESPONSE_MESSAGE
        assert excinfo.value.status_code is None


class TestNotifications:
    def test_send(self, client, session):
        url = f"{NOTIFICATION_URL}/notification/send"
        session.add("POST", url, json={"sent": True})

        assert client.send_notification("a@b.lk", "Hi", "Hello")
        assert session.calls[0]["json"] == {
            "to": "a@b.lk",
            "subject": "Hi",
            "text": "Hello",
            "html": "",
            "metadata": {},
        }

    def test_failure_is_reported_not_raised(self, client, session):
        assert not client.send_notification("a@b.lk", "Hi", "Hello")

    def test_verified_notification(self, client, session):
        session.add("POST", f"{NOTIFICATION_URL}/notification/send", json={"sent": True})
        assert client.send_verified_notification("rider@b.lk", "Kasun")
        body = session.calls[0]["json"]
        assert body["to"] == "rider@b.lk"
        assert body["subject"] == "Your delivery partner account has been verified"

    def test_verified_notification_for_restaurant(self):
        message = build_verified_notification("owner@b.lk", "Pizza Hut", is_restaurant=True)
        assert message["subject"] == "Your restaurant account has been verified"
        assert "Hello Pizza Hut" in message["text"]
        assert message["metadata"] == {"service": "user-service", "type": "user-verified"}


def test_default_session_is_created():
    assert isinstance(ServiceClient().session, requests.Session)
    assert not isinstance(ServiceClient(session=FakeSession()).session, requests.Session)
