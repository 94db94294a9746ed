# delivery-tracking/delivery_tracking/api.py
"""
HTTP clients for the backend services.

One thin method per request contract. Every method:
- goes through a shared ``requests.Session`` with a fixed timeout
- raises ApiError (with the user-facing message already extracted) on
  transport failure or a non-2xx response
- returns plain decoded JSON; turning it into models is the caller's job

The notification methods are the exception: notification failures are
logged and reported as False, never raised.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from . import config
from .errors import ApiError

logger = logging.getLogger(__name__)


class ServiceClient:
    """
    Client for the order, delivery, restaurant and notification services.

    Args:
        session: Optional pre-configured session (tests pass a fake)
        timeout: Per-request timeout in seconds
        order_url / delivery_url / restaurant_url / notification_url:
            Base URLs; default to the values in config
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout: float = None,
        order_url: str = None,
        delivery_url: str = None,
        restaurant_url: str = None,
        notification_url: str = None,
    ):
        self.session = session or requests.Session()
        self.timeout = timeout or config.HTTP_TIMEOUT_SECONDS
        self.order_url = (order_url or config.ORDER_API_URL).rstrip("/")
        self.delivery_url = (delivery_url or config.DELIVERY_API_URL).rstrip("/")
        self.restaurant_url = (restaurant_url or config.RESTAURANT_API_URL).rstrip("/")
        self.notification_url = (notification_url or config.NOTIFICATION_API_URL).rstrip("/")

    def _request(self, method: str, url: str, **kwargs) -> Any:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            logger.warning(f"{method} {url} timed out")
            raise ApiError.from_exception(e) from e
        except requests.exceptions.RequestException as e:
            error = ApiError.from_exception(e)
            logger.warning(f"{method} {url} failed: {error.message}")
            raise error from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"{method} {url} returned invalid JSON: {e}")
            raise ApiError("Invalid response from server", response.status_code) from e

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    def get_order(self, order_id: str) -> Dict[str, Any]:
        return self._request("GET", f"{self.order_url}/order/{order_id}")

    def get_nearby_orders(self, lat: float, lng: float) -> List[Dict[str, Any]]:
        data = self._request("GET", f"{self.order_url}/order/nearby", params={"lat": lat, "lng": lng})
        return _as_list(data, "orders")

    # -------------------------------------------------------------------------
    # Restaurants and customers
    # -------------------------------------------------------------------------

    def get_restaurant(self, restaurant_id: str) -> Dict[str, Any]:
        return self._request("GET", f"{self.restaurant_url}/restaurant/{restaurant_id}")

    def get_customer(self, customer_id: str) -> Dict[str, Any]:
        return self._request("GET", f"{self.restaurant_url}/customer/{customer_id}")

    # -------------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------------

    def get_delivery_person(self, delivery_person_id: str) -> Dict[str, Any]:
        """
        Delivery person record.

        The delivery service serves the person and their order history from
        the same path; a list answer means no person record is available.
        """
        data = self._request("GET", f"{self.delivery_url}/delivery/deliveryPerson/{delivery_person_id}")
        return data if isinstance(data, dict) else {}

    def get_delivery_person_orders(self, delivery_person_id: str) -> List[Dict[str, Any]]:
        """Every order ever assigned to a delivery person, oldest copies included."""
        data = self._request("GET", f"{self.delivery_url}/delivery/deliveryPerson/{delivery_person_id}")
        return _as_list(data, "orders")

    def update_order_status(self, order_id: str, status: str) -> Any:
        return self._request("PUT", f"{self.delivery_url}/delivery/{order_id}/status", json={"status": status})

    def assign_order(self, payload: Dict[str, Any]) -> Any:
        """Primary assignment endpoint."""
        return self._request("POST", f"{self.delivery_url}/delivery/assign", json=payload)

    def assign_order_fallback(self, payload: Dict[str, Any]) -> Any:
        """Fallback assignment endpoint, tried once when the primary fails."""
        return self._request("POST", f"{self.delivery_url}/order/assign", json=payload)

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def send_notification(
        self,
        to: str,
        subject: str,
        text: str,
        html: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Send an email through the notification service.

        Returns:
            True on success, False on any failure (logged, never raised)
        """
        payload = {
            "to": to,
            "subject": subject,
            "text": text,
            "html": html,
            "metadata": metadata or {},
        }
        try:
            self._request("POST", f"{self.notification_url}/notification/send", json=payload)
        except ApiError as e:
            logger.error(f"Failed to send notification to {to}: {e.message}")
            return False
        logger.info(f"Notification sent to {to}: {subject}")
        return True

    def send_verified_notification(self, email: str, name: str, is_restaurant: bool = False) -> bool:
        return self.send_notification(**build_verified_notification(email, name, is_restaurant))


def build_verified_notification(email: str, name: str, is_restaurant: bool = False) -> Dict[str, Any]:
    """Account-verified message sent after an admin approves a user."""
    kind = "restaurant" if is_restaurant else "delivery partner"
    subject = f"Your {kind} account has been verified"
    text = (
        f"Hello {name},\n\n"
        f"Congratulations! Your {kind} account has been verified. "
        f"You can now start using all features of the platform.\n\n"
        f"Thank you for joining us."
    )
    html = (
        f"<h2>Hello {name},</h2>"
        f"<p>Congratulations! Your {kind} account has been <strong>verified</strong>.</p>"
        f"<p>You can now start using all features of the platform.</p>"
        f"<p>Thank you for joining us.</p>"
    )
    return {
        "to": email,
        "subject": subject,
        "text": text,
        "html": html,
        "metadata": {"service": "user-service", "type": "user-verified"},
    }


def _as_list(data: Any, key: str) -> List[Dict[str, Any]]:
    """Services answer either with a bare list or with ``{key: [...]}``."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get(key), list):
        return data[key]
    return []
