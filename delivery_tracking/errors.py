# delivery-tracking/delivery_tracking/errors.py
"""
Error taxonomy for the delivery tracking client.

Every condition a view must present to the user is a subclass of
TrackingError, so hosts can catch one type at their boundary.
"""

from __future__ import annotations

from typing import Any, Optional

import requests

NO_RESPONSE_MESSAGE = "No response from server. Please check your connection and try again."


class TrackingError(Exception):
    """Base class for all tracking client errors."""


class ConfigurationError(TrackingError):
    """Access token or service URL missing. Fatal for map-bearing views."""


class ApiError(TrackingError):
    """A service request failed or returned a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    @classmethod
    def from_exception(cls, exc: requests.RequestException) -> "ApiError":
        """Build an ApiError carrying the most useful message for the user."""
        response = getattr(exc, "response", None)
        if response is not None:
            payload = _safe_json(response)
            return cls(_server_message(payload, response.status_code), response.status_code, payload)
        if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
            return cls(NO_RESPONSE_MESSAGE)
        return cls(str(exc) or "An unexpected error occurred")


class NoRouteFound(TrackingError):
    """The directions provider failed or returned no routes."""


class InvalidWaypoints(TrackingError):
    """Fewer than two waypoints, or a waypoint outside the GPS range."""


class InvalidLocationData(TrackingError):
    """Location payload could not be turned into a valid coordinate pair."""


class AssignmentConflict(TrackingError):
    """The order has already been claimed."""


class UnknownOrder(TrackingError):
    """The order is not known to the flow and no payload was supplied."""


def _safe_json(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _server_message(payload: Any, status_code: int) -> str:
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if message:
            return str(message)
    return f"Error: {status_code}"
