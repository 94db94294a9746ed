"""Shared fakes: a scripted requests.Session and a manual clock."""

import json as jsonlib
from collections import defaultdict, deque

import pytest
import requests

from delivery_tracking import config
from delivery_tracking.api import ServiceClient
from delivery_tracking.rendering import MapContext
from delivery_tracking.routing import RouteResolver
from delivery_tracking.scheduler import Timers

ORDER_URL = "http://orders"
DELIVERY_URL = "http://delivery"
RESTAURANT_URL = "http://users"
NOTIFICATION_URL = "http://notify"
MAPS_URL = "http://maps"


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self._payload = payload
        self.status_code = status_code

    @property
    def content(self):
        return b"" if self._payload is None else jsonlib.dumps(self._payload).encode()

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """
    Records every request and answers from a script.

    Scripted answers for the same (method, url) are consumed in order; the
    last one keeps answering. Unscripted requests get a 404.
    """

    def __init__(self):
        self.calls = []
        self._script = defaultdict(deque)

    def add(self, method, url, json=None, status=200, exc=None):
        self._script[(method, url)].append((json, status, exc))
        return self

    def replace(self, method, url, **kwargs):
        """Drop every answer scripted so far for (method, url), then add one."""
        self._script.pop((method, url), None)
        return self.add(method, url, **kwargs)

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        queue = self._script.get((method, url))
        if not queue:
            return FakeResponse({"message": "Not found"}, 404)
        payload, status, exc = queue[0] if len(queue) == 1 else queue.popleft()
        if exc is not None:
            raise exc
        return FakeResponse(payload, status)

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def urls(self, method=None):
        return [c["url"] for c in self.calls if method is None or c["method"] == method]


class ManualClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def timers(clock):
    return Timers(clock)


@pytest.fixture
def client(session):
    return ServiceClient(
        session=session,
        order_url=ORDER_URL,
        delivery_url=DELIVERY_URL,
        restaurant_url=RESTAURANT_URL,
        notification_url=NOTIFICATION_URL,
    )


@pytest.fixture
def resolver(session):
    return RouteResolver(session=session, token="test-token", base_url=MAPS_URL)


@pytest.fixture
def context():
    return MapContext(token="test-token")


@pytest.fixture(autouse=True)
def lat_first_delivery_locations(monkeypatch):
    monkeypatch.setattr(config, "DELIVERY_LOCATION_LAT_FIRST", True)


def directions_payload(duration=601.0, distance=2349.0, coordinates=None):
    coordinates = coordinates or [[79.87, 6.91], [79.8612, 6.9271], [79.88, 6.9]]
    return {
        "code": "Ok",
        "routes": [
            {
                "geometry": {"type": "LineString", "coordinates": coordinates},
                "duration": duration,
                "distance": distance,
            }
        ],
    }
