import requests

from delivery_tracking import config
from delivery_tracking.geolocation import (
    FixedPosition,
    IpGeolocation,
    PositionUnavailable,
    acquire_position,
)

GEO_URL = "http://geo/json"


class FailingProvider:
    def current_position(self, timeout):
        raise PositionUnavailable("User denied Geolocation")


def test_fixed_position():
    assert acquire_position(FixedPosition(6.92, 79.86)) == ((6.92, 79.86), False)


def test_no_provider_uses_default():
    assert acquire_position(None) == (config.DEFAULT_POSITION, True)


def test_provider_failure_uses_default():
    assert acquire_position(FailingProvider()) == (config.DEFAULT_POSITION, True)


def test_invalid_position_uses_default():
    assert acquire_position(FixedPosition(95.0, 79.86)) == (config.DEFAULT_POSITION, True)


def test_ip_geolocation(session):
    session.add("GET", GEO_URL, json={"status": "success", "lat": 6.93, "lon": 79.85})

    position, is_fallback = acquire_position(IpGeolocation(session, url=GEO_URL), timeout=2)

    assert position == (6.93, 79.85)
    assert not is_fallback
    assert session.calls[0]["timeout"] == 2


def test_ip_geolocation_default_timeout(session):
    session.add("GET", GEO_URL, json={"status": "success", "lat": 6.93, "lon": 79.85})
    acquire_position(IpGeolocation(session, url=GEO_URL))
    assert session.calls[0]["timeout"] == config.GEOLOCATION_TIMEOUT_SECONDS


def test_ip_geolocation_lookup_failure(session):
    session.add("GET", GEO_URL, json={"status": "fail", "message": "reserved range"})
    assert acquire_position(IpGeolocation(session, url=GEO_URL)) == (config.DEFAULT_POSITION, True)


def test_ip_geolocation_timeout(session):
    session.add("GET", GEO_URL, exc=requests.Timeout("slow"))
    assert acquire_position(IpGeolocation(session, url=GEO_URL)) == (config.DEFAULT_POSITION, True)


def test_ip_geolocation_missing_fields(session):
    session.add("GET", GEO_URL, json={"status": "success"})
    assert acquire_position(IpGeolocation(session, url=GEO_URL)) == (config.DEFAULT_POSITION, True)
