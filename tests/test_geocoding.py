"""Geocoding gateway: response parsing and failure containment."""
import http.client
import io
import json
import urllib.error

import pytest

from app.tnr import geocoding
from app.tnr.geocoding import (
    GeocodingClient,
    GeocodingError,
    geocoder_from_config,
    safe_forward_geocode,
    safe_reverse_geocode,
    short_address,
)


class _FakeResponse(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _serve(monkeypatch, payload=None, error=None):
    seen = {}

    def fake_urlopen(req, timeout=None):
        seen["url"] = req.full_url
        seen["timeout"] = timeout
        if error is not None:
            raise error
        return _FakeResponse(json.dumps(payload).encode("utf-8"))

    monkeypatch.setattr(geocoding.urllib.request, "urlopen", fake_urlopen)
    return seen


CLIENT = GeocodingClient(api_key="k", base_url="https://geo.test/json", timeout_seconds=2.5)


def test_reverse_geocode_returns_first_formatted_address(monkeypatch):
    seen = _serve(
        monkeypatch,
        {"status": "OK", "results": [{"formatted_address": "12 Elm St, Town, ST 00000, USA"}, {"formatted_address": "x"}]},
    )
    assert CLIENT.reverse_geocode(40.0, -73.0) == "12 Elm St, Town, ST 00000, USA"
    assert "latlng=40.0%2C-73.0" in seen["url"]
    assert "key=k" in seen["url"]
    assert seen["timeout"] == 2.5


def test_reverse_geocode_zero_results(monkeypatch):
    _serve(monkeypatch, {"status": "ZERO_RESULTS", "results": []})
    assert CLIENT.reverse_geocode(0, 0) is None


def test_forward_geocode_parses_location(monkeypatch):
    _serve(
        monkeypatch,
        {
            "status": "OK",
            "results": [{"formatted_address": "Town Hall", "geometry": {"location": {"lat": 10.5, "lng": -20.25}}}],
        },
    )
    result = CLIENT.forward_geocode("town hall")
    assert result.to_dict() == {"latitude": 10.5, "longitude": -20.25, "address": "Town Hall"}


@pytest.mark.parametrize(
    "payload,error",
    [
        ({"status": "REQUEST_DENIED"}, None),
        (None, urllib.error.URLError("timed out")),
        (None, TimeoutError("read timeout")),
        (None, http.client.IncompleteRead(b'{"sta')),
        ({"status": "OK", "results": ["x"]}, None),
        ({"status": "OK", "results": [{"formatted_address": 5}]}, None),
        ({"status": "OK", "results": {"formatted_address": "x"}}, None),
    ],
)
def test_provider_failures_raise_geocoding_error(monkeypatch, payload, error):
    _serve(monkeypatch, payload, error)
    with pytest.raises(GeocodingError):
        CLIENT.reverse_geocode(1, 2)


def test_safe_helpers_swallow_failures(monkeypatch):
    _serve(monkeypatch, error=urllib.error.URLError("down"))
    assert safe_reverse_geocode(CLIENT, 1, 2) is None
    assert safe_forward_geocode(CLIENT, "anywhere") is None
    assert safe_reverse_geocode(None, 1, 2) is None


class _BrokenGeocoder:
    def reverse_geocode(self, latitude, longitude):
        raise AttributeError("'str' object has no attribute 'get'")

    def forward_geocode(self, address):
        raise KeyError("geometry")


def test_safe_helpers_contain_unexpected_errors():
    assert safe_reverse_geocode(_BrokenGeocoder(), 1, 2) is None
    assert safe_forward_geocode(_BrokenGeocoder(), "anywhere") is None


def test_geocoder_from_config():
    assert geocoder_from_config({"GOOGLE_MAPS_API_KEY": ""}) is None
    client = geocoder_from_config({"GOOGLE_MAPS_API_KEY": "abc", "GEOCODING_TIMEOUT_SECONDS": 1.5})
    assert client.api_key == "abc"
    assert client.timeout_seconds == 1.5


def test_short_address():
    assert short_address("1 Main St, Springfield, IL 62701, USA") == "1 Main St, Springfield, IL 62701"
    assert short_address("Behind the bakery") == "Behind the bakery"
