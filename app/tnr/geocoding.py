from __future__ import annotations

import http.client
import json
import logging
import math
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any, Mapping

from app.tnr.errors import DependencyError

logger = logging.getLogger(__name__)


class GeocodingError(DependencyError):
    pass


@dataclass(frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    address: str | None

    def to_dict(self) -> dict[str, Any]:
        return {"latitude": self.latitude, "longitude": self.longitude, "address": self.address}


@dataclass(frozen=True)
class GeocodingClient:
    """Google Geocoding API client. Every call is bounded by ``timeout_seconds``."""

    api_key: str
    base_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    timeout_seconds: float = 5.0

    def request_json(self, params: dict[str, Any]) -> dict[str, Any]:
        query = dict(params)
        query["key"] = self.api_key
        url = self.base_url + "?" + urllib.parse.urlencode(query)
        req = urllib.request.Request(url, method="GET")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            raise GeocodingError(f"HTTP {e.code} from geocoding provider") from e
        except (urllib.error.URLError, http.client.HTTPException, TimeoutError, OSError, ValueError) as e:
            raise GeocodingError(f"Geocoding request failed: {e}") from e
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise GeocodingError("Invalid JSON from geocoding provider") from e
        if not isinstance(data, dict):
            raise GeocodingError("Unexpected geocoding payload")
        return data

    @staticmethod
    def _results(data: dict[str, Any]) -> list[dict[str, Any]]:
        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            raise GeocodingError(f"Geocoding provider returned status {status!r}")
        results = data.get("results") or []
        if not isinstance(results, list):
            raise GeocodingError("Unexpected geocoding results")
        if results and not isinstance(results[0], dict):
            raise GeocodingError("Unexpected geocoding result entry")
        return results

    @staticmethod
    def _formatted_address(result: dict[str, Any]) -> str | None:
        value = result.get("formatted_address")
        if value is None:
            return None
        if not isinstance(value, str):
            raise GeocodingError("Geocoding result has a non-text address")
        return value.strip() or None

    def reverse_geocode(self, latitude: float, longitude: float) -> str | None:
        data = self.request_json({"latlng": f"{latitude},{longitude}"})
        results = self._results(data)
        if not results:
            return None
        return self._formatted_address(results[0])

    def forward_geocode(self, address: str) -> GeocodeResult | None:
        data = self.request_json({"address": address})
        results = self._results(data)
        if not results:
            return None
        first = results[0]
        try:
            loc = first["geometry"]["location"]
            lat, lng = float(loc["lat"]), float(loc["lng"])
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodingError("Geocoding result missing coordinates") from e
        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise GeocodingError("Geocoding result has non-finite coordinates")
        return GeocodeResult(latitude=lat, longitude=lng, address=self._formatted_address(first))


def geocoder_from_config(config: Mapping[str, Any]) -> GeocodingClient | None:
    api_key = (config.get("GOOGLE_MAPS_API_KEY") or "").strip()
    if not api_key:
        return None
    return GeocodingClient(
        api_key=api_key,
        base_url=config.get("GEOCODING_BASE_URL") or GeocodingClient.base_url,
        timeout_seconds=float(config.get("GEOCODING_TIMEOUT_SECONDS") or 5.0),
    )


def safe_reverse_geocode(geocoder: GeocodingClient | None, latitude: float, longitude: float) -> str | None:
    """Best-effort lookup: any failure is logged and reads as "address unresolved"."""
    if geocoder is None:
        return None
    try:
        return geocoder.reverse_geocode(latitude, longitude)
    except DependencyError as e:
        logger.warning("Reverse geocoding failed for (%s, %s): %s", latitude, longitude, e)
    except Exception:
        logger.exception("Unexpected reverse geocoding error for (%s, %s)", latitude, longitude)
    return None


def safe_forward_geocode(geocoder: GeocodingClient | None, address: str) -> GeocodeResult | None:
    if geocoder is None:
        return None
    try:
        return geocoder.forward_geocode(address)
    except DependencyError as e:
        logger.warning("Forward geocoding failed for %r: %s", address, e)
    except Exception:
        logger.exception("Unexpected forward geocoding error for %r", address)
    return None


def short_address(full_address: str) -> str:
    """Drop trailing postal/country parts for compact display."""
    parts = full_address.split(", ")
    if len(parts) > 3:
        return ", ".join(parts[:3])
    return full_address
