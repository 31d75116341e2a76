from flask import Blueprint, current_app, jsonify, request

from app.tnr.constants import LATITUDE_RANGE, LONGITUDE_RANGE
from app.tnr.errors import ValidationError
from app.tnr.geocoding import safe_forward_geocode, safe_reverse_geocode
from app.tnr.modules.cats.schemas import parse_coordinate
from app.tnr.utils import format_coordinates

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return {"service": "tnr-registry", "ok": True}


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True, "schema_ok": bool(current_app.config.get("_schema_health_ok", True))}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/geocode/reverse")
def geocode_reverse():
    lat = parse_coordinate(request.args.get("lat"), "lat", LATITUDE_RANGE)
    lng = parse_coordinate(request.args.get("lng"), "lng", LONGITUDE_RANGE)
    address = safe_reverse_geocode(current_app.extensions.get("geocoder"), lat, lng)
    return jsonify({"address": address, "coordinates": format_coordinates(lat, lng)})


@bp.get("/geocode/forward")
def geocode_forward():
    address = (request.args.get("address") or "").strip()
    if not address:
        raise ValidationError("address", "Is required.")
    result = safe_forward_geocode(current_app.extensions.get("geocoder"), address)
    return jsonify({"result": result.to_dict() if result else None})
