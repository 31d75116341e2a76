"""
Request schemas and response shapes for the cats API.

Requests are parsed into frozen dataclasses at the boundary; anything the
Cat Record Store receives has already been validated. Unknown fields, bad
enum tokens and out-of-range coordinates raise ValidationError naming the
offending field.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from app.tnr.constants import LATITUDE_RANGE, LONGITUDE_RANGE, VALID_CAT_STATUSES, VALID_GENDERS
from app.tnr.errors import ValidationError
from app.tnr.geocoding import short_address
from app.tnr.utils import clean_text, is_finite_number, isoformat

if TYPE_CHECKING:
    from app.tnr.models import User
    from app.tnr.modules.cats.models import Cat, CatStatusHistory


# Sent by browser forms alongside the payload; never part of the record.
_TRANSPORT_FIELDS = frozenset({"csrf_token"})

_MAX_TEXT = {
    "name": 255,
    "estimatedAge": 64,
    "microchipInfo": 255,
    "imageUrl": 1024,
}


def _require_object(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("body", "Request body must be a JSON object.")
    return payload


def _reject_unknown(payload: dict, allowed: frozenset[str]) -> None:
    for key in payload:
        if key not in allowed and key not in _TRANSPORT_FIELDS:
            raise ValidationError(key, "Unknown field.")


def _text(payload: dict, field: str) -> str | None:
    raw = payload.get(field)
    if raw is not None and not isinstance(raw, str):
        raise ValidationError(field, "Must be a string.")
    value = clean_text(raw)
    limit = _MAX_TEXT.get(field)
    if value and limit and len(value) > limit:
        raise ValidationError(field, f"Must be at most {limit} characters.")
    return value


def _enum(payload: dict, field: str, valid: tuple[str, ...]) -> str:
    raw = payload.get(field)
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(field, "Is required.")
    if not isinstance(raw, str) or raw not in valid:
        raise ValidationError(field, f"Invalid value. Must be one of: {', '.join(valid)}")
    return raw


def parse_coordinate(raw: Any, field: str, bounds: tuple[float, float]) -> float:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        raise ValidationError(field, "Is required.")
    if isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            raise ValidationError(field, "Must be a number.") from None
    else:
        value = raw
    if not is_finite_number(value):
        raise ValidationError(field, "Must be a number.")
    lo, hi = bounds
    if value < lo or value > hi:
        raise ValidationError(field, f"Must be between {lo:g} and {hi:g}.")
    return float(value)


@dataclass(frozen=True)
class CatCreateRequest:
    gender: str
    status: str
    latitude: float
    longitude: float
    name: str | None = None
    estimated_age: str | None = None
    description: str | None = None
    microchip_info: str | None = None
    address: str | None = None
    image_url: str | None = None

    FIELDS = frozenset(
        {
            "name",
            "gender",
            "status",
            "estimatedAge",
            "description",
            "microchipInfo",
            "latitude",
            "longitude",
            "address",
            "imageUrl",
        }
    )

    @classmethod
    def from_payload(cls, payload: Any) -> "CatCreateRequest":
        data = _require_object(payload)
        _reject_unknown(data, cls.FIELDS)
        return cls(
            gender=_enum(data, "gender", VALID_GENDERS),
            status=_enum(data, "status", VALID_CAT_STATUSES),
            latitude=parse_coordinate(data.get("latitude"), "latitude", LATITUDE_RANGE),
            longitude=parse_coordinate(data.get("longitude"), "longitude", LONGITUDE_RANGE),
            name=_text(data, "name"),
            estimated_age=_text(data, "estimatedAge"),
            description=_text(data, "description"),
            microchip_info=_text(data, "microchipInfo"),
            address=_text(data, "address"),
            image_url=_text(data, "imageUrl"),
        )


@dataclass(frozen=True)
class StatusChangeRequest:
    status: str
    notes: str | None = None

    FIELDS = frozenset({"status", "notes"})

    @classmethod
    def from_payload(cls, payload: Any) -> "StatusChangeRequest":
        data = _require_object(payload)
        _reject_unknown(data, cls.FIELDS)
        return cls(status=_enum(data, "status", VALID_CAT_STATUSES), notes=_text(data, "notes"))


def parse_status_filter(values: list[str]) -> list[str]:
    """Accepts repeated ``status`` params and/or comma-separated lists."""
    out: list[str] = []
    for raw in values:
        for token in raw.split(","):
            token = token.strip()
            if not token:
                continue
            if token not in VALID_CAT_STATUSES:
                raise ValidationError("status", f"Invalid value. Must be one of: {', '.join(VALID_CAT_STATUSES)}")
            if token not in out:
                out.append(token)
    return out


def _user_ref(user: "User | None") -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "name": user.name}


def serialize_cat(cat: "Cat") -> dict[str, Any]:
    return {
        "id": cat.id,
        "name": cat.name,
        "gender": cat.gender,
        "status": cat.status,
        "estimatedAge": cat.estimated_age,
        "description": cat.description,
        "microchipInfo": cat.microchip_info,
        "latitude": cat.latitude,
        "longitude": cat.longitude,
        "address": cat.address,
        "shortAddress": short_address(cat.address) if cat.address else None,
        "imageUrl": cat.image_url,
        "dateAdded": isoformat(cat.date_added),
        "createdAt": isoformat(cat.created_at),
        "updatedAt": isoformat(cat.updated_at),
        "createdBy": _user_ref(cat.created_by),
        "updatedBy": _user_ref(cat.updated_by),
    }


def serialize_history_entry(entry: "CatStatusHistory") -> dict[str, Any]:
    return {
        "id": entry.id,
        "catId": entry.cat_id,
        "oldStatus": entry.old_status,
        "newStatus": entry.new_status,
        "notes": entry.notes,
        "updatedAt": isoformat(entry.updated_at),
        "updatedBy": _user_ref(entry.updated_by),
    }


def serialize_cat_detail(cat: "Cat", history: list["CatStatusHistory"]) -> dict[str, Any]:
    out = serialize_cat(cat)
    out["statusHistory"] = [serialize_history_entry(e) for e in history]
    return out
