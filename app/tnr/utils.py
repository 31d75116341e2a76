from __future__ import annotations

import math
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are DateTime(timezone=False))."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat() + "Z"


def clean_text(value) -> str | None:
    """Strip a free-text value; empty strings become None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def format_coordinates(latitude: float, longitude: float) -> str:
    return f"{latitude:.6f}, {longitude:.6f}"


def is_finite_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # int too large for a float
        return False
