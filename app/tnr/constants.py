"""
Central constants for the TNR registry.

Enum tokens are persisted verbatim; anything outside these sets is rejected at
the request boundary, never coerced.
"""
from __future__ import annotations

# Cat gender tokens
GENDER_MALE = "MALE"
GENDER_FEMALE = "FEMALE"
GENDER_UNKNOWN = "UNKNOWN"
VALID_GENDERS = (GENDER_MALE, GENDER_FEMALE, GENDER_UNKNOWN)

# Cat lifecycle status tokens
STATUS_NOT_TNRED = "NOT_TNRED"
STATUS_TNRED = "TNRED"
STATUS_RESCUED = "RESCUED"
STATUS_DECEASED = "DECEASED"
STATUS_MISSING = "MISSING"
VALID_CAT_STATUSES = (STATUS_NOT_TNRED, STATUS_TNRED, STATUS_RESCUED, STATUS_DECEASED, STATUS_MISSING)

# Account approval states
USER_PENDING = "PENDING"
USER_APPROVED = "APPROVED"
USER_REJECTED = "REJECTED"
VALID_USER_STATUSES = (USER_PENDING, USER_APPROVED, USER_REJECTED)

INITIAL_REGISTRATION_NOTE = "Initial cat registration"

LATITUDE_RANGE = (-90.0, 90.0)
LONGITUDE_RANGE = (-180.0, 180.0)
