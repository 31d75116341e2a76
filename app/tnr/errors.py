"""
Error taxonomy for the registry.

Request handlers let these propagate; the handlers registered in
``create_app`` turn them into JSON responses.
"""
from __future__ import annotations


class TnrError(Exception):
    status_code = 500
    public_message = "Internal server error"


class ValidationError(TnrError):
    """Malformed or out-of-range input. Always raised before any write."""

    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class AuthenticationError(TnrError):
    status_code = 401
    public_message = "Unauthorized"


class AuthorizationError(TnrError):
    """Principal resolved but denied. ``reason`` is for logs only."""

    status_code = 403
    public_message = "Forbidden"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotFoundError(TnrError):
    status_code = 404
    public_message = "Not found"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class DependencyError(TnrError):
    """A soft dependency failed. Callers log it and carry on."""


class StoreError(TnrError):
    """Transaction or write failure; nothing was committed."""


class ConcurrentUpdateError(StoreError):
    status_code = 409
    public_message = "Record was modified concurrently; reload and retry"
