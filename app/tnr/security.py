import hmac
import secrets

from flask import Request, request, session

CSRF_HEADER = "X-CSRF-Token"
_MUTATING_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from header, form, or JSON body."""
    token = req.headers.get(CSRF_HEADER) or req.form.get("csrf_token")

    # Also check JSON body for API-style requests
    if not token and req.is_json:
        json_data = req.get_json(silent=True)
        if isinstance(json_data, dict):
            token = json_data.get("csrf_token")

    expected = session.get("csrf_token")
    return bool(token and expected and hmac.compare_digest(str(token), str(expected)))


def csrf_guard():
    """before_request hook; mutating requests outside the auth blueprint need a token."""
    if request.method not in _MUTATING_METHODS:
        return None
    # Allow safe auth endpoints to pass through (login/logout/register)
    if (request.endpoint or "").startswith("auth."):
        return None
    if not validate_csrf(request):
        return {"error": "CSRF token missing or invalid."}, 400
    return None
