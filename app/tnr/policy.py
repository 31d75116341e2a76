"""
Access policy gate.

``evaluate_access`` is a pure function of (principal, operation class). It is
re-evaluated on every request from a freshly loaded principal, so an admin
revoking approval takes effect on the very next request.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass

from flask import current_app, g, request

from app.tnr.constants import USER_APPROVED
from app.tnr.errors import AuthenticationError, AuthorizationError


@dataclass(frozen=True)
class Principal:
    id: int
    email: str
    name: str
    is_admin: bool
    status: str

    @property
    def is_approved(self) -> bool:
        return self.status == USER_APPROVED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "isAdmin": self.is_admin,
            "status": self.status,
        }


class OperationClass(enum.Enum):
    AUTH = "auth"
    PUBLIC = "public"
    STANDARD = "standard"
    ADMIN = "admin"


class AccessDecision(enum.Enum):
    ALLOW = "allow"
    DENY_UNAUTHENTICATED = "deny_unauthenticated"
    DENY_UNAPPROVED = "deny_unapproved"
    DENY_NOT_ADMIN = "deny_not_admin"

    @property
    def allowed(self) -> bool:
        return self is AccessDecision.ALLOW


_PUBLIC_PREFIXES = ("/static/",)
_PUBLIC_PATHS = ("/health", "/healthz")


def classify_path(path: str) -> OperationClass:
    if path == "/auth" or path.startswith("/auth/"):
        return OperationClass.AUTH
    if path in _PUBLIC_PATHS or path.startswith(_PUBLIC_PREFIXES):
        return OperationClass.PUBLIC
    if path == "/admin" or path.startswith("/admin/"):
        return OperationClass.ADMIN
    return OperationClass.STANDARD


def evaluate_access(principal: Principal | None, operation: OperationClass) -> AccessDecision:
    """First matching rule wins."""
    if operation in (OperationClass.AUTH, OperationClass.PUBLIC):
        return AccessDecision.ALLOW
    if principal is None:
        return AccessDecision.DENY_UNAUTHENTICATED
    if not principal.is_approved:
        return AccessDecision.DENY_UNAPPROVED
    if operation is OperationClass.ADMIN and not principal.is_admin:
        return AccessDecision.DENY_NOT_ADMIN
    return AccessDecision.ALLOW


def enforce_access() -> None:
    """before_request hook: raise unless the current principal may proceed."""
    operation = classify_path(request.path)
    principal: Principal | None = getattr(g, "principal", None)
    decision = evaluate_access(principal, operation)
    if decision.allowed:
        return None
    if decision is AccessDecision.DENY_UNAUTHENTICATED:
        raise AuthenticationError()
    current_app.logger.warning(
        "Access denied: decision=%s user_id=%s path=%s request_id=%s",
        decision.value,
        principal.id if principal else None,
        request.path,
        getattr(g, "request_id", None),
    )
    raise AuthorizationError(decision.value)


def current_principal() -> Principal:
    p = getattr(g, "principal", None)
    if not p:
        raise AuthenticationError()
    return p
