from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, TypeVar

from flask import g, has_app_context
from sqlalchemy import false
from sqlalchemy.orm import Query, Session

from app.practice.errors import AuthorizationDenied, ScopeMissing, ScopeViolation

logger = logging.getLogger(__name__)

M = TypeVar("M")

NOT_FOUND_MESSAGE = "Not found"
CLIENT_ROLE = "client"


@dataclass(frozen=True)
class Principal:
    """
    The authenticated identity the access core reads: nothing more.
    Built once per request where the session is trusted (auth.load_current_user).
    """

    id: int
    firm_id: int | None
    role: str
    client_id: int | None = None

    @classmethod
    def from_user(cls, user: Any) -> "Principal":
        user_id = getattr(user, "id", None)
        if not isinstance(user_id, int):
            raise ValueError("principal requires an integer user id")
        firm_id = getattr(user, "firm_id", None)
        if firm_id is not None and not isinstance(firm_id, int):
            raise ValueError("principal firm_id must be an integer or None")
        client_id = getattr(user, "client_id", None)
        if client_id is not None and not isinstance(client_id, int):
            raise ValueError("principal client_id must be an integer or None")
        role = (getattr(user, "role", None) or "").strip().lower()
        return cls(id=user_id, firm_id=firm_id, role=role, client_id=client_id)


@dataclass(frozen=True)
class TenantScope:
    firm_id: int
    client_id: int | None = None


def scope_for(principal: Principal | None) -> TenantScope | None:
    if principal is None or principal.firm_id is None:
        return None
    if principal.role != CLIENT_ROLE:
        return TenantScope(firm_id=principal.firm_id)
    # Client-portal users are narrowed to a single client; without one they get no scope.
    if principal.client_id is None:
        return None
    return TenantScope(firm_id=principal.firm_id, client_id=principal.client_id)


def _request_id() -> str | None:
    return getattr(g, "request_id", None) if has_app_context() else None


def setup_tenant_scope() -> None:
    """before_request hook: attach g.tenant_scope from g.principal. No writes."""
    g.tenant_scope = scope_for(getattr(g, "principal", None))


def current_scope() -> TenantScope:
    scope: TenantScope | None = getattr(g, "tenant_scope", None)
    if scope is None:
        # Never fall back to an unscoped ("all tenants") view.
        raise ScopeMissing()
    return scope


def require_tenant_scope(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        current_scope()
        return fn(*args, **kwargs)

    return wrapped


def require_firm_wide_scope(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Like require_tenant_scope, but client-narrowed principals get a 403."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if current_scope().client_id is not None:
            raise AuthorizationDenied("Insufficient permissions")
        return fn(*args, **kwargs)

    return wrapped


def client_column(model: type) -> str | None:
    """Attribute that ties `model` rows to a client, from `__scope_client_column__`."""
    return getattr(model, "__scope_client_column__", None)


def scoped(query: Query, model: type, scope: TenantScope | None = None) -> Query:
    """Filter `query` on `model` to the request's firm (and client, when narrowed)."""
    scope = scope or current_scope()
    query = query.filter(model.firm_id == scope.firm_id)
    if scope.client_id is None:
        return query
    column = client_column(model)
    if column is None:
        # Firm-level rows are invisible to a client-narrowed scope.
        return query.filter(false())
    return query.filter(getattr(model, column) == scope.client_id)


def belongs_to_scope(record: Any, scope: TenantScope) -> bool:
    if getattr(record, "firm_id", None) != scope.firm_id:
        return False
    if scope.client_id is None:
        return True
    column = client_column(type(record))
    return column is not None and getattr(record, column) == scope.client_id


def get_scoped_or_404(s: Session, model: type[M], record_id: int, scope: TenantScope | None = None) -> M:
    """
    Fetch by primary key, then check ownership.
    Missing and foreign records raise the same 404 so existence is never revealed.
    """
    scope = scope or current_scope()
    record = s.get(model, record_id)
    if record is None:
        raise ScopeViolation(NOT_FOUND_MESSAGE)
    if not belongs_to_scope(record, scope):
        logger.warning(
            "Scope violation: %s id=%s requested from firm_id=%s request_id=%s",
            model.__name__,
            record_id,
            scope.firm_id,
            _request_id(),
        )
        raise ScopeViolation(NOT_FOUND_MESSAGE)
    return record
