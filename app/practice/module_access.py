from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from functools import wraps
from types import MappingProxyType
from typing import Any

from flask import Blueprint, current_app, g, has_app_context
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.practice.db import db_session
from app.practice.errors import AuthenticationMissing, AuthorizationDenied
from app.practice.models import FirmUser

logger = logging.getLogger(__name__)

MODULE_KEYS = frozenset(
    {
        "dashboard",
        "clients",
        "contact-management",
        "projects",
        "tasks",
        "calendar",
        "communication",
        "notifications",
        "team",
        "reports",
        "time-expenses",
        "billing",
        "settings",
        "practice",
    }
)

# Granting a key unlocks the listed keys, one hop only.
MODULE_DEPENDENCIES: MappingProxyType[str, tuple[str, ...]] = MappingProxyType(
    {
        "clients": ("projects", "tasks", "time-expenses", "billing", "reports"),
        "projects": ("tasks", "time-expenses", "billing", "calendar"),
        "tasks": ("time-expenses", "calendar", "reports"),
        "calendar": ("tasks", "projects"),
        "reports": ("dashboard",),
        "practice": ("reports", "dashboard"),
    }
)

ADMIN_ROLES = frozenset({"firm_admin", "firm_owner", "saas_owner", "super_admin", "manager", "admin"})

DEFAULT_LOOKUP_TIMEOUT = 5.0


def is_admin_role(role: str | None) -> bool:
    return (role or "").strip().lower() in ADMIN_ROLES


def implied_modules(granted: Iterable[str]) -> frozenset[str]:
    """Modules unlocked by `granted` through a single lookup in MODULE_DEPENDENCIES."""
    implied: set[str] = set()
    for key in granted:
        implied.update(MODULE_DEPENDENCIES.get(key, ()))
    return frozenset(implied)


def _lookup_timeout() -> float:
    if has_app_context():
        return float(current_app.config.get("PERMISSION_LOOKUP_TIMEOUT") or DEFAULT_LOOKUP_TIMEOUT)
    return DEFAULT_LOOKUP_TIMEOUT


def get_permissions(s: Session, user_id: int, firm_id: int) -> frozenset[str]:
    """
    Granted module keys for (user_id, firm_id). A missing membership row is an empty set.
    Database errors (including a statement timeout) propagate to the caller.
    """
    bounded = s.get_bind().dialect.name == "postgresql"
    if bounded:
        ms = int(_lookup_timeout() * 1000)
        s.execute(text(f"SET LOCAL statement_timeout = {ms}"))
    row = s.execute(
        select(FirmUser.permissions).where(FirmUser.user_id == user_id, FirmUser.firm_id == firm_id)
    ).first()
    if bounded:
        # Later statements in the request's transaction run under the session timeout again.
        # A failed lookup aborts the transaction instead, and the caller's rollback drops the SET LOCAL.
        s.execute(text("SET LOCAL statement_timeout = DEFAULT"))
    modules = row[0] if row is not None else None
    if not isinstance(modules, list):
        return frozenset()
    return frozenset(m for m in modules if isinstance(m, str))


def has_module_access(s: Session, user: Any, module_key: str) -> bool:
    """
    Decide whether `user` (anything with id/firm_id/role) may use `module_key`.

    A missing firm denies before the admin bypass is considered. Non-admins need
    the key itself or a granted key whose direct dependencies include it.
    """
    if user is None or not getattr(user, "firm_id", None):
        return False
    if is_admin_role(getattr(user, "role", None)):
        return True

    granted = get_permissions(s, user.id, user.firm_id)
    if module_key in granted:
        return True
    return module_key in implied_modules(granted)


def _check_access(module_key: str) -> None:
    principal = getattr(g, "principal", None)
    if principal is None:
        raise AuthenticationMissing()
    try:
        allowed = has_module_access(db_session(), principal, module_key)
    except SQLAlchemyError:
        current_app.logger.exception(
            "Module access lookup failed; denying (module=%s user_id=%s request_id=%s)",
            module_key,
            principal.id,
            getattr(g, "request_id", None),
        )
        db_session().rollback()
        allowed = False
    if not allowed:
        g.missing_module = module_key
        raise AuthorizationDenied()


def _validate_key(module_key: str) -> None:
    if module_key not in MODULE_KEYS:
        raise ValueError(f"Unknown module key: {module_key!r}")


def require_module_access(module_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    _validate_key(module_key)

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            # 401 without a principal, 403 when the resolver denies or fails.
            _check_access(module_key)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def protect_blueprint(bp: Blueprint, module_key: str) -> Blueprint:
    """Gate every route of `bp` on `module_key`."""
    _validate_key(module_key)

    @bp.before_request
    def _module_gate():
        _check_access(module_key)

    return bp
