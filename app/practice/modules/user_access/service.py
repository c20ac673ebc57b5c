from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.practice.audit import record_event
from app.practice.errors import ScopeViolation
from app.practice.module_access import MODULE_KEYS
from app.practice.tenancy import NOT_FOUND_MESSAGE, TenantScope, get_scoped_or_404, scoped

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.practice.models import FirmUser, User
    from app.practice.modules.user_access.models import ClientAssignment


FIRM_USER_ROLES = ("admin", "manager", "senior", "staff", "intern")
STAFF_ROLES = ("firm_user", "firm_admin", "firm_owner", "manager")

ASSIGNMENT_FLAGS = (
    ("canViewFinancials", "view_financials"),
    ("canEditTransactions", "edit_transactions"),
    ("canManageAuditFiles", "manage_audit_files"),
    ("canViewInvoices", "view_invoices"),
    ("canCreateInvoices", "create_invoices"),
    ("isClientManager", "client_manager"),
)


def sanitize_modules(modules: list[Any]) -> list[str]:
    """Known module keys only, first occurrence wins."""
    out: list[str] = []
    for key in modules:
        if isinstance(key, str) and key in MODULE_KEYS and key not in out:
            out.append(key)
    return out


def map_role_to_firm_user_role(role: str | None) -> str:
    normalized = (role or "").lower()
    if normalized in ("firm_admin", "firm_owner", "manager"):
        return "manager"
    return "staff"


def resolve_firm_user_role(requested: Any, writer_role: str | None) -> str:
    if isinstance(requested, str) and requested in FIRM_USER_ROLES:
        return requested
    return map_role_to_firm_user_role(writer_role)


def assignment_permissions(payload: dict[str, Any]) -> list[str]:
    return [perm for flag, perm in ASSIGNMENT_FLAGS if payload.get(flag)]


def _firm_member(s: "Session", scope: TenantScope, user_id: int) -> "User":
    from app.practice.models import User

    member = s.get(User, user_id)
    if member is None or member.firm_id != scope.firm_id:
        raise ScopeViolation(NOT_FOUND_MESSAGE)
    return member


def get_firm_user(s: "Session", firm_id: int, user_id: int) -> "FirmUser | None":
    from app.practice.models import FirmUser

    return s.query(FirmUser).filter(FirmUser.user_id == user_id, FirmUser.firm_id == firm_id).one_or_none()


def list_staff(s: "Session", scope: TenantScope) -> list["User"]:
    from app.practice.models import User

    return (
        s.query(User)
        .filter(User.firm_id == scope.firm_id, User.role.in_(STAFF_ROLES))
        .order_by(User.name.asc(), User.id.asc())
        .all()
    )


def list_firm_users(s: "Session", scope: TenantScope) -> list["FirmUser"]:
    from app.practice.models import FirmUser

    return scoped(s.query(FirmUser), FirmUser, scope).order_by(FirmUser.id.asc()).all()


def set_module_permissions(
    s: "Session",
    scope: TenantScope,
    *,
    user_id: int,
    modules: list[Any],
    actor: "User",
    role: str | None = None,
) -> tuple["FirmUser", bool]:
    """
    Create or replace the firm membership's module list. Returns (row, created).
    `role=None` keeps an existing membership role.
    """
    from app.practice.models import FirmUser

    _firm_member(s, scope, user_id)
    sanitized = sanitize_modules(modules)
    existing = get_firm_user(s, scope.firm_id, user_id)
    now = datetime.utcnow()
    created = existing is None
    if existing is None:
        existing = FirmUser(
            user_id=user_id,
            firm_id=scope.firm_id,
            role=role or map_role_to_firm_user_role(actor.role),
            permissions=sanitized,
            created_at=now,
            updated_at=now,
        )
        s.add(existing)
        s.flush()
    else:
        before = list(existing.permissions or [])
        existing.permissions = sanitized
        existing.updated_at = now
        if role:
            existing.role = role
    record_event(
        s,
        actor=actor,
        action="firm_user.permissions_create" if created else "firm_user.permissions_update",
        entity_type="FirmUser",
        entity_id=str(existing.id),
        metadata={"user_id": user_id, "modules": sanitized} if created else {"user_id": user_id, "before": before, "after": sanitized},
    )
    return existing, created


def create_assignment(
    s: "Session",
    scope: TenantScope,
    *,
    staff_id: int,
    client_id: int,
    payload: dict[str, Any],
    actor: "User",
) -> "ClientAssignment":
    from app.practice.modules.clients.models import Client
    from app.practice.modules.user_access.models import ClientAssignment

    _firm_member(s, scope, staff_id)
    get_scoped_or_404(s, Client, client_id, scope)
    assignment = ClientAssignment(
        user_id=staff_id,
        client_id=client_id,
        firm_id=scope.firm_id,
        role="manager" if payload.get("isClientManager") else "staff",
        permissions=assignment_permissions(payload),
        created_at=datetime.utcnow(),
    )
    s.add(assignment)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="client_assignment.create",
        entity_type="ClientAssignment",
        entity_id=str(assignment.id),
        metadata={"staff_id": staff_id, "client_id": client_id, "permissions": assignment.permissions},
    )
    return assignment


def delete_assignment(s: "Session", scope: TenantScope, assignment_id: int, actor: "User") -> None:
    from app.practice.modules.user_access.models import ClientAssignment

    assignment = get_scoped_or_404(s, ClientAssignment, assignment_id, scope)
    record_event(
        s,
        actor=actor,
        action="client_assignment.delete",
        entity_type="ClientAssignment",
        entity_id=str(assignment.id),
        metadata={"staff_id": assignment.user_id, "client_id": assignment.client_id},
    )
    s.delete(assignment)


def list_assignments(s: "Session", scope: TenantScope) -> list["ClientAssignment"]:
    from app.practice.modules.user_access.models import ClientAssignment

    return scoped(s.query(ClientAssignment), ClientAssignment, scope).order_by(ClientAssignment.id.asc()).all()


def serialize_firm_user(fu: "FirmUser") -> dict[str, Any]:
    return {
        "id": fu.id,
        "user_id": fu.user_id,
        "firm_id": fu.firm_id,
        "role": fu.role,
        "modules": list(fu.permissions or []),
        "user_name": fu.user.name if fu.user else None,
        "user_email": fu.user.email if fu.user else None,
    }


def serialize_assignment(a: "ClientAssignment") -> dict[str, Any]:
    return {
        "id": a.id,
        "staff_id": a.user_id,
        "client_id": a.client_id,
        "firm_id": a.firm_id,
        "role": a.role,
        "permissions": list(a.permissions or []),
        "staff_name": a.user.name if a.user else None,
        "client_name": a.client.name if a.client else None,
    }


def serialize_user(u: "User") -> dict[str, Any]:
    return {
        "id": u.id,
        "email": u.email,
        "name": u.name,
        "role": u.role,
        "firm_id": u.firm_id,
        "client_id": u.client_id,
        "timezone": u.timezone,
    }
