from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.practice.db import db_session
from app.practice.errors import AuthenticationMissing, AuthorizationDenied
from app.practice.models import User
from app.practice.module_access import is_admin_role
from app.practice.modules.user_access.service import (
    create_assignment,
    delete_assignment,
    get_firm_user,
    list_assignments,
    list_firm_users,
    list_staff,
    resolve_firm_user_role,
    serialize_assignment,
    serialize_firm_user,
    serialize_user,
    set_module_permissions,
)
from app.practice.tenancy import current_scope, require_firm_wide_scope
from app.practice.utils import json_body, parse_int, validation_error

bp = Blueprint("user_access", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise AuthenticationMissing()
    return u


def _require_admin() -> None:
    if not is_admin_role(g.principal.role):
        raise AuthorizationDenied("Insufficient permissions")


@bp.get("/users/me")
def users_me():
    user = _current_user()
    modules: list[str] = []
    if user.firm_id:
        fu = get_firm_user(db_session(), user.firm_id, user.id)
        modules = list(fu.permissions or []) if fu else []
    return {**serialize_user(user), "module_permissions": modules}


@bp.get("/users/role/staff")
@require_firm_wide_scope
def users_staff():
    staff = list_staff(db_session(), current_scope())
    return jsonify([serialize_user(u) for u in staff])


@bp.get("/user-permissions")
@require_firm_wide_scope
def user_permissions_list():
    rows = list_firm_users(db_session(), current_scope())
    return jsonify([serialize_firm_user(fu) for fu in rows])


@bp.post("/user-permissions")
@require_firm_wide_scope
def user_permissions_upsert():
    _require_admin()
    s = db_session()
    actor = _current_user()
    payload = json_body()
    user_id = parse_int(payload.get("userId"))
    modules = payload.get("modules")
    if not user_id or not isinstance(modules, list):
        return validation_error("userId and modules are required")

    role = resolve_firm_user_role(payload.get("role"), actor.role)
    fu, created = set_module_permissions(s, current_scope(), user_id=user_id, modules=modules, actor=actor, role=role)
    s.commit()
    return jsonify(serialize_firm_user(fu)), 201 if created else 200


@bp.patch("/user-permissions/<int:user_id>")
@require_firm_wide_scope
def user_permissions_patch(user_id: int):
    _require_admin()
    s = db_session()
    actor = _current_user()
    modules = json_body().get("modules")
    if not isinstance(modules, list):
        return validation_error("modules array is required")

    fu, created = set_module_permissions(s, current_scope(), user_id=user_id, modules=modules, actor=actor)
    s.commit()
    return jsonify(serialize_firm_user(fu)), 201 if created else 200


@bp.get("/staff-assignments")
@require_firm_wide_scope
def staff_assignments_list():
    rows = list_assignments(db_session(), current_scope())
    return jsonify([serialize_assignment(a) for a in rows])


@bp.post("/staff-assignments")
@require_firm_wide_scope
def staff_assignments_create():
    _require_admin()
    s = db_session()
    payload = json_body()
    staff_id = parse_int(payload.get("staffId"))
    client_id = parse_int(payload.get("clientId"))
    if not staff_id or not client_id:
        return validation_error("staffId and clientId are required")

    assignment = create_assignment(
        s, current_scope(), staff_id=staff_id, client_id=client_id, payload=payload, actor=_current_user()
    )
    s.commit()
    return jsonify(serialize_assignment(assignment)), 201


@bp.delete("/staff-assignments/<int:assignment_id>")
@require_firm_wide_scope
def staff_assignments_delete(assignment_id: int):
    _require_admin()
    s = db_session()
    delete_assignment(s, current_scope(), assignment_id, _current_user())
    s.commit()
    return {"success": True}
