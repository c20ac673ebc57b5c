from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.practice.db import db_session
from app.practice.module_access import require_module_access
from app.practice.modules.clients.models import Client
from app.practice.modules.clients.service import (
    create_client,
    list_clients,
    serialize_client,
    validate_client_payload,
)
from app.practice.tenancy import current_scope, get_scoped_or_404
from app.practice.utils import json_body, request_timezone, validation_error

bp = Blueprint("clients", __name__)


@bp.get("/clients")
@require_module_access("clients")
def clients_list():
    include_inactive = (request.args.get("include_inactive") or "").strip() == "1"
    clients = list_clients(db_session(), current_scope(), include_inactive=include_inactive)
    tz = request_timezone()
    return jsonify([serialize_client(c, tz) for c in clients])


@bp.post("/clients")
@require_module_access("clients")
def clients_create():
    s = db_session()
    payload = json_body()
    errors = validate_client_payload(payload)
    if errors:
        return validation_error("Invalid client data", errors)

    client = create_client(s, current_scope(), payload, g.current_user)
    s.commit()
    return jsonify(serialize_client(client, request_timezone())), 201


@bp.get("/clients/<int:client_id>")
@require_module_access("clients")
def client_detail(client_id: int):
    client = get_scoped_or_404(db_session(), Client, client_id)
    return serialize_client(client, request_timezone())
