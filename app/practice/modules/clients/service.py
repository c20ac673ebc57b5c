from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from app.practice.audit import record_event
from app.practice.dates import format_date_for_display, is_valid_date_string, to_calendar_date
from app.practice.errors import AuthorizationDenied
from app.practice.tenancy import TenantScope, scoped

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.practice.models import User
    from app.practice.modules.clients.models import Client


def validate_client_payload(payload: dict[str, Any]) -> list[str]:
    errors = []
    if not str(payload.get("name") or "").strip():
        errors.append("Name is required.")
    fye = str(payload.get("fiscal_year_end") or "").strip()
    if fye and not is_valid_date_string(fye):
        errors.append("fiscal_year_end must be a valid YYYY-MM-DD date.")
    return errors


def _calendar_date(s: str | None) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    return to_calendar_date(s)


def list_clients(s: "Session", scope: TenantScope, *, include_inactive: bool = False) -> list["Client"]:
    from app.practice.modules.clients.models import Client

    q = scoped(s.query(Client), Client, scope)
    if not include_inactive:
        q = q.filter(Client.is_active.is_(True))
    return q.order_by(Client.name.asc()).all()


def create_client(s: "Session", scope: TenantScope, payload: dict[str, Any], actor: "User") -> "Client":
    from app.practice.modules.clients.models import Client

    if scope.client_id is not None:
        raise AuthorizationDenied("Insufficient permissions")
    client = Client(
        firm_id=scope.firm_id,
        name=str(payload.get("name") or "").strip(),
        email=str(payload.get("email") or "").strip().lower() or None,
        fiscal_year_end=_calendar_date(payload.get("fiscal_year_end")),
        is_active=True,
        created_at=datetime.utcnow(),
    )
    s.add(client)
    s.flush()
    record_event(s, actor=actor, action="client.create", entity_type="Client", entity_id=str(client.id))
    return client


def serialize_client(c: "Client", tz: str) -> dict[str, Any]:
    return {
        "id": c.id,
        "firm_id": c.firm_id,
        "name": c.name,
        "email": c.email,
        "fiscal_year_end": c.fiscal_year_end.isoformat() if c.fiscal_year_end else None,
        "fiscal_year_end_display": format_date_for_display(c.fiscal_year_end, tz) if c.fiscal_year_end else None,
        "is_active": c.is_active,
    }
