from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.practice.audit import record_event
from app.practice.dates import format_date_for_display, to_calendar_date
from app.practice.errors import DateParseFailure, ScopeViolation
from app.practice.tenancy import NOT_FOUND_MESSAGE, TenantScope, get_scoped_or_404, scoped

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.practice.models import User
    from app.practice.modules.tasks.models import Task


TASK_STATUSES = ("not_started", "in_progress", "completed")
TASK_PRIORITIES = ("low", "medium", "high")

_TEXT_FIELDS = (("title", "title"), ("description", "description"), ("notes", "notes"))


def validate_task_payload(payload: dict[str, Any], *, partial: bool = False) -> tuple[dict[str, Any], list[str]]:
    """
    Validate a create (partial=False) or update (partial=True) payload.
    Returns (cleaned fields keyed by column name, errors).
    """
    data: dict[str, Any] = {}
    errors: list[str] = []

    for key, column in _TEXT_FIELDS:
        if key not in payload:
            continue
        value = payload[key]
        if value is not None and not isinstance(value, str):
            errors.append(f"{key} must be a string.")
            continue
        data[column] = (value or "").strip() or None

    if "title" in data and not data["title"]:
        errors.append("Title is required.")
    elif not partial and "title" not in data:
        errors.append("Title is required.")

    if "status" in payload:
        if payload["status"] not in TASK_STATUSES:
            errors.append(f"Invalid status. Must be one of: {', '.join(TASK_STATUSES)}")
        else:
            data["status"] = payload["status"]

    if "priority" in payload:
        if payload["priority"] not in TASK_PRIORITIES:
            errors.append(f"Invalid priority. Must be one of: {', '.join(TASK_PRIORITIES)}")
        else:
            data["priority"] = payload["priority"]

    for key, column in (("assignedTo", "assigned_to"), ("clientId", "client_id")):
        if key not in payload:
            continue
        value = payload[key]
        if value is None:
            data[column] = None
        elif isinstance(value, int) and not isinstance(value, bool):
            data[column] = value
        else:
            errors.append(f"{key} must be an integer or null.")

    if "dueDate" in payload:
        value = payload["dueDate"]
        if value is None or value == "":
            data["due_date"] = None
        elif not isinstance(value, str):
            errors.append("dueDate must be a YYYY-MM-DD or ISO date string.")
        else:
            try:
                data["due_date"] = to_calendar_date(value)
            except DateParseFailure:
                errors.append("dueDate must be a YYYY-MM-DD or ISO date string.")

    return data, errors


def _check_references(s: "Session", scope: TenantScope, data: dict[str, Any]) -> None:
    from app.practice.models import User
    from app.practice.modules.clients.models import Client

    if data.get("client_id") is not None:
        get_scoped_or_404(s, Client, data["client_id"], scope)
    elif scope.client_id is not None and "client_id" in data:
        # Client-portal users cannot detach a task from their client.
        raise ScopeViolation(NOT_FOUND_MESSAGE)
    if data.get("assigned_to") is not None:
        assignee = s.get(User, data["assigned_to"])
        if assignee is None or assignee.firm_id != scope.firm_id:
            raise ScopeViolation(NOT_FOUND_MESSAGE)


def list_tasks(
    s: "Session",
    scope: TenantScope,
    *,
    status: str | None = None,
    client_id: int | None = None,
) -> list["Task"]:
    from app.practice.modules.tasks.models import Task

    q = scoped(s.query(Task), Task, scope)
    if status:
        q = q.filter(Task.status == status)
    if client_id is not None:
        q = q.filter(Task.client_id == client_id)
    return q.order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.id.asc()).all()


def create_task(s: "Session", scope: TenantScope, data: dict[str, Any], actor: "User") -> "Task":
    from app.practice.modules.tasks.models import Task

    if scope.client_id is not None:
        data = {**data, "client_id": scope.client_id}
    _check_references(s, scope, data)
    now = datetime.utcnow()
    task = Task(
        firm_id=scope.firm_id,
        client_id=data.get("client_id"),
        title=data["title"],
        description=data.get("description"),
        status=data.get("status") or "not_started",
        priority=data.get("priority") or "medium",
        assigned_to=data.get("assigned_to"),
        due_date=data.get("due_date"),
        notes=data.get("notes"),
        created_at=now,
        updated_at=now,
    )
    s.add(task)
    s.flush()
    record_event(s, actor=actor, action="task.create", entity_type="Task", entity_id=str(task.id))
    return task


def update_task(s: "Session", scope: TenantScope, task_id: int, data: dict[str, Any], actor: "User") -> "Task":
    from app.practice.modules.tasks.models import Task

    task = get_scoped_or_404(s, Task, task_id, scope)
    _check_references(s, scope, data)
    changed: dict[str, Any] = {}
    for column, value in data.items():
        if getattr(task, column) != value:
            setattr(task, column, value)
            changed[column] = value.isoformat() if hasattr(value, "isoformat") else value
    if changed:
        task.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=actor,
            action="task.update",
            entity_type="Task",
            entity_id=str(task.id),
            metadata={"changed": changed},
        )
    return task


def delete_task(s: "Session", scope: TenantScope, task_id: int, actor: "User") -> None:
    from app.practice.modules.tasks.models import Task

    task = get_scoped_or_404(s, Task, task_id, scope)
    record_event(s, actor=actor, action="task.delete", entity_type="Task", entity_id=str(task.id))
    s.delete(task)


def serialize_task(t: "Task", tz: str) -> dict[str, Any]:
    return {
        "id": t.id,
        "firm_id": t.firm_id,
        "client_id": t.client_id,
        "title": t.title,
        "description": t.description,
        "status": t.status,
        "priority": t.priority,
        "assigned_to": t.assigned_to,
        "due_date": t.due_date.isoformat() if t.due_date else None,
        "due_date_display": format_date_for_display(t.due_date, tz) if t.due_date else None,
        "notes": t.notes,
        "updated_at": t.updated_at.isoformat() if t.updated_at else None,
    }
