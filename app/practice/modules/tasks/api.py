from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.practice.db import db_session
from app.practice.module_access import protect_blueprint
from app.practice.modules.tasks.models import Task
from app.practice.modules.tasks.service import (
    TASK_STATUSES,
    create_task,
    delete_task,
    list_tasks,
    serialize_task,
    update_task,
    validate_task_payload,
)
from app.practice.tenancy import current_scope, get_scoped_or_404
from app.practice.utils import json_body, parse_int, request_timezone, validation_error

bp = protect_blueprint(Blueprint("tasks", __name__), "tasks")


@bp.get("")
def tasks_list():
    status = (request.args.get("status") or "").strip() or None
    if status and status not in TASK_STATUSES:
        return validation_error("Invalid status filter")
    client_id = parse_int(request.args.get("client_id"))
    tasks = list_tasks(db_session(), current_scope(), status=status, client_id=client_id)
    tz = request_timezone()
    return jsonify({"success": True, "data": [serialize_task(t, tz) for t in tasks]})


@bp.post("")
def tasks_create():
    s = db_session()
    data, errors = validate_task_payload(json_body())
    if errors:
        return validation_error("Invalid task data", errors)

    task = create_task(s, current_scope(), data, g.current_user)
    s.commit()
    current_app.logger.info("Task created: %s (id=%s)", task.title, task.id)
    return jsonify({"success": True, "data": serialize_task(task, request_timezone()), "message": "Task created successfully"}), 201


@bp.get("/<int:task_id>")
def task_detail(task_id: int):
    task = get_scoped_or_404(db_session(), Task, task_id)
    return {"success": True, "data": serialize_task(task, request_timezone())}


@bp.patch("/<int:task_id>")
def task_update(task_id: int):
    s = db_session()
    # Ownership first: a foreign task id is a 404 even with an invalid body.
    get_scoped_or_404(s, Task, task_id)
    data, errors = validate_task_payload(json_body(), partial=True)
    if errors:
        return validation_error("Invalid task data", errors)

    task = update_task(s, current_scope(), task_id, data, g.current_user)
    s.commit()
    current_app.logger.info("Task updated: %s (id=%s)", task.title, task_id)
    return {"success": True, "data": serialize_task(task, request_timezone()), "message": "Task updated successfully"}


@bp.delete("/<int:task_id>")
def task_delete(task_id: int):
    s = db_session()
    delete_task(s, current_scope(), task_id, g.current_user)
    s.commit()
    return {"success": True, "message": "Task deleted successfully"}
