from __future__ import annotations

from typing import Any

from flask import current_app, g, jsonify, request

from app.practice.dates import detect_timezone, is_valid_timezone


def request_timezone() -> str:
    """
    Display timezone for this request: X-Timezone header, then the user's saved
    timezone, then DEFAULT_TIMEZONE, then the detected server zone.
    """
    candidates = (
        (request.headers.get("X-Timezone") or "").strip(),
        getattr(getattr(g, "current_user", None), "timezone", None),
        current_app.config.get("DEFAULT_TIMEZONE"),
    )
    for tz in candidates:
        if is_valid_timezone(tz):
            return tz
    return detect_timezone()


def json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def validation_error(message: str, errors: list[str] | None = None):
    payload: dict[str, Any] = {"success": False, "message": message}
    if errors:
        payload["errors"] = errors
    return jsonify(payload), 400
