from flask import Blueprint, request

from app.practice.dates import current_date_in_timezone, timezone_aware_date_for_api, timezone_info
from app.practice.utils import request_timezone

bp = Blueprint("routes", __name__)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/api/timezone")
def timezone_details():
    """Resolved display timezone for the caller, plus today's date in it."""
    tz = request_timezone()
    info = timezone_info(tz)
    info["today"] = current_date_in_timezone(tz)
    date_arg = (request.args.get("date") or "").strip()
    if date_arg:
        info["request"] = timezone_aware_date_for_api(date_arg, tz)
    return info
