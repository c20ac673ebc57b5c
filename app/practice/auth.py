from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash

from app.practice.audit import record_event
from app.practice.db import db_session
from app.practice.models import User
from app.practice.security import ensure_csrf_token
from app.practice.tenancy import Principal

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _clear_principal() -> None:
    g.current_user = None
    g.principal = None


def load_current_user() -> None:
    """
    Loads g.current_user and g.principal from the signed session cookie.
    This is the trust boundary: everything downstream reads g.principal only.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        _clear_principal()
        return

    user_id = session.get("user_id")
    if not user_id:
        _clear_principal()
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            _clear_principal()
            return
        g.current_user = user
        g.principal = Principal.from_user(user)
    except Exception as e:
        current_app.logger.error("load_current_user failed (clearing session): %s", e)
        session.pop("user_id", None)
        _clear_principal()


def _credentials() -> tuple[str, str]:
    if request.is_json:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            data = {}
    else:
        data = request.form
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    return email, password


@bp.get("/csrf")
def csrf_token():
    return {"csrf_token": ensure_csrf_token()}


@bp.post("/login")
def login_post():
    email, password = _credentials()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return jsonify({"message": "Too many login attempts. Please wait 5 minutes."}), 429

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            return jsonify({"message": "Invalid credentials"}), 401

        session["user_id"] = user.id
        _login_attempts[ip].clear()
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        return {
            "id": user.id,
            "email": user.email,
            "role": user.role,
            "firm_id": user.firm_id,
            "csrf_token": ensure_csrf_token(),
        }
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.pop("user_id", None)
    return {"success": True}
