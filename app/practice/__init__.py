import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request, session
from werkzeug.exceptions import HTTPException

from app.practice.config import load_config
from app.practice.db import init_db, teardown_db_session
from app.practice.routes import bp as routes_bp
from app.practice.auth import bp as auth_bp, load_current_user
from app.practice.modules.user_access.api import bp as user_access_bp
from app.practice.modules.clients.api import bp as clients_bp
from app.practice.modules.tasks.api import bp as tasks_bp
from app.practice.tenancy import setup_tenant_scope


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)

    from app.practice.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/static/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/logout carry no session-bound state worth forging.
            if (request.endpoint or "").startswith("auth."):
                return None
            # Without a logged-in session there is nothing to forge; the route answers 401.
            if not session.get("user_id"):
                return None
            if not validate_csrf(request):
                return jsonify({"message": "CSRF token missing or invalid."}), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(user_access_bp, url_prefix="/api")
    app.register_blueprint(clients_bp, url_prefix="/api")
    app.register_blueprint(tasks_bp, url_prefix="/api/tasks")

    # Principal first, then the scope derived from it; blueprint gates run after both.
    app.before_request(load_current_user)
    app.before_request(setup_tenant_scope)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):  # type: ignore[no-redef]
        if e.code == 403:
            app.logger.warning(
                "Forbidden: path=%s module=%s user_id=%s request_id=%s",
                request.path,
                getattr(g, "missing_module", None),
                getattr(getattr(g, "principal", None), "id", None),
                getattr(g, "request_id", None),
            )
        body = {"message": e.description}
        if e.code == 404:
            body = {"success": False, "message": "Not found"}
        return jsonify(body), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return jsonify({"message": "Internal server error", "request_id": rid}), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
