from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app.practice import create_app
from app.practice.auth import _login_attempts
from app.practice.db import session_scope
from app.practice.models import Base, Firm, FirmUser, User
from app.practice.modules.clients.models import Client
from app.practice.modules.tasks.models import Task


def _user(email: str, role: str, firm_id: int | None, **kw) -> User:
    return User(email=email, password_hash=generate_password_hash("pw"), role=role, firm_id=firm_id, is_active=True, **kw)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("DEFAULT_TIMEZONE", "America/Toronto")
    monkeypatch.delenv("PERMISSION_LOOKUP_TIMEOUT", raising=False)
    _login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    ids: dict[str, int] = {}
    with session_scope(app) as s:
        alpha = Firm(name="Alpha CPA")
        beta = Firm(name="Beta Accounting")
        s.add_all([alpha, beta])
        s.flush()

        alpha_client = Client(firm_id=alpha.id, name="Maple Bakery", fiscal_year_end=date(2025, 12, 31))
        alpha_client_2 = Client(firm_id=alpha.id, name="Harbour Marine")
        beta_client = Client(firm_id=beta.id, name="Beta Client")
        s.add_all([alpha_client, alpha_client_2, beta_client])
        s.flush()

        owner = _user("owner@alpha.test", "firm_owner", alpha.id, name="Alpha Owner")
        staff = _user("staff@alpha.test", "staff", alpha.id, name="Alpha Staff")
        viewer = _user("viewer@alpha.test", "firm_user", alpha.id, name="Alpha Viewer")
        portal = _user("portal@alpha.test", "client", alpha.id, client_id=alpha_client.id)
        platform = _user("root@platform.test", "super_admin", None)
        beta_owner = _user("owner@beta.test", "firm_owner", beta.id, name="Beta Owner")
        s.add_all([owner, staff, viewer, portal, platform, beta_owner])
        s.flush()

        s.add_all(
            [
                FirmUser(user_id=staff.id, firm_id=alpha.id, role="staff", permissions=["tasks"]),
                FirmUser(user_id=portal.id, firm_id=alpha.id, role="staff", permissions=["clients"]),
            ]
        )

        alpha_task = Task(firm_id=alpha.id, client_id=alpha_client.id, title="Year-end close", due_date=date(2025, 12, 31))
        alpha_task_2 = Task(firm_id=alpha.id, client_id=alpha_client_2.id, title="Harbour payroll")
        beta_task = Task(firm_id=beta.id, client_id=beta_client.id, title="Beta HST", due_date=date(2025, 3, 9))
        s.add_all([alpha_task, alpha_task_2, beta_task])
        s.flush()

        ids.update(
            alpha=alpha.id,
            beta=beta.id,
            alpha_client=alpha_client.id,
            alpha_client_2=alpha_client_2.id,
            beta_client=beta_client.id,
            owner=owner.id,
            staff=staff.id,
            viewer=viewer.id,
            portal=portal.id,
            platform=platform.id,
            beta_owner=beta_owner.id,
            alpha_task=alpha_task.id,
            alpha_task_2=alpha_task_2.id,
            beta_task=beta_task.id,
        )

    app.config["TEST_IDS"] = ids
    return app


@pytest.fixture()
def ids(app):
    return app.config["TEST_IDS"]


@pytest.fixture()
def login(app):
    """Returns a factory: login(email) -> (client, headers with CSRF token)."""

    def _login(email: str):
        client = app.test_client()
        r = client.post("/auth/login", json={"email": email, "password": "pw"})
        assert r.status_code == 200, r.json
        return client, {"X-CSRF-Token": r.json["csrf_token"]}

    return _login
